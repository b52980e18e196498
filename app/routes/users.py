from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Request, Response, UploadFile
from pydantic import EmailStr
from sqlalchemy.ext.asyncio import AsyncSession

from app import auth, crud, schemas
from app.auth import get_current_user
from app.config import settings
from app.database import get_db
from app.errors import ApiError, AuthenticationError, ValidationError
from app.media import MediaService, get_media_service
from app.models import User
from app.pagination import PageParams
from app.ratelimit import limiter

router = APIRouter(prefix="/users", tags=["users"])


def _has_file(upload: Optional[UploadFile]) -> bool:
    return upload is not None and bool(upload.filename)


def _set_auth_cookies(response: Response, access_token: str, refresh_token: str):
    options = {"httponly": True, "secure": settings.cookie_secure, "samesite": "lax"}
    response.set_cookie("accessToken", access_token, **options)
    response.set_cookie("refreshToken", refresh_token, **options)


@router.post("/register", status_code=201)
async def register_user(
    full_name: str = Form(..., alias="fullName"),
    email: EmailStr = Form(...),
    username: str = Form(...),
    password: str = Form(...),
    avatar: Optional[UploadFile] = File(None),
    cover_image: Optional[UploadFile] = File(None, alias="coverImage"),
    db: AsyncSession = Depends(get_db),
    media: MediaService = Depends(get_media_service),
):
    if any(not value.strip() for value in (full_name, email, username, password)):
        raise ValidationError("All fields are required")
    if not _has_file(avatar):
        raise ValidationError("Avatar is required")
    await crud.ensure_user_available(db, username, email)

    avatar_asset = await media.upload(avatar, "avatars")
    cover_asset = None
    if _has_file(cover_image):
        try:
            cover_asset = await media.upload(cover_image, "covers")
        except ApiError:
            media.discard(avatar_asset.url)
            raise
    try:
        user = await crud.create_user(
            db,
            username=username,
            email=email,
            full_name=full_name,
            password=password,
            avatar=avatar_asset.url,
            cover_image=cover_asset.url if cover_asset else "",
        )
    except Exception:
        media.discard(avatar_asset.url)
        if cover_asset:
            media.discard(cover_asset.url)
        raise
    return schemas.ApiResponse.ok(schemas.UserOut.model_validate(user), "User registered successfully", 201)


@router.post("/login")
@limiter.limit(settings.login_rate_limit)
async def login_user(
    request: Request,
    response: Response,
    payload: schemas.LoginRequest,
    db: AsyncSession = Depends(get_db),
):
    login = payload.username or payload.email
    if not login:
        raise ValidationError("Email or username is required")
    user = await auth.authenticate_user(db, login, payload.password)
    if not user:
        raise AuthenticationError("Invalid user credentials")

    access_token, refresh_token = await crud.issue_tokens(db, user)
    _set_auth_cookies(response, access_token, refresh_token)
    data = schemas.LoginOut(
        user=schemas.UserOut.model_validate(user), access_token=access_token, refresh_token=refresh_token
    )
    return schemas.ApiResponse.ok(data, "User logged in successfully")


@router.post("/logout")
async def logout_user(
    response: Response,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await crud.revoke_refresh_token(db, user)
    response.delete_cookie("accessToken")
    response.delete_cookie("refreshToken")
    return schemas.ApiResponse.ok({}, "User logged out")


@router.post("/refresh-token")
async def refresh_access_token(
    request: Request,
    response: Response,
    payload: Optional[schemas.RefreshRequest] = None,
    db: AsyncSession = Depends(get_db),
):
    incoming = request.cookies.get("refreshToken") or (payload.refresh_token if payload else None)
    if not incoming:
        raise AuthenticationError("Unauthorized request")
    access_token, refresh_token = await crud.rotate_refresh_token(db, incoming)
    _set_auth_cookies(response, access_token, refresh_token)
    data = schemas.TokenPair(access_token=access_token, refresh_token=refresh_token)
    return schemas.ApiResponse.ok(data, "Access token refreshed")


@router.post("/change-password")
async def change_current_password(
    payload: schemas.ChangePasswordRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await crud.change_password(db, user, payload.old_password, payload.new_password)
    return schemas.ApiResponse.ok({}, "Password changed successfully")


@router.get("/current-user")
async def get_current_user_profile(user: User = Depends(get_current_user)):
    return schemas.ApiResponse.ok(schemas.UserOut.model_validate(user), "Current user fetched successfully")


@router.patch("/update-account")
async def update_account_details(
    payload: schemas.AccountUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    user = await crud.update_account(db, user, payload.full_name, payload.email)
    return schemas.ApiResponse.ok(schemas.UserOut.model_validate(user), "Account details updated successfully")


async def _replace_image(db, user, media, upload, field, folder, label):
    if not _has_file(upload):
        raise ValidationError(f"{label} file is missing")
    asset = await media.upload(upload, folder)
    previous = await crud.set_user_image(db, user, field, asset.url)
    media.discard(previous)
    return schemas.ApiResponse.ok(schemas.UserOut.model_validate(user), f"{label} updated successfully")


@router.patch("/avatar")
async def update_user_avatar(
    avatar: Optional[UploadFile] = File(None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    media: MediaService = Depends(get_media_service),
):
    return await _replace_image(db, user, media, avatar, "avatar", "avatars", "Avatar")


@router.patch("/cover-image")
async def update_user_cover_image(
    cover_image: Optional[UploadFile] = File(None, alias="coverImage"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    media: MediaService = Depends(get_media_service),
):
    return await _replace_image(db, user, media, cover_image, "cover_image", "covers", "Cover image")


@router.get("/c/{username}")
async def get_user_channel_profile(
    username: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not username.strip():
        raise ValidationError("Username is required")
    profile = await crud.get_channel_profile(db, username, actor_id=user.id)
    return schemas.ApiResponse.ok(profile, "Channel profile fetched successfully")


@router.get("/history")
async def get_watch_history(
    params: PageParams = Depends(),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    history = await crud.list_watch_history(db, user.id, params.page, params.limit)
    return schemas.ApiResponse.ok(history, "Watch history fetched successfully")
