from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from app import crud, schemas
from app.auth import get_current_user, get_optional_user
from app.cache import clear_playlists
from app.database import get_db
from app.errors import ApiError, NotFoundError, ValidationError, parse_id
from app.media import MediaService, get_media_service
from app.models import User
from app.pagination import PageParams
from app.permissions import ensure_can_mutate

router = APIRouter(prefix="/videos", tags=["videos"])


def _filled(value: Optional[str]) -> bool:
    return bool(value and value.strip())


async def _owned_video(db: AsyncSession, video_id: str, user: User, action: str):
    video = await crud.get_video(db, parse_id(video_id, "video"))
    return ensure_can_mutate(user.id, video, "Video", action)


@router.get("")
async def get_all_videos(
    params: PageParams = Depends(),
    query: Optional[str] = None,
    sortBy: Optional[str] = None,
    sortType: Optional[str] = "desc",
    userId: Optional[str] = None,
    user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    owner_id = parse_id(userId, "user") if userId else None
    videos = await crud.list_videos(
        db, params.page, params.limit,
        actor_id=user.id if user else None,
        query=query.strip() if query else None,
        owner_id=owner_id,
        sort_by=sortBy,
        sort_type=sortType,
    )
    return schemas.ApiResponse.ok(videos, "Videos fetched successfully")


@router.post("", status_code=201)
async def publish_a_video(
    title: str = Form(""),
    description: str = Form(""),
    video_file: Optional[UploadFile] = File(None, alias="videoFile"),
    thumbnail: Optional[UploadFile] = File(None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    media: MediaService = Depends(get_media_service),
):
    if not _filled(title):
        raise ValidationError("Title is required")
    if not _filled(description):
        raise ValidationError("Description is required")
    if video_file is None or not video_file.filename:
        raise ValidationError("Video file is required")
    if thumbnail is None or not thumbnail.filename:
        raise ValidationError("Thumbnail file is required")

    video_asset = await media.upload(video_file, "videos", measure_duration=True)
    try:
        thumbnail_asset = await media.upload(thumbnail, "thumbnails")
    except ApiError:
        media.discard(video_asset.url)
        raise
    try:
        video = await crud.create_video(
            db, user.id,
            title=title,
            description=description,
            video_file=video_asset.url,
            thumbnail=thumbnail_asset.url,
            duration=video_asset.duration,
        )
    except Exception:
        media.discard(video_asset.url)
        media.discard(thumbnail_asset.url)
        raise
    data = await crud.get_video_view(db, video.id, actor_id=user.id)
    return schemas.ApiResponse.ok(data, "Video published successfully", 201)


@router.get("/{video_id}")
async def get_video_by_id(
    video_id: str,
    user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    actor_id = user.id if user else None
    video = await crud.get_video(db, parse_id(video_id, "video"))
    if video is None or (not video.is_published and video.owner_id != actor_id):
        raise NotFoundError("Video not found")
    data = await crud.watch_video(db, video, actor_id)
    return schemas.ApiResponse.ok(data, "Video fetched successfully")


@router.patch("/{video_id}")
async def update_video(
    video_id: str,
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    thumbnail: Optional[UploadFile] = File(None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    media: MediaService = Depends(get_media_service),
):
    has_thumbnail = thumbnail is not None and bool(thumbnail.filename)
    if not (_filled(title) or _filled(description) or has_thumbnail):
        raise ValidationError("At least one field (title, description, or thumbnail) must be provided for update")
    video = await _owned_video(db, video_id, user, "update")

    previous_thumbnail = video.thumbnail
    new_thumbnail = (await media.upload(thumbnail, "thumbnails")).url if has_thumbnail else None
    video = await crud.update_video(db, video, title=title, description=description, thumbnail=new_thumbnail)
    if new_thumbnail:
        media.discard(previous_thumbnail)
    await clear_playlists()
    return schemas.ApiResponse.ok(schemas.VideoUpdateOut.model_validate(video), "Video details updated successfully")


@router.delete("/{video_id}")
async def delete_video(
    video_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    media: MediaService = Depends(get_media_service),
):
    video = await _owned_video(db, video_id, user, "delete")
    deleted_id, files = video.id, (video.video_file, video.thumbnail)
    await crud.delete_video(db, video)
    for url in files:
        media.discard(url)
    await clear_playlists()
    return schemas.ApiResponse.ok({"videoId": deleted_id}, "Video deleted successfully")


@router.patch("/toggle/publish/{video_id}")
async def toggle_publish_status(
    video_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    video = await _owned_video(db, video_id, user, "change the publish status of")
    video = await crud.toggle_publish(db, video)
    await clear_playlists()
    data = schemas.PublishStatusOut(video_id=video.id, is_published=video.is_published)
    return schemas.ApiResponse.ok(data, "Video publish status toggled successfully")
