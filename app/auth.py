# app/auth.py
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.config import settings
from app.database import get_db
from app.errors import AuthenticationError
from app.models import User

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.api_prefix}/users/login", auto_error=False)

ACCESS = "access"
REFRESH = "refresh"


async def hash_password(password: str) -> str:
    return await run_in_threadpool(pwd_context.hash, password)


async def verify_password(password: str, hashed: str) -> bool:
    return await run_in_threadpool(pwd_context.verify, password, hashed)


def _encode(data: dict, token_type: str, secret: str, expires_delta: timedelta) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + expires_delta
    to_encode.update({"exp": expire, "type": token_type, "jti": uuid.uuid4().hex})
    return jwt.encode(to_encode, secret, algorithm=settings.jwt_algorithm)


def create_access_token(user: User, expires_delta: Optional[timedelta] = None) -> str:
    data = {
        "sub": str(user.id),
        "email": user.email,
        "username": user.username,
        "fullName": user.full_name,
    }
    return _encode(
        data, ACCESS, settings.access_token_secret,
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes),
    )


def create_refresh_token(user: User, expires_delta: Optional[timedelta] = None) -> str:
    return _encode(
        {"sub": str(user.id)}, REFRESH, settings.refresh_token_secret,
        expires_delta or timedelta(days=settings.refresh_token_expire_days),
    )


def _decode(token: str, token_type: str, secret: str) -> uuid.UUID:
    try:
        payload = jwt.decode(token, secret, algorithms=[settings.jwt_algorithm])
        if payload.get("type") != token_type:
            raise AuthenticationError("Invalid token type")
        return uuid.UUID(payload["sub"])
    except (JWTError, KeyError, ValueError):
        raise AuthenticationError(f"Invalid {token_type} token")


def decode_access_token(token: str) -> uuid.UUID:
    return _decode(token, ACCESS, settings.access_token_secret)


def decode_refresh_token(token: str) -> uuid.UUID:
    return _decode(token, REFRESH, settings.refresh_token_secret)


async def authenticate_user(db: AsyncSession, login: str, password: str) -> Optional[User]:
    login = login.strip().lower()
    result = await db.execute(select(User).filter(or_(User.username == login, User.email == login)))
    user = result.scalars().first()
    if not user or not await verify_password(password, user.password):
        return None
    return user


async def _user_from_request(request: Request, bearer: Optional[str], db: AsyncSession) -> Optional[User]:
    token = request.cookies.get("accessToken") or bearer
    if not token:
        return None
    user = await db.get(User, decode_access_token(token))
    if user is None:
        raise AuthenticationError("Invalid access token")
    return user


async def get_current_user(
    request: Request,
    bearer: Optional[str] = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    user = await _user_from_request(request, bearer, db)
    if user is None:
        raise AuthenticationError("Unauthorized request")
    return user


async def get_optional_user(
    request: Request,
    bearer: Optional[str] = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> Optional[User]:
    try:
        return await _user_from_request(request, bearer, db)
    except AuthenticationError:
        return None
