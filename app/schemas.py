# app/schemas.py
import uuid
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


def _not_blank(value: Optional[str]) -> Optional[str]:
    if value is not None and not value.strip():
        raise ValueError("must not be empty")
    return value


class ApiResponse(CamelModel):
    status_code: int = 200
    data: Any = None
    message: str = "Success"
    success: bool = True

    @classmethod
    def ok(cls, data: Any, message: str, status_code: int = 200) -> "ApiResponse":
        return cls(status_code=status_code, data=data, message=message, success=status_code < 400)


# --- Users ---

class OwnerOut(CamelModel):
    id: uuid.UUID
    username: str
    full_name: str
    avatar: str


class UserOut(CamelModel):
    id: uuid.UUID
    username: str
    email: str
    full_name: str
    avatar: str
    cover_image: str = ""
    created_at: datetime
    updated_at: datetime


class ChannelProfileOut(CamelModel):
    id: uuid.UUID
    username: str
    email: str
    full_name: str
    avatar: str
    cover_image: str = ""
    subscriber_count: int = 0
    channels_subscribed_to_count: int = 0
    is_subscribed: bool = False


class ChannelOut(CamelModel):
    id: uuid.UUID
    username: str
    full_name: str
    avatar: str
    subscriber_count: int = 0
    is_subscribed: bool = False


class LoginRequest(CamelModel):
    username: Optional[str] = None
    email: Optional[str] = None
    password: str = Field(..., min_length=1)


class RefreshRequest(CamelModel):
    refresh_token: Optional[str] = None


class ChangePasswordRequest(CamelModel):
    old_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8)


class AccountUpdate(CamelModel):
    full_name: str
    email: EmailStr

    @field_validator("full_name")
    @classmethod
    def full_name_not_blank(cls, value):
        return _not_blank(value)


class TokenPair(CamelModel):
    access_token: str
    refresh_token: str


class LoginOut(TokenPair):
    user: UserOut


# --- Videos ---

class VideoOut(CamelModel):
    id: uuid.UUID
    video_file: str
    thumbnail: str
    title: str
    description: str
    duration: float
    views: int
    is_published: bool
    owner: Optional[OwnerOut] = None
    like_count: int = 0
    is_liked: bool = False
    created_at: datetime
    updated_at: datetime


class VideoUpdateOut(CamelModel):
    id: uuid.UUID
    video_file: str
    thumbnail: str
    title: str
    description: str
    duration: float
    views: int
    is_published: bool
    created_at: datetime
    updated_at: datetime


class WatchedVideoOut(VideoOut):
    watched_at: Optional[datetime] = None


class PublishStatusOut(CamelModel):
    video_id: uuid.UUID
    is_published: bool


# --- Comments / Tweets ---

class CommentIn(CamelModel):
    content: str

    @field_validator("content")
    @classmethod
    def content_not_blank(cls, value):
        return _not_blank(value)


class CommentOut(CamelModel):
    id: uuid.UUID
    content: str
    video_id: uuid.UUID
    owner: Optional[OwnerOut] = None
    like_count: int = 0
    is_liked: bool = False
    created_at: datetime
    updated_at: datetime


class TweetIn(CommentIn):
    pass


class TweetOut(CamelModel):
    id: uuid.UUID
    content: str
    owner: Optional[OwnerOut] = None
    like_count: int = 0
    is_liked: bool = False
    created_at: datetime
    updated_at: datetime


# --- Likes / Subscriptions ---

class LikeToggleOut(CamelModel):
    target_id: uuid.UUID
    liked: bool
    like_count: int


class SubscriptionToggleOut(CamelModel):
    channel_id: uuid.UUID
    subscribed: bool
    subscriber_count: int


# --- Playlists ---

class PlaylistIn(CamelModel):
    name: str
    description: str = ""

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value):
        return _not_blank(value)


class PlaylistUpdate(CamelModel):
    name: Optional[str] = None
    description: Optional[str] = None


class PlaylistSummaryOut(CamelModel):
    id: uuid.UUID
    name: str
    description: str
    owner_id: uuid.UUID
    total_videos: int = 0
    preview_thumbnails: List[str] = []
    created_at: datetime
    updated_at: datetime


class PlaylistVideoOut(CamelModel):
    id: uuid.UUID
    title: str
    thumbnail: str
    duration: float
    views: int
    owner: Optional[OwnerOut] = None
    created_at: datetime


class PlaylistOut(CamelModel):
    id: uuid.UUID
    name: str
    description: str
    owner: Optional[OwnerOut] = None
    videos: List[PlaylistVideoOut] = []
    total_videos: int = 0
    created_at: datetime
    updated_at: datetime
