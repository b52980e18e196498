# app/models.py
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean, CheckConstraint, Column, DateTime, Float, ForeignKey, Integer,
    String, Text, UniqueConstraint, Uuid,
)

from app.database import Base


def utcnow():
    return datetime.now(timezone.utc)


class TimestampMixin:
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class User(TimestampMixin, Base):
    __tablename__ = "users"
    username = Column(String(64), unique=True, index=True, nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(128), nullable=False, index=True)
    avatar = Column(String, nullable=False)
    cover_image = Column(String, nullable=False, default="")
    password = Column(String, nullable=False)  # passlib hash
    refresh_token = Column(String, nullable=True)


class Video(TimestampMixin, Base):
    __tablename__ = "videos"
    video_file = Column(String, nullable=False)
    thumbnail = Column(String, nullable=False)
    title = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=False)
    duration = Column(Float, nullable=False, default=0)
    views = Column(Integer, nullable=False, default=0)
    is_published = Column(Boolean, nullable=False, default=True)
    owner_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)


class Tweet(TimestampMixin, Base):
    __tablename__ = "tweets"
    content = Column(Text, nullable=False)
    owner_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)


class Comment(TimestampMixin, Base):
    __tablename__ = "comments"
    content = Column(Text, nullable=False)
    video_id = Column(Uuid, ForeignKey("videos.id"), nullable=False, index=True)
    owner_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)


class Like(TimestampMixin, Base):
    __tablename__ = "likes"
    __table_args__ = (
        UniqueConstraint("liked_by", "video_id", name="uq_like_video"),
        UniqueConstraint("liked_by", "comment_id", name="uq_like_comment"),
        UniqueConstraint("liked_by", "tweet_id", name="uq_like_tweet"),
        CheckConstraint(
            "(CASE WHEN video_id IS NULL THEN 0 ELSE 1 END"
            " + CASE WHEN comment_id IS NULL THEN 0 ELSE 1 END"
            " + CASE WHEN tweet_id IS NULL THEN 0 ELSE 1 END) = 1",
            name="ck_like_single_target",
        ),
    )
    liked_by = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    video_id = Column(Uuid, ForeignKey("videos.id"), nullable=True, index=True)
    comment_id = Column(Uuid, ForeignKey("comments.id"), nullable=True, index=True)
    tweet_id = Column(Uuid, ForeignKey("tweets.id"), nullable=True, index=True)


class Subscription(TimestampMixin, Base):
    __tablename__ = "subscriptions"
    __table_args__ = (
        UniqueConstraint("subscriber_id", "channel_id", name="uq_subscription_pair"),
        CheckConstraint("subscriber_id <> channel_id", name="ck_subscription_not_self"),
    )
    subscriber_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    channel_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)


class Playlist(TimestampMixin, Base):
    __tablename__ = "playlists"
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    owner_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)


class PlaylistVideo(Base):
    """Ordered playlist entry; the composite key forbids duplicates."""
    __tablename__ = "playlist_videos"
    playlist_id = Column(Uuid, ForeignKey("playlists.id", ondelete="CASCADE"), primary_key=True)
    video_id = Column(Uuid, ForeignKey("videos.id", ondelete="CASCADE"), primary_key=True)
    position = Column(Integer, nullable=False)
    added_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class WatchHistory(Base):
    __tablename__ = "watch_history"
    __table_args__ = (
        UniqueConstraint("user_id", "video_id", name="uq_watch_history_entry"),
    )
    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    video_id = Column(Uuid, ForeignKey("videos.id"), nullable=False, index=True)
    watched_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
