import logging
from collections import defaultdict
from typing import Dict, List, Optional, Tuple

from sqlalchemy import delete, func, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app import auth, schemas
from app.errors import AuthenticationError, ConflictError, NotFoundError, ValidationError
from app.models import (
    Comment, Like, Playlist, PlaylistVideo, Subscription, Tweet, User, Video,
    WatchHistory, utcnow,
)
from app.pagination import (
    COMMENTS, LIKED_VIDEOS, PLAYLISTS, SUBSCRIBED_CHANNELS, SUBSCRIBERS, TWEETS,
    VIDEOS, WATCH_HISTORY, paginate,
)
from app.query import JoinSpec, ResourceView, likes_join, owner_join

logger = logging.getLogger(__name__)

PREVIEW_THUMBNAILS = 3

subscribers_join = JoinSpec(
    Subscription, "id", "channel_id", "subscribers", many=True,
    count_field="subscriber_count", member_key="subscriber_id", member_field="is_subscribed",
)
subscribed_to_join = JoinSpec(
    Subscription, "id", "subscriber_id", "subscribed_to", many=True,
    count_field="channels_subscribed_to_count",
)
entries_join = JoinSpec(PlaylistVideo, "id", "playlist_id", "entries", many=True, count_field="total_videos")

VIDEO_VIEW = ResourceView(
    Video,
    fields=("id", "video_file", "thumbnail", "title", "description", "duration", "views",
            "is_published", "created_at", "updated_at"),
    joins=(owner_join(User), likes_join(Like, "video_id")),
    sort_fields={"createdAt": "created_at", "updatedAt": "updated_at", "views": "views",
                 "duration": "duration", "title": "title", "likeCount": "like_count"},
)
COMMENT_VIEW = ResourceView(
    Comment,
    fields=("id", "content", "video_id", "created_at", "updated_at"),
    joins=(owner_join(User), likes_join(Like, "comment_id")),
)
TWEET_VIEW = ResourceView(
    Tweet,
    fields=("id", "content", "created_at", "updated_at"),
    joins=(owner_join(User), likes_join(Like, "tweet_id")),
)
CHANNEL_VIEW = ResourceView(
    User,
    fields=("id", "username", "full_name", "avatar", "created_at"),
    joins=(subscribers_join,),
    sort_fields={"username": "username", "createdAt": "created_at"},
)
PROFILE_VIEW = ResourceView(
    User,
    fields=("id", "username", "email", "full_name", "avatar", "cover_image", "created_at"),
    joins=(subscribers_join, subscribed_to_join),
)
PLAYLIST_VIEW = ResourceView(
    Playlist,
    fields=("id", "name", "description", "owner_id", "created_at", "updated_at"),
    joins=(entries_join,),
    default_sort="updated_at",
)
PLAYLIST_DETAIL_VIEW = ResourceView(
    Playlist,
    fields=("id", "name", "description", "created_at", "updated_at"),
    joins=(owner_join(User), entries_join),
)


def _as(schema, view: ResourceView):
    return lambda rows: [schema.model_validate(record) for record in view.to_records(rows)]


async def _first_record(db: AsyncSession, view: ResourceView, statement) -> Optional[Dict]:
    row = (await db.execute(statement)).first()
    return view.to_record(row) if row is not None else None


async def _commit_unique(db: AsyncSession, message: str):
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError(message)


# --- Users ---

async def get_user(db: AsyncSession, user_id) -> Optional[User]:
    return await db.get(User, user_id)


async def ensure_user_available(db: AsyncSession, username: str, email: str):
    username, email = username.strip().lower(), email.strip().lower()
    result = await db.execute(select(User.id).where(or_(User.username == username, User.email == email)))
    if result.first():
        raise ConflictError("Username or email already exists")


async def create_user(
    db: AsyncSession, *, username: str, email: str, full_name: str, password: str,
    avatar: str, cover_image: str = "",
) -> User:
    username, email = username.strip().lower(), email.strip().lower()
    await ensure_user_available(db, username, email)

    user = User(
        username=username,
        email=email,
        full_name=full_name.strip(),
        password=await auth.hash_password(password),
        avatar=avatar,
        cover_image=cover_image or "",
    )
    db.add(user)
    await _commit_unique(db, "Username or email already exists")
    await db.refresh(user)
    return user


async def issue_tokens(db: AsyncSession, user: User) -> Tuple[str, str]:
    """Issue a token pair; the stored refresh token replaces any previous one."""
    access_token = auth.create_access_token(user)
    refresh_token = auth.create_refresh_token(user)
    user.refresh_token = refresh_token
    await db.commit()
    await db.refresh(user)
    return access_token, refresh_token


async def revoke_refresh_token(db: AsyncSession, user: User):
    user.refresh_token = None
    await db.commit()


async def rotate_refresh_token(db: AsyncSession, token: str) -> Tuple[str, str]:
    user = await get_user(db, auth.decode_refresh_token(token))
    if user is None:
        raise AuthenticationError("Invalid refresh token")
    if user.refresh_token != token:
        raise AuthenticationError("Refresh token is expired or used")
    return await issue_tokens(db, user)


async def change_password(db: AsyncSession, user: User, old_password: str, new_password: str):
    if not await auth.verify_password(old_password, user.password):
        raise ValidationError("Invalid old password")
    user.password = await auth.hash_password(new_password)
    await db.commit()


async def update_account(db: AsyncSession, user: User, full_name: str, email: str) -> User:
    email = email.strip().lower()
    taken = await db.execute(select(User.id).where(User.email == email, User.id != user.id))
    if taken.first():
        raise ConflictError("Email already in use")
    user.full_name = full_name.strip()
    user.email = email
    await _commit_unique(db, "Email already in use")
    await db.refresh(user)
    return user


async def set_user_image(db: AsyncSession, user: User, field: str, url: str) -> Optional[str]:
    """Point ``field`` at a new upload and return the URL it replaced."""
    previous = getattr(user, field)
    setattr(user, field, url)
    await db.commit()
    await db.refresh(user)
    return previous


async def get_channel_profile(db: AsyncSession, username: str, actor_id=None) -> schemas.ChannelProfileOut:
    record = await _first_record(
        db, PROFILE_VIEW, PROFILE_VIEW.select(User.username == username.strip().lower(), actor_id=actor_id)
    )
    if record is None:
        raise NotFoundError("Channel not found")
    return schemas.ChannelProfileOut.model_validate(record)


async def record_watch(db: AsyncSession, user_id, video_id):
    existing = await db.execute(
        update(WatchHistory)
        .where(WatchHistory.user_id == user_id, WatchHistory.video_id == video_id)
        .values(watched_at=utcnow())
    )
    if existing.rowcount:
        await db.commit()
        return
    db.add(WatchHistory(user_id=user_id, video_id=video_id))
    try:
        await db.commit()
    except IntegrityError:
        # recorded concurrently by another request; refresh its timestamp instead
        await db.rollback()
        await db.execute(
            update(WatchHistory)
            .where(WatchHistory.user_id == user_id, WatchHistory.video_id == video_id)
            .values(watched_at=utcnow())
        )
        await db.commit()


async def list_watch_history(db: AsyncSession, user_id, page: int, limit: int) -> Dict:
    watched_at = (
        select(WatchHistory.watched_at)
        .where(WatchHistory.video_id == Video.id, WatchHistory.user_id == user_id)
        .scalar_subquery()
    )
    statement = VIDEO_VIEW.select(
        Video.id.in_(select(WatchHistory.video_id).where(WatchHistory.user_id == user_id)),
        actor_id=user_id, sort_by="watched_at", extra={"watched_at": watched_at},
    )
    return await paginate(db, statement, page, limit, WATCH_HISTORY, _as(schemas.WatchedVideoOut, VIDEO_VIEW))


# --- Videos ---

async def get_video(db: AsyncSession, video_id) -> Optional[Video]:
    return await db.get(Video, video_id)


async def list_videos(
    db: AsyncSession, page: int, limit: int, *, actor_id=None, query: Optional[str] = None,
    owner_id=None, sort_by: Optional[str] = None, sort_type: Optional[str] = None,
) -> Dict:
    where = [Video.is_published.is_(True)]
    if query:
        where.append(or_(Video.title.icontains(query, autoescape=True),
                         Video.description.icontains(query, autoescape=True)))
    if owner_id is not None:
        where.append(Video.owner_id == owner_id)
    statement = VIDEO_VIEW.select(*where, actor_id=actor_id, sort_by=sort_by, sort_type=sort_type)
    return await paginate(db, statement, page, limit, VIDEOS, _as(schemas.VideoOut, VIDEO_VIEW))


async def get_video_view(db: AsyncSession, video_id, actor_id=None) -> schemas.VideoOut:
    record = await _first_record(db, VIDEO_VIEW, VIDEO_VIEW.select(Video.id == video_id, actor_id=actor_id))
    if record is None:
        raise NotFoundError("Video not found")
    return schemas.VideoOut.model_validate(record)


async def watch_video(db: AsyncSession, video: Video, actor_id=None) -> schemas.VideoOut:
    if video.is_published:
        await db.execute(update(Video).where(Video.id == video.id).values(views=Video.views + 1))
        await db.commit()
        if actor_id is not None:
            await record_watch(db, actor_id, video.id)
    return await get_video_view(db, video.id, actor_id)


async def create_video(
    db: AsyncSession, owner_id, *, title: str, description: str, video_file: str,
    thumbnail: str, duration: Optional[float] = None,
) -> Video:
    video = Video(
        title=title.strip(),
        description=description.strip(),
        video_file=video_file,
        thumbnail=thumbnail,
        duration=duration or 0,
        owner_id=owner_id,
        is_published=True,
    )
    db.add(video)
    await db.commit()
    await db.refresh(video)
    return video


async def update_video(
    db: AsyncSession, video: Video, *, title: Optional[str] = None,
    description: Optional[str] = None, thumbnail: Optional[str] = None,
) -> Video:
    if title and title.strip():
        video.title = title.strip()
    if description and description.strip():
        video.description = description.strip()
    if thumbnail:
        video.thumbnail = thumbnail
    await db.commit()
    await db.refresh(video)
    return video


async def delete_video(db: AsyncSession, video: Video):
    """Delete a video with its likes, comments, playlist entries and history rows."""
    comment_ids = select(Comment.id).where(Comment.video_id == video.id)
    await db.execute(delete(Like).where(or_(Like.video_id == video.id, Like.comment_id.in_(comment_ids))))
    await db.execute(delete(Comment).where(Comment.video_id == video.id))
    await db.execute(delete(PlaylistVideo).where(PlaylistVideo.video_id == video.id))
    await db.execute(delete(WatchHistory).where(WatchHistory.video_id == video.id))
    await db.delete(video)
    await db.commit()
    logger.info("Deleted video %s", video.id)


async def toggle_publish(db: AsyncSession, video: Video) -> Video:
    video.is_published = not video.is_published
    await db.commit()
    await db.refresh(video)
    return video


# --- Comments ---

async def get_comment(db: AsyncSession, comment_id) -> Optional[Comment]:
    return await db.get(Comment, comment_id)


async def list_comments(db: AsyncSession, video_id, page: int, limit: int, actor_id=None) -> Dict:
    statement = COMMENT_VIEW.select(Comment.video_id == video_id, actor_id=actor_id)
    return await paginate(db, statement, page, limit, COMMENTS, _as(schemas.CommentOut, COMMENT_VIEW))


async def get_comment_view(db: AsyncSession, comment_id, actor_id=None) -> schemas.CommentOut:
    record = await _first_record(db, COMMENT_VIEW, COMMENT_VIEW.select(Comment.id == comment_id, actor_id=actor_id))
    if record is None:
        raise NotFoundError("Comment not found")
    return schemas.CommentOut.model_validate(record)


async def create_comment(db: AsyncSession, video: Video, owner_id, content: str) -> Comment:
    comment = Comment(content=content.strip(), video_id=video.id, owner_id=owner_id)
    db.add(comment)
    await db.commit()
    await db.refresh(comment)
    return comment


async def update_comment(db: AsyncSession, comment: Comment, content: str) -> Comment:
    comment.content = content.strip()
    await db.commit()
    await db.refresh(comment)
    return comment


async def delete_comment(db: AsyncSession, comment: Comment):
    await db.execute(delete(Like).where(Like.comment_id == comment.id))
    await db.delete(comment)
    await db.commit()


# --- Tweets ---

async def get_tweet(db: AsyncSession, tweet_id) -> Optional[Tweet]:
    return await db.get(Tweet, tweet_id)


async def create_tweet(db: AsyncSession, owner_id, content: str) -> Tweet:
    tweet = Tweet(content=content.strip(), owner_id=owner_id)
    db.add(tweet)
    await db.commit()
    await db.refresh(tweet)
    return tweet


async def list_user_tweets(db: AsyncSession, owner_id, page: int, limit: int, actor_id=None) -> Dict:
    statement = TWEET_VIEW.select(Tweet.owner_id == owner_id, actor_id=actor_id)
    return await paginate(db, statement, page, limit, TWEETS, _as(schemas.TweetOut, TWEET_VIEW))


async def get_tweet_view(db: AsyncSession, tweet_id, actor_id=None) -> schemas.TweetOut:
    record = await _first_record(db, TWEET_VIEW, TWEET_VIEW.select(Tweet.id == tweet_id, actor_id=actor_id))
    if record is None:
        raise NotFoundError("Tweet not found")
    return schemas.TweetOut.model_validate(record)


async def update_tweet(db: AsyncSession, tweet: Tweet, content: str) -> Tweet:
    tweet.content = content.strip()
    await db.commit()
    await db.refresh(tweet)
    return tweet


async def delete_tweet(db: AsyncSession, tweet: Tweet):
    await db.execute(delete(Like).where(Like.tweet_id == tweet.id))
    await db.delete(tweet)
    await db.commit()


# --- Likes ---

LIKE_TARGETS = {"video": Like.video_id, "comment": Like.comment_id, "tweet": Like.tweet_id}


async def count_likes(db: AsyncSession, target: str, target_id) -> int:
    column = LIKE_TARGETS[target]
    return (await db.execute(select(func.count()).select_from(Like).where(column == target_id))).scalar_one()


async def toggle_like(db: AsyncSession, actor_id, target: str, target_id) -> schemas.LikeToggleOut:
    """Flip the actor's like on one target and return the new state."""
    column = LIKE_TARGETS[target]
    result = await db.execute(select(Like).where(Like.liked_by == actor_id, column == target_id))
    existing = result.scalars().first()
    if existing is not None:
        await db.delete(existing)
        await db.commit()
        liked = False
    else:
        db.add(Like(liked_by=actor_id, **{column.key: target_id}))
        await _commit_unique(db, f"{target.capitalize()} is already liked")
        liked = True
    return schemas.LikeToggleOut(
        target_id=target_id, liked=liked, like_count=await count_likes(db, target, target_id)
    )


async def list_liked_videos(db: AsyncSession, actor_id, page: int, limit: int) -> Dict:
    liked_at = (
        select(Like.created_at)
        .where(Like.video_id == Video.id, Like.liked_by == actor_id)
        .scalar_subquery()
    )
    statement = VIDEO_VIEW.select(
        Video.id.in_(select(Like.video_id).where(Like.liked_by == actor_id, Like.video_id.is_not(None))),
        actor_id=actor_id, sort_by="liked_at", extra={"liked_at": liked_at},
    )
    return await paginate(db, statement, page, limit, LIKED_VIDEOS, _as(schemas.VideoOut, VIDEO_VIEW))


# --- Subscriptions ---

async def count_subscribers(db: AsyncSession, channel_id) -> int:
    statement = select(func.count()).select_from(Subscription).where(Subscription.channel_id == channel_id)
    return (await db.execute(statement)).scalar_one()


async def toggle_subscription(db: AsyncSession, subscriber_id, channel_id) -> schemas.SubscriptionToggleOut:
    if subscriber_id == channel_id:
        raise ValidationError("Users cannot subscribe to their own channel")
    if await get_user(db, channel_id) is None:
        raise NotFoundError("Channel not found")

    result = await db.execute(
        select(Subscription).where(Subscription.subscriber_id == subscriber_id, Subscription.channel_id == channel_id)
    )
    existing = result.scalars().first()
    if existing is not None:
        await db.delete(existing)
        await db.commit()
        subscribed = False
    else:
        db.add(Subscription(subscriber_id=subscriber_id, channel_id=channel_id))
        await _commit_unique(db, "Already subscribed to this channel")
        subscribed = True
    return schemas.SubscriptionToggleOut(
        channel_id=channel_id, subscribed=subscribed, subscriber_count=await count_subscribers(db, channel_id)
    )


async def list_subscribers(db: AsyncSession, channel_id, page: int, limit: int, actor_id=None) -> Dict:
    subscribed_at = (
        select(Subscription.created_at)
        .where(Subscription.subscriber_id == User.id, Subscription.channel_id == channel_id)
        .scalar_subquery()
    )
    statement = CHANNEL_VIEW.select(
        User.id.in_(select(Subscription.subscriber_id).where(Subscription.channel_id == channel_id)),
        actor_id=actor_id, sort_by="subscribed_at", extra={"subscribed_at": subscribed_at},
    )
    return await paginate(db, statement, page, limit, SUBSCRIBERS, _as(schemas.ChannelOut, CHANNEL_VIEW))


async def list_subscribed_channels(db: AsyncSession, subscriber_id, page: int, limit: int, actor_id=None) -> Dict:
    statement = CHANNEL_VIEW.select(
        User.id.in_(select(Subscription.channel_id).where(Subscription.subscriber_id == subscriber_id)),
        actor_id=actor_id, sort_by="username", sort_type="asc",
    )
    return await paginate(
        db, statement, page, limit, SUBSCRIBED_CHANNELS, _as(schemas.ChannelOut, CHANNEL_VIEW)
    )


# --- Playlists ---

async def get_playlist(db: AsyncSession, playlist_id) -> Optional[Playlist]:
    return await db.get(Playlist, playlist_id)


async def create_playlist(db: AsyncSession, owner_id, name: str, description: str = "") -> Playlist:
    playlist = Playlist(name=name.strip(), description=(description or "").strip(), owner_id=owner_id)
    db.add(playlist)
    await db.commit()
    await db.refresh(playlist)
    return playlist


async def _preview_thumbnails(db: AsyncSession, playlist_ids: List) -> Dict:
    previews = defaultdict(list)
    if not playlist_ids:
        return previews
    rows = await db.execute(
        select(PlaylistVideo.playlist_id, Video.thumbnail)
        .join(Video, Video.id == PlaylistVideo.video_id)
        .where(PlaylistVideo.playlist_id.in_(playlist_ids))
        .order_by(PlaylistVideo.playlist_id, PlaylistVideo.position)
    )
    for playlist_id, thumbnail in rows:
        if len(previews[playlist_id]) < PREVIEW_THUMBNAILS:
            previews[playlist_id].append(thumbnail)
    return previews


async def list_user_playlists(db: AsyncSession, owner_id, page: int, limit: int) -> Dict:
    statement = PLAYLIST_VIEW.select(Playlist.owner_id == owner_id)
    result = await paginate(db, statement, page, limit, PLAYLISTS, PLAYLIST_VIEW.to_records)
    records = result[PLAYLISTS.docs]
    previews = await _preview_thumbnails(db, [record["id"] for record in records])
    result[PLAYLISTS.docs] = [
        schemas.PlaylistSummaryOut.model_validate({**record, "preview_thumbnails": previews[record["id"]]})
        for record in records
    ]
    return result


async def get_playlist_detail(db: AsyncSession, playlist_id) -> schemas.PlaylistOut:
    record = await _first_record(db, PLAYLIST_DETAIL_VIEW, PLAYLIST_DETAIL_VIEW.select(Playlist.id == playlist_id))
    if record is None:
        raise NotFoundError("Playlist not found")
    position = (
        select(PlaylistVideo.position)
        .where(PlaylistVideo.video_id == Video.id, PlaylistVideo.playlist_id == playlist_id)
        .scalar_subquery()
    )
    statement = VIDEO_VIEW.select(
        Video.id.in_(select(PlaylistVideo.video_id).where(PlaylistVideo.playlist_id == playlist_id)),
        sort_by="position", sort_type="asc", extra={"position": position},
    )
    rows = (await db.execute(statement)).all()
    record["videos"] = VIDEO_VIEW.to_records(rows)
    return schemas.PlaylistOut.model_validate(record)


async def add_video_to_playlist(db: AsyncSession, playlist: Playlist, video: Video) -> schemas.PlaylistOut:
    if not video.is_published:
        raise ValidationError("Cannot add an unpublished video to playlist")
    existing = await db.get(PlaylistVideo, (playlist.id, video.id))
    if existing is not None:
        raise ValidationError("Video already exists in this playlist")

    last = await db.execute(
        select(func.max(PlaylistVideo.position)).where(PlaylistVideo.playlist_id == playlist.id)
    )
    db.add(PlaylistVideo(playlist_id=playlist.id, video_id=video.id, position=(last.scalar() or 0) + 1))
    playlist.updated_at = utcnow()
    await _commit_unique(db, "Video already exists in this playlist")
    return await get_playlist_detail(db, playlist.id)


async def remove_video_from_playlist(db: AsyncSession, playlist: Playlist, video_id) -> schemas.PlaylistOut:
    entry = await db.get(PlaylistVideo, (playlist.id, video_id))
    if entry is None:
        raise NotFoundError("Video not found in this playlist")
    await db.delete(entry)
    playlist.updated_at = utcnow()
    await db.commit()
    return await get_playlist_detail(db, playlist.id)


async def update_playlist(
    db: AsyncSession, playlist: Playlist, name: Optional[str] = None, description: Optional[str] = None
) -> Playlist:
    if name and name.strip():
        playlist.name = name.strip()
    if description is not None:
        playlist.description = description.strip()
    await db.commit()
    await db.refresh(playlist)
    return playlist


async def delete_playlist(db: AsyncSession, playlist: Playlist):
    """Entries go with the playlist; the videos themselves are untouched."""
    await db.execute(delete(PlaylistVideo).where(PlaylistVideo.playlist_id == playlist.id))
    await db.delete(playlist)
    await db.commit()
