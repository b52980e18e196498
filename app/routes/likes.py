from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app import crud, schemas
from app.auth import get_current_user
from app.database import get_db
from app.errors import AuthorizationError, NotFoundError, parse_id
from app.models import User
from app.pagination import PageParams

router = APIRouter(prefix="/likes", tags=["likes"])


def _message(result: schemas.LikeToggleOut, noun: str) -> str:
    return f"{noun} {'liked' if result.liked else 'unliked'} successfully"


@router.post("/toggle/v/{video_id}")
async def toggle_video_like(
    video_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    video = await crud.get_video(db, parse_id(video_id, "video"))
    if video is None:
        raise NotFoundError("Video not found")
    if not video.is_published:
        raise AuthorizationError("Cannot like an unpublished video")
    result = await crud.toggle_like(db, user.id, "video", video.id)
    return schemas.ApiResponse.ok(result, _message(result, "Video"))


@router.post("/toggle/c/{comment_id}")
async def toggle_comment_like(
    comment_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    comment = await crud.get_comment(db, parse_id(comment_id, "comment"))
    if comment is None:
        raise NotFoundError("Comment not found")
    result = await crud.toggle_like(db, user.id, "comment", comment.id)
    return schemas.ApiResponse.ok(result, _message(result, "Comment"))


@router.post("/toggle/t/{tweet_id}")
async def toggle_tweet_like(
    tweet_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    tweet = await crud.get_tweet(db, parse_id(tweet_id, "tweet"))
    if tweet is None:
        raise NotFoundError("Tweet not found")
    result = await crud.toggle_like(db, user.id, "tweet", tweet.id)
    return schemas.ApiResponse.ok(result, _message(result, "Tweet"))


@router.get("/videos")
async def get_liked_videos(
    params: PageParams = Depends(),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    videos = await crud.list_liked_videos(db, user.id, params.page, params.limit)
    return schemas.ApiResponse.ok(videos, "Liked videos fetched successfully")
