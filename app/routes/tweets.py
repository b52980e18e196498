from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app import crud, schemas
from app.auth import get_current_user, get_optional_user
from app.database import get_db
from app.errors import NotFoundError, parse_id
from app.models import User
from app.pagination import PageParams
from app.permissions import ensure_can_mutate

router = APIRouter(prefix="/tweets", tags=["tweets"])


async def _owned_tweet(db: AsyncSession, tweet_id: str, user: User, action: str):
    tweet = await crud.get_tweet(db, parse_id(tweet_id, "tweet"))
    return ensure_can_mutate(user.id, tweet, "Tweet", action)


@router.post("", status_code=201)
async def create_tweet(
    payload: schemas.TweetIn,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    tweet = await crud.create_tweet(db, user.id, payload.content)
    data = await crud.get_tweet_view(db, tweet.id, actor_id=user.id)
    return schemas.ApiResponse.ok(data, "Tweet created successfully", 201)


@router.get("/user/{user_id}")
async def get_user_tweets(
    user_id: str,
    params: PageParams = Depends(),
    user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    owner = await crud.get_user(db, parse_id(user_id, "user"))
    if owner is None:
        raise NotFoundError("User not found")
    tweets = await crud.list_user_tweets(db, owner.id, params.page, params.limit, actor_id=user.id if user else None)
    return schemas.ApiResponse.ok(tweets, "User tweets fetched successfully")


@router.patch("/{tweet_id}")
async def update_tweet(
    tweet_id: str,
    payload: schemas.TweetIn,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    tweet = await _owned_tweet(db, tweet_id, user, "update")
    tweet = await crud.update_tweet(db, tweet, payload.content)
    data = await crud.get_tweet_view(db, tweet.id, actor_id=user.id)
    return schemas.ApiResponse.ok(data, "Tweet updated successfully")


@router.delete("/{tweet_id}")
async def delete_tweet(
    tweet_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    tweet = await _owned_tweet(db, tweet_id, user, "delete")
    deleted_id = tweet.id
    await crud.delete_tweet(db, tweet)
    return schemas.ApiResponse.ok({"tweetId": deleted_id}, "Tweet deleted successfully")
