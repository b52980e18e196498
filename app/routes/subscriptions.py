from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app import crud, schemas
from app.auth import get_current_user
from app.database import get_db
from app.errors import NotFoundError, parse_id
from app.models import User
from app.pagination import PageParams

router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


@router.post("/c/{channel_id}")
async def toggle_subscription(
    channel_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await crud.toggle_subscription(db, user.id, parse_id(channel_id, "channel"))
    message = "Subscribed successfully" if result.subscribed else "Unsubscribed successfully"
    return schemas.ApiResponse.ok(result, message)


@router.get("/c/{channel_id}")
async def get_user_channel_subscribers(
    channel_id: str,
    params: PageParams = Depends(),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    channel = await crud.get_user(db, parse_id(channel_id, "channel"))
    if channel is None:
        raise NotFoundError("Channel not found")
    subscribers = await crud.list_subscribers(db, channel.id, params.page, params.limit, actor_id=user.id)
    return schemas.ApiResponse.ok(subscribers, "Subscribers fetched successfully")


@router.get("/u/{subscriber_id}")
async def get_subscribed_channels(
    subscriber_id: str,
    params: PageParams = Depends(),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    subscriber = await crud.get_user(db, parse_id(subscriber_id, "subscriber"))
    if subscriber is None:
        raise NotFoundError("Subscriber not found")
    channels = await crud.list_subscribed_channels(db, subscriber.id, params.page, params.limit, actor_id=user.id)
    return schemas.ApiResponse.ok(channels, "Subscribed channels fetched successfully")
