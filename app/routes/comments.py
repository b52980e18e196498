from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app import crud, schemas
from app.auth import get_current_user, get_optional_user
from app.database import get_db
from app.errors import AuthorizationError, NotFoundError, parse_id
from app.models import User
from app.pagination import PageParams
from app.permissions import ensure_can_mutate

router = APIRouter(prefix="/comments", tags=["comments"])


async def _mutable_comment(db: AsyncSession, comment_id: str, user: User, action: str):
    comment = await crud.get_comment(db, parse_id(comment_id, "comment"))
    if comment is None:
        raise NotFoundError("Comment not found")
    video = await crud.get_video(db, comment.video_id)
    return ensure_can_mutate(user.id, comment, "Comment", action, parent_owner_id=video.owner_id if video else None)


@router.get("/{video_id}")
async def get_video_comments(
    video_id: str,
    params: PageParams = Depends(),
    user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    video = await crud.get_video(db, parse_id(video_id, "video"))
    if video is None:
        raise NotFoundError("Video not found")
    comments = await crud.list_comments(db, video.id, params.page, params.limit, actor_id=user.id if user else None)
    return schemas.ApiResponse.ok(comments, "Comments fetched successfully")


@router.post("/{video_id}", status_code=201)
async def add_comment(
    video_id: str,
    payload: schemas.CommentIn,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    video = await crud.get_video(db, parse_id(video_id, "video"))
    if video is None:
        raise NotFoundError("Video not found, cannot add comment")
    if not video.is_published:
        raise AuthorizationError("Cannot comment on an unpublished video")
    comment = await crud.create_comment(db, video, user.id, payload.content)
    data = await crud.get_comment_view(db, comment.id, actor_id=user.id)
    return schemas.ApiResponse.ok(data, "Comment added successfully", 201)


@router.patch("/c/{comment_id}")
async def update_comment(
    comment_id: str,
    payload: schemas.CommentIn,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    comment = await _mutable_comment(db, comment_id, user, "update")
    comment = await crud.update_comment(db, comment, payload.content)
    data = await crud.get_comment_view(db, comment.id, actor_id=user.id)
    return schemas.ApiResponse.ok(data, "Comment updated successfully")


@router.delete("/c/{comment_id}")
async def delete_comment(
    comment_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    comment = await _mutable_comment(db, comment_id, user, "delete")
    deleted_id = comment.id
    await crud.delete_comment(db, comment)
    return schemas.ApiResponse.ok({"commentId": deleted_id}, "Comment deleted successfully")
