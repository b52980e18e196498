from fastapi import APIRouter, Depends
from fastapi_cache.decorator import cache
from sqlalchemy.ext.asyncio import AsyncSession

from app import crud, schemas
from app.auth import get_current_user
from app.cache import PLAYLISTS, clear_playlists, request_key_builder
from app.database import get_db
from app.errors import NotFoundError, ValidationError, parse_id
from app.models import User
from app.pagination import PageParams
from app.permissions import ensure_can_mutate

router = APIRouter(prefix="/playlists", tags=["playlists"])


async def _owned_playlist(db: AsyncSession, playlist_id: str, user: User, action: str):
    playlist = await crud.get_playlist(db, parse_id(playlist_id, "playlist"))
    return ensure_can_mutate(user.id, playlist, "Playlist", action)


@router.post("", status_code=201)
async def create_playlist(
    payload: schemas.PlaylistIn,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    playlist = await crud.create_playlist(db, user.id, payload.name, payload.description)
    data = await crud.get_playlist_detail(db, playlist.id)
    return schemas.ApiResponse.ok(data, "Playlist created successfully", 201)


@router.get("/user/{user_id}")
async def get_user_playlists(
    user_id: str,
    params: PageParams = Depends(),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    owner = await crud.get_user(db, parse_id(user_id, "user"))
    if owner is None:
        raise NotFoundError("User not found")
    playlists = await crud.list_user_playlists(db, owner.id, params.page, params.limit)
    return schemas.ApiResponse.ok(playlists, "User playlists fetched successfully")


@router.get("/{playlist_id}")
@cache(expire=60, namespace=PLAYLISTS, key_builder=request_key_builder)
async def get_playlist_by_id(
    playlist_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    data = await crud.get_playlist_detail(db, parse_id(playlist_id, "playlist"))
    return schemas.ApiResponse.ok(data, "Playlist fetched successfully")


@router.patch("/add/{video_id}/{playlist_id}")
async def add_video_to_playlist(
    video_id: str,
    playlist_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    video = await crud.get_video(db, parse_id(video_id, "video"))
    playlist = await _owned_playlist(db, playlist_id, user, "add videos to")
    if video is None:
        raise NotFoundError("Video not found")
    data = await crud.add_video_to_playlist(db, playlist, video)
    await clear_playlists()
    return schemas.ApiResponse.ok(data, "Video added to playlist successfully")


@router.patch("/remove/{video_id}/{playlist_id}")
async def remove_video_from_playlist(
    video_id: str,
    playlist_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    target_id = parse_id(video_id, "video")
    playlist = await _owned_playlist(db, playlist_id, user, "remove videos from")
    data = await crud.remove_video_from_playlist(db, playlist, target_id)
    await clear_playlists()
    return schemas.ApiResponse.ok(data, "Video removed from playlist successfully")


@router.patch("/{playlist_id}")
async def update_playlist(
    playlist_id: str,
    payload: schemas.PlaylistUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not (payload.name and payload.name.strip()) and payload.description is None:
        raise ValidationError("Name or description is required to update the playlist")
    playlist = await _owned_playlist(db, playlist_id, user, "update")
    playlist = await crud.update_playlist(db, playlist, name=payload.name, description=payload.description)
    await clear_playlists()
    data = await crud.get_playlist_detail(db, playlist.id)
    return schemas.ApiResponse.ok(data, "Playlist updated successfully")


@router.delete("/{playlist_id}")
async def delete_playlist(
    playlist_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    playlist = await _owned_playlist(db, playlist_id, user, "delete")
    deleted_id = playlist.id
    await crud.delete_playlist(db, playlist)
    await clear_playlists()
    return schemas.ApiResponse.ok({"playlistId": deleted_id}, "Playlist deleted successfully")
