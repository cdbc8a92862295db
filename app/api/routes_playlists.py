"""Playlist endpoints."""

import logging

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import ensure_owner, limiter, require_fields, require_valid_id
from app.auth.dependencies import require_user
from app.db import crud
from app.db.models import Playlist, User
from app.db.session import get_session
from app.errors import NotFoundError, ValidationError, api_response
from app.feed.pipelines import playlist_contents, user_playlists

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/playlist", tags=["playlists"])


class PlaylistRequest(BaseModel):
    """Request model for creating or renaming a playlist."""

    name: str | None = None
    description: str | None = None


async def _owned_playlist(db: AsyncSession, playlist_id: str, user: User, action: str) -> Playlist:
    """Load a playlist for mutation: shape check, existence, then ownership."""
    require_valid_id(playlist_id, "playlistId")
    playlist = await crud.get_playlist(db, playlist_id)
    if not playlist:
        raise NotFoundError("Playlist not found")
    ensure_owner(playlist.owner_id, user.id, action)
    return playlist


@router.post("", status_code=201)
@limiter.limit("30/minute")
async def create_playlist(
    request: Request,
    body: PlaylistRequest,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    """Create an empty playlist; name and description are both required."""
    require_fields(name=body.name, description=body.description)
    playlist = await crud.create_playlist(
        db,
        owner_id=user.id,
        name=body.name.strip(),  # type: ignore[union-attr]
        description=body.description.strip(),  # type: ignore[union-attr]
    )
    return api_response(
        await playlist_contents(db, playlist.id), "Playlist created successfully", 201
    )


@router.get("/user/{user_id}")
@limiter.limit("120/minute")
async def get_user_playlists(
    request: Request,
    user_id: str,
    db: AsyncSession = Depends(get_session),
):
    """Playlists owned by a user with video count and total views."""
    return api_response(await user_playlists(db, user_id), "User playlists fetched successfully")


@router.get("/{playlist_id}")
@limiter.limit("120/minute")
async def get_playlist_by_id(
    request: Request,
    playlist_id: str,
    db: AsyncSession = Depends(get_session),
):
    """A playlist with its published videos."""
    playlist = await playlist_contents(db, playlist_id)
    if playlist is None:
        raise NotFoundError("Playlist not found")
    return api_response(playlist, "Playlist fetched successfully")


@router.patch("/add/{video_id}/{playlist_id}")
@limiter.limit("60/minute")
async def add_video_to_playlist(
    request: Request,
    video_id: str,
    playlist_id: str,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    """Append a video to one of the user's playlists (no-op if already there)."""
    require_valid_id(video_id, "videoId")
    playlist = await _owned_playlist(db, playlist_id, user, "add videos to this playlist")

    if not await crud.get_video(db, video_id):
        raise NotFoundError("Video not found")

    added = await crud.add_video_to_playlist(db, playlist, video_id)
    message = "Video added to playlist successfully" if added else "Video already in playlist"
    return api_response(await playlist_contents(db, playlist_id), message)


@router.patch("/remove/{video_id}/{playlist_id}")
@limiter.limit("60/minute")
async def remove_video_from_playlist(
    request: Request,
    video_id: str,
    playlist_id: str,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    """Remove a video from one of the user's playlists."""
    require_valid_id(video_id, "videoId")
    playlist = await _owned_playlist(db, playlist_id, user, "remove videos from this playlist")

    if not await crud.remove_video_from_playlist(db, playlist, video_id):
        raise ValidationError("Video is not in this playlist")

    return api_response(
        await playlist_contents(db, playlist_id), "Video removed from playlist successfully"
    )


@router.patch("/{playlist_id}")
@limiter.limit("30/minute")
async def update_playlist(
    request: Request,
    playlist_id: str,
    body: PlaylistRequest,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    """Rename a playlist and replace its description."""
    require_fields(name=body.name, description=body.description)
    playlist = await _owned_playlist(db, playlist_id, user, "edit this playlist")

    await crud.update_playlist(
        db,
        playlist,
        name=body.name.strip(),  # type: ignore[union-attr]
        description=body.description.strip(),  # type: ignore[union-attr]
    )
    return api_response(await playlist_contents(db, playlist_id), "Playlist updated successfully")


@router.delete("/{playlist_id}")
@limiter.limit("30/minute")
async def delete_playlist(
    request: Request,
    playlist_id: str,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    """Delete one of the user's playlists."""
    await _owned_playlist(db, playlist_id, user, "delete this playlist")
    await crud.delete_playlist(db, playlist_id)
    logger.info(f"Playlist deleted: playlist_id={playlist_id}, owner_id={user.id}")
    return api_response({}, "Playlist deleted successfully")
