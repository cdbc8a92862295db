"""Like toggles for videos, comments and tweets, and the liked-videos feed."""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import limiter, require_valid_id
from app.auth.dependencies import require_user
from app.db import crud
from app.db.models import User
from app.db.session import get_session
from app.errors import api_response
from app.feed.pipelines import liked_videos

router = APIRouter(prefix="/api/v1/likes", tags=["likes"])


async def _toggle(db: AsyncSession, subject_type: str, subject_id: str, user: User) -> dict:
    require_valid_id(subject_id, f"{subject_type}Id")
    liked = await crud.toggle_like(db, subject_type, subject_id, user.id)
    return api_response({"isLiked": liked}, "Liked" if liked else "Unliked")


@router.post("/toggle/v/{video_id}")
@limiter.limit("120/minute")
async def toggle_video_like(
    request: Request,
    video_id: str,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    """Like or unlike a video."""
    return await _toggle(db, "video", video_id, user)


@router.post("/toggle/c/{comment_id}")
@limiter.limit("120/minute")
async def toggle_comment_like(
    request: Request,
    comment_id: str,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    """Like or unlike a comment."""
    return await _toggle(db, "comment", comment_id, user)


@router.post("/toggle/t/{tweet_id}")
@limiter.limit("120/minute")
async def toggle_tweet_like(
    request: Request,
    tweet_id: str,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    """Like or unlike a tweet."""
    return await _toggle(db, "tweet", tweet_id, user)


@router.get("/videos")
@limiter.limit("120/minute")
async def get_liked_videos(
    request: Request,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    """Videos the current user has liked."""
    return api_response(await liked_videos(db, user.id), "Liked videos fetched successfully")
