"""Channel dashboard for the signed-in user."""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import limiter
from app.auth.dependencies import require_user
from app.db.models import User
from app.db.session import get_session
from app.errors import api_response
from app.feed.pipelines import channel_stats, channel_videos

router = APIRouter(prefix="/api/v1/dashboard", tags=["dashboard"])


@router.get("/stats")
@limiter.limit("60/minute")
async def get_channel_stats(
    request: Request,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    """Subscriber, video, view and like totals for the user's channel."""
    return api_response(await channel_stats(db, user.id), "Channel stats fetched successfully")


@router.get("/videos")
@limiter.limit("60/minute")
async def get_channel_videos(
    request: Request,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    """All of the user's videos, including unpublished ones."""
    return api_response(await channel_videos(db, user.id), "Channel videos fetched successfully")
