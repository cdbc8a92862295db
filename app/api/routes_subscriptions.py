"""Channel subscription endpoints."""

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import limiter, require_valid_id
from app.auth.dependencies import require_user
from app.db import crud
from app.db.models import User
from app.db.session import get_session
from app.errors import NotFoundError, ValidationError, api_response
from app.feed.pipelines import channel_subscribers, subscribed_channels

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/subscriptions", tags=["subscriptions"])


@router.post("/c/{channel_id}")
@limiter.limit("60/minute")
async def toggle_subscription(
    request: Request,
    channel_id: str,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    """
    Subscribe to a channel, or unsubscribe if already subscribed.

    Raises:
        ValidationError: 400 for a malformed id or a self-subscription
        NotFoundError: 404 if the channel does not exist
    """
    require_valid_id(channel_id, "channelId")
    if channel_id == user.id:
        raise ValidationError("You cannot subscribe to your own channel")

    if not await crud.get_user_by_id(db, channel_id):
        raise NotFoundError("Channel not found")

    subscribed = await crud.toggle_subscription(db, subscriber_id=user.id, channel_id=channel_id)
    logger.info(
        f"Subscription toggled: subscriber_id={user.id}, channel_id={channel_id}, "
        f"subscribed={subscribed}"
    )
    return api_response(
        {"subscribed": subscribed},
        "Subscribed successfully" if subscribed else "Unsubscribed successfully",
    )


@router.get("/c/{channel_id}")
@limiter.limit("120/minute")
async def get_channel_subscribers(
    request: Request,
    channel_id: str,
    db: AsyncSession = Depends(get_session),
):
    """Users subscribed to a channel."""
    return api_response(
        await channel_subscribers(db, channel_id), "Subscribers fetched successfully"
    )


@router.get("/u/{subscriber_id}")
@limiter.limit("120/minute")
async def get_subscribed_channels(
    request: Request,
    subscriber_id: str,
    db: AsyncSession = Depends(get_session),
):
    """Channels a user subscribes to."""
    return api_response(
        await subscribed_channels(db, subscriber_id), "Subscribed channels fetched successfully"
    )
