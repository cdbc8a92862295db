"""Tweet endpoints: short text posts on a user's channel."""

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import ensure_owner, limiter, require_fields, require_valid_id
from app.auth.dependencies import require_user
from app.db import crud
from app.db.models import Tweet, User
from app.db.session import get_session
from app.errors import NotFoundError, api_response
from app.feed.pipelines import user_tweets

router = APIRouter(prefix="/api/v1/tweets", tags=["tweets"])


class TweetRequest(BaseModel):
    content: str | None = None


def _tweet_fields(tweet: Tweet) -> dict:
    return {
        "_id": tweet.id,
        "content": tweet.content,
        "owner": tweet.owner_id,
        "createdAt": tweet.created_at.isoformat() if tweet.created_at else None,
        "updatedAt": tweet.updated_at.isoformat() if tweet.updated_at else None,
    }


async def _owned_tweet(db: AsyncSession, tweet_id: str, user: User, action: str) -> Tweet:
    require_valid_id(tweet_id, "tweetId")
    tweet = await crud.get_tweet(db, tweet_id)
    if not tweet:
        raise NotFoundError("Tweet not found")
    ensure_owner(tweet.owner_id, user.id, action)
    return tweet


@router.post("", status_code=201)
@limiter.limit("30/minute")
async def create_tweet(
    request: Request,
    body: TweetRequest,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    """Post a tweet."""
    require_fields(content=body.content)
    tweet = await crud.create_tweet(db, owner_id=user.id, content=body.content.strip())  # type: ignore[union-attr]
    return api_response(_tweet_fields(tweet), "Tweet created successfully", 201)


@router.get("/user/{user_id}")
@limiter.limit("120/minute")
async def get_user_tweets(
    request: Request,
    user_id: str,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    """A user's tweets, newest first, with like counts."""
    return api_response(await user_tweets(db, user_id, viewer_id=user.id), "Tweets fetched successfully")


@router.patch("/u/{tweet_id}")
@limiter.limit("30/minute")
async def update_tweet(
    request: Request,
    tweet_id: str,
    body: TweetRequest,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    """Edit one of the user's tweets."""
    require_fields(content=body.content)
    tweet = await _owned_tweet(db, tweet_id, user, "edit this tweet")
    tweet = await crud.update_tweet(db, tweet, body.content.strip())  # type: ignore[union-attr]
    return api_response(_tweet_fields(tweet), "Tweet updated successfully")


@router.delete("/d/{tweet_id}")
@limiter.limit("30/minute")
async def delete_tweet(
    request: Request,
    tweet_id: str,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    """Delete one of the user's tweets and the likes on it."""
    await _owned_tweet(db, tweet_id, user, "delete this tweet")
    await crud.delete_tweet(db, tweet_id)
    return api_response({"tweetId": tweet_id}, "Tweet deleted successfully")
