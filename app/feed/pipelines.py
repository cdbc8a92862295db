"""Read pipelines for the feed-style endpoints.

Each pipeline is composed stage by stage (filter, sort, join, reshape) into a
single SELECT and executed by the database. Joins to owners and videos are
inner joins, so rows whose referenced record no longer exists drop out of
the result instead of failing the request. Output dicts are explicit field
whitelists; password hashes and refresh tokens are never selected.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import Row, Select, asc, desc, exists, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import (
    Comment,
    Like,
    Playlist,
    PlaylistVideo,
    Subscription,
    Tweet,
    User,
    Video,
    is_valid_id,
)
from app.errors import ValidationError

# Public sort keys accepted by the video feed, mapped to their columns
SORTABLE_FIELDS = {
    "createdAt": Video.created_at,
    "updatedAt": Video.updated_at,
    "views": Video.views,
    "duration": Video.duration,
    "title": Video.title,
}


def _require_id(value: str, label: str) -> None:
    if not is_valid_id(value):
        raise ValidationError(f"Invalid {label}")


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _video_fields(video: Video) -> dict[str, Any]:
    return {
        "_id": video.id,
        "videoFile": {"url": video.video_file_url},
        "thumbnail": {"url": video.thumbnail_url},
        "title": video.title,
        "description": video.description,
        "duration": video.duration,
        "views": video.views,
        "isPublished": video.is_published,
        "owner": video.owner_id,
        "createdAt": _iso(video.created_at),
        "updatedAt": _iso(video.updated_at),
    }


def _likes_count(subject_type: str, subject_id_column) -> Any:
    """Correlated count of likes on the row's subject."""
    return (
        select(func.count(Like.id))
        .where(Like.subject_type == subject_type, Like.subject_id == subject_id_column)
        .scalar_subquery()
    )


def _liked_by(subject_type: str, subject_id_column, user_id: str) -> Any:
    """Correlated flag: has ``user_id`` liked the row's subject."""
    return exists().where(
        Like.subject_type == subject_type,
        Like.subject_id == subject_id_column,
        Like.liked_by == user_id,
    )


# Video feed


def build_video_feed(
    query: str | None = None,
    owner_id: str | None = None,
    sort_by: str | None = None,
    sort_type: str | None = None,
) -> Select:
    """
    Compose the public video listing.

    Stages, in order:
        1. text search on title or description (case-insensitive substring)
        2. owner filter
        3. published-only filter
        4. sort: ``sort_by``/``sort_type`` when both are given ("asc" means
           ascending, anything else descending), otherwise newest first
        5. inner join to the owner, keeping only username and avatar

    Pagination is left to the caller so it runs after every stage.

    Raises:
        ValidationError: If owner_id is malformed or sort_by is not sortable
    """
    stmt = select(Video, User.username, User.avatar)

    if query:
        stmt = stmt.where(
            Video.title.icontains(query, autoescape=True)
            | Video.description.icontains(query, autoescape=True)
        )

    if owner_id is not None:
        _require_id(owner_id, "userId")
        stmt = stmt.where(Video.owner_id == owner_id)

    stmt = stmt.where(Video.is_published.is_(True))

    if sort_by and sort_type:
        column = SORTABLE_FIELDS.get(sort_by)
        if column is None:
            raise ValidationError(
                f"Invalid sortBy, expected one of: {', '.join(SORTABLE_FIELDS)}"
            )
        direction = asc if sort_type == "asc" else desc
        stmt = stmt.order_by(direction(column), Video.id)
    else:
        stmt = stmt.order_by(Video.created_at.desc(), Video.id)

    return stmt.join(User, User.id == Video.owner_id)


def project_feed_video(row: Row) -> dict[str, Any]:
    """Shape a video feed row."""
    video, username, avatar = row
    return {**_video_fields(video), "ownerDetails": {"username": username, "avatar": avatar}}


async def video_with_owner(db: AsyncSession, video_id: str) -> dict[str, Any] | None:
    """Load one video with owner details and like count, or None if absent."""
    _require_id(video_id, "videoId")
    stmt = (
        select(
            Video,
            User.username,
            User.full_name,
            User.avatar,
            _likes_count("video", Video.id).label("likes_count"),
        )
        .join(User, User.id == Video.owner_id)
        .where(Video.id == video_id)
        .execution_options(populate_existing=True)
    )
    row = (await db.execute(stmt)).first()
    if row is None:
        return None
    video, username, full_name, avatar, likes_count = row
    return {
        **_video_fields(video),
        "likesCount": likes_count,
        "ownerDetails": {"username": username, "fullName": full_name, "avatar": avatar},
    }


# Likes


async def liked_videos(db: AsyncSession, user_id: str) -> list[dict[str, Any]]:
    """
    Videos liked by a user, one record per surviving liked video.

    Likes whose video (or whose video's owner) no longer exists are dropped.
    Ordered by when the like was made.
    """
    _require_id(user_id, "userId")
    stmt = (
        select(Video, User.username, User.full_name, User.avatar)
        .select_from(Like)
        .join(Video, Video.id == Like.subject_id)
        .join(User, User.id == Video.owner_id)
        .where(Like.subject_type == "video", Like.liked_by == user_id)
        .order_by(Like.created_at, Like.id)
    )
    result = await db.execute(stmt)

    liked = []
    for video, username, full_name, avatar in result.all():
        fields = _video_fields(video)
        fields.pop("updatedAt")
        fields["ownerDetails"] = {"username": username, "fullName": full_name, "avatar": avatar}
        liked.append({"likedVideo": fields})
    return liked


# Playlists


async def playlist_contents(db: AsyncSession, playlist_id: str) -> dict[str, Any] | None:
    """
    A playlist with its published videos and aggregate counters.

    Videos keep playlist order; entries whose video was deleted or is
    unpublished are left out. ``totalVideos`` and ``totalViews`` are computed
    over the returned videos.

    Returns:
        The playlist dict, or None if the playlist (or its owner) is absent
    """
    _require_id(playlist_id, "playlistId")
    head = (
        await db.execute(
            select(Playlist, User.username, User.full_name, User.avatar)
            .join(User, User.id == Playlist.owner_id)
            .where(Playlist.id == playlist_id)
        )
    ).first()
    if head is None:
        return None
    playlist, username, full_name, avatar = head

    result = await db.execute(
        select(Video)
        .join(PlaylistVideo, PlaylistVideo.video_id == Video.id)
        .where(PlaylistVideo.playlist_id == playlist_id, Video.is_published.is_(True))
        .order_by(PlaylistVideo.position)
    )
    videos = [
        {
            "_id": v.id,
            "videoFile": {"url": v.video_file_url},
            "thumbnail": {"url": v.thumbnail_url},
            "title": v.title,
            "description": v.description,
            "duration": v.duration,
            "createdAt": _iso(v.created_at),
            "views": v.views,
        }
        for v in result.scalars().all()
    ]

    return {
        "_id": playlist.id,
        "name": playlist.name,
        "description": playlist.description,
        "createdAt": _iso(playlist.created_at),
        "updatedAt": _iso(playlist.updated_at),
        "totalVideos": len(videos),
        "totalViews": sum(v["views"] for v in videos),
        "owner": {"username": username, "fullName": full_name, "avatar": avatar},
        "videos": videos,
    }


async def user_playlists(db: AsyncSession, user_id: str) -> list[dict[str, Any]]:
    """
    Summaries of a user's playlists, most recently updated first.

    Aggregates count every referenced video that still exists; playlists with
    no videos are included with zero totals.
    """
    _require_id(user_id, "userId")
    stmt = (
        select(
            Playlist.id,
            Playlist.name,
            Playlist.description,
            Playlist.updated_at,
            func.count(Video.id).label("total_videos"),
            func.coalesce(func.sum(Video.views), 0).label("total_views"),
        )
        .select_from(Playlist)
        .outerjoin(PlaylistVideo, PlaylistVideo.playlist_id == Playlist.id)
        .outerjoin(Video, Video.id == PlaylistVideo.video_id)
        .where(Playlist.owner_id == user_id)
        .group_by(Playlist.id, Playlist.name, Playlist.description, Playlist.updated_at)
        .order_by(Playlist.updated_at.desc(), Playlist.id)
    )
    result = await db.execute(stmt)
    return [
        {
            "_id": row.id,
            "name": row.name,
            "description": row.description,
            "totalVideos": row.total_videos,
            "totalViews": row.total_views,
            "updatedAt": _iso(row.updated_at),
        }
        for row in result.all()
    ]


# Comments


def build_video_comments(video_id: str, user_id: str) -> Select:
    """Comments on a video, newest first, with author details and like state."""
    _require_id(video_id, "videoId")
    return (
        select(
            Comment,
            User.username,
            User.full_name,
            User.avatar,
            _likes_count("comment", Comment.id).label("likes_count"),
            _liked_by("comment", Comment.id, user_id).label("is_liked"),
        )
        .join(User, User.id == Comment.owner_id)
        .where(Comment.video_id == video_id)
        .order_by(Comment.created_at.desc(), Comment.id)
    )


def project_comment(row: Row) -> dict[str, Any]:
    """Shape a comment feed row."""
    comment, username, full_name, avatar, likes_count, is_liked = row
    return {
        "_id": comment.id,
        "content": comment.content,
        "createdAt": _iso(comment.created_at),
        "likesCount": likes_count,
        "isLiked": bool(is_liked),
        "owner": {"username": username, "fullName": full_name, "avatar": avatar},
    }


# Tweets


async def user_tweets(db: AsyncSession, owner_id: str, viewer_id: str) -> list[dict[str, Any]]:
    """A user's tweets, newest first, with like counts and the viewer's like state."""
    _require_id(owner_id, "userId")
    stmt = (
        select(
            Tweet,
            User.username,
            User.avatar,
            _likes_count("tweet", Tweet.id).label("likes_count"),
            _liked_by("tweet", Tweet.id, viewer_id).label("is_liked"),
        )
        .join(User, User.id == Tweet.owner_id)
        .where(Tweet.owner_id == owner_id)
        .order_by(Tweet.created_at.desc(), Tweet.id)
    )
    result = await db.execute(stmt)
    return [
        {
            "_id": tweet.id,
            "content": tweet.content,
            "createdAt": _iso(tweet.created_at),
            "likesCount": likes_count,
            "isLiked": bool(is_liked),
            "ownerDetails": {"username": username, "avatar": avatar},
        }
        for tweet, username, avatar, likes_count, is_liked in result.all()
    ]


# Subscriptions and channels


def project_user(user: User) -> dict[str, Any]:
    """Public view of a user account (no password hash or token state)."""
    return {
        "_id": user.id,
        "username": user.username,
        "email": user.email,
        "fullName": user.full_name,
        "avatar": user.avatar,
        "coverImage": user.cover_image,
        "createdAt": _iso(user.created_at),
        "updatedAt": _iso(user.updated_at),
    }


def _user_card(user: User) -> dict[str, Any]:
    return {
        "_id": user.id,
        "username": user.username,
        "fullName": user.full_name,
        "avatar": user.avatar,
    }


async def channel_subscribers(db: AsyncSession, channel_id: str) -> list[dict[str, Any]]:
    """Users subscribed to a channel, oldest subscription first."""
    _require_id(channel_id, "channelId")
    result = await db.execute(
        select(User)
        .join(Subscription, Subscription.subscriber_id == User.id)
        .where(Subscription.channel_id == channel_id)
        .order_by(Subscription.created_at, Subscription.id)
    )
    return [_user_card(user) for user in result.scalars().all()]


async def subscribed_channels(db: AsyncSession, subscriber_id: str) -> list[dict[str, Any]]:
    """Channels a user subscribes to, oldest subscription first."""
    _require_id(subscriber_id, "subscriberId")
    result = await db.execute(
        select(User)
        .join(Subscription, Subscription.channel_id == User.id)
        .where(Subscription.subscriber_id == subscriber_id)
        .order_by(Subscription.created_at, Subscription.id)
    )
    return [_user_card(user) for user in result.scalars().all()]


async def channel_profile(
    db: AsyncSession, username: str, viewer_id: str
) -> dict[str, Any] | None:
    """Public channel page for a username, or None if no such user."""
    subscribers = (
        select(func.count(Subscription.id))
        .where(Subscription.channel_id == User.id)
        .scalar_subquery()
    )
    subscribed_to = (
        select(func.count(Subscription.id))
        .where(Subscription.subscriber_id == User.id)
        .scalar_subquery()
    )
    is_subscribed = exists().where(
        Subscription.channel_id == User.id, Subscription.subscriber_id == viewer_id
    )
    row = (
        await db.execute(
            select(
                User,
                subscribers.label("subscribers"),
                subscribed_to.label("subscribed_to"),
                is_subscribed.label("is_subscribed"),
            ).where(User.username == username.lower())
        )
    ).first()
    if row is None:
        return None
    user, subscriber_count, subscribed_to_count, subscribed = row
    return {
        **_user_card(user),
        "email": user.email,
        "coverImage": user.cover_image,
        "subscribersCount": subscriber_count,
        "channelsSubscribedToCount": subscribed_to_count,
        "isSubscribed": bool(subscribed),
    }


# Dashboard


async def channel_stats(db: AsyncSession, owner_id: str) -> dict[str, Any]:
    """Totals for a channel: subscribers, videos, views and likes on its videos."""
    subscribers = await db.scalar(
        select(func.count(Subscription.id)).where(Subscription.channel_id == owner_id)
    )
    video_totals = (
        await db.execute(
            select(func.count(Video.id), func.coalesce(func.sum(Video.views), 0)).where(
                Video.owner_id == owner_id
            )
        )
    ).one()
    likes = await db.scalar(
        select(func.count(Like.id))
        .select_from(Like)
        .join(Video, Video.id == Like.subject_id)
        .where(Like.subject_type == "video", Video.owner_id == owner_id)
    )
    return {
        "totalSubscribers": subscribers or 0,
        "totalVideos": video_totals[0],
        "totalViews": video_totals[1],
        "totalLikes": likes or 0,
    }


async def channel_videos(db: AsyncSession, owner_id: str) -> list[dict[str, Any]]:
    """Every video of a channel, published or not, newest first, with like counts."""
    result = await db.execute(
        select(Video, _likes_count("video", Video.id).label("likes_count"))
        .where(Video.owner_id == owner_id)
        .order_by(Video.created_at.desc(), Video.id)
    )
    return [
        {**_video_fields(video), "likesCount": likes_count}
        for video, likes_count in result.all()
    ]
