"""CRUD utilities for database operations.

Every write here is either a single statement or a group of statements
committed together, so callers never observe a half-applied change.
"""

from sqlalchemy import delete, func, not_, or_, select, update
from sqlalchemy.exc import IntegrityError
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
    utcnow,
)

# Users


async def get_user_by_id(db: AsyncSession, user_id: str) -> User | None:
    """Get a user by their ID."""
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def find_user_by_login(
    db: AsyncSession, username: str | None = None, email: str | None = None
) -> User | None:
    """Find the user matching either the username or the email."""
    clauses = []
    if username:
        clauses.append(User.username == username.lower())
    if email:
        clauses.append(User.email == email)
    if not clauses:
        return None
    result = await db.execute(select(User).where(or_(*clauses)).limit(1))
    return result.scalar_one_or_none()


async def create_user(
    db: AsyncSession,
    username: str,
    email: str,
    full_name: str,
    password_hash: str,
    avatar: str,
    cover_image: str = "",
    avatar_public_id: str = "",
    cover_image_public_id: str = "",
) -> User:
    """Create a new user. Raises IntegrityError on a duplicate username/email."""
    user = User(
        username=username.lower(),
        email=email,
        full_name=full_name,
        password_hash=password_hash,
        avatar=avatar,
        avatar_public_id=avatar_public_id,
        cover_image=cover_image,
        cover_image_public_id=cover_image_public_id,
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise
    await db.refresh(user)
    return user


async def set_refresh_token(db: AsyncSession, user: User, token_enc: bytes | None) -> None:
    """Store (or clear, with None) the user's encrypted refresh token."""
    user.refresh_token_enc = token_enc
    await db.commit()


async def update_user_fields(db: AsyncSession, user: User, **fields) -> User:
    """Update profile columns on a user and return the refreshed row."""
    for name, value in fields.items():
        setattr(user, name, value)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise
    await db.refresh(user)
    return user


async def email_in_use(db: AsyncSession, email: str, exclude_user_id: str) -> bool:
    """Check whether another user already registered this email."""
    result = await db.execute(
        select(User.id).where(User.email == email, User.id != exclude_user_id)
    )
    return result.first() is not None


# Videos


async def create_video(
    db: AsyncSession,
    owner_id: str,
    title: str,
    description: str,
    duration: float,
    video_file_url: str,
    video_file_public_id: str,
    thumbnail_url: str,
    thumbnail_public_id: str,
) -> Video:
    """Create an unpublished video record."""
    video = Video(
        owner_id=owner_id,
        title=title,
        description=description,
        duration=duration or 0,
        video_file_url=video_file_url,
        video_file_public_id=video_file_public_id,
        thumbnail_url=thumbnail_url,
        thumbnail_public_id=thumbnail_public_id,
        is_published=False,
    )
    db.add(video)
    await db.commit()
    await db.refresh(video)
    return video


async def get_video(db: AsyncSession, video_id: str) -> Video | None:
    """Get a video by ID."""
    result = await db.execute(select(Video).where(Video.id == video_id))
    return result.scalar_one_or_none()


async def update_video_details(
    db: AsyncSession,
    video: Video,
    title: str,
    description: str,
    thumbnail_url: str,
    thumbnail_public_id: str,
) -> Video:
    """Replace a video's title, description and thumbnail."""
    video.title = title
    video.description = description
    video.thumbnail_url = thumbnail_url
    video.thumbnail_public_id = thumbnail_public_id
    await db.commit()
    await db.refresh(video)
    return video


async def toggle_video_publish(db: AsyncSession, video_id: str, owner_id: str) -> bool | None:
    """Flip is_published in one statement and return the new value.

    The owner filter is part of the UPDATE so a row is only ever flipped on
    behalf of its owner. Returns None when no row matched.
    """
    result = await db.execute(
        update(Video)
        .where(Video.id == video_id, Video.owner_id == owner_id)
        .values(is_published=not_(Video.is_published))
        .returning(Video.is_published)
        .execution_options(synchronize_session=False)
    )
    new_value = result.scalar_one_or_none()
    await db.commit()
    return None if new_value is None else bool(new_value)


async def increment_video_views(db: AsyncSession, video_id: str) -> None:
    """Atomically add one view to a video."""
    await db.execute(
        update(Video)
        .where(Video.id == video_id)
        .values(views=Video.views + 1)
        .execution_options(synchronize_session=False)
    )
    await db.commit()


async def delete_video_cascade(db: AsyncSession, video_id: str) -> bool:
    """Delete a video with its likes, comments and the likes on those comments.

    All statements are committed together. Playlist entries that point at the
    video are removed as well.

    Returns:
        True if the video row was deleted, False if it was already gone
    """
    comment_ids = select(Comment.id).where(Comment.video_id == video_id)
    try:
        await db.execute(
            delete(Like).where(
                or_(
                    (Like.subject_type == "video") & (Like.subject_id == video_id),
                    (Like.subject_type == "comment") & Like.subject_id.in_(comment_ids),
                )
            )
        )
        await db.execute(delete(Comment).where(Comment.video_id == video_id))
        await db.execute(delete(PlaylistVideo).where(PlaylistVideo.video_id == video_id))
        result = await db.execute(delete(Video).where(Video.id == video_id))
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    return result.rowcount > 0


# Likes


async def toggle_like(
    db: AsyncSession, subject_type: str, subject_id: str, user_id: str
) -> bool:
    """Like or unlike a subject for a user.

    Deletes the like if present, otherwise inserts it. The unique constraint on
    (subject_type, subject_id, liked_by) makes a racing duplicate insert fail;
    that case is reported as liked since the row exists either way.

    Returns:
        True if the subject is now liked, False if it is now unliked
    """
    result = await db.execute(
        delete(Like).where(
            Like.subject_type == subject_type,
            Like.subject_id == subject_id,
            Like.liked_by == user_id,
        )
    )
    if result.rowcount > 0:
        await db.commit()
        return False

    db.add(Like(subject_type=subject_type, subject_id=subject_id, liked_by=user_id))
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
    return True


# Playlists


async def create_playlist(
    db: AsyncSession, owner_id: str, name: str, description: str
) -> Playlist:
    """Create an empty playlist."""
    playlist = Playlist(owner_id=owner_id, name=name, description=description)
    db.add(playlist)
    await db.commit()
    await db.refresh(playlist)
    return playlist


async def get_playlist(db: AsyncSession, playlist_id: str) -> Playlist | None:
    """Get a playlist by ID."""
    result = await db.execute(select(Playlist).where(Playlist.id == playlist_id))
    return result.scalar_one_or_none()


async def update_playlist(
    db: AsyncSession, playlist: Playlist, name: str, description: str
) -> Playlist:
    """Rename a playlist and replace its description."""
    playlist.name = name
    playlist.description = description
    await db.commit()
    await db.refresh(playlist)
    return playlist


async def delete_playlist(db: AsyncSession, playlist_id: str) -> bool:
    """Delete a playlist and its entries."""
    await db.execute(delete(PlaylistVideo).where(PlaylistVideo.playlist_id == playlist_id))
    result = await db.execute(delete(Playlist).where(Playlist.id == playlist_id))
    await db.commit()
    return result.rowcount > 0


async def add_video_to_playlist(db: AsyncSession, playlist: Playlist, video_id: str) -> bool:
    """Append a video to a playlist unless it is already there.

    Returns:
        True if the video was added, False if it was already present
    """
    existing = await db.execute(
        select(PlaylistVideo.id).where(
            PlaylistVideo.playlist_id == playlist.id, PlaylistVideo.video_id == video_id
        )
    )
    if existing.first() is not None:
        return False

    next_position = await db.scalar(
        select(func.coalesce(func.max(PlaylistVideo.position), -1) + 1).where(
            PlaylistVideo.playlist_id == playlist.id
        )
    )
    db.add(PlaylistVideo(playlist_id=playlist.id, video_id=video_id, position=next_position))
    playlist.updated_at = utcnow()
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        await db.refresh(playlist)
        return False
    await db.refresh(playlist)
    return True


async def remove_video_from_playlist(
    db: AsyncSession, playlist: Playlist, video_id: str
) -> bool:
    """Remove a video from a playlist.

    Returns:
        True if the video was removed, False if it was not in the playlist
    """
    result = await db.execute(
        delete(PlaylistVideo).where(
            PlaylistVideo.playlist_id == playlist.id,
            PlaylistVideo.video_id == video_id,
        )
    )
    if result.rowcount == 0:
        return False
    playlist.updated_at = utcnow()
    await db.commit()
    await db.refresh(playlist)
    return True


# Comments


async def create_comment(db: AsyncSession, video_id: str, owner_id: str, content: str) -> Comment:
    comment = Comment(video_id=video_id, owner_id=owner_id, content=content)
    db.add(comment)
    await db.commit()
    await db.refresh(comment)
    return comment


async def get_comment(db: AsyncSession, comment_id: str) -> Comment | None:
    result = await db.execute(select(Comment).where(Comment.id == comment_id))
    return result.scalar_one_or_none()


async def update_comment(db: AsyncSession, comment: Comment, content: str) -> Comment:
    comment.content = content
    await db.commit()
    await db.refresh(comment)
    return comment


async def delete_comment(db: AsyncSession, comment_id: str) -> bool:
    """Delete a comment together with the likes on it."""
    await db.execute(
        delete(Like).where(Like.subject_type == "comment", Like.subject_id == comment_id)
    )
    result = await db.execute(delete(Comment).where(Comment.id == comment_id))
    await db.commit()
    return result.rowcount > 0


# Tweets


async def create_tweet(db: AsyncSession, owner_id: str, content: str) -> Tweet:
    tweet = Tweet(owner_id=owner_id, content=content)
    db.add(tweet)
    await db.commit()
    await db.refresh(tweet)
    return tweet


async def get_tweet(db: AsyncSession, tweet_id: str) -> Tweet | None:
    result = await db.execute(select(Tweet).where(Tweet.id == tweet_id))
    return result.scalar_one_or_none()


async def update_tweet(db: AsyncSession, tweet: Tweet, content: str) -> Tweet:
    tweet.content = content
    await db.commit()
    await db.refresh(tweet)
    return tweet


async def delete_tweet(db: AsyncSession, tweet_id: str) -> bool:
    """Delete a tweet together with the likes on it."""
    await db.execute(
        delete(Like).where(Like.subject_type == "tweet", Like.subject_id == tweet_id)
    )
    result = await db.execute(delete(Tweet).where(Tweet.id == tweet_id))
    await db.commit()
    return result.rowcount > 0


# Subscriptions


async def toggle_subscription(db: AsyncSession, subscriber_id: str, channel_id: str) -> bool:
    """Subscribe to or unsubscribe from a channel.

    Returns:
        True if now subscribed, False if now unsubscribed
    """
    result = await db.execute(
        delete(Subscription).where(
            Subscription.subscriber_id == subscriber_id,
            Subscription.channel_id == channel_id,
        )
    )
    if result.rowcount > 0:
        await db.commit()
        return False

    db.add(Subscription(subscriber_id=subscriber_id, channel_id=channel_id))
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
    return True
