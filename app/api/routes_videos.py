"""Video endpoints: listing, publishing, editing, deleting and publish toggling."""

import logging

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import (
    ensure_owner,
    get_media_host,
    get_redis,
    limiter,
    require_fields,
    require_valid_id,
    stage_upload,
)
from app.auth.dependencies import require_user
from app.config import get_settings
from app.db import crud
from app.db.models import User
from app.db.session import get_session
from app.errors import NotFoundError, UpstreamFailure, ValidationError, api_response
from app.feed.pagination import paginate
from app.feed.pipelines import build_video_feed, project_feed_video, video_with_owner
from app.media.cleanup import enqueue_destroy
from app.media.cloudinary import MediaHost

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/videos", tags=["videos"])


@router.get("")
@limiter.limit("120/minute")
async def get_all_videos(
    request: Request,
    page: int = Query(default=1, description="1-based page number"),
    limit: int | None = Query(default=None, description="Items per page"),
    query: str | None = Query(default=None, description="Search title and description"),
    sort_by: str | None = Query(default=None, alias="sortBy"),
    sort_type: str | None = Query(default=None, alias="sortType"),
    user_id: str | None = Query(default=None, alias="userId", description="Owner filter"),
    db: AsyncSession = Depends(get_session),
):
    """
    Paginated feed of published videos.

    Query Parameters:
        - page / limit: pagination (defaults 1 / configured page size)
        - query: free-text search on title and description
        - sortBy / sortType: sort column and "asc" or "desc" (default newest first)
        - userId: only videos owned by this user

    Returns:
        Envelope whose data holds docs plus paging fields
    """
    settings = get_settings()
    stmt = build_video_feed(query=query, owner_id=user_id, sort_by=sort_by, sort_type=sort_type)
    result = await paginate(
        db,
        stmt,
        page=page,
        limit=settings.page_size_default if limit is None else limit,
        project=project_feed_video,
        max_limit=settings.page_size_max,
    )
    return api_response(result, "Videos fetched successfully")


@router.post("", status_code=201)
@limiter.limit("10/minute")
async def publish_a_video(
    request: Request,
    title: str | None = Form(None),
    description: str | None = Form(None),
    video_file: UploadFile | None = File(None, alias="videoFile"),
    thumbnail: UploadFile | None = File(None),
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
    media: MediaHost = Depends(get_media_host),
):
    """
    Upload a video and its thumbnail and create the (unpublished) video record.

    Raises:
        ValidationError: 400 if title, description or either file is missing
        UpstreamFailure: 500 if the media host rejects an upload
    """
    require_fields(title=title, description=description)

    if video_file is None or not video_file.filename:
        raise ValidationError("videoFile is required")
    if thumbnail is None or not thumbnail.filename:
        raise ValidationError("thumbnail is required")

    uploaded_video = await media.upload(stage_upload(video_file))
    uploaded_thumbnail = await media.upload(stage_upload(thumbnail))

    if not uploaded_video or not uploaded_thumbnail:
        # Keep the media host free of half-published assets
        if uploaded_video:
            await media.destroy(uploaded_video.public_id, "video")
        if uploaded_thumbnail:
            await media.destroy(uploaded_thumbnail.public_id, "image")
        raise UpstreamFailure("Failed to upload video files, please try again")

    video = await crud.create_video(
        db,
        owner_id=user.id,
        title=title.strip(),  # type: ignore[union-attr]
        description=description.strip(),  # type: ignore[union-attr]
        duration=uploaded_video.duration or 0,
        video_file_url=uploaded_video.url,
        video_file_public_id=uploaded_video.public_id,
        thumbnail_url=uploaded_thumbnail.url,
        thumbnail_public_id=uploaded_thumbnail.public_id,
    )
    logger.info(f"Video uploaded: video_id={video.id}, owner_id={user.id}")

    data = await video_with_owner(db, video.id)
    return api_response(data, "Video uploaded successfully", 201)


@router.get("/{video_id}")
@limiter.limit("240/minute")
async def get_video_by_id(
    request: Request,
    video_id: str,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    """
    Fetch one video and count a view.

    Unpublished videos are only visible to their owner.
    """
    require_valid_id(video_id, "videoId")

    video = await crud.get_video(db, video_id)
    if not video or (not video.is_published and video.owner_id != user.id):
        raise NotFoundError("Video not found")

    await crud.increment_video_views(db, video_id)

    data = await video_with_owner(db, video_id)
    if data is None:
        raise NotFoundError("Video not found")
    return api_response(data, "Video fetched successfully")


@router.patch("/{video_id}")
@limiter.limit("30/minute")
async def update_video(
    request: Request,
    video_id: str,
    title: str | None = Form(None),
    description: str | None = Form(None),
    thumbnail: UploadFile | None = File(None),
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
    media: MediaHost = Depends(get_media_host),
):
    """
    Replace title, description and thumbnail of a video the user owns.

    The previous thumbnail is destroyed on the media host once the update is stored.
    """
    require_valid_id(video_id, "videoId")
    require_fields(title=title, description=description)

    video = await crud.get_video(db, video_id)
    if not video:
        raise NotFoundError("Video not found")
    ensure_owner(video.owner_id, user.id, "edit this video")

    thumbnail_path = stage_upload(thumbnail)
    if not thumbnail_path:
        raise ValidationError("thumbnail is required")

    uploaded = await media.upload(thumbnail_path)
    if not uploaded:
        raise UpstreamFailure("Failed to upload thumbnail, please try again")

    old_thumbnail = video.thumbnail_public_id
    video = await crud.update_video_details(
        db,
        video,
        title=title.strip(),  # type: ignore[union-attr]
        description=description.strip(),  # type: ignore[union-attr]
        thumbnail_url=uploaded.url,
        thumbnail_public_id=uploaded.public_id,
    )
    await media.destroy(old_thumbnail, "image")

    data = await video_with_owner(db, video.id)
    return api_response(data, "Video updated successfully")


@router.delete("/{video_id}")
@limiter.limit("30/minute")
async def delete_video(
    request: Request,
    video_id: str,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
    media: MediaHost = Depends(get_media_host),
    redis: Redis = Depends(get_redis),
):
    """
    Delete a video the user owns.

    Likes and comments on the video (and likes on those comments) go in the
    same transaction. Hosted files are queued for deletion afterwards.
    """
    require_valid_id(video_id, "videoId")

    video = await crud.get_video(db, video_id)
    if not video:
        raise NotFoundError("Video not found")
    ensure_owner(video.owner_id, user.id, "delete this video")

    assets = [(video.thumbnail_public_id, "image"), (video.video_file_public_id, "video")]

    if not await crud.delete_video_cascade(db, video_id):
        raise NotFoundError("Video not found")
    logger.info(f"Video deleted with likes and comments: video_id={video_id}")

    await enqueue_destroy(redis, media, assets)
    return api_response({}, "Video deleted successfully")


@router.patch("/toggle/publish/{video_id}")
@limiter.limit("30/minute")
async def toggle_publish_status(
    request: Request,
    video_id: str,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    """Flip a video between published and unpublished."""
    require_valid_id(video_id, "videoId")

    video = await crud.get_video(db, video_id)
    if not video:
        raise NotFoundError("Video not found")
    ensure_owner(video.owner_id, user.id, "toggle publish status")

    is_published = await crud.toggle_video_publish(db, video_id, owner_id=user.id)
    if is_published is None:
        raise UpstreamFailure("Failed to toggle video publish status")

    return api_response({"isPublished": is_published}, "Video publish status toggled successfully")
