"""Comment endpoints for videos."""

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import ensure_owner, limiter, require_fields, require_valid_id
from app.auth.dependencies import require_user
from app.config import get_settings
from app.db import crud
from app.db.models import Comment, User
from app.db.session import get_session
from app.errors import NotFoundError, api_response
from app.feed.pagination import paginate
from app.feed.pipelines import build_video_comments, project_comment

router = APIRouter(prefix="/api/v1/comments", tags=["comments"])


class CommentRequest(BaseModel):
    content: str | None = None


def _comment_fields(comment: Comment) -> dict:
    return {
        "_id": comment.id,
        "content": comment.content,
        "video": comment.video_id,
        "owner": comment.owner_id,
        "createdAt": comment.created_at.isoformat() if comment.created_at else None,
        "updatedAt": comment.updated_at.isoformat() if comment.updated_at else None,
    }


async def _owned_comment(db: AsyncSession, comment_id: str, user: User, action: str) -> Comment:
    require_valid_id(comment_id, "commentId")
    comment = await crud.get_comment(db, comment_id)
    if not comment:
        raise NotFoundError("Comment not found")
    ensure_owner(comment.owner_id, user.id, action)
    return comment


@router.get("/{video_id}")
@limiter.limit("120/minute")
async def get_video_comments(
    request: Request,
    video_id: str,
    page: int = Query(default=1),
    limit: int | None = Query(default=None),
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    """
    Paginated comments on a video, newest first.

    Raises:
        NotFoundError: 404 if the video does not exist
    """
    require_valid_id(video_id, "videoId")
    if not await crud.get_video(db, video_id):
        raise NotFoundError("Video not found")

    settings = get_settings()
    result = await paginate(
        db,
        build_video_comments(video_id, user.id),
        page=page,
        limit=settings.page_size_default if limit is None else limit,
        project=project_comment,
        max_limit=settings.page_size_max,
    )
    return api_response(result, "Comments fetched successfully")


@router.post("/{video_id}", status_code=201)
@limiter.limit("30/minute")
async def add_comment(
    request: Request,
    video_id: str,
    body: CommentRequest,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    """Comment on a video."""
    require_valid_id(video_id, "videoId")
    require_fields(content=body.content)

    if not await crud.get_video(db, video_id):
        raise NotFoundError("Video not found")

    comment = await crud.create_comment(
        db, video_id=video_id, owner_id=user.id, content=body.content.strip()  # type: ignore[union-attr]
    )
    return api_response(_comment_fields(comment), "Comment added successfully", 201)


@router.patch("/c/{comment_id}")
@limiter.limit("30/minute")
async def update_comment(
    request: Request,
    comment_id: str,
    body: CommentRequest,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    """Edit one of the user's comments."""
    require_fields(content=body.content)
    comment = await _owned_comment(db, comment_id, user, "edit this comment")
    comment = await crud.update_comment(db, comment, body.content.strip())  # type: ignore[union-attr]
    return api_response(_comment_fields(comment), "Comment updated successfully")


@router.delete("/c/{comment_id}")
@limiter.limit("30/minute")
async def delete_comment(
    request: Request,
    comment_id: str,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    """Delete one of the user's comments and the likes on it."""
    await _owned_comment(db, comment_id, user, "delete this comment")
    await crud.delete_comment(db, comment_id)
    return api_response({"commentId": comment_id}, "Comment deleted successfully")
