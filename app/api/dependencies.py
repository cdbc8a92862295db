"""FastAPI dependencies and request helpers shared by the API routers."""

import logging
import shutil
import uuid
from collections.abc import AsyncGenerator
from pathlib import Path

from fastapi import Request, UploadFile
from redis.asyncio import Redis
from slowapi import Limiter
from slowapi.util import get_remote_address

from app.config import get_settings
from app.db.models import is_valid_id
from app.errors import ValidationError, not_owner
from app.media.cloudinary import MediaHost

logger = logging.getLogger(__name__)

# One limiter for every router so tests (and ops) can switch it off in one place
limiter = Limiter(key_func=get_remote_address)

_redis_client: Redis | None = None


async def get_redis() -> AsyncGenerator[Redis, None]:
    """Dependency for FastAPI routes to get an async Redis connection.

    Yields:
        Async Redis client instance
    """
    global _redis_client

    if _redis_client is None:
        settings = get_settings()
        _redis_client = Redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=False,
        )

    yield _redis_client


def get_media_host(request: Request) -> MediaHost:
    """Dependency returning the media host client built at startup."""
    return request.app.state.media_host


def require_valid_id(value: str | None, label: str) -> str:
    """Reject identifiers that are not well-formed before any query runs."""
    if not is_valid_id(value):
        raise ValidationError(f"Invalid {label}")
    return value  # type: ignore[return-value]


def require_fields(**fields: str | None) -> None:
    """Reject the request if any of the named text fields is missing or blank."""
    missing = [name for name, value in fields.items() if value is None or not value.strip()]
    if missing:
        raise ValidationError(f"{', '.join(missing)} {'is' if len(missing) == 1 else 'are'} required")


def ensure_owner(owner_id: str, user_id: str, action: str) -> None:
    """Reject the mutation unless the acting user is the stored owner."""
    if owner_id != user_id:
        logger.info(f"Rejected '{action}' by non-owner user_id={user_id}")
        raise not_owner(action)


def stage_upload(upload: UploadFile | None) -> str | None:
    """
    Save an uploaded file to the temp directory for the media host.

    Returns:
        Local path of the staged file, or None if no file was sent
    """
    if upload is None or not upload.filename:
        return None

    tmp_dir = Path(get_settings().upload_tmp_dir)
    tmp_dir.mkdir(parents=True, exist_ok=True)

    # Never trust the client's filename for the path itself
    suffix = Path(upload.filename).suffix[:16]
    destination = tmp_dir / f"{uuid.uuid4().hex}{suffix}"
    with destination.open("wb") as out:
        shutil.copyfileobj(upload.file, out)
    return str(destination)
