"""Deferred deletion of media-host assets through a Redis queue.

Handlers push a job per asset after their database changes commit; a
separate worker drains the queue. Destroying an asset that is already gone is
harmless, so replaying a job after a crash is safe.
"""

import asyncio
import json
import logging

from redis.asyncio import Redis
from redis.exceptions import RedisError

from app.config import get_settings
from app.media.cloudinary import MediaHost

logger = logging.getLogger(__name__)

QUEUE_KEY = "vt:media:destroy:queue"


async def enqueue_destroy(
    redis: Redis, media: MediaHost, assets: list[tuple[str, str]]
) -> None:
    """
    Queue media assets for deletion.

    Falls back to destroying immediately when Redis is unavailable.

    Args:
        redis: Redis client
        media: Media host used for the fallback
        assets: (public_id, resource_type) pairs
    """
    for public_id, resource_type in assets:
        if not public_id:
            continue
        job = json.dumps({"public_id": public_id, "resource_type": resource_type})
        try:
            await redis.lpush(QUEUE_KEY, job)
        except RedisError as e:
            logger.warning(f"Could not queue destroy of {public_id} ({e}); destroying now")
            await media.destroy(public_id, resource_type)


async def process_destroy_job(raw: bytes | str, media: MediaHost) -> bool:
    """
    Run a single queued destroy job.

    Returns:
        True if the job was well-formed and dispatched, False otherwise
    """
    try:
        job = json.loads(raw)
        public_id = job["public_id"]
        resource_type = job.get("resource_type", "image")
    except (ValueError, KeyError, TypeError):
        logger.error(f"Dropping malformed media destroy job: {raw!r}")
        return False

    await media.destroy(public_id, resource_type)
    return True


async def worker_loop() -> None:
    """Main worker loop that processes media destroy jobs."""
    settings = get_settings()
    redis = Redis.from_url(settings.redis_url, decode_responses=False)
    media = MediaHost.from_settings(settings)

    logger.info("Media cleanup worker started")

    while True:
        try:
            result = await redis.brpop(QUEUE_KEY, timeout=5)
            if result is None:
                continue

            _, raw = result
            await process_destroy_job(raw, media)

        except asyncio.CancelledError:
            logger.info("Worker received shutdown signal")
            break
        except RedisError as e:
            logger.error(f"Redis error in media cleanup worker: {e}", exc_info=True)
            # Avoid a tight loop while Redis is down
            await asyncio.sleep(5)

    await redis.aclose()
    logger.info("Media cleanup worker stopped")


def main():
    """Entry point for the media cleanup worker."""
    from app.logging import setup_logging

    setup_logging()
    try:
        asyncio.run(worker_loop())
    except KeyboardInterrupt:
        logger.info("Worker shutting down...")


if __name__ == "__main__":
    main()
