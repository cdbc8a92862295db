"""Cloudinary REST client for uploading and destroying media."""

import hashlib
import logging
import time
from pathlib import Path
from typing import Any

import httpx
from pydantic import BaseModel

from app.config import Settings

logger = logging.getLogger(__name__)


class UploadResult(BaseModel):
    """What the rest of the app needs to know about an uploaded asset."""

    url: str
    public_id: str
    resource_type: str = "image"
    duration: float | None = None


class MediaHost:
    """Client for the Cloudinary upload API.

    One instance is built at startup and shared by every request; it holds no
    per-request state.
    """

    BASE = "https://api.cloudinary.com/v1_1"

    def __init__(self, cloud_name: str, api_key: str, api_secret: str, timeout: float = 120.0):
        self.cloud_name = cloud_name
        self.api_key = api_key
        self.api_secret = api_secret
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "MediaHost":
        return cls(
            cloud_name=settings.cloudinary_cloud_name,
            api_key=settings.cloudinary_api_key,
            api_secret=settings.cloudinary_api_secret,
        )

    def is_configured(self) -> bool:
        """Check if Cloudinary credentials are present."""
        return bool(self.cloud_name and self.api_key and self.api_secret)

    def sign(self, params: dict[str, Any]) -> str:
        """Compute the request signature Cloudinary expects.

        Parameters are sorted by name, joined as ``k=v`` with ``&``, the API
        secret is appended and the result is SHA-1 hex encoded.
        """
        to_sign = "&".join(
            f"{key}={value}" for key, value in sorted(params.items()) if value not in (None, "")
        )
        return hashlib.sha1(f"{to_sign}{self.api_secret}".encode("utf-8")).hexdigest()

    def _signed(self, params: dict[str, Any]) -> dict[str, Any]:
        params = {**params, "timestamp": int(time.time())}
        return {**params, "api_key": self.api_key, "signature": self.sign(params)}

    async def upload(self, local_path: str | Path | None) -> UploadResult | None:
        """
        Upload a local file and remove it afterwards.

        The resource type is detected by Cloudinary, so the same call handles
        images and videos.

        Args:
            local_path: Path of the temporary file to upload

        Returns:
            UploadResult on success, None if there was nothing to upload or the
            upload failed
        """
        if not local_path:
            return None

        path = Path(local_path)
        try:
            if not self.is_configured():
                logger.error("Cloudinary is not configured; cannot upload %s", path.name)
                return None

            url = f"{self.BASE}/{self.cloud_name}/auto/upload"
            with path.open("rb") as fh:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(
                        url, data=self._signed({}), files={"file": (path.name, fh)}
                    )

            if response.status_code != 200:
                logger.error(
                    f"Cloudinary upload of {path.name} failed. "
                    f"Status: {response.status_code}, Response: {response.text}"
                )
                return None

            body = response.json()
            return UploadResult(
                url=body.get("secure_url") or body["url"],
                public_id=body["public_id"],
                resource_type=body.get("resource_type", "image"),
                duration=body.get("duration"),
            )
        except (httpx.HTTPError, OSError, KeyError, ValueError) as e:
            logger.error(f"Error uploading {path.name} to Cloudinary: {e}", exc_info=True)
            return None
        finally:
            path.unlink(missing_ok=True)

    async def destroy(self, public_id: str | None, resource_type: str = "image") -> None:
        """
        Delete an asset. Best effort: failures are logged, never raised.

        Args:
            public_id: Cloudinary public ID of the asset
            resource_type: "image" or "video"
        """
        if not public_id:
            return
        if not self.is_configured():
            logger.warning(f"Cloudinary is not configured; skipping destroy of {public_id}")
            return

        url = f"{self.BASE}/{self.cloud_name}/{resource_type}/destroy"
        try:
            async with httpx.AsyncClient(timeout=30) as client:
                response = await client.post(url, data=self._signed({"public_id": public_id}))
            if response.status_code != 200:
                logger.warning(
                    f"Cloudinary destroy of {public_id} returned {response.status_code}: "
                    f"{response.text}"
                )
            else:
                logger.info(f"Destroyed {resource_type} {public_id} on Cloudinary")
        except httpx.HTTPError as e:
            logger.warning(f"Error destroying {public_id} on Cloudinary: {e}")
