"""Media host integration (Cloudinary) and deferred media cleanup."""

from app.media.cloudinary import MediaHost, UploadResult

__all__ = ["MediaHost", "UploadResult"]
