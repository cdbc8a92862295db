"""Authentication module for the VidTube backend."""

from app.auth.dependencies import ACCESS_COOKIE, REFRESH_COOKIE, require_user

__all__ = ["require_user", "ACCESS_COOKIE", "REFRESH_COOKIE"]
