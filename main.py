"""VidTube backend - Main application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from app.api import (
    comments_router,
    dashboard_router,
    health_router,
    likes_router,
    playlists_router,
    subscriptions_router,
    tweets_router,
    users_router,
    videos_router,
)
from app.api.dependencies import limiter
from app.config import get_settings
from app.db.session import create_schema
from app.errors import register_error_handlers
from app.logging import setup_logging
from app.media.cloudinary import MediaHost

logger = logging.getLogger(__name__)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware to add security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        # Prevent MIME type sniffing
        response.headers["X-Content-Type-Options"] = "nosniff"

        # Prevent clickjacking attacks
        response.headers["X-Frame-Options"] = "DENY"

        # JSON-only API: nothing should be loaded from a response
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"

        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events."""
    settings = get_settings()
    setup_logging()

    app.state.media_host = MediaHost.from_settings(settings)
    if not app.state.media_host.is_configured():
        logger.warning("Cloudinary credentials are not set; uploads will fail")

    if settings.env == "dev":
        await create_schema()

    yield


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="VidTube",
        description="Backend for a video sharing platform",
        version="1.0.0",
        lifespan=lifespan,
    )

    # Rate limiting; 429s are enveloped by the HTTP exception handler
    app.state.limiter = limiter
    register_error_handlers(app)

    # Add security headers middleware
    app.add_middleware(SecurityHeadersMiddleware)

    # Configure CORS - restrict to specific methods and headers for security
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_origin],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Accept", "Authorization"],
    )

    # Include routers
    app.include_router(health_router)
    app.include_router(users_router)
    app.include_router(videos_router)
    app.include_router(likes_router)
    app.include_router(playlists_router)
    app.include_router(comments_router)
    app.include_router(tweets_router)
    app.include_router(subscriptions_router)
    app.include_router(dashboard_router)

    return app


app = create_app()


def main():
    """Entry point for running the application."""
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )


if __name__ == "__main__":
    main()
