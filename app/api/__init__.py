"""API routers for the video platform backend."""

from app.api.routes_comments import router as comments_router
from app.api.routes_dashboard import router as dashboard_router
from app.api.routes_health import router as health_router
from app.api.routes_likes import router as likes_router
from app.api.routes_playlists import router as playlists_router
from app.api.routes_subscriptions import router as subscriptions_router
from app.api.routes_tweets import router as tweets_router
from app.api.routes_users import router as users_router
from app.api.routes_videos import router as videos_router

__all__ = [
    "health_router",
    "users_router",
    "videos_router",
    "likes_router",
    "playlists_router",
    "comments_router",
    "tweets_router",
    "subscriptions_router",
    "dashboard_router",
]
