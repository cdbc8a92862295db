"""Composed read pipelines and pagination for feed-style endpoints."""

from app.feed.pagination import paginate
from app.feed.pipelines import build_video_feed, liked_videos, playlist_contents, user_playlists

__all__ = [
    "paginate",
    "build_video_feed",
    "liked_videos",
    "playlist_contents",
    "user_playlists",
]
