"""Database module for the VidTube backend."""

from app.db.models import Base, Comment, Like, Playlist, PlaylistVideo, Subscription, Tweet, User, Video
from app.db.session import get_engine, get_session, get_sessionmaker

__all__ = [
    "Base",
    "User",
    "Video",
    "Playlist",
    "PlaylistVideo",
    "Like",
    "Comment",
    "Tweet",
    "Subscription",
    "get_session",
    "get_engine",
    "get_sessionmaker",
]
