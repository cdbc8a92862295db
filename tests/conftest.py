"""Shared fixtures: in-memory database, fake media host and a test app."""

import base64
import os
import tempfile
from pathlib import Path
from unittest.mock import AsyncMock

# Settings are read on first use, so the environment has to be in place
# before anything from app/ is imported.
os.environ.update(
    {
        "VT_ACCESS_TOKEN_SECRET": "test-access-secret",
        "VT_REFRESH_TOKEN_SECRET": "test-refresh-secret",
        "VT_TOKEN_ENC_KEY": base64.b64encode(b"0" * 32).decode(),
        "VT_UPLOAD_TMP_DIR": tempfile.mkdtemp(prefix="vt-uploads-"),
        "VT_ENV": "dev",
    }
)

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from fastapi import FastAPI  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.api import (  # noqa: E402
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
from app.api.dependencies import get_media_host, get_redis, limiter  # noqa: E402
from app.auth.security import hash_password  # noqa: E402
from app.auth.tokens import create_access_token  # noqa: E402
from app.db import crud  # noqa: E402
from app.db.models import Base, User  # noqa: E402
from app.db.session import get_session  # noqa: E402
from app.errors import register_error_handlers  # noqa: E402
from app.media.cloudinary import UploadResult  # noqa: E402


class FakeMediaHost:
    """Stands in for MediaHost: records calls and removes staged files like the real one."""

    def __init__(self):
        self.uploads: list[str] = []
        self.destroyed: list[tuple[str, str]] = []
        self.fail_uploads = False
        self._counter = 0

    async def upload(self, local_path):
        if not local_path:
            return None
        path = Path(local_path)
        try:
            if self.fail_uploads:
                return None
            self._counter += 1
            public_id = f"asset{self._counter}"
            self.uploads.append(public_id)
            return UploadResult(
                url=f"https://res.cloudinary.com/demo/upload/{public_id}{path.suffix}",
                public_id=public_id,
                duration=42.5,
            )
        finally:
            path.unlink(missing_ok=True)

    async def destroy(self, public_id, resource_type="image"):
        if public_id:
            self.destroyed.append((public_id, resource_type))


@pytest_asyncio.fixture
async def test_db():
    """Create an in-memory test database shared by every session."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    sessionmaker = async_sessionmaker(engine, expire_on_commit=False)

    yield sessionmaker

    await engine.dispose()


@pytest.fixture
def fake_media():
    return FakeMediaHost()


@pytest.fixture
def fake_redis():
    redis = AsyncMock()
    redis.lpush = AsyncMock(return_value=1)
    return redis


def override_get_session(sessionmaker):
    """Create a dependency override for get_session."""

    async def _override():
        async with sessionmaker() as session:
            yield session

    return _override


@pytest_asyncio.fixture
async def test_app(test_db, fake_media, fake_redis):
    """Create a test FastAPI app with all routers and the error translator."""
    app = FastAPI()
    app.state.limiter = limiter
    register_error_handlers(app)
    for router in (
        health_router,
        users_router,
        videos_router,
        likes_router,
        playlists_router,
        comments_router,
        tweets_router,
        subscriptions_router,
        dashboard_router,
    ):
        app.include_router(router)

    async def _redis_override():
        yield fake_redis

    app.dependency_overrides[get_session] = override_get_session(test_db)
    app.dependency_overrides[get_redis] = _redis_override
    app.dependency_overrides[get_media_host] = lambda: fake_media

    limiter.enabled = False
    yield app
    limiter.enabled = True


@pytest_asyncio.fixture
async def client(test_app):
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def _insert_user(sessionmaker, username: str, password: str = "secret-pass") -> User:
    async with sessionmaker() as db:
        return await crud.create_user(
            db,
            username=username,
            email=f"{username}@example.com",
            full_name=username.title(),
            password_hash=hash_password(password),
            avatar=f"https://res.cloudinary.com/demo/upload/{username}.png",
            avatar_public_id=username,
        )


@pytest.fixture
def auth_headers():
    """Builds a Bearer header carrying a fresh access token for a user."""

    def _headers(user: User) -> dict[str, str]:
        token = create_access_token(user.id, user.username, user.email)
        return {"Authorization": f"Bearer {token}"}

    return _headers


async def _insert_video(
    sessionmaker,
    owner: User,
    title: str = "A video",
    description: str = "About things",
    published: bool = True,
    views: int = 0,
):
    async with sessionmaker() as db:
        video = await crud.create_video(
            db,
            owner_id=owner.id,
            title=title,
            description=description,
            duration=10,
            video_file_url="https://res.cloudinary.com/demo/video/upload/v.mp4",
            video_file_public_id=f"video-{title}",
            thumbnail_url="https://res.cloudinary.com/demo/image/upload/t.png",
            thumbnail_public_id=f"thumb-{title}",
        )
        video.is_published = published
        video.views = views
        await db.commit()
        return video


@pytest.fixture
def make_user(test_db):
    """Factory inserting users directly, bypassing registration."""

    async def _make(username: str, password: str = "secret-pass") -> User:
        return await _insert_user(test_db, username, password)

    return _make


@pytest.fixture
def make_video(test_db):
    """Factory inserting videos directly with fixed media references."""

    async def _make(owner: User, **kwargs):
        return await _insert_video(test_db, owner, **kwargs)

    return _make
