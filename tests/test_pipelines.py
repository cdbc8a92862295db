"""Tests for the composed read pipelines and pagination."""

import uuid
from datetime import datetime, timedelta

import pytest

from app.db import crud
from app.db.models import Like, Video, utcnow
from app.errors import ValidationError
from app.feed.pagination import page_meta, paginate
from app.feed.pipelines import (
    build_video_feed,
    channel_profile,
    channel_stats,
    liked_videos,
    playlist_contents,
    project_feed_video,
    user_playlists,
)


async def _feed(db, page=1, limit=10, **kwargs):
    return await paginate(db, build_video_feed(**kwargs), page, limit, project_feed_video)


# Pagination


def test_page_meta_middle_page():
    assert page_meta(total=25, page=2, limit=10) == {
        "totalDocs": 25,
        "limit": 10,
        "page": 2,
        "totalPages": 3,
        "pagingCounter": 11,
        "hasPrevPage": True,
        "hasNextPage": True,
        "prevPage": 1,
        "nextPage": 3,
    }


def test_page_meta_empty_result_has_one_page():
    meta = page_meta(total=0, page=1, limit=10)

    assert meta["totalPages"] == 1
    assert meta["hasNextPage"] is False
    assert meta["prevPage"] is None


@pytest.mark.asyncio
async def test_paginate_rejects_bad_page(test_db):
    async with test_db() as db:
        with pytest.raises(ValidationError):
            await _feed(db, page=0)
        with pytest.raises(ValidationError):
            await _feed(db, limit=0)


@pytest.mark.asyncio
async def test_paginate_caps_limit(test_db, make_user, make_video):
    owner = await make_user("capper")
    for i in range(3):
        await make_video(owner, title=f"v{i}")

    async with test_db() as db:
        result = await paginate(db, build_video_feed(), 1, 500, project_feed_video, max_limit=2)

    assert result["limit"] == 2
    assert len(result["docs"]) == 2
    assert result["totalDocs"] == 3
    assert result["hasNextPage"] is True


# Video feed


@pytest.mark.asyncio
async def test_feed_only_lists_published_videos(test_db, make_user, make_video):
    owner = await make_user("alice")
    await make_video(owner, title="public")
    await make_video(owner, title="draft", published=False)

    async with test_db() as db:
        result = await _feed(db)

    assert [doc["title"] for doc in result["docs"]] == ["public"]
    assert result["docs"][0]["ownerDetails"] == {
        "username": "alice",
        "avatar": "https://res.cloudinary.com/demo/upload/alice.png",
    }


@pytest.mark.asyncio
async def test_feed_filters_by_owner_and_query(test_db, make_user, make_video):
    alice = await make_user("alice")
    bob = await make_user("bob")
    await make_video(alice, title="Cooking pasta")
    await make_video(alice, title="Gardening", description="growing PASTA plants")
    await make_video(bob, title="pasta for two")

    async with test_db() as db:
        by_query = await _feed(db, query="pasta")
        by_owner = await _feed(db, query="pasta", owner_id=alice.id)

    assert by_query["totalDocs"] == 3
    assert {doc["title"] for doc in by_owner["docs"]} == {"Cooking pasta", "Gardening"}


@pytest.mark.asyncio
async def test_feed_query_treats_wildcards_literally(test_db, make_user, make_video):
    owner = await make_user("carol")
    await make_video(owner, title="100% real")
    await make_video(owner, title="1000 real")

    async with test_db() as db:
        result = await _feed(db, query="100%")

    assert [doc["title"] for doc in result["docs"]] == ["100% real"]


@pytest.mark.asyncio
async def test_feed_sorting(test_db, make_user, make_video):
    owner = await make_user("dave")
    await make_video(owner, title="low", views=1)
    await make_video(owner, title="high", views=50)
    await make_video(owner, title="mid", views=10)

    async with test_db() as db:
        ascending = await _feed(db, sort_by="views", sort_type="asc")
        descending = await _feed(db, sort_by="views", sort_type="desc")

    assert [d["title"] for d in ascending["docs"]] == ["low", "mid", "high"]
    assert [d["title"] for d in descending["docs"]] == ["high", "mid", "low"]


@pytest.mark.asyncio
async def test_feed_defaults_to_newest_first(test_db, make_user, make_video):
    owner = await make_user("erin")
    old = await make_video(owner, title="old")
    await make_video(owner, title="new")

    async with test_db() as db:
        row = await db.get(Video, old.id)
        row.created_at = datetime(2020, 1, 1)
        await db.commit()

        result = await _feed(db)

    assert [d["title"] for d in result["docs"]] == ["new", "old"]


def test_feed_rejects_unknown_sort_field():
    with pytest.raises(ValidationError, match="Invalid sortBy"):
        build_video_feed(sort_by="password_hash", sort_type="asc")


def test_feed_rejects_malformed_owner_id():
    with pytest.raises(ValidationError, match="Invalid userId"):
        build_video_feed(owner_id="not-an-id")


@pytest.mark.asyncio
async def test_feed_drops_videos_without_owner(test_db, make_user, make_video):
    owner = await make_user("frank")
    await make_video(owner, title="kept")

    async with test_db() as db:
        db.add(
            Video(
                owner_id=str(uuid.uuid4()),
                title="orphan",
                description="owner is gone",
                video_file_url="u",
                video_file_public_id="p",
                thumbnail_url="t",
                thumbnail_public_id="tp",
                is_published=True,
            )
        )
        await db.commit()

        result = await _feed(db)

    assert [d["title"] for d in result["docs"]] == ["kept"]
    assert result["totalDocs"] == 1


@pytest.mark.asyncio
async def test_feed_pages_cover_everything_once(test_db, make_user, make_video):
    owner = await make_user("gina")
    for i in range(5):
        await make_video(owner, title=f"video {i}", views=i)

    async with test_db() as db:
        pages = [await _feed(db, page=p, limit=2, sort_by="views", sort_type="asc") for p in (1, 2, 3)]

    titles = [d["title"] for page in pages for d in page["docs"]]
    assert titles == [f"video {i}" for i in range(5)]
    assert pages[2]["hasNextPage"] is False
    assert pages[2]["pagingCounter"] == 5


# Liked videos


@pytest.mark.asyncio
async def test_liked_videos_skip_deleted_videos(test_db, make_user, make_video):
    owner = await make_user("hank")
    fan = await make_user("ivy")
    first = await make_video(owner, title="first")
    second = await make_video(owner, title="second")

    async with test_db() as db:
        await crud.toggle_like(db, "video", first.id, fan.id)
        await crud.toggle_like(db, "video", second.id, fan.id)
        await crud.toggle_like(db, "comment", str(uuid.uuid4()), fan.id)
        await crud.delete_video_cascade(db, second.id)
        # A like on a video id that never existed
        db.add(Like(subject_type="video", subject_id=str(uuid.uuid4()), liked_by=fan.id))
        await db.commit()

        liked = await liked_videos(db, fan.id)

    assert len(liked) == 1
    assert liked[0]["likedVideo"]["_id"] == first.id
    assert liked[0]["likedVideo"]["ownerDetails"]["fullName"] == "Hank"


# Playlists


@pytest.mark.asyncio
async def test_playlist_totals_cover_published_videos_only(test_db, make_user, make_video):
    owner = await make_user("jack")
    a = await make_video(owner, title="a", views=3)
    b = await make_video(owner, title="b", views=4)
    hidden = await make_video(owner, title="hidden", views=100, published=False)

    async with test_db() as db:
        playlist = await crud.create_playlist(db, owner.id, "Mix", "Things")
        for video in (b, hidden, a):
            await crud.add_video_to_playlist(db, playlist, video.id)

        contents = await playlist_contents(db, playlist.id)
        summaries = await user_playlists(db, owner.id)

    assert [v["title"] for v in contents["videos"]] == ["b", "a"]
    assert contents["totalVideos"] == 2
    assert contents["totalViews"] == 7
    assert contents["owner"]["username"] == "jack"
    assert summaries[0]["totalVideos"] == 3
    assert summaries[0]["totalViews"] == 107


@pytest.mark.asyncio
async def test_empty_playlist_has_zero_totals(test_db, make_user):
    owner = await make_user("kate")

    async with test_db() as db:
        playlist = await crud.create_playlist(db, owner.id, "Empty", "Nothing yet")
        contents = await playlist_contents(db, playlist.id)
        summaries = await user_playlists(db, owner.id)

    assert contents["videos"] == []
    assert contents["totalVideos"] == 0
    assert contents["totalViews"] == 0
    assert len(summaries) == 1
    assert summaries[0]["_id"] == playlist.id
    assert summaries[0]["totalVideos"] == 0
    assert summaries[0]["totalViews"] == 0


@pytest.mark.asyncio
async def test_missing_playlist_is_none(test_db):
    async with test_db() as db:
        assert await playlist_contents(db, str(uuid.uuid4())) is None


# Channels


@pytest.mark.asyncio
async def test_channel_profile_and_stats(test_db, make_user, make_video):
    creator = await make_user("leo")
    fan = await make_user("mia")
    video = await make_video(creator, title="hit", views=9)
    await make_video(creator, title="draft", views=1, published=False)

    async with test_db() as db:
        await crud.toggle_subscription(db, fan.id, creator.id)
        await crud.toggle_like(db, "video", video.id, fan.id)

        profile = await channel_profile(db, "LEO", viewer_id=fan.id)
        stats = await channel_stats(db, creator.id)

    assert profile["subscribersCount"] == 1
    assert profile["channelsSubscribedToCount"] == 0
    assert profile["isSubscribed"] is True
    assert "password_hash" not in profile
    assert stats == {"totalSubscribers": 1, "totalVideos": 2, "totalViews": 10, "totalLikes": 1}


@pytest.mark.asyncio
async def test_user_playlists_rejects_malformed_id(test_db):
    async with test_db() as db:
        with pytest.raises(ValidationError):
            await user_playlists(db, "12345")


@pytest.mark.asyncio
async def test_recently_updated_playlist_first(test_db, make_user, make_video):
    owner = await make_user("nina")
    video = await make_video(owner)

    async with test_db() as db:
        older = await crud.create_playlist(db, owner.id, "Older", "first")
        newer = await crud.create_playlist(db, owner.id, "Newer", "second")
        older.updated_at = utcnow() - timedelta(days=1)
        await db.commit()
        await crud.add_video_to_playlist(db, older, video.id)

        summaries = await user_playlists(db, owner.id)

    assert [p["_id"] for p in summaries] == [older.id, newer.id]
