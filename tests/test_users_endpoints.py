"""Tests for the /api/v1/users endpoints."""

from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from app.auth.dependencies import ACCESS_COOKIE, REFRESH_COOKIE
from app.db.models import User

REGISTER_FORM = {
    "fullName": "Alice Doe",
    "email": "alice@example.com",
    "username": "Alice",
    "password": "hunter22",
}


def image(name: str = "avatar.png"):
    return (name, b"\x89PNG fake image", "image/png")


async def register(client, form=None, files=None):
    return await client.post(
        "/api/v1/users/register",
        data=form or REGISTER_FORM,
        files=files if files is not None else {"avatar": image()},
    )


async def login(client, **credentials):
    response = await client.post(
        "/api/v1/users/login", json={"password": "hunter22", **credentials}
    )
    # Tests authenticate explicitly; keep the jar from overriding their headers
    client.cookies.clear()
    return response


# Registration


@pytest.mark.asyncio
async def test_register_creates_user(client, fake_media):
    response = await register(
        client, files={"avatar": image(), "coverImage": image("cover.jpg")}
    )

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["statusCode"] == 201
    user = body["data"]
    assert user["username"] == "alice"
    assert user["fullName"] == "Alice Doe"
    assert user["avatar"].endswith("asset1.png")
    assert user["coverImage"].endswith("asset2.jpg")
    assert "password" not in user and "password_hash" not in user
    assert fake_media.uploads == ["asset1", "asset2"]


@pytest.mark.asyncio
async def test_register_requires_avatar(client):
    response = await register(client, files={})

    assert response.status_code == 400
    assert response.json()["message"] == "Avatar file is required"


@pytest.mark.asyncio
async def test_register_failed_avatar_upload_is_400(client, fake_media):
    fake_media.fail_uploads = True

    response = await register(client)

    assert response.status_code == 400
    assert response.json()["message"] == "Avatar file is required"


@pytest.mark.asyncio
async def test_register_blank_field_is_400(client):
    response = await register(client, form={**REGISTER_FORM, "fullName": "   "})

    assert response.status_code == 400
    assert response.json()["message"] == "fullName is required"


@pytest.mark.asyncio
async def test_register_duplicate_is_409(client):
    await register(client)

    response = await register(
        client, form={**REGISTER_FORM, "username": "someone-else"}
    )

    assert response.status_code == 409
    assert response.json() == {
        "statusCode": 409,
        "message": "User with email or username already exists",
        "success": False,
        "errors": [],
    }


@pytest.mark.asyncio
async def test_register_race_destroys_uploaded_images(client, fake_media):
    """A duplicate caught by the database still cleans up the uploaded images."""
    duplicate = IntegrityError("INSERT INTO users", {}, Exception("UNIQUE constraint failed"))

    with patch("app.db.crud.create_user", AsyncMock(side_effect=duplicate)):
        response = await register(
            client, files={"avatar": image(), "coverImage": image("cover.jpg")}
        )

    assert response.status_code == 409
    assert fake_media.uploads == ["asset1", "asset2"]
    assert fake_media.destroyed == [("asset1", "image"), ("asset2", "image")]


# Login and tokens


@pytest.mark.asyncio
async def test_login_with_username_or_email(client):
    await register(client)

    by_username = await login(client, username="ALICE")
    by_email = await login(client, email="alice@example.com")

    assert by_username.status_code == 200
    assert by_email.status_code == 200
    data = by_username.json()["data"]
    assert data["user"]["email"] == "alice@example.com"
    assert data["accessToken"] and data["refreshToken"]


@pytest.mark.asyncio
async def test_login_sets_http_only_cookies(client):
    await register(client)

    response = await client.post(
        "/api/v1/users/login", json={"username": "alice", "password": "hunter22"}
    )

    set_cookies = response.headers.get_list("set-cookie")
    assert any(c.startswith(f"{ACCESS_COOKIE}=") and "HttpOnly" in c for c in set_cookies)
    assert any(c.startswith(f"{REFRESH_COOKIE}=") and "HttpOnly" in c for c in set_cookies)


@pytest.mark.asyncio
async def test_login_errors(client):
    await register(client)

    unknown = await login(client, username="nobody")
    wrong = await client.post(
        "/api/v1/users/login", json={"username": "alice", "password": "nope"}
    )
    missing = await client.post("/api/v1/users/login", json={"password": "hunter22"})

    assert unknown.status_code == 404
    assert unknown.json()["message"] == "User does not exist"
    assert wrong.status_code == 401
    assert wrong.json()["message"] == "Invalid user credentials"
    assert missing.status_code == 400


@pytest.mark.asyncio
async def test_refresh_rotates_and_rejects_reuse(client):
    await register(client)
    first = (await login(client, username="alice")).json()["data"]["refreshToken"]

    rotated = await client.post("/api/v1/users/refresh-token", json={"refreshToken": first})
    client.cookies.clear()

    assert rotated.status_code == 200
    second = rotated.json()["data"]["refreshToken"]
    assert second != first

    reused = await client.post("/api/v1/users/refresh-token", json={"refreshToken": first})
    client.cookies.clear()

    assert reused.status_code == 401
    assert reused.json()["message"] == "Refresh token is expired or used"

    again = await client.post("/api/v1/users/refresh-token", json={"refreshToken": second})
    assert again.status_code == 200


@pytest.mark.asyncio
async def test_refresh_without_token_is_401(client):
    response = await client.post("/api/v1/users/refresh-token")

    assert response.status_code == 401
    assert response.json()["message"] == "Unauthorized request"


@pytest.mark.asyncio
async def test_refresh_with_garbage_is_401(client):
    response = await client.post(
        "/api/v1/users/refresh-token", json={"refreshToken": "not.a.jwt"}
    )

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_logout_invalidates_refresh_token(client):
    await register(client)
    tokens = (await login(client, username="alice")).json()["data"]
    headers = {"Authorization": f"Bearer {tokens['accessToken']}"}

    response = await client.post("/api/v1/users/logout", headers=headers)
    client.cookies.clear()
    assert response.status_code == 200

    refresh = await client.post(
        "/api/v1/users/refresh-token", json={"refreshToken": tokens["refreshToken"]}
    )
    assert refresh.status_code == 401


# Authenticated profile routes


@pytest.mark.asyncio
async def test_current_user_requires_auth(client):
    response = await client.get("/api/v1/users/current-user")

    assert response.status_code == 401
    assert response.json()["success"] is False


@pytest.mark.asyncio
async def test_current_user_rejects_bad_token(client):
    response = await client.get(
        "/api/v1/users/current-user", headers={"Authorization": "Bearer garbage"}
    )

    assert response.status_code == 401
    assert response.json()["message"] == "Invalid access token"


@pytest.mark.asyncio
async def test_current_user(client, make_user, auth_headers):
    user = await make_user("bruno")

    response = await client.get("/api/v1/users/current-user", headers=auth_headers(user))

    assert response.status_code == 200
    assert response.json()["data"]["_id"] == user.id


@pytest.mark.asyncio
async def test_change_password(client, make_user, auth_headers):
    user = await make_user("carla", password="old-pass")
    headers = auth_headers(user)

    wrong = await client.post(
        "/api/v1/users/change-password",
        json={"oldPassword": "nope", "newPassword": "new-pass"},
        headers=headers,
    )
    right = await client.post(
        "/api/v1/users/change-password",
        json={"oldPassword": "old-pass", "newPassword": "new-pass"},
        headers=headers,
    )
    relogin = await client.post(
        "/api/v1/users/login", json={"username": "carla", "password": "new-pass"}
    )

    assert wrong.status_code == 400
    assert wrong.json()["message"] == "Invalid old password"
    assert right.status_code == 200
    assert relogin.status_code == 200


@pytest.mark.asyncio
async def test_update_account(client, make_user, auth_headers):
    user = await make_user("dora")
    await make_user("eli")

    taken = await client.patch(
        "/api/v1/users/update-account",
        json={"fullName": "Dora D", "email": "eli@example.com"},
        headers=auth_headers(user),
    )
    missing = await client.patch(
        "/api/v1/users/update-account", json={"fullName": "Dora D"}, headers=auth_headers(user)
    )
    ok = await client.patch(
        "/api/v1/users/update-account",
        json={"fullName": "Dora D", "email": "dora.d@example.com"},
        headers=auth_headers(user),
    )

    assert taken.status_code == 409
    assert missing.status_code == 400
    assert ok.status_code == 200
    assert ok.json()["data"]["fullName"] == "Dora D"
    assert ok.json()["data"]["email"] == "dora.d@example.com"


@pytest.mark.asyncio
async def test_update_avatar_destroys_old_image(client, make_user, auth_headers, fake_media):
    user = await make_user("fred")

    response = await client.patch(
        "/api/v1/users/avatar", files={"avatar": image("new.png")}, headers=auth_headers(user)
    )

    assert response.status_code == 200
    assert response.json()["data"]["avatar"].endswith("asset1.png")
    assert fake_media.destroyed == [("fred", "image")]


@pytest.mark.asyncio
async def test_avatar_replacement_uses_stored_public_id(
    client, test_db, make_user, auth_headers, fake_media
):
    """Foldered public IDs are not recoverable from the URL, so the stored one is used."""
    user = await make_user("jules")
    async with test_db() as db:
        await db.execute(
            update(User).where(User.id == user.id).values(avatar_public_id="avatars/jules")
        )
        await db.commit()
    headers = auth_headers(user)

    first = await client.patch("/api/v1/users/avatar", files={"avatar": image()}, headers=headers)
    second = await client.patch("/api/v1/users/avatar", files={"avatar": image()}, headers=headers)

    assert first.status_code == 200
    assert second.status_code == 200
    assert fake_media.destroyed == [("avatars/jules", "image"), ("asset1", "image")]


@pytest.mark.asyncio
async def test_failed_avatar_upload_is_400(client, make_user, auth_headers, fake_media):
    user = await make_user("hana")
    fake_media.fail_uploads = True

    response = await client.patch(
        "/api/v1/users/avatar", files={"avatar": image()}, headers=auth_headers(user)
    )

    assert response.status_code == 400
    assert response.json()["message"] == "Error while uploading avatar"
    assert fake_media.destroyed == []


@pytest.mark.asyncio
async def test_update_cover_image_requires_file(client, make_user, auth_headers):
    user = await make_user("gail")

    response = await client.patch("/api/v1/users/cover-image", headers=auth_headers(user))

    assert response.status_code == 400
    assert response.json()["message"] == "Cover image file is required"


@pytest.mark.asyncio
async def test_channel_profile(client, make_user, auth_headers):
    viewer = await make_user("hugo")
    channel = await make_user("iris")

    await client.post(f"/api/v1/subscriptions/c/{channel.id}", headers=auth_headers(viewer))
    response = await client.get("/api/v1/users/c/iris", headers=auth_headers(viewer))
    missing = await client.get("/api/v1/users/c/nobody", headers=auth_headers(viewer))

    assert response.status_code == 200
    profile = response.json()["data"]
    assert profile["subscribersCount"] == 1
    assert profile["isSubscribed"] is True
    assert missing.status_code == 404
