"""User account endpoints: registration, login, token refresh and profile."""

import logging

from cryptography.exceptions import InvalidTag
from fastapi import APIRouter, Body, Cookie, Depends, File, Form, Request, Response, UploadFile
from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_media_host, limiter, require_fields, stage_upload
from app.auth.dependencies import ACCESS_COOKIE, REFRESH_COOKIE, require_user
from app.auth.security import (
    decrypt_refresh_token,
    encrypt_refresh_token,
    hash_password,
    verify_password,
)
from app.auth.tokens import (
    create_access_token,
    create_refresh_token,
    load_encryption_key,
    verify_refresh_token,
)
from app.config import get_settings
from app.db import crud
from app.db.models import User
from app.db.session import get_session
from app.errors import (
    ApiError,
    AuthorizationError,
    ConflictError,
    NotFoundError,
    UpstreamFailure,
    ValidationError,
    api_response,
)
from app.feed.pipelines import channel_profile, project_user
from app.media.cloudinary import MediaHost

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/users", tags=["users"])


class LoginRequest(BaseModel):
    """Request model for login; either username or email identifies the user."""

    username: str | None = None
    email: str | None = None
    password: str


class RefreshRequest(BaseModel):
    """Optional body for clients that cannot send cookies."""

    refreshToken: str | None = None


class ChangePasswordRequest(BaseModel):
    oldPassword: str
    newPassword: str


class UpdateAccountRequest(BaseModel):
    fullName: str | None = None
    email: str | None = None


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


async def _issue_tokens(db: AsyncSession, user: User) -> tuple[str, str]:
    """Create an access/refresh pair and store the encrypted refresh token."""
    settings = get_settings()
    try:
        key = load_encryption_key(settings.token_enc_key)
    except ValueError:
        logger.error("Invalid encryption key configuration", exc_info=True)
        raise UpstreamFailure("Something went wrong while generating tokens")

    access_token = create_access_token(user.id, user.username, user.email)
    refresh_token = create_refresh_token(user.id)
    await crud.set_refresh_token(db, user, encrypt_refresh_token(key, refresh_token))
    return access_token, refresh_token


def _set_auth_cookies(response: Response, access_token: str, refresh_token: str) -> None:
    settings = get_settings()
    secure = settings.env == "prod"
    response.set_cookie(
        key=ACCESS_COOKIE,
        value=access_token,
        httponly=True,
        samesite="lax",
        secure=secure,
        max_age=settings.access_token_expiry_minutes * 60,
    )
    response.set_cookie(
        key=REFRESH_COOKIE,
        value=refresh_token,
        httponly=True,
        samesite="lax",
        secure=secure,
        max_age=settings.refresh_token_expiry_days * 86400,
    )


def _clear_auth_cookies(response: Response) -> None:
    response.delete_cookie(key=ACCESS_COOKIE, httponly=True, samesite="lax")
    response.delete_cookie(key=REFRESH_COOKIE, httponly=True, samesite="lax")


@router.post("/register", status_code=201)
@limiter.limit("10/minute")
async def register_user(
    request: Request,
    full_name: str | None = Form(None, alias="fullName"),
    email: str | None = Form(None),
    username: str | None = Form(None),
    password: str | None = Form(None),
    avatar: UploadFile | None = File(None),
    cover_image: UploadFile | None = File(None, alias="coverImage"),
    db: AsyncSession = Depends(get_session),
    media: MediaHost = Depends(get_media_host),
):
    """
    Register a new account.

    Uploads the avatar (required) and cover image (optional) to the media host
    before creating the user.

    Raises:
        ValidationError: 400 if a field is blank or the avatar is missing
        ConflictError: 409 if the username or email is taken
    """
    require_fields(fullName=full_name, email=email, username=username, password=password)

    if await crud.find_user_by_login(db, username=username, email=email):
        raise ConflictError("User with email or username already exists")

    avatar_path = stage_upload(avatar)
    if not avatar_path:
        raise ValidationError("Avatar file is required")

    avatar_upload = await media.upload(avatar_path)
    if not avatar_upload:
        raise ValidationError("Avatar file is required")

    cover_upload = await media.upload(stage_upload(cover_image))

    try:
        user = await crud.create_user(
            db,
            username=username.strip(),  # type: ignore[union-attr]
            email=email.strip(),  # type: ignore[union-attr]
            full_name=full_name.strip(),  # type: ignore[union-attr]
            password_hash=hash_password(password),  # type: ignore[arg-type]
            avatar=avatar_upload.url,
            avatar_public_id=avatar_upload.public_id,
            cover_image=cover_upload.url if cover_upload else "",
            cover_image_public_id=cover_upload.public_id if cover_upload else "",
        )
    except IntegrityError:
        # Lost a race with another registration; drop what was uploaded for it
        await media.destroy(avatar_upload.public_id, "image")
        if cover_upload:
            await media.destroy(cover_upload.public_id, "image")
        raise ConflictError("User with email or username already exists")

    logger.info(f"User registered: user_id={user.id}, ip={_client_ip(request)}")
    return api_response(project_user(user), "User registered successfully", 201)


@router.post("/login")
@limiter.limit("20/minute")
async def login_user(
    request: Request,
    response: Response,
    body: LoginRequest,
    db: AsyncSession = Depends(get_session),
):
    """
    Log in with username or email and password.

    Sets ``accessToken`` and ``refreshToken`` cookies and also returns both
    tokens in the body for non-browser clients.
    """
    if not body.username and not body.email:
        raise ValidationError("username or email is required")

    user = await crud.find_user_by_login(db, username=body.username, email=body.email)
    if not user:
        raise NotFoundError("User does not exist")

    if not verify_password(body.password, user.password_hash):
        logger.info(f"Failed login for user_id={user.id}, ip={_client_ip(request)}")
        raise AuthorizationError("Invalid user credentials")

    access_token, refresh_token = await _issue_tokens(db, user)
    _set_auth_cookies(response, access_token, refresh_token)

    logger.info(f"User logged in: user_id={user.id}, ip={_client_ip(request)}")
    return api_response(
        {"user": project_user(user), "accessToken": access_token, "refreshToken": refresh_token},
        "User logged in successfully",
    )


@router.post("/logout")
@limiter.limit("30/minute")
async def logout_user(
    request: Request,
    response: Response,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    """Forget the stored refresh token and clear the auth cookies."""
    await crud.set_refresh_token(db, user, None)
    _clear_auth_cookies(response)
    logger.info(f"User logged out: user_id={user.id}, ip={_client_ip(request)}")
    return api_response({}, "User logged out")


@router.post("/refresh-token")
@limiter.limit("30/minute")
async def refresh_access_token(
    request: Request,
    response: Response,
    body: RefreshRequest | None = Body(None),
    refresh_cookie: str | None = Cookie(None, alias=REFRESH_COOKIE),
    db: AsyncSession = Depends(get_session),
):
    """
    Exchange a refresh token for a new token pair.

    The presented token must match the one stored for the user, so each
    refresh token works once.

    Raises:
        AuthorizationError: 401 for any missing, invalid, expired or reused token
    """
    incoming = refresh_cookie or (body.refreshToken if body else None)
    if not incoming:
        raise AuthorizationError("Unauthorized request")

    try:
        user_id = verify_refresh_token(incoming)
        if not user_id:
            raise AuthorizationError("Invalid refresh token")

        user = await crud.get_user_by_id(db, user_id)
        if not user:
            raise AuthorizationError("Invalid refresh token")

        stored = None
        if user.refresh_token_enc:
            key = load_encryption_key(get_settings().token_enc_key)
            stored = decrypt_refresh_token(key, user.refresh_token_enc)
        if incoming != stored:
            raise AuthorizationError("Refresh token is expired or used")
    except (ApiError, ValueError, InvalidTag) as e:
        message = e.message if isinstance(e, ApiError) else "Invalid refresh token"
        logger.info(f"Refresh token rejected from ip={_client_ip(request)}: {message}")
        raise AuthorizationError(message) from e

    access_token, refresh_token = await _issue_tokens(db, user)
    _set_auth_cookies(response, access_token, refresh_token)
    return api_response(
        {"accessToken": access_token, "refreshToken": refresh_token}, "Access token refreshed"
    )


@router.post("/change-password")
@limiter.limit("10/minute")
async def change_current_password(
    request: Request,
    body: ChangePasswordRequest,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    """Change the password after confirming the old one."""
    require_fields(newPassword=body.newPassword)
    if not verify_password(body.oldPassword, user.password_hash):
        raise ValidationError("Invalid old password")

    await crud.update_user_fields(db, user, password_hash=hash_password(body.newPassword))
    return api_response({}, "Password changed successfully")


@router.get("/current-user")
@limiter.limit("120/minute")
async def get_current_user(request: Request, user: User = Depends(require_user)):
    """Return the authenticated user's profile."""
    return api_response(project_user(user), "User fetched successfully")


@router.patch("/update-account")
@limiter.limit("30/minute")
async def update_account_details(
    request: Request,
    body: UpdateAccountRequest,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    """Update full name and email; both are required."""
    require_fields(fullName=body.fullName, email=body.email)
    email = body.email.strip()  # type: ignore[union-attr]

    if await crud.email_in_use(db, email, exclude_user_id=user.id):
        raise ConflictError("Email is already in use")

    try:
        user = await crud.update_user_fields(
            db,
            user,
            full_name=body.fullName.strip(),  # type: ignore[union-attr]
            email=email,
        )
    except IntegrityError:
        raise ConflictError("Email is already in use")
    return api_response(project_user(user), "Account details updated successfully")


async def _replace_profile_image(
    db: AsyncSession,
    media: MediaHost,
    user: User,
    upload: UploadFile | None,
    field: str,
    label: str,
) -> User:
    local_path = stage_upload(upload)
    if not local_path:
        raise ValidationError(f"{label} file is required")

    uploaded = await media.upload(local_path)
    if not uploaded:
        raise ValidationError(f"Error while uploading {label.lower()}")

    old_public_id = getattr(user, f"{field}_public_id")
    user = await crud.update_user_fields(
        db, user, **{field: uploaded.url, f"{field}_public_id": uploaded.public_id}
    )

    # Old image goes only after the new one is stored
    if old_public_id:
        await media.destroy(old_public_id, "image")
    return user


@router.patch("/avatar")
@limiter.limit("20/minute")
async def update_user_avatar(
    request: Request,
    avatar: UploadFile | None = File(None),
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
    media: MediaHost = Depends(get_media_host),
):
    """Replace the avatar image."""
    user = await _replace_profile_image(db, media, user, avatar, "avatar", "Avatar")
    return api_response(project_user(user), "Avatar image updated successfully")


@router.patch("/cover-image")
@limiter.limit("20/minute")
async def update_user_cover_image(
    request: Request,
    cover_image: UploadFile | None = File(None, alias="coverImage"),
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
    media: MediaHost = Depends(get_media_host),
):
    """Replace the cover image."""
    user = await _replace_profile_image(db, media, user, cover_image, "cover_image", "Cover image")
    return api_response(project_user(user), "Cover image updated successfully")


@router.get("/c/{username}")
@limiter.limit("120/minute")
async def get_user_channel_profile(
    request: Request,
    username: str,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    """Public channel page with subscriber counts."""
    if not username.strip():
        raise ValidationError("username is missing")

    profile = await channel_profile(db, username.strip(), viewer_id=user.id)
    if profile is None:
        raise NotFoundError("Channel does not exist")
    return api_response(profile, "User channel fetched successfully")
