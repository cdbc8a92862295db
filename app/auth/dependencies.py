"""FastAPI dependency that resolves the authenticated user."""

import logging
from typing import Annotated

from fastapi import Cookie, Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.tokens import verify_access_token
from app.db import crud
from app.db.models import User
from app.db.session import get_session
from app.errors import AuthorizationError

logger = logging.getLogger(__name__)

ACCESS_COOKIE = "accessToken"
REFRESH_COOKIE = "refreshToken"


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()


async def require_user(
    access_cookie: Annotated[str | None, Cookie(alias=ACCESS_COOKIE)] = None,
    authorization: Annotated[str | None, Header()] = None,
    db: AsyncSession = Depends(get_session),
) -> User:
    """
    FastAPI dependency that requires a valid authenticated user.

    The access token is read from the ``accessToken`` cookie, falling back to
    an ``Authorization: Bearer`` header.

    Returns:
        The authenticated User object

    Raises:
        AuthorizationError: 401 if the token is missing or invalid, or the user is gone
    """
    token = access_cookie or _bearer_token(authorization)
    if not token:
        raise AuthorizationError("Unauthorized request")

    user_id = verify_access_token(token)
    if not user_id:
        raise AuthorizationError("Invalid access token")

    user = await crud.get_user_by_id(db, user_id)
    if not user:
        logger.info(f"Access token for unknown user_id={user_id}")
        raise AuthorizationError("Invalid access token")

    return user
