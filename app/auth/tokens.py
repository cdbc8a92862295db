"""JWT access/refresh tokens and the key that encrypts refresh tokens at rest."""

import base64
import binascii
import secrets
import time

from jose import JWTError, jwt

from app.config import get_settings

ALGORITHM = "HS256"


def load_encryption_key(enc_key: str | bytes) -> bytes:
    """
    Decode the configured refresh-token encryption key.

    String keys must be base64 and decode to exactly 32 bytes.

    Raises:
        ValueError: If the key is not base64 or has the wrong length

    Example:
        >>> import secrets, base64
        >>> len(load_encryption_key(base64.b64encode(secrets.token_bytes(32)).decode()))
        32
    """
    if isinstance(enc_key, str):
        try:
            key = base64.b64decode(enc_key, validate=True)
        except binascii.Error as e:
            raise ValueError("VT_TOKEN_ENC_KEY must be base64-encoded") from e
    else:
        key = enc_key

    if len(key) != 32:
        raise ValueError(f"VT_TOKEN_ENC_KEY must decode to 32 bytes, got {len(key)}")
    return key


def create_access_token(user_id: str, username: str, email: str) -> str:
    """Create a short-lived access token carrying the user's identity."""
    settings = get_settings()
    now = int(time.time())
    payload = {
        "sub": user_id,
        "username": username,
        "email": email,
        "iat": now,
        "exp": now + settings.access_token_expiry_minutes * 60,
    }
    return jwt.encode(payload, settings.access_token_secret, algorithm=ALGORITHM)


def create_refresh_token(user_id: str) -> str:
    """Create a long-lived refresh token carrying only the user ID."""
    settings = get_settings()
    now = int(time.time())
    payload = {
        "sub": user_id,
        "iat": now,
        "exp": now + settings.refresh_token_expiry_days * 86400,
        "jti": secrets.token_hex(8),
    }
    return jwt.encode(payload, settings.refresh_token_secret, algorithm=ALGORITHM)


def _decode(token: str, secret: str) -> str | None:
    try:
        payload = jwt.decode(token, secret, algorithms=[ALGORITHM])
    except JWTError:
        return None
    return payload.get("sub")


def verify_access_token(token: str) -> str | None:
    """Verify an access token and return the user ID, or None if invalid."""
    return _decode(token, get_settings().access_token_secret)


def verify_refresh_token(token: str) -> str | None:
    """Verify a refresh token and return the user ID, or None if invalid."""
    return _decode(token, get_settings().refresh_token_secret)
