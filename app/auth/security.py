"""Security utilities: password hashing and refresh-token encryption."""

import base64
import os

from cryptography.exceptions import InvalidKey
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

# scrypt cost parameters (RFC 7914 interactive-login recommendation)
SCRYPT_N = 2**14
SCRYPT_R = 8
SCRYPT_P = 1
SALT_BYTES = 16
HASH_BYTES = 32


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def hash_password(password: str) -> str:
    """
    Hash a password with scrypt and a random salt.

    Args:
        password: The plaintext password

    Returns:
        Encoded hash of the form ``scrypt$n$r$p$<salt>$<hash>``
    """
    salt = os.urandom(SALT_BYTES)
    kdf = Scrypt(salt=salt, length=HASH_BYTES, n=SCRYPT_N, r=SCRYPT_R, p=SCRYPT_P)
    digest = kdf.derive(password.encode("utf-8"))
    return f"scrypt${SCRYPT_N}${SCRYPT_R}${SCRYPT_P}${_b64(salt)}${_b64(digest)}"


def verify_password(password: str, encoded: str) -> bool:
    """
    Check a plaintext password against a stored scrypt hash.

    Returns:
        True if the password matches, False otherwise (including malformed hashes)
    """
    try:
        scheme, n, r, p, salt_b64, digest_b64 = encoded.split("$")
        if scheme != "scrypt":
            return False
        salt = base64.b64decode(salt_b64)
        digest = base64.b64decode(digest_b64)
        kdf = Scrypt(salt=salt, length=len(digest), n=int(n), r=int(r), p=int(p))
    except ValueError:
        return False

    try:
        kdf.verify(password.encode("utf-8"), digest)
    except InvalidKey:
        return False
    return True


def encrypt_refresh_token(key: bytes, plaintext: str) -> bytes:
    """
    Encrypt a refresh token using AES-GCM.

    Args:
        key: 32-byte encryption key (AES-256)
        plaintext: The refresh token string to encrypt

    Returns:
        Encrypted blob with nonce prepended (12 bytes nonce + ciphertext)
    """
    if len(key) != 32:
        raise ValueError("Encryption key must be exactly 32 bytes for AES-256")

    aes = AESGCM(key)
    nonce = os.urandom(12)  # 96-bit nonce for GCM
    ciphertext = aes.encrypt(nonce, plaintext.encode("utf-8"), None)
    return nonce + ciphertext


def decrypt_refresh_token(key: bytes, blob: bytes) -> str:
    """
    Decrypt a refresh token using AES-GCM.

    Raises:
        ValueError: If key length is invalid or the blob is too short
        cryptography.exceptions.InvalidTag: If decryption fails (wrong key or tampered data)
    """
    if len(key) != 32:
        raise ValueError("Encryption key must be exactly 32 bytes for AES-256")

    if len(blob) < 12:
        raise ValueError("Encrypted blob too short (must include 12-byte nonce)")

    aes = AESGCM(key)
    plaintext = aes.decrypt(blob[:12], blob[12:], None)
    return plaintext.decode("utf-8")
