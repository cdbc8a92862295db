"""Configuration management for the VidTube backend."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_prefix="VT_", extra="ignore")

    # Token signing
    access_token_secret: str
    refresh_token_secret: str
    access_token_expiry_minutes: int = 15
    refresh_token_expiry_days: int = 10

    # Encrypts stored refresh tokens (base64, 32 bytes)
    token_enc_key: str

    # Database
    database_url: str = "sqlite+aiosqlite:///./dev.db"

    # Redis (media cleanup queue)
    redis_url: str = "redis://localhost:6379/0"

    # Cloudinary media host
    cloudinary_cloud_name: str = Field(default="")
    cloudinary_api_key: str = Field(default="")
    cloudinary_api_secret: str = Field(default="")

    # Multipart uploads are staged here before being pushed to the media host
    upload_tmp_dir: str = Field(default="./public/temp")

    # Pagination
    page_size_default: int = 10
    page_size_max: int = 100

    # CORS
    frontend_origin: str = "http://localhost:5173"

    # Environment
    env: str = Field(default="dev", pattern="^(dev|prod)$")


_settings: Settings | None = None


def get_settings() -> Settings:
    """Get cached settings instance (singleton pattern)."""
    global _settings
    if _settings is None:
        _settings = Settings()  # type: ignore[call-arg]
    return _settings
