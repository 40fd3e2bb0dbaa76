"""
Application configuration using pydantic-settings.
Loads from environment variables with .env file support.
"""

from functools import lru_cache
from typing import List, Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_url: str = "sqlite+aiosqlite:///./vidtube_dev.db"

    # Tokens (access and refresh are signed with different secrets)
    access_token_secret: str = "change-this-access-secret-minimum-32-characters"
    access_token_expire_minutes: int = 60
    refresh_token_secret: str = "change-this-refresh-secret-minimum-32-characters"
    refresh_token_expire_days: int = 10
    algorithm: str = "HS256"
    refresh_reuse_revokes_session: bool = True

    # Passwords
    bcrypt_rounds: int = 10

    # Cookies
    cookie_secure: bool = True
    cookie_samesite: Literal["lax", "strict", "none"] = "lax"

    # Media uploads
    blob_store_backend: Literal["local", "cloudinary"] = "local"
    media_root: str = "./public/media"
    media_base_url: str = "/media"
    cloudinary_cloud_name: str = ""
    cloudinary_api_key: str = ""
    cloudinary_api_secret: str = ""
    max_upload_bytes: int = 5 * 1024 * 1024

    # Application
    debug: bool = False
    environment: str = "development"
    log_level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR
    cors_origins: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",  # Vite default
    ]

    # API Settings
    api_v1_prefix: str = "/api/v1"
    project_name: str = "VidTube Accounts"
    version: str = "1.0.0"

    # Rate limiting
    rate_limit_auth_per_minute: int = 10   # per IP for login/register/refresh
    rate_limit_api_per_minute: int = 100   # per user or IP for everything else
    rate_limit_enabled: bool = True

    @field_validator("access_token_secret", "refresh_token_secret")
    @classmethod
    def secret_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Token secrets must not be blank")
        return v

    @model_validator(mode="after")
    def secrets_differ(self) -> "Settings":
        if self.access_token_secret == self.refresh_token_secret:
            raise ValueError("Access and refresh token secrets must differ")
        if self.blob_store_backend == "cloudinary" and not (
            self.cloudinary_cloud_name
            and self.cloudinary_api_key
            and self.cloudinary_api_secret
        ):
            raise ValueError("Cloudinary backend requires cloud name, API key and secret")
        return self


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
