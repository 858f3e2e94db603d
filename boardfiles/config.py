"""SDK configuration."""

from pathlib import Path

from pydantic import AliasChoices, Field, HttpUrl
from pydantic_settings import BaseSettings, SettingsConfigDict

# Default remote storage quota (1GB, free tier)
DEFAULT_STORAGE_QUOTA = 1024 * 1024 * 1024


def default_cache_dir() -> Path:
    return Path.home() / ".cache" / "boardfiles"


class StorageConfig(BaseSettings):
    """
    Storage configuration.

    Uses Pydantic BaseSettings for automatic environment variable loading.
    Environment variables are prefixed with BOARDFILES_.

    Required environment variables:
        BOARDFILES_SUPABASE_URL: Hosted backend base URL (auth + storage)
        BOARDFILES_API_KEY: Project API key sent as the ``apikey`` header
        BOARDFILES_API_URL: Portal API base URL (document metadata)

    Optional environment variables:
        BOARDFILES_EMAIL / BOARDFILES_PASSWORD: Account used to sign in
        BOARDFILES_CACHE_DIR: Local file store root (default: ~/.cache/boardfiles)
        BOARDFILES_CACHE_MAX_BYTES: Local store quota (default: free disk space)
        STORAGE_QUOTA_BYTES: Remote quota in bytes (default: 1GB)
        BOARDFILES_SIGNED_URL_TTL: Signed URL lifetime in seconds (default: 3600)
        BOARDFILES_SIGNED_URL_REFRESH_BUFFER: Refresh this many seconds
            before expiry (default: 300)
        BOARDFILES_REQUEST_TIMEOUT: HTTP timeout in seconds (default: 30)
    """

    model_config = SettingsConfigDict(
        env_prefix="BOARDFILES_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Hosted backend base URL - required, validated as URL
    supabase_url: HttpUrl

    # Project API key - required, non-empty
    api_key: str = Field(min_length=1)

    # Portal API base URL - required, validated as URL
    api_url: HttpUrl

    # Sign-in credentials
    email: str = ""
    password: str = ""

    # Local file store
    cache_dir: Path = Field(default_factory=default_cache_dir)
    cache_max_bytes: int | None = Field(default=None, ge=0)

    # Remote storage quota, shared with the web app's STORAGE_QUOTA_BYTES
    storage_quota_bytes: int = Field(
        default=DEFAULT_STORAGE_QUOTA,
        ge=0,
        validation_alias=AliasChoices(
            "storage_quota_bytes",
            "STORAGE_QUOTA_BYTES",
            "BOARDFILES_STORAGE_QUOTA_BYTES",
        ),
    )

    # Signed URL lifetime (seconds)
    signed_url_ttl: int = Field(default=3600, ge=1)

    # Refresh signed URLs this long before they expire (seconds)
    signed_url_refresh_buffer: float = Field(default=300.0, ge=0)

    # HTTP request timeout (seconds)
    request_timeout: float = Field(default=30.0, gt=0)
