"""Configuration module using Pydantic Settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

PRODUCTION_BASE_URL = "https://quickbooks.api.intuit.com"
SANDBOX_BASE_URL = "https://sandbox-quickbooks.api.intuit.com"


class Settings(BaseSettings):
    """Client settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # API
    api_base_url: str = PRODUCTION_BASE_URL
    minor_version: str = "75"
    accept_gzip: bool = True

    # HTTP Client
    http_timeout_connect: float = 10.0
    http_timeout_read: float = 30.0

    # Global gate (shared by every realm this client talks to)
    global_requests_per_minute: float = 500.0
    global_burst: int = 10
    global_max_concurrent: int = 10

    # Per-realm trackers
    realm_requests_per_minute: float = 500.0
    realm_burst: int = 10
    realm_max_concurrent: int = 10
    realm_batch_per_minute: float = 40.0
    realm_batch_burst: int = 5

    # Paging
    batch_chunk_size: int = 30
    query_page_size: int = 1000

    # Dispatch policy
    blocking_by_default: bool = False
    remote_throttle_cooldown_seconds: float = 60.0

    # Logging
    log_level: str = "INFO"

    @property
    def is_sandbox(self) -> bool:
        """Whether the client points at the sandbox environment."""
        return self.api_base_url.rstrip("/") == SANDBOX_BASE_URL


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
