from typing import Tuple

from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings

from entitlement_client.errors import ConfigurationError

# License Server Defaults
DEFAULT_BASE_URL = "https://license.dev.midaz.io"
DEFAULT_TIMEOUT_MS = 5000
DEFAULT_RETRY_COUNT = 3
DEFAULT_RETRY_DELAY_MS = 5000
MAX_BACKOFF_MS = 30000

# Cache Defaults
DEFAULT_CACHE_TTL_SECONDS = 24 * 60 * 60  # Store default when no TTL is given
VALIDATION_CACHE_TTL_SECONDS = 3600  # Always used for successful validations

# Background Refresh
DEFAULT_REFRESH_INTERVAL_SECONDS = 1800

# Status Logging
EXPIRY_WARNING_DAYS: Tuple[int, ...] = (30, 7)


class ClientOptions(BaseModel):
    """Tunables for a single license client instance."""

    base_url: str = DEFAULT_BASE_URL
    timeout_ms: int = Field(default=DEFAULT_TIMEOUT_MS, gt=0)
    retry_count: int = Field(default=DEFAULT_RETRY_COUNT, ge=0)
    retry_delay_ms: int = Field(default=DEFAULT_RETRY_DELAY_MS, ge=0)
    cache_ttl_seconds: int = Field(default=DEFAULT_CACHE_TTL_SECONDS, gt=0)
    refresh_interval_seconds: float = Field(default=DEFAULT_REFRESH_INTERVAL_SECONDS, gt=0)
    expiry_warning_days: Tuple[int, ...] = EXPIRY_WARNING_DAYS

    def __init__(self, **data):
        # Invalid values surface as ConfigurationError naming the first offending field
        try:
            super().__init__(**data)
        except ValidationError as e:
            error = e.errors()[0]
            field = ".".join(str(part) for part in error["loc"]) or "options"
            raise ConfigurationError(f"Invalid option '{field}': {error['msg']}", field=field) from e

    @classmethod
    def build(cls, **overrides) -> "ClientOptions":
        """Build options from keyword overrides."""
        return cls(**overrides)


class Settings(BaseSettings):
    # License Server Configuration
    LICENSE_API_URL: str = DEFAULT_BASE_URL
    LICENSE_API_TIMEOUT_MS: int = DEFAULT_TIMEOUT_MS
    LICENSE_RETRY_COUNT: int = DEFAULT_RETRY_COUNT
    LICENSE_RETRY_DELAY_MS: int = DEFAULT_RETRY_DELAY_MS

    # Cache / Refresh
    LICENSE_CACHE_TTL_SECONDS: int = DEFAULT_CACHE_TTL_SECONDS
    LICENSE_REFRESH_INTERVAL_SECONDS: float = DEFAULT_REFRESH_INTERVAL_SECONDS

    # Identity of the protected application
    APPLICATION_NAME: str = ""
    LICENSE_KEY: str = ""
    ORGANIZATION_ID: str = ""

    # Logging
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        extra = "ignore"

    def to_client_options(self) -> ClientOptions:
        return ClientOptions.build(
            base_url=self.LICENSE_API_URL,
            timeout_ms=self.LICENSE_API_TIMEOUT_MS,
            retry_count=self.LICENSE_RETRY_COUNT,
            retry_delay_ms=self.LICENSE_RETRY_DELAY_MS,
            cache_ttl_seconds=self.LICENSE_CACHE_TTL_SECONDS,
            refresh_interval_seconds=self.LICENSE_REFRESH_INTERVAL_SECONDS,
        )


def get_settings() -> Settings:
    return Settings()
