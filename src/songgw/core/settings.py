# Logging adapter for application-wide logging
from songgw.adapters.logging_adapter import LoggingAdapter

from pathlib import Path

from pydantic import SecretStr, computed_field, field_validator
from pydantic_settings import BaseSettings
from rich import print

from songgw.core.interfaces.logging import LoggingPort

# using pydantic_settings to manage environment variables
# and do automatic type casting in a central place
class SongGatewaySettings(BaseSettings):
    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
        "extra": "ignore"
    }
    SONGGW_LOG_LEVEL: str = "INFO"
    SONGGW_API_SERVER_HOST: str = "0.0.0.0"
    SONGGW_API_SERVER_PORT: int = 5001
    # public address of this backend, used to derive the provider callback url
    SONGGW_PUBLIC_BASE_URL: str = "http://localhost:5001"
    SONGGW_CALLBACK_URL: str | None = None

    # provider selection, resolved once at startup by the ProviderRegistry
    SONGGW_MUSIC_PROVIDER: str = "aggregator"
    SONGGW_PROVIDERS_FILE: Path | None = None
    # these override the providers file (or the built-in defaults) for the active provider
    SONGGW_AGGREGATOR_BASE_URL: str | None = None
    SONGGW_AGGREGATOR_API_KEY: SecretStr | None = None
    SONGGW_AGGREGATOR_MODEL: str | None = None
    SONGGW_DIRECT_BASE_URL: str | None = None
    SONGGW_DIRECT_API_KEY: SecretStr | None = None
    SONGGW_DIRECT_MODEL: str | None = None
    SONGGW_PROVIDER_TIMEOUT: float = 30.0

    # request store; None keeps records in memory only
    SONGGW_STORE_FILE: Path | None = Path("data/requests.json")

    SONGGW_STATUS_CACHE_TTL: float = 1.5  # seconds
    SONGGW_GRACE_WINDOW: float = 8.0  # seconds
    SONGGW_RETRY_ATTEMPTS: int = 3
    SONGGW_RETRY_BASE_WAIT: float = 0.6
    SONGGW_RETRY_MAX_WAIT: float = 5.0
    SONGGW_RETRY_JITTER: float = 0.25
    SONGGW_EMPTY_URL_REQUERIES: int = 3
    SONGGW_EMPTY_URL_REQUERY_INTERVAL: float = 2.0

    @computed_field
    @property
    def SONGGW_DEFAULT_CALLBACK_URL(self) -> str:
        """Callback address handed to providers when none is configured explicitly"""
        if self.SONGGW_CALLBACK_URL:
            return self.SONGGW_CALLBACK_URL
        return self.SONGGW_PUBLIC_BASE_URL + "/api/song/callback"

    def print_settings(self, logger: LoggingPort):
        """Prints the settings for debugging purposes"""
        logger.info("Song gateway settings:")
        print(self)

    @field_validator("SONGGW_PUBLIC_BASE_URL", mode="before")
    def strip_trailing_slash(cls, value: str) -> str:
        """Ensure SONGGW_PUBLIC_BASE_URL has no trailing slash."""
        return str(value).rstrip("/")


app_settings = SongGatewaySettings()

logger = LoggingAdapter("songgw", app_settings.SONGGW_LOG_LEVEL)
