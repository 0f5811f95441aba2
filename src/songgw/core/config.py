"""Configuration models for core domain components.

Pydantic-based configuration classes that consolidate settings for the
domain managers, so the composition root and tests can inject them.
"""

from pydantic import BaseModel, Field


class StatusResolutionConfig(BaseModel):
    """Configuration for StatusResolutionService behavior.

    Attributes:
        grace_window: Seconds a record may wait for a provider handle before it is failed with GEN_TIMEOUT
        cache_ttl: Seconds a non-terminal status answer stays in the micro-cache
        empty_url_requeries: Extra provider queries when a job reports completed without audio (0 disables)
        empty_url_requery_interval: Seconds between those extra queries
    """

    grace_window: float = Field(
        default=8.0,
        ge=0,
        description="Seconds a record without provider_job_id may stay pending before GEN_TIMEOUT",
    )

    cache_ttl: float = Field(
        default=1.5,
        ge=0,
        description="Lifetime in seconds of non-terminal micro-cache entries",
    )

    empty_url_requeries: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Immediate re-queries when the provider reports completed without an audio url",
    )

    empty_url_requery_interval: float = Field(
        default=2.0,
        ge=0,
        description="Seconds between completed-without-url re-queries",
    )

    retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Maximum attempts per outbound provider call for transient errors",
    )

    retry_base_wait: float = Field(
        default=0.6,
        gt=0,
        description="Base wait time in seconds for exponential backoff between retries",
    )

    retry_max_wait: float = Field(
        default=5.0,
        gt=0,
        description="Maximum wait time in seconds between retry attempts",
    )

    retry_jitter: float = Field(
        default=0.25,
        ge=0,
        description="Upper bound in seconds of the random jitter added to every wait",
    )

    model_config = {
        "frozen": True,
        "extra": "forbid",
    }

    @classmethod
    def from_app_settings(cls, settings) -> "StatusResolutionConfig":
        """Factory method to construct config from a SongGatewaySettings instance."""
        return cls(
            grace_window=settings.SONGGW_GRACE_WINDOW,
            cache_ttl=settings.SONGGW_STATUS_CACHE_TTL,
            empty_url_requeries=settings.SONGGW_EMPTY_URL_REQUERIES,
            empty_url_requery_interval=settings.SONGGW_EMPTY_URL_REQUERY_INTERVAL,
            retry_attempts=settings.SONGGW_RETRY_ATTEMPTS,
            retry_base_wait=settings.SONGGW_RETRY_BASE_WAIT,
            retry_max_wait=settings.SONGGW_RETRY_MAX_WAIT,
            retry_jitter=settings.SONGGW_RETRY_JITTER,
        )
