from typing import Literal

from pydantic import BaseModel, Field, HttpUrl, SecretStr, field_validator


class ProviderConfig(BaseModel):
    """Connection settings for a single generation provider"""

    name: str = Field(description="Registry name of the provider (e.g. 'aggregator')")
    kind: Literal["aggregator", "direct"] = Field(
        description=(
            "Which client implementation talks to this provider. "
            "'aggregator' is a reseller API with several status endpoints, "
            "'direct' is the vendor's own single-endpoint API."
        )
    )
    base_url: HttpUrl = Field(
        alias="base-url",
        description="Base URL of the provider API, including any version prefix.",
    )
    api_key: SecretStr | None = Field(
        default=None,
        alias="api-key",
        description="Bearer token sent with every request.",
    )
    timeout: float = Field(
        default=30.0,
        gt=0,
        description="Total timeout in seconds for a single outbound call.",
    )
    model: str = Field(
        default="V4",
        description="Model identifier the provider requires on every submission.",
    )
    custom_mode: bool = Field(default=False, alias="custom-mode")
    callback_url: str | None = Field(
        default=None,
        alias="callback-url",
        description=(
            "Callback address sent with every submission. Some providers reject "
            "submissions without one even when it is never called."
        ),
    )
    generate_path: str = Field(default="/generate", alias="generate-path")
    status_path: str = Field(default="/generate/status", alias="status-path")
    record_info_path: str = Field(default="/generate/record-info", alias="record-info-path")
    legacy_status_path: str = Field(default="/task/status", alias="legacy-status-path")
    health_path: str = Field(default="/generate", alias="health-path")

    model_config = {"populate_by_name": True}

    @field_validator("base_url", mode="before")
    def strip_trailing_slash(cls, value: str) -> HttpUrl:
        """Paths are appended with a leading slash, so the base carries none."""
        return HttpUrl(str(value).rstrip("/"))

    def url_for(self, path: str) -> str:
        return str(self.base_url).rstrip("/") + "/" + path.lstrip("/")


class ProvidersConfig(BaseModel):
    """Root of the providers file"""

    providers: list[ProviderConfig] = Field(
        default_factory=list,
        description="List of provider configurations",
    )
