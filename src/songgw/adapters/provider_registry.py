"""Selects and builds the one active generation provider at startup.

The registry is created once by the composition root and handed to every
collaborator; a running gateway never switches vendors.
"""

from typing import Dict, Optional, Sequence, Tuple, Type

from songgw.adapters.providers.aggregator import AggregatorProvider
from songgw.adapters.providers.base import HttpGenerationProvider
from songgw.adapters.providers.direct import DirectProvider
from songgw.core.interfaces.generation_provider import GenerationProviderPort
from songgw.core.interfaces.http_client import HttpClientPort
from songgw.core.interfaces.providers import ProvidersPort
from songgw.core.interfaces.retry import RetryPort
from songgw.core.models.providers_config import ProviderConfig
from songgw.core.settings import logger

DEFAULT_PROVIDER = "aggregator"

PROVIDER_ALIASES: Dict[str, Tuple[str, ...]] = {
    "aggregator": ("aggregator", "sunoapi_org", "sunoapi", "sunoapi-org", "suno"),
    "direct": ("direct", "suno_official", "suno-official", "official"),
}

PROVIDER_CLASSES: Dict[str, Type[HttpGenerationProvider]] = {
    "aggregator": AggregatorProvider,
    "direct": DirectProvider,
}

# used when no providers file defines the selected provider
BUILTIN_PROVIDER_CONFIGS: Dict[str, dict] = {
    "aggregator": {
        "name": "aggregator",
        "kind": "aggregator",
        "base_url": "https://api.sunoapi.org/api/v1",
        "model": "V4",
    },
    "direct": {
        "name": "direct",
        "kind": "direct",
        "base_url": "https://api.suno.ai/v1",
        "model": "suno-music-1",
        "generate_path": "/music/generate",
        "status_path": "/music/status",
        "health_path": "/music/generate",
    },
}


def resolve_provider_name(value: Optional[str]) -> Tuple[str, bool]:
    """Map a configured provider name or alias onto a registry name.

    Returns the name and whether the value was recognised; unknown values
    resolve to the default provider.
    """
    key = (value or "").strip().lower()
    if not key:
        return DEFAULT_PROVIDER, True
    for name, aliases in PROVIDER_ALIASES.items():
        if key in aliases:
            return name, True
    return DEFAULT_PROVIDER, False


class ProviderRegistry:
    """Holds the active provider for the lifetime of the process.

    Args:
        requested: Configured provider name or alias
        http_client: Shared outbound HTTP client
        retry: Backoff executor handed to the provider
        provider_configs: Definitions from the providers file; a definition whose
            name or kind matches the selected provider wins over the built-in one
        overrides: Field values applied on top of the chosen definition
        default_callback_url: Callback address used when the definition has none
    """

    def __init__(
        self,
        requested: Optional[str],
        http_client: HttpClientPort,
        retry: RetryPort,
        provider_configs: Sequence[ProviderConfig] = (),
        overrides: Optional[dict] = None,
        default_callback_url: Optional[str] = None,
    ):
        name, recognised = resolve_provider_name(requested)
        if not recognised:
            logger.warning(
                f"[registry:select] unknown provider '{requested}', falling back to '{DEFAULT_PROVIDER}'"
            )
        self._requested = requested
        self._name = name
        self._config = self._select_config(name, provider_configs, overrides or {})

        provider_cls = PROVIDER_CLASSES[self._config.kind]
        self._active: GenerationProviderPort = provider_cls(
            self._config,
            http_client,
            retry,
            default_callback_url=default_callback_url,
        )
        if self._config.api_key is None:
            logger.warning(f"[registry:select] provider '{name}' has no API key; submissions will be rejected")
        logger.info(
            f"[registry:select] active provider={name} kind={self._config.kind} base_url={self._active.describe()['baseUrl']}"
        )

    @staticmethod
    def _select_config(
        name: str, provider_configs: Sequence[ProviderConfig], overrides: dict
    ) -> ProviderConfig:
        chosen = next((c for c in provider_configs if c.name == name), None)
        if chosen is None:
            chosen = next((c for c in provider_configs if c.kind == name), None)
        if chosen is None:
            chosen = ProviderConfig(**BUILTIN_PROVIDER_CONFIGS[name])

        updates = {k: v for k, v in overrides.items() if v is not None}
        if not updates:
            return chosen
        # re-validate so overridden values get the same checks as file values
        data = chosen.model_dump()
        data.update(updates)
        return ProviderConfig(**data)

    @classmethod
    def from_settings(
        cls,
        settings,
        http_client: HttpClientPort,
        retry: RetryPort,
        providers: Optional[ProvidersPort] = None,
    ) -> "ProviderRegistry":
        """Build the registry from SongGatewaySettings and the optional providers file."""
        name, _ = resolve_provider_name(settings.SONGGW_MUSIC_PROVIDER)
        prefix = "SONGGW_AGGREGATOR" if name == "aggregator" else "SONGGW_DIRECT"
        overrides = {
            "base_url": getattr(settings, f"{prefix}_BASE_URL"),
            "api_key": getattr(settings, f"{prefix}_API_KEY"),
            "model": getattr(settings, f"{prefix}_MODEL"),
        }
        configs = providers.get_providers() if providers is not None else []
        if not configs:
            overrides["timeout"] = settings.SONGGW_PROVIDER_TIMEOUT
        return cls(
            settings.SONGGW_MUSIC_PROVIDER,
            http_client,
            retry,
            provider_configs=configs,
            overrides=overrides,
            default_callback_url=settings.SONGGW_DEFAULT_CALLBACK_URL,
        )

    @property
    def name(self) -> str:
        return self._name

    @property
    def active(self) -> GenerationProviderPort:
        return self._active

    @property
    def config(self) -> ProviderConfig:
        return self._config
