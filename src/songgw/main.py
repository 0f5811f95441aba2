# main.py
import uvicorn

from songgw.adapters.aiohttp_client_adapter import AioHttpClientAdapter
from songgw.adapters.provider_config_file_adapter import ProviderConfigFileAdapter
from songgw.adapters.provider_registry import ProviderRegistry
from songgw.adapters.request_store_file import FileRequestStore
from songgw.adapters.retry_tenacity import TenacityRetryAdapter
from songgw.adapters.web.fastapi import GatewayServices, create_app
from songgw.core.config import StatusResolutionConfig
from songgw.core.logging_config import configure_logging
from songgw.core.managers.job_submission import JobSubmissionManager
from songgw.core.managers.status_cache import StatusCache
from songgw.core.managers.status_resolution import StatusResolutionService
from songgw.core.settings import app_settings, logger


# main lives at the outermost layer (not in core)
# Instantiates all the concrete adapters
# Wires dependencies together
# Starts the application

def build_app(settings=app_settings):
    providers_port = (
        ProviderConfigFileAdapter(settings.SONGGW_PROVIDERS_FILE)
        if settings.SONGGW_PROVIDERS_FILE
        else None
    )
    http_client = AioHttpClientAdapter(default_total=settings.SONGGW_PROVIDER_TIMEOUT)
    store = FileRequestStore(settings.SONGGW_STORE_FILE)
    config = StatusResolutionConfig.from_app_settings(settings)

    def services_factory(client):
        retry_adapter = TenacityRetryAdapter(
            attempts=config.retry_attempts,
            wait_initial=config.retry_base_wait,
            wait_max=config.retry_max_wait,
            jitter=config.retry_jitter,
        )
        registry = ProviderRegistry.from_settings(settings, client, retry_adapter, providers_port)
        cache = StatusCache(ttl=config.cache_ttl)
        return GatewayServices(
            providers=registry,
            store=store,
            cache=cache,
            resolution=StatusResolutionService(registry, store, cache, config),
            submission=JobSubmissionManager(registry, store),
        )

    return create_app(http_client=http_client, services_factory=services_factory)


def main():
    # Central logging configuration BEFORE building adapters so their startup logs use it
    configure_logging(app_settings.SONGGW_LOG_LEVEL)
    app_settings.print_settings(logger)

    app = build_app()

    # Let uvicorn inherit existing logging (separate sinks & correlation ids)
    uvicorn.run(
        app,
        host=app_settings.SONGGW_API_SERVER_HOST,
        port=app_settings.SONGGW_API_SERVER_PORT,
        log_config=None,
        log_level=str(app_settings.SONGGW_LOG_LEVEL).lower(),
    )


if __name__ == "__main__":
    main()
