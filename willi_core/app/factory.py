"""
Application Factory - Creates and configures the FastAPI app.

Each call creates a fresh app with its own key manager, plugin registry,
plugin API and event bus, held together in an AppContext.
"""

from collections.abc import Sequence
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from .. import __version__
from ..config import WilliConfig
from ..contracts import ModelProvider, PluginProtocol
from ..events import EventBus
from ..keys import JsonMetricsStore, KeyManager, MetricsStore
from ..plugins import PluginAPI, PluginContext, PluginRegistry, load_from_directory
from ..providers import GeminiProvider
from .context import AppContext
from .middleware import ErrorMiddleware, LoggingMiddleware, PluginMiddleware
from .routes import admin_router
from .routes import router as core_router

__all__ = ["create_app"]

logger = structlog.get_logger(__name__)

HOST_SOURCE = "host"


def create_app(
    config: WilliConfig | None = None,
    free_provider: ModelProvider | None = None,
    paid_provider: ModelProvider | None = None,
    plugins: Sequence[PluginProtocol] = (),
    store: MetricsStore | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Plugins passed in and plugins discovered in `config.plugin_dirs` are
    bootstrapped together at startup; a registration error aborts startup.

    Args:
        config: Configuration (uses defaults if None)
        free_provider: Provider for the free key (Gemini with config.free_api_key if None)
        paid_provider: Provider for the paid key (Gemini with config.paid_api_key if None)
        plugins: Instantiated plugins to register at startup
        store: Metrics store (JSON file at config.metrics_file if None)

    Returns:
        Configured FastAPI application
    """
    if config is None:
        config = WilliConfig()

    owned_providers = []
    if free_provider is None:
        free_provider = GeminiProvider(config.free_api_key, config.default_model)
        owned_providers.append(free_provider)
    if paid_provider is None:
        paid_provider = GeminiProvider(config.paid_api_key, config.default_model)
        owned_providers.append(paid_provider)

    key_manager = KeyManager(
        config,
        free_provider,
        paid_provider,
        store if store is not None else JsonMetricsStore(config.metrics_file),
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        ctx: AppContext = app.state.context
        logger.info("willi_starting", version=__version__)

        names = await load_from_directory(
            ctx.registry,
            config.plugin_paths,
            autoload=config.plugin_autoload,
            extra=plugins,
        )
        await ctx.events.emit(HOST_SOURCE, "app.started", {"plugins": names})
        logger.info(
            "willi_started",
            plugins=len(ctx.registry),
            active=len(ctx.registry.get_active_plugins()),
        )

        yield

        logger.info("willi_stopping")
        await ctx.registry.deactivate_all()
        await ctx.key_manager.aclose()
        for provider in owned_providers:
            await provider.aclose()
        await ctx.events.emit(HOST_SOURCE, "app.stopped", {})
        logger.info("willi_stopped")

    app = FastAPI(
        title="Willi",
        description="Quota-aware model routing and plugin host",
        version=__version__,
        lifespan=lifespan,
    )

    # Plugin routes land directly on the app router, so routes added at any
    # point of the app's life are served
    api = PluginAPI(app.router)
    plugin_context = PluginContext(config, EventBus(), services={"key_manager": key_manager})
    registry = PluginRegistry.from_config(config, plugin_context, api)

    # Order matters: last added runs first
    app.add_middleware(PluginMiddleware, api=api)
    app.add_middleware(ErrorMiddleware)
    app.add_middleware(LoggingMiddleware)

    app.include_router(core_router)
    app.include_router(admin_router)

    app.state.config = config
    app.state.context = AppContext(config=config, key_manager=key_manager, registry=registry)

    return app
