"""
App - FastAPI application and HTTP layer.

Provides:
- Application factory wiring key manager, plugin registry and plugin API
- Core routes (health, readiness, plugins, admin usage metrics)
- Middleware (logging, error handling, plugin middleware)

Example:
    from willi_core.app import create_app
    from willi_core.config import WilliConfig

    app = create_app(WilliConfig(), plugins=[MetricsExporter()])

    import uvicorn
    uvicorn.run(app, host="127.0.0.1", port=9100)
"""

from .context import AppContext, get_app_context
from .factory import create_app
from .middleware import ErrorMiddleware, LoggingMiddleware, PluginMiddleware
from .routes import admin_router
from .routes import router as core_router

__all__ = [
    "AppContext",
    "create_app",
    "get_app_context",
    "admin_router",
    "core_router",
    "ErrorMiddleware",
    "LoggingMiddleware",
    "PluginMiddleware",
]
