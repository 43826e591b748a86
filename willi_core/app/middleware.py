"""
Middleware - Request logging, error handling, plugin middleware.
"""

import time
from collections.abc import Awaitable, Callable

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from ..plugins import PluginAPI

__all__ = ["ErrorMiddleware", "LoggingMiddleware", "PluginMiddleware"]

logger = structlog.get_logger(__name__)

CallNext = Callable[[Request], Awaitable[Response]]


class LoggingMiddleware(BaseHTTPMiddleware):
    """Logs method, path, status code, and duration.

    Health probes are not logged.
    """

    QUIET_PATHS = {"/health", "/ready"}

    async def dispatch(self, request: Request, call_next) -> Response:
        start = time.monotonic()

        response = await call_next(request)

        duration_ms = (time.monotonic() - start) * 1000
        if request.url.path not in self.QUIET_PATHS:
            logger.info(
                "request",
                method=request.method,
                path=request.url.path,
                status=response.status_code,
                duration_ms=round(duration_ms, 2),
            )

        return response


class ErrorMiddleware(BaseHTTPMiddleware):
    """Catches unhandled exceptions and returns JSON errors.

    Full details are logged server-side only.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        try:
            return await call_next(request)
        except Exception as e:
            logger.exception(
                "unhandled_error",
                method=request.method,
                path=request.url.path,
                error=str(e),
            )
            return JSONResponse(
                status_code=500,
                content={
                    "error": "internal_server_error",
                    "message": "An unexpected error occurred",
                },
            )


class PluginMiddleware(BaseHTTPMiddleware):
    """Runs middleware registered through PluginAPI.add_middleware.

    Only requests under the plugin route prefix pass through it. The first
    registered middleware is the outermost. The list is read per request, so
    middleware added after startup takes effect immediately.
    """

    def __init__(self, app, api: PluginAPI) -> None:
        super().__init__(app)
        self.api = api

    async def dispatch(self, request: Request, call_next: CallNext) -> Response:
        path = request.url.path
        if path != self.api.prefix and not path.startswith(self.api.prefix + "/"):
            return await call_next(request)

        handler = call_next
        for middleware in reversed(self.api.get_middleware()):
            handler = _chain(middleware, handler)
        return await handler(request)


def _chain(middleware: Callable[..., Awaitable[Response]], call_next: CallNext) -> CallNext:
    async def call(request: Request) -> Response:
        return await middleware(request, call_next)

    return call
