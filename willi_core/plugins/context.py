"""
Plugin Context - Shared services and event bus handed to every plugin.

One context per registry. Plugins receive it in initialize() and in every
hook call; services registered by one plugin are visible to all others.
"""

from collections.abc import Callable
from typing import Any

import structlog

from ..config import WilliConfig
from ..events import EventBus, Handler

__all__ = ["PluginContext"]

logger = structlog.get_logger(__name__)


class PluginContext:
    """Service locator plus event bus for plugins.

    Example:
        context = PluginContext(config, EventBus(), services={"key_manager": manager})

        manager = context.get_service("key_manager")
        await context.emit("metrics-exporter", "export.finished", {"rows": 42})
    """

    def __init__(
        self,
        config: WilliConfig | None = None,
        events: EventBus | None = None,
        services: dict[str, Any] | None = None,
    ) -> None:
        self.config = config or WilliConfig()
        self.events = events or EventBus()
        self._services: dict[str, Any] = dict(services or {})

    def register_service(self, name: str, service: Any) -> None:
        """Expose a service to all plugins.

        Raises:
            ValueError: If a service with the same name is already registered
        """
        if name in self._services:
            raise ValueError(f"Service already registered: {name}")
        self._services[name] = service
        logger.debug("service_registered", name=name)

    def unregister_service(self, name: str) -> Any | None:
        return self._services.pop(name, None)

    def get_service(self, name: str) -> Any:
        """Get a service by name.

        Raises:
            KeyError: If the service is not registered
        """
        if name not in self._services:
            raise KeyError(f"Unknown service: {name}")
        return self._services[name]

    def get_optional_service(self, name: str) -> Any | None:
        return self._services.get(name)

    def services(self) -> list[str]:
        return list(self._services)

    async def emit(self, source: str, topic: str, data: dict | None = None) -> None:
        await self.events.emit(source, topic, data)

    def on(self, handler: Handler, *, source: str = "*", topic: str = "*") -> Callable[[], None]:
        return self.events.on(handler, source=source, topic=topic)
