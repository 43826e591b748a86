"""
Plugin Protocol - Contract for assistant plugins.

Plugins extend the host with new capabilities:
- Routes under /api/plugins
- Dashboard widgets, settings pages, menu items
- Scheduled jobs and queue workers
- Reactions to domain events (user created, document uploaded, ...)

The registry depends only on this contract, never on concrete plugin types.
"""

from typing import TYPE_CHECKING, Any, Literal, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field, field_validator

if TYPE_CHECKING:
    from ..plugins.api import PluginAPI
    from ..plugins.context import PluginContext

__all__ = ["PluginHealth", "PluginMetadata", "PluginProtocol"]


class PluginMetadata(BaseModel):
    """Identity and requirements of a plugin.

    `name` is the registry's primary key: at most one registered plugin per
    name. `dependencies` names plugins that must be registered before and
    active alongside this one.
    """

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    name: str = Field(..., min_length=1)
    version: str = Field(..., min_length=1)
    description: str = ""
    author: str | None = None
    dependencies: frozenset[str] = frozenset()
    api_version: str = "1.0.0"

    @field_validator("dependencies", mode="before")
    @classmethod
    def _coerce_dependencies(cls, value: Any) -> Any:
        if value is None:
            return frozenset()
        return value


class PluginHealth(BaseModel):
    """Result of a plugin's health_check()."""

    status: Literal["healthy", "unhealthy"] = "healthy"
    message: str | None = None

    @property
    def healthy(self) -> bool:
        return self.status == "healthy"


@runtime_checkable
class PluginProtocol(Protocol):
    """Contract for plugins.

    Required:
    - metadata: PluginMetadata
    - initialize(context, api): called once at registration
    - activate() / deactivate(): lifecycle transitions

    Optional, looked up by name on the instance:
    - on_activate(context) / on_deactivate(context)
    - health_check() -> PluginHealth | {"status": ..., "message": ...}
    - domain hooks, e.g. on_document_uploaded(payload, context)

    Example:
        class MetricsExporter(BasePlugin):
            metadata = PluginMetadata(name="metrics-exporter", version="1.0.0")

            async def initialize(self, context, api) -> None:
                api.add_route("GET", "/metrics-exporter/status", self.status)
    """

    @property
    def metadata(self) -> PluginMetadata:
        """Plugin identity, version and dependencies."""
        ...

    async def initialize(self, context: "PluginContext", api: "PluginAPI") -> None:
        """Called once when the plugin is registered.

        Register routes, widgets, jobs, etc. here. Raising aborts the
        registration; the plugin is not kept.
        """
        ...

    async def activate(self) -> None:
        """Called when the plugin becomes active."""
        ...

    async def deactivate(self) -> None:
        """Called when the plugin is deactivated.

        Remove PluginAPI registrations here if they should disappear; the
        registry does not remove them.
        """
        ...
