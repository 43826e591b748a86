"""
Base class for plugins.

Implementing PluginProtocol directly is enough; subclassing BasePlugin only
saves writing the no-op lifecycle methods.
"""

from abc import ABC
from typing import TYPE_CHECKING

from ..contracts import PluginHealth, PluginMetadata

if TYPE_CHECKING:
    from .api import PluginAPI
    from .context import PluginContext

__all__ = ["BasePlugin"]


class BasePlugin(ABC):
    """Plugin with default lifecycle behavior.

    Subclasses set `metadata` and override what they need:

        class ExportUI(BasePlugin):
            metadata = PluginMetadata(
                name="export-ui",
                version="1.0.0",
                dependencies={"metrics-exporter"},
            )

            async def initialize(self, context, api):
                await super().initialize(context, api)
                api.add_menu_item({"id": "export-ui.menu", "label": "Export", "route": "/export"})
    """

    metadata: PluginMetadata

    def __init__(self) -> None:
        self.context: "PluginContext | None" = None
        self.api: "PluginAPI | None" = None
        self.active = False

    @property
    def name(self) -> str:
        return self.metadata.name

    async def initialize(self, context: "PluginContext", api: "PluginAPI") -> None:
        """Keep references to the shared context and API."""
        self.context = context
        self.api = api

    async def activate(self) -> None:
        self.active = True

    async def deactivate(self) -> None:
        self.active = False

    async def health_check(self) -> PluginHealth:
        if self.context is None:
            return PluginHealth(status="unhealthy", message="Plugin context not available")
        return PluginHealth()
