"""
App Context - The process-wide objects, wired once by create_app.

Route handlers get it through the `get_app_context` dependency.
"""

from dataclasses import dataclass

from fastapi import Request

from ..config import WilliConfig
from ..events import EventBus
from ..keys import KeyManager
from ..plugins import PluginAPI, PluginContext, PluginRegistry

__all__ = ["AppContext", "get_app_context"]


@dataclass
class AppContext:
    config: WilliConfig
    key_manager: KeyManager
    registry: PluginRegistry

    @property
    def api(self) -> PluginAPI:
        return self.registry.api

    @property
    def plugin_context(self) -> PluginContext:
        return self.registry.context

    @property
    def events(self) -> EventBus:
        return self.registry.context.events


def get_app_context(request: Request) -> AppContext:
    return request.app.state.context
