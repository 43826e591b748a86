"""
Plugins - Registration, lifecycle and capability surface for extensions.

Example:
    from willi_core.plugins import PluginAPI, PluginContext, PluginRegistry, bootstrap

    registry = PluginRegistry(PluginContext(config), PluginAPI(app.router))
    await bootstrap(registry, [MetricsExporter(), ExportUI()], autoload=True)

    await registry.execute_hook("on_user_login", payload)
"""

from .api import HTTP_METHODS, PLUGIN_ROUTE_PREFIX, APICheckpoint, PluginAPI
from .base import BasePlugin
from .context import PluginContext
from .errors import (
    DuplicateRegistrationError,
    InvalidRegistrationError,
    PluginDependencyError,
    PluginError,
    PluginLoadError,
    PluginNotFoundError,
    PluginRegistrationError,
)
from .hooks import (
    HOOK_PAYLOADS,
    DocumentUploaded,
    HookPayload,
    QuizAttemptCompleted,
    UserCreated,
    UserLogin,
    build_payload,
)
from .loader import (
    PluginManifest,
    bootstrap,
    discover_plugins,
    load_from_directory,
    load_plugin,
    order_by_dependencies,
)
from .models import DashboardWidget, MenuItem, ScheduledJob, SettingsPage
from .registry import REGISTRY_SOURCE, HealthReport, PluginRegistry, UnhealthyPlugin

__all__ = [
    # API
    "APICheckpoint",
    "HTTP_METHODS",
    "PLUGIN_ROUTE_PREFIX",
    "PluginAPI",
    "DashboardWidget",
    "MenuItem",
    "ScheduledJob",
    "SettingsPage",
    # Context / base
    "BasePlugin",
    "PluginContext",
    # Errors
    "DuplicateRegistrationError",
    "InvalidRegistrationError",
    "PluginDependencyError",
    "PluginError",
    "PluginLoadError",
    "PluginNotFoundError",
    "PluginRegistrationError",
    # Hooks
    "HOOK_PAYLOADS",
    "DocumentUploaded",
    "HookPayload",
    "QuizAttemptCompleted",
    "UserCreated",
    "UserLogin",
    "build_payload",
    # Loading
    "PluginManifest",
    "bootstrap",
    "discover_plugins",
    "load_from_directory",
    "load_plugin",
    "order_by_dependencies",
    # Registry
    "REGISTRY_SOURCE",
    "HealthReport",
    "PluginRegistry",
    "UnhealthyPlugin",
]
