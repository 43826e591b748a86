"""
Plugin Errors - Misconfiguration is a hard error.

Registration and lifecycle errors indicate a broken deployment and are
raised to the bootstrap code so startup fails with a message naming the
plugin and the violated constraint.
"""

__all__ = [
    "DuplicateRegistrationError",
    "InvalidRegistrationError",
    "PluginDependencyError",
    "PluginError",
    "PluginLoadError",
    "PluginNotFoundError",
    "PluginRegistrationError",
]


class PluginError(Exception):
    """Base class for plugin system errors."""

    def __init__(self, plugin: str, reason: str):
        self.plugin = plugin
        self.reason = reason
        super().__init__(f"Plugin '{plugin}': {reason}")


class PluginNotFoundError(PluginError):
    """Raised when an operation names a plugin that is not registered."""

    def __init__(self, plugin: str):
        super().__init__(plugin, "not registered")


class PluginRegistrationError(PluginError):
    """Raised when a plugin cannot be registered (version, lists, duplicates, initialize)."""


class PluginDependencyError(PluginError):
    """Raised when dependency constraints block a lifecycle transition."""


class PluginLoadError(PluginError):
    """Raised when a plugin cannot be imported from its manifest."""


class DuplicateRegistrationError(ValueError):
    """Raised when a PluginAPI registration reuses an existing id."""

    def __init__(self, kind: str, key: str):
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} with id '{key}' already exists")


class InvalidRegistrationError(ValueError):
    """Raised when a PluginAPI registration misses required fields."""

    def __init__(self, kind: str, reason: str):
        self.kind = kind
        self.reason = reason
        super().__init__(f"Invalid {kind}: {reason}")
