"""
Plugin Registry - Manages plugin lifecycle.

Per plugin: Unregistered -> Registered -> Active -> Registered -> Unregistered.

Invariants:
- A plugin is active only while all of its dependencies are active.
- A plugin cannot be deactivated while an active plugin depends on it.
- Unregistering an active plugin deactivates it first (and fails the same way).

Lifecycle calls for one plugin are expected to be serialized by the caller
(normally the startup bootstrap). Hooks and health checks fan out to all
active plugins concurrently.
"""

import asyncio
import graphlib
import inspect
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

import structlog

from ..config import WilliConfig
from ..contracts import PluginHealth, PluginMetadata, PluginProtocol
from ..events import Handler
from .api import PluginAPI
from .context import PluginContext
from .errors import (
    PluginDependencyError,
    PluginError,
    PluginNotFoundError,
    PluginRegistrationError,
)
from .hooks import HookPayload, build_payload

__all__ = [
    "HealthReport",
    "PluginRegistry",
    "REGISTRY_SOURCE",
    "UnhealthyPlugin",
    "dependency_order",
]

logger = structlog.get_logger(__name__)

REGISTRY_SOURCE = "registry"

# Names execute_hook refuses to broadcast
RESERVED_HOOKS = frozenset({
    "metadata",
    "initialize",
    "activate",
    "deactivate",
    "on_activate",
    "on_deactivate",
    "health_check",
})


@dataclass
class UnhealthyPlugin:
    name: str
    message: str


@dataclass
class HealthReport:
    """Health of all active plugins, partitioned."""

    healthy: list[str] = field(default_factory=list)
    unhealthy: list[UnhealthyPlugin] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.unhealthy

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": "healthy" if self.ok else "degraded",
            "healthy": list(self.healthy),
            "unhealthy": [{"name": u.name, "message": u.message} for u in self.unhealthy],
        }


def dependency_order(dependencies: Mapping[str, Iterable[str]]) -> list[str]:
    """Order plugin names so that every plugin follows its dependencies.

    Dependencies outside the mapping are ignored for ordering.

    Raises:
        PluginDependencyError: On a dependency cycle
    """
    sorter = graphlib.TopologicalSorter()
    for name, deps in dependencies.items():
        sorter.add(name, *(d for d in deps if d in dependencies))
    try:
        return list(sorter.static_order())
    except graphlib.CycleError as e:
        cycle = e.args[1] if len(e.args) > 1 else []
        raise PluginDependencyError(
            cycle[0] if cycle else "?",
            f"dependency cycle: {' -> '.join(cycle)}",
        ) from e


def _api_major(version: str) -> int:
    return int(version.strip().split(".")[0])


def _coerce_health(result: Any) -> PluginHealth:
    if isinstance(result, PluginHealth):
        return result
    if result is None or result is True:
        return PluginHealth()
    if result is False:
        return PluginHealth(status="unhealthy", message="Unhealthy")
    if isinstance(result, Mapping):
        status = str(result.get("status", "healthy")).lower()
        if status in ("healthy", "ok"):
            return PluginHealth(message=result.get("message"))
        return PluginHealth(status="unhealthy", message=result.get("message") or status or "Unhealthy")
    return PluginHealth(status="unhealthy", message=f"Unexpected health result: {result!r}")


class PluginRegistry:
    """Registry for plugins.

    Owns plugin instances, tracks the active set, enforces version and
    dependency constraints, drives lifecycle transitions and runs hooks.

    Example:
        registry = PluginRegistry(context, api, api_version="1.0.0")

        await registry.register(MetricsExporter())
        await registry.register(ExportUI())           # depends on metrics-exporter
        await registry.activate("metrics-exporter")
        await registry.activate("export-ui")

        failures = await registry.execute_hook("on_document_uploaded", payload)
        report = await registry.health_check()
    """

    def __init__(
        self,
        context: PluginContext | None = None,
        api: PluginAPI | None = None,
        *,
        api_version: str = "1.0.0",
        allowed_plugins: Iterable[str] | None = None,
        blocked_plugins: Iterable[str] = (),
        hook_timeout: float | None = None,
    ) -> None:
        self.context = context or PluginContext()
        self.api = api or PluginAPI()
        self.api_version = api_version
        self._allowed = frozenset(allowed_plugins) if allowed_plugins is not None else None
        self._blocked = frozenset(blocked_plugins)
        self._hook_timeout = hook_timeout

        self._plugins: dict[str, PluginProtocol] = {}
        self._metadata: dict[str, PluginMetadata] = {}
        # Insertion ordered: activation order
        self._active: dict[str, None] = {}

    @classmethod
    def from_config(
        cls,
        config: WilliConfig,
        context: PluginContext | None = None,
        api: PluginAPI | None = None,
    ) -> "PluginRegistry":
        return cls(
            context or PluginContext(config),
            api,
            api_version=config.plugin_api_version,
            allowed_plugins=config.allowed_plugins,
            blocked_plugins=config.blocked_plugins,
            hook_timeout=config.hook_timeout,
        )

    # ─────────────────────────────────────────────────────────────────────
    # Registration
    # ─────────────────────────────────────────────────────────────────────

    async def register(self, plugin: PluginProtocol) -> None:
        """Register and initialize a plugin.

        Dependencies must already be registered; callers order plugins
        topologically (see dependency_order / loader.bootstrap).

        Raises:
            PluginRegistrationError: Incompatible API version, not allowed,
                blocked, duplicate name, or initialize() raised
            PluginDependencyError: A dependency is not registered
        """
        metadata = self._read_metadata(plugin)
        name = metadata.name

        self._check_api_version(metadata)
        if self._allowed is not None and name not in self._allowed:
            raise PluginRegistrationError(name, "not in the allowed plugin list")
        if name in self._blocked:
            raise PluginRegistrationError(name, "is blocked")
        if name in self._plugins:
            raise PluginRegistrationError(name, "already registered")

        missing = sorted(d for d in metadata.dependencies if d not in self._plugins)
        if missing:
            raise PluginDependencyError(name, f"missing dependencies: {', '.join(missing)}")

        self._plugins[name] = plugin
        self._metadata[name] = metadata
        checkpoint = self.api.checkpoint()
        try:
            await self._invoke(plugin.initialize, self.context, self.api, timeout=None)
        except Exception as e:
            del self._plugins[name]
            del self._metadata[name]
            self.api.rollback(checkpoint)
            logger.error("plugin_initialize_failed", name=name, error=str(e))
            raise PluginRegistrationError(name, f"initialize failed: {e}") from e

        logger.info("plugin_registered", name=name, version=metadata.version)

    async def unregister(self, name: str) -> PluginProtocol:
        """Remove a plugin, deactivating it first if active.

        Raises:
            PluginNotFoundError: If not registered
            PluginDependencyError: If active plugins depend on it
        """
        plugin = self._require(name)
        if self.is_active(name):
            await self.deactivate(name)

        del self._plugins[name]
        del self._metadata[name]
        logger.info("plugin_unregistered", name=name)
        return plugin

    # ─────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────

    async def activate(self, name: str) -> None:
        """Activate a registered plugin. No-op if already active.

        Order: plugin.activate(), mark active, on_activate(context) hook,
        then the `plugin-activated` event.

        Raises:
            PluginNotFoundError: If not registered
            PluginDependencyError: If a dependency is not active
        """
        plugin = self._require(name)
        if self.is_active(name):
            return

        inactive = [d for d in self.get_dependencies(name) if not self.is_active(d)]
        if inactive:
            raise PluginDependencyError(name, f"dependencies not active: {', '.join(inactive)}")

        await self._invoke(plugin.activate, timeout=None)
        self._active[name] = None

        on_activate = getattr(plugin, "on_activate", None)
        if callable(on_activate):
            try:
                await self._invoke(on_activate, self.context, timeout=None)
            except Exception:
                del self._active[name]
                await self._quiet_deactivate(name, plugin)
                raise

        await self.emit("plugin-activated", {"name": name})
        logger.info("plugin_activated", name=name)

    async def deactivate(self, name: str) -> None:
        """Deactivate an active plugin. No-op if not active.

        Order: on_deactivate(context) hook while still active,
        plugin.deactivate(), unmark, then the `plugin-deactivated` event.

        Raises:
            PluginNotFoundError: If not registered
            PluginDependencyError: If another active plugin depends on it
        """
        plugin = self._require(name)
        if not self.is_active(name):
            return

        dependents = [
            other for other in self._active
            if other != name and name in self._metadata[other].dependencies
        ]
        if dependents:
            raise PluginDependencyError(
                name, f"cannot deactivate, required by active plugin(s): {', '.join(dependents)}"
            )

        on_deactivate = getattr(plugin, "on_deactivate", None)
        if callable(on_deactivate):
            await self._invoke(on_deactivate, self.context, timeout=None)

        await self._invoke(plugin.deactivate, timeout=None)
        del self._active[name]

        await self.emit("plugin-deactivated", {"name": name})
        logger.info("plugin_deactivated", name=name)

    async def activate_all(self) -> list[str]:
        """Activate every registered plugin in dependency order.

        Returns:
            Names activated by this call

        Raises:
            PluginError: From the first plugin that fails to activate
        """
        order = dependency_order({n: m.dependencies for n, m in self._metadata.items()})
        activated = []
        for name in order:
            if not self.is_active(name):
                await self.activate(name)
                activated.append(name)
        return activated

    async def deactivate_all(self) -> dict[str, bool]:
        """Deactivate all active plugins, dependents first.

        Failures are logged; shutdown continues with the next plugin.

        Returns:
            Dict mapping plugin name to success status
        """
        results = {}
        for name in reversed(list(self._active)):
            try:
                await self.deactivate(name)
                results[name] = True
            except Exception as e:
                logger.error("plugin_deactivate_failed", name=name, error=str(e))
                results[name] = False
        return results

    # ─────────────────────────────────────────────────────────────────────
    # Hooks and health
    # ─────────────────────────────────────────────────────────────────────

    async def execute_hook(self, hook_name: str, *args: Any) -> dict[str, Exception | None]:
        """Call `hook_name(*args, context)` on every active plugin defining it.

        Invocations run concurrently and the call returns once all have
        settled. A failing (or timed out) hook is logged and reported; it
        never stops the other plugins' hooks.

        Returns:
            Dict mapping each invoked plugin to its exception (None if success)
        """
        if hook_name in RESERVED_HOOKS or hook_name.startswith("_"):
            raise ValueError(f"Not a broadcastable hook: {hook_name}")

        calls = []
        for name in list(self._active):
            hook = getattr(self._plugins[name], hook_name, None)
            if callable(hook):
                calls.append((name, hook))

        async def run(name: str, hook: Callable[..., Any]) -> tuple[str, Exception | None]:
            try:
                await self._invoke(hook, *args, self.context)
                return (name, None)
            except Exception as e:
                logger.error("hook_failed", hook=hook_name, plugin=name, error=str(e) or type(e).__name__)
                return (name, e)

        results = dict(await asyncio.gather(*(run(n, h) for n, h in calls)))
        logger.debug(
            "hook_executed",
            hook=hook_name,
            invoked=len(results),
            failed=sum(1 for e in results.values() if e is not None),
        )
        return results

    async def dispatch(
        self,
        payload: HookPayload | str,
        data: Mapping[str, Any] | None = None,
    ) -> dict[str, Exception | None]:
        """Execute the hook a typed payload is bound to.

        A hook name plus raw `data` is validated into that hook's payload
        model first, e.g. dispatch("on_user_login", {"user_id": "u-1", ...}).

        Raises:
            ValueError: Unknown hook name
            pydantic.ValidationError: Data does not match the payload model
        """
        if isinstance(payload, str):
            payload = build_payload(payload, data)
        return await self.execute_hook(payload.hook_name, payload)

    async def health_check(self) -> HealthReport:
        """Poll all active plugins concurrently.

        Plugins without health_check() count as healthy; a raising check
        counts as unhealthy with the exception message.
        """
        async def check(name: str) -> tuple[str, PluginHealth]:
            health_check = getattr(self._plugins[name], "health_check", None)
            if not callable(health_check):
                return (name, PluginHealth())
            try:
                result = await self._invoke(health_check)
            except Exception as e:
                return (name, PluginHealth(status="unhealthy", message=str(e) or type(e).__name__))
            return (name, _coerce_health(result))

        report = HealthReport()
        for name, health in await asyncio.gather(*(check(n) for n in list(self._active))):
            if health.healthy:
                report.healthy.append(name)
            else:
                report.unhealthy.append(UnhealthyPlugin(name, health.message or "Unhealthy"))
        return report

    # ─────────────────────────────────────────────────────────────────────
    # Events
    # ─────────────────────────────────────────────────────────────────────

    def on(self, event: str, handler: Handler) -> Callable[[], None]:
        """Subscribe to registry events (`plugin-activated`, `plugin-deactivated`)."""
        return self.context.events.on(handler, source=REGISTRY_SOURCE, topic=event)

    def off(self, handler: Handler) -> None:
        self.context.events.off(handler)

    async def emit(self, event: str, data: dict | None = None) -> None:
        await self.context.events.emit(REGISTRY_SOURCE, event, data)

    # ─────────────────────────────────────────────────────────────────────
    # Queries
    # ─────────────────────────────────────────────────────────────────────

    def get_plugin(self, name: str) -> PluginProtocol | None:
        return self._plugins.get(name)

    def get_active_plugins(self) -> list[PluginProtocol]:
        """Active plugins in activation order."""
        return [self._plugins[n] for n in self._active]

    def get_all_plugins(self) -> list[PluginProtocol]:
        return list(self._plugins.values())

    def is_active(self, name: str) -> bool:
        return name in self._active

    def get_dependencies(self, name: str) -> list[str]:
        metadata = self._metadata.get(name)
        return sorted(metadata.dependencies) if metadata else []

    def get_metadata(self, name: str) -> PluginMetadata | None:
        return self._metadata.get(name)

    def scan_plugins(self) -> list[PluginMetadata]:
        """Metadata of every registered plugin."""
        return list(self._metadata.values())

    def list_plugins(self) -> list[dict[str, Any]]:
        """List all registered plugins with their status."""
        return [
            {
                "name": name,
                "version": m.version,
                "description": m.description,
                "author": m.author,
                "dependencies": sorted(m.dependencies),
                "api_version": m.api_version,
                "active": self.is_active(name),
            }
            for name, m in self._metadata.items()
        ]

    def __len__(self) -> int:
        return len(self._plugins)

    def __contains__(self, name: str) -> bool:
        return name in self._plugins

    # ─────────────────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────────────────

    def _require(self, name: str) -> PluginProtocol:
        plugin = self._plugins.get(name)
        if plugin is None:
            raise PluginNotFoundError(name)
        return plugin

    def _read_metadata(self, plugin: Any) -> PluginMetadata:
        metadata = getattr(plugin, "metadata", None)
        label = getattr(metadata, "name", None) or type(plugin).__name__

        if not isinstance(plugin, PluginProtocol):
            raise PluginRegistrationError(label, "does not implement PluginProtocol")
        if isinstance(metadata, PluginMetadata):
            return metadata
        try:
            return PluginMetadata.model_validate(metadata, from_attributes=True)
        except Exception as e:
            raise PluginRegistrationError(label, f"invalid metadata: {e}") from e

    def _check_api_version(self, metadata: PluginMetadata) -> None:
        try:
            compatible = _api_major(metadata.api_version) == _api_major(self.api_version)
        except ValueError:
            raise PluginRegistrationError(
                metadata.name, f"invalid api_version {metadata.api_version!r}"
            ) from None
        if not compatible:
            raise PluginRegistrationError(
                metadata.name,
                f"requires API version {metadata.api_version}, host supports {self.api_version}",
            )

    _DEFAULT = object()

    async def _invoke(self, func: Callable[..., Any], *args: Any, timeout: Any = _DEFAULT) -> Any:
        """Call a sync or async plugin callable, bounded by the hook timeout."""
        if timeout is self._DEFAULT:
            timeout = self._hook_timeout
        result = func(*args)
        if inspect.isawaitable(result):
            if timeout is not None:
                return await asyncio.wait_for(result, timeout)
            return await result
        return result

    async def _quiet_deactivate(self, name: str, plugin: PluginProtocol) -> None:
        try:
            await self._invoke(plugin.deactivate, timeout=None)
        except Exception as e:
            logger.warning("plugin_rollback_failed", name=name, error=str(e))
