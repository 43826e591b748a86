"""
Plugin Loader - Discover, import and bootstrap plugins.

A plugin directory holds a manifest.json:

    {
        "name": "metrics-exporter",
        "version": "1.0.0",
        "entry_point": "plugin:MetricsExporter",
        "description": "Exports usage metrics",
        "dependencies": [],
        "api_version": "1.0.0"
    }

`entry_point` is "module.path:ClassName", relative to the plugin directory.
"""

import importlib.util
import json
import sys
from collections.abc import Iterable, Sequence
from pathlib import Path
from types import ModuleType
from typing import Any

import structlog

from ..contracts import PluginMetadata, PluginProtocol
from .errors import PluginLoadError, PluginRegistrationError
from .registry import PluginRegistry, dependency_order

__all__ = [
    "MANIFEST_FILE",
    "PluginManifest",
    "bootstrap",
    "discover_plugins",
    "load_from_directory",
    "load_plugin",
    "order_by_dependencies",
]

logger = structlog.get_logger(__name__)

MANIFEST_FILE = "manifest.json"


class PluginManifest:
    """Parsed plugin manifest.

    Required fields:
        name: Plugin identifier
        version: Semantic version string
        entry_point: "module.path:ClassName"

    Optional fields:
        description: Human-readable description
        dependencies: Names of plugins this one needs
        api_version: Plugin API version the plugin was written against
    """

    REQUIRED = ("name", "version", "entry_point")

    def __init__(self, data: dict[str, Any], manifest_path: Path) -> None:
        self.path = manifest_path.parent
        self.name = data["name"]
        self.version = data["version"]
        self.entry_point = data["entry_point"]
        self.description = data.get("description", "")
        self.dependencies = list(data.get("dependencies") or [])
        self.api_version = data.get("api_version", "1.0.0")

    @classmethod
    def from_file(cls, manifest_path: Path) -> "PluginManifest":
        """Load manifest from file.

        Raises:
            FileNotFoundError: If manifest doesn't exist
            json.JSONDecodeError: If manifest is invalid JSON
            KeyError: If required fields are missing
        """
        with open(manifest_path) as f:
            data = json.load(f)

        if not isinstance(data, dict):
            raise KeyError("Manifest must be a JSON object")
        missing = [key for key in cls.REQUIRED if key not in data]
        if missing:
            raise KeyError(f"Missing required fields: {missing}")

        return cls(data, manifest_path)

    def to_metadata(self) -> PluginMetadata:
        return PluginMetadata(
            name=self.name,
            version=self.version,
            description=self.description,
            dependencies=frozenset(self.dependencies),
            api_version=self.api_version,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "entry_point": self.entry_point,
            "description": self.description,
            "dependencies": self.dependencies,
            "api_version": self.api_version,
            "path": str(self.path),
        }


def discover_plugins(paths: Iterable[Path], recursive: bool = False) -> list[PluginManifest]:
    """Find plugin manifests below the given directories.

    Invalid manifests are logged and skipped.

    Args:
        paths: Directories to scan
        recursive: Scan every depth instead of direct children only
    """
    manifests = []
    pattern = f"**/{MANIFEST_FILE}" if recursive else f"*/{MANIFEST_FILE}"

    for base_path in paths:
        base_path = Path(base_path)
        if not base_path.is_dir():
            logger.debug("plugin_path_not_found", path=str(base_path))
            continue

        for manifest_path in sorted(base_path.glob(pattern)):
            try:
                manifest = PluginManifest.from_file(manifest_path)
            except json.JSONDecodeError as e:
                logger.warning("invalid_manifest_json", path=str(manifest_path), error=str(e))
                continue
            except (KeyError, OSError) as e:
                logger.warning("incomplete_manifest", path=str(manifest_path), error=str(e))
                continue

            manifests.append(manifest)
            logger.debug(
                "plugin_discovered",
                name=manifest.name,
                version=manifest.version,
                path=str(manifest.path),
            )

    logger.info("plugin_discovery_complete", count=len(manifests))
    return manifests


def _import_module(manifest: PluginManifest, module_path: str) -> ModuleType:
    """Import a module from the plugin directory under a per-plugin namespace."""
    rel_path = Path(*module_path.split("."))
    init_path = manifest.path / rel_path / "__init__.py"
    module_file = manifest.path / f"{rel_path}.py"

    if init_path.exists():
        file_path, search = init_path, [str(manifest.path / rel_path)]
    elif module_file.exists():
        file_path, search = module_file, None
    else:
        raise PluginLoadError(
            manifest.name,
            f"cannot find module '{module_path}' (tried {init_path}, {module_file})",
        )

    unique_name = f"_willi_plugin_{manifest.name.replace('-', '_')}.{module_path}"
    spec = importlib.util.spec_from_file_location(
        unique_name, file_path, submodule_search_locations=search
    )
    if spec is None or spec.loader is None:
        raise PluginLoadError(manifest.name, f"failed to create module spec for {file_path}")

    # Sibling imports inside the plugin directory
    plugin_root = str(manifest.path)
    if plugin_root not in sys.path:
        sys.path.insert(0, plugin_root)

    module = importlib.util.module_from_spec(spec)
    sys.modules[unique_name] = module
    try:
        spec.loader.exec_module(module)
    except Exception as e:
        sys.modules.pop(unique_name, None)
        raise PluginLoadError(manifest.name, f"failed to import {module_path}: {e}") from e
    return module


def load_plugin(manifest: PluginManifest) -> PluginProtocol:
    """Import and instantiate the plugin a manifest points to.

    Raises:
        PluginLoadError: Bad entry point, import failure, or the class does
            not produce a PluginProtocol instance
    """
    if ":" not in manifest.entry_point:
        raise PluginLoadError(
            manifest.name,
            f"invalid entry_point {manifest.entry_point!r}, expected 'module.path:ClassName'",
        )

    module_path, class_name = manifest.entry_point.split(":", 1)
    module = _import_module(manifest, module_path)

    plugin_class = getattr(module, class_name, None)
    if plugin_class is None:
        raise PluginLoadError(manifest.name, f"module {module_path} has no attribute {class_name}")

    try:
        plugin = plugin_class()
    except Exception as e:
        raise PluginLoadError(manifest.name, f"failed to instantiate {class_name}: {e}") from e

    if not isinstance(plugin, PluginProtocol):
        raise PluginLoadError(manifest.name, f"{class_name} does not implement PluginProtocol")

    if plugin.metadata.name != manifest.name:
        logger.warning(
            "manifest_name_mismatch",
            manifest=manifest.name,
            metadata=plugin.metadata.name,
        )

    logger.info("plugin_loaded", name=manifest.name, version=manifest.version, class_name=class_name)
    return plugin


def order_by_dependencies(plugins: Sequence[PluginProtocol]) -> list[PluginProtocol]:
    """Sort plugins so each follows the plugins it depends on.

    Raises:
        PluginRegistrationError: Two plugins share a name
        PluginDependencyError: Dependency cycle
    """
    by_name: dict[str, PluginProtocol] = {}
    for plugin in plugins:
        name = plugin.metadata.name
        if name in by_name:
            raise PluginRegistrationError(name, "provided more than once")
        by_name[name] = plugin

    order = dependency_order({n: p.metadata.dependencies for n, p in by_name.items()})
    return [by_name[n] for n in order]


async def bootstrap(
    registry: PluginRegistry,
    plugins: Sequence[PluginProtocol],
    autoload: bool = True,
) -> list[str]:
    """Register plugins in dependency order, then activate them if autoload.

    Errors propagate: a misconfigured plugin set must fail startup.

    Returns:
        Names of the registered plugins, in registration order
    """
    ordered = order_by_dependencies(plugins)
    for plugin in ordered:
        await registry.register(plugin)

    names = [p.metadata.name for p in ordered]
    if autoload:
        for name in names:
            await registry.activate(name)

    logger.info("plugins_bootstrapped", count=len(names), autoload=autoload)
    return names


async def load_from_directory(
    registry: PluginRegistry,
    directories: Iterable[Path],
    autoload: bool = True,
    extra: Sequence[PluginProtocol] = (),
) -> list[str]:
    """Discover, import and bootstrap every plugin found in directories.

    Plugins that fail to import are logged and skipped. Registration of the
    ones that did import follows bootstrap() semantics.

    Args:
        registry: Target registry
        directories: Directories whose subdirectories contain manifests
        autoload: Activate after registering
        extra: Already-instantiated plugins to bootstrap together with the
            discovered ones (dependencies may cross the two sets)
    """
    loaded: list[PluginProtocol] = list(extra)
    for manifest in discover_plugins(directories):
        try:
            loaded.append(load_plugin(manifest))
        except PluginLoadError as e:
            logger.error("plugin_load_failed", name=manifest.name, error=e.reason)

    return await bootstrap(registry, loaded, autoload=autoload)
