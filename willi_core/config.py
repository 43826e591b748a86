"""
Centralized configuration for willi-core.

Configuration sources (priority order):
1. Environment variables (WILLI_*, plus the conventional GOOGLE_AI_* keys)
2. Default values

Environment variables:
- WILLI_HOST / WILLI_PORT: Bind address for `willi serve` (default: 127.0.0.1:9100)
- WILLI_LOG_LEVEL: Log level (default: INFO)
- GOOGLE_AI_API_KEY_FREE / GOOGLE_AI_API_KEY: Free and paid provider keys
- WILLI_FREE_DAILY_LIMIT / WILLI_FREE_MINUTE_LIMIT: Free tier quota (default: 100 / 10)
- WILLI_BACKOFF_SECONDS: Comma separated backoff sequence (default: 1,2,5,10,15)
- WILLI_METRICS_FILE: Usage metrics JSON file (default: data/api-key-metrics.json)
- WILLI_ALLOWED_PLUGINS / WILLI_BLOCKED_PLUGINS: Comma separated plugin names
- WILLI_PLUGIN_DIRS: Comma separated directories scanned for plugin manifests
- WILLI_ADMIN_TOKEN: Token required by the admin routes
"""

import os
from dataclasses import dataclass
from pathlib import Path

__all__ = ["WilliConfig", "config", "DEFAULT_METRICS_FILE"]

DEFAULT_METRICS_FILE = Path("data") / "api-key-metrics.json"


def _get_env(key: str, default: str) -> str:
    """Get environment variable with WILLI_ prefix."""
    return os.environ.get(f"WILLI_{key}", default)


def _get_env_int(key: str, default: int) -> int:
    """Get integer environment variable."""
    return int(_get_env(key, str(default)))


def _get_env_float(key: str, default: float | None) -> float | None:
    """Get float environment variable, None if unset and no default."""
    val = os.environ.get(f"WILLI_{key}")
    if not val:
        return default
    return float(val)


def _get_env_bool(key: str, default: bool) -> bool:
    """Get boolean environment variable."""
    val = os.environ.get(f"WILLI_{key}")
    if val is None:
        return default
    return val.lower() in ("true", "1", "yes", "on")


def _get_env_list(key: str, default: tuple[str, ...] | None) -> tuple[str, ...] | None:
    """Get comma separated environment variable as a tuple."""
    val = os.environ.get(f"WILLI_{key}")
    if val is None:
        return default
    return tuple(item.strip() for item in val.split(",") if item.strip())


def _get_env_path(key: str, default: Path) -> Path:
    """Get path environment variable."""
    val = os.environ.get(f"WILLI_{key}")
    return Path(val) if val else default


def _get_backoff(default: tuple[float, ...]) -> tuple[float, ...]:
    items = _get_env_list("BACKOFF_SECONDS", None)
    if not items:
        return default
    return tuple(float(item) for item in items)


@dataclass(frozen=True)
class WilliConfig:
    """Immutable configuration shared by the key manager, the plugin system and the app."""

    host: str = _get_env("HOST", "127.0.0.1")
    port: int = _get_env_int("PORT", 9100)
    log_level: str = _get_env("LOG_LEVEL", "INFO")

    # Provider keys
    free_api_key: str | None = os.environ.get("GOOGLE_AI_API_KEY_FREE")
    paid_api_key: str | None = os.environ.get("GOOGLE_AI_API_KEY")
    default_model: str = _get_env("DEFAULT_MODEL", "gemini-2.5-flash")

    # Free tier quota
    free_daily_limit: int = _get_env_int("FREE_DAILY_LIMIT", 100)
    free_minute_limit: int = _get_env_int("FREE_MINUTE_LIMIT", 10)
    backoff_seconds: tuple[float, ...] = _get_backoff((1.0, 2.0, 5.0, 10.0, 15.0))

    # Usage metrics
    metrics_file: Path = _get_env_path("METRICS_FILE", DEFAULT_METRICS_FILE)
    metrics_flush_every: int = _get_env_int("METRICS_FLUSH_EVERY", 10)
    cost_per_1000_requests: float = _get_env_float("COST_PER_1000", 0.35)
    usd_to_eur: float = _get_env_float("USD_TO_EUR", 0.85)

    # Plugin system
    plugin_api_version: str = _get_env("PLUGIN_API_VERSION", "1.0.0")
    allowed_plugins: tuple[str, ...] | None = _get_env_list("ALLOWED_PLUGINS", None)
    blocked_plugins: tuple[str, ...] = _get_env_list("BLOCKED_PLUGINS", ())
    plugin_autoload: bool = _get_env_bool("PLUGIN_AUTOLOAD", True)
    plugin_dirs: tuple[str, ...] = _get_env_list("PLUGIN_DIRS", ())
    hook_timeout: float | None = _get_env_float("HOOK_TIMEOUT", None)

    # Admin routes refuse every request while unset
    admin_token: str | None = os.environ.get("WILLI_ADMIN_TOKEN") or None

    @property
    def server_url(self) -> str:
        """Base URL of a locally running `willi serve`."""
        return f"http://{self.host}:{self.port}"

    @property
    def plugin_paths(self) -> list[Path]:
        """Plugin directories as paths."""
        return [Path(p) for p in self.plugin_dirs]


# Global singleton for the CLI; core objects take their config explicitly
config = WilliConfig()
