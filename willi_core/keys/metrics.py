"""
Usage Metrics - Historical call counters per tier and per LLM provider.

Unlike the in-memory UsageCounter these counters are persisted, so the admin
dashboard can show history across restarts. The file layout is:

    {
        "free": {"daily_usage": {"2025-08-26": 42}, "total_usage": 42, "last_reset": null},
        "paid": {...},
        "providers": {"gemini": {...}, "mistral": {...}}
    }
"""

import json
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import structlog
from pydantic import BaseModel, Field, ValidationError

__all__ = [
    "DEFAULT_PROVIDERS",
    "JsonMetricsStore",
    "MetricsStore",
    "TierMetrics",
    "UsageMetrics",
    "load_metrics",
]

logger = structlog.get_logger(__name__)

DEFAULT_PROVIDERS = ("gemini", "mistral")


class TierMetrics(BaseModel):
    """Counters for one tier or provider."""

    daily_usage: dict[str, int] = Field(default_factory=dict)
    total_usage: int = 0
    last_reset: datetime | None = None

    def record(self, day: str) -> int:
        """Count one call on `day`. Returns the new total."""
        self.daily_usage[day] = self.daily_usage.get(day, 0) + 1
        self.total_usage += 1
        return self.total_usage

    def current_day_usage(self, day: str) -> int:
        return self.daily_usage.get(day, 0)

    def reset(self, now: datetime) -> None:
        self.daily_usage = {}
        self.total_usage = 0
        self.last_reset = now


def _default_providers() -> dict[str, TierMetrics]:
    return {name: TierMetrics() for name in DEFAULT_PROVIDERS}


class UsageMetrics(BaseModel):
    """All persisted usage counters."""

    free: TierMetrics = Field(default_factory=TierMetrics)
    paid: TierMetrics = Field(default_factory=TierMetrics)
    providers: dict[str, TierMetrics] = Field(default_factory=_default_providers)

    def tier(self, name: str) -> TierMetrics:
        if name == "free":
            return self.free
        if name == "paid":
            return self.paid
        raise ValueError(f"Unknown tier: {name}")

    def provider(self, name: str) -> TierMetrics:
        return self.providers.setdefault(name, TierMetrics())

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "UsageMetrics":
        """Parse persisted data, filling in any missing provider section."""
        metrics = cls.model_validate(data)
        for name in DEFAULT_PROVIDERS:
            metrics.providers.setdefault(name, TierMetrics())
        return metrics


@runtime_checkable
class MetricsStore(Protocol):
    """Persistence contract for UsageMetrics.

    Implementations must not raise: a missing or unreadable store reads as
    None, and failed writes are logged and dropped.
    """

    def read(self) -> dict[str, Any] | None:
        ...

    def write(self, data: dict[str, Any]) -> None:
        ...


class JsonMetricsStore:
    """Metrics stored as one JSON document, replaced wholesale on every write.

    Example:
        store = JsonMetricsStore(Path("data/api-key-metrics.json"))
        data = store.read()          # None on first start
        store.write(metrics.to_json())
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def read(self) -> dict[str, Any] | None:
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            logger.info("metrics_file_not_found", path=str(self.path))
            self._ensure_dir()
            return None
        except (OSError, ValueError) as e:
            logger.warning("metrics_load_failed", path=str(self.path), error=str(e))
            return None

        if not isinstance(data, dict):
            logger.warning("metrics_load_failed", path=str(self.path), error="not an object")
            return None
        return data

    def write(self, data: dict[str, Any]) -> None:
        try:
            self._ensure_dir()
            fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".metrics-", suffix=".json")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2)
                os.replace(tmp, self.path)
            except BaseException:
                Path(tmp).unlink(missing_ok=True)
                raise
        except OSError as e:
            logger.warning("metrics_save_failed", path=str(self.path), error=str(e))

    def _ensure_dir(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning("metrics_dir_create_failed", path=str(self.path.parent), error=str(e))


def load_metrics(store: MetricsStore | None) -> UsageMetrics:
    """Load metrics from a store, starting empty on any problem."""
    if store is None:
        return UsageMetrics()

    data = store.read()
    if data is None:
        return UsageMetrics()

    try:
        metrics = UsageMetrics.from_json(data)
    except ValidationError as e:
        logger.warning("metrics_invalid", error=str(e))
        return UsageMetrics()

    logger.info(
        "metrics_loaded",
        free_total=metrics.free.total_usage,
        paid_total=metrics.paid.total_usage,
    )
    return metrics
