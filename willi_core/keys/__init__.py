"""
Keys - Quota-aware routing between the free and the paid provider key.

Components:
- UsageCounter / BackoffState: in-memory free tier rate tracking
- UsageMetrics / JsonMetricsStore: persisted usage history for reporting
- KeyManager: picks the tier per call and records usage

Example:
    from willi_core.keys import JsonMetricsStore, KeyManager

    manager = KeyManager(config, free_provider, paid_provider, JsonMetricsStore(config.metrics_file))
    model = await manager.acquire_model(model=config.default_model)
"""

from .counter import BackoffState, UsageCounter, day_bucket, minute_bucket
from .manager import KeyManager, ResetTarget, Tier
from .metrics import (
    DEFAULT_PROVIDERS,
    JsonMetricsStore,
    MetricsStore,
    TierMetrics,
    UsageMetrics,
    load_metrics,
)

__all__ = [
    # Rate tracking
    "BackoffState",
    "UsageCounter",
    "day_bucket",
    "minute_bucket",
    # Metrics
    "DEFAULT_PROVIDERS",
    "JsonMetricsStore",
    "MetricsStore",
    "TierMetrics",
    "UsageMetrics",
    "load_metrics",
    # Routing
    "KeyManager",
    "ResetTarget",
    "Tier",
]
