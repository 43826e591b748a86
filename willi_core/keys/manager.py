"""
Key Manager - Quota-aware routing between the free and the paid provider key.

Every request for a model handle goes through `acquire_model`. The free key
is used while its per-minute and per-day quota allows; a minute-limit hit
waits once (with a growing backoff) and re-checks; everything else, including
any internal error, is served from the paid key. Callers always get a usable
handle and never see quota handling.

One instance per process: two managers would each count only half of the
traffic. The app holds it in its AppContext and hands it to consumers.

Example:
    manager = KeyManager(config, free_provider, paid_provider, JsonMetricsStore(path))

    model = await manager.acquire_model(model="gemini-2.5-flash")
    manager.track_provider_usage("gemini")

    report = manager.get_usage_metrics()
    await manager.aclose()
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any, Literal

import structlog

from ..config import WilliConfig
from ..contracts import ModelProvider
from .counter import BackoffState, UsageCounter, day_bucket
from .metrics import DEFAULT_PROVIDERS, MetricsStore, TierMetrics, load_metrics

__all__ = ["KeyManager", "ResetTarget", "Tier"]

logger = structlog.get_logger(__name__)

Tier = Literal["free", "paid"]
ResetTarget = Literal["free", "paid", "providers", "all"]


class KeyManager:
    """Chooses the free or paid provider per call and records usage.

    Args:
        config: Quota limits, backoff sequence, flush policy and cost figures
        free_provider: Provider bound to the free tier key
        paid_provider: Provider bound to the paid key
        store: Metrics persistence (None keeps metrics in memory only)
        clock: Returns the current local time; injectable for tests
        sleep: Coroutine used for the backoff wait; injectable for tests
    """

    def __init__(
        self,
        config: WilliConfig,
        free_provider: ModelProvider,
        paid_provider: ModelProvider,
        store: MetricsStore | None = None,
        *,
        clock: Callable[[], datetime] = datetime.now,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._config = config
        self._free = free_provider
        self._paid = paid_provider
        self._store = store
        self._clock = clock
        self._sleep = sleep
        self._flush_every = max(1, config.metrics_flush_every)
        self._pending: set[asyncio.Future] = set()

        self.counter = UsageCounter(
            daily_limit=config.free_daily_limit,
            minute_limit=config.free_minute_limit,
        )
        self.counter.roll(clock())
        self.backoff = BackoffState(tuple(config.backoff_seconds))
        self.metrics = load_metrics(store)

        logger.info(
            "key_manager_initialized",
            daily_limit=config.free_daily_limit,
            minute_limit=config.free_minute_limit,
        )

    # ─────────────────────────────────────────────────────────────────────
    # Routing
    # ─────────────────────────────────────────────────────────────────────

    async def acquire_model(self, **options: Any) -> Any:
        """Return a model handle from the free provider if quota allows, else paid.

        A minute-limit hit with daily quota left sleeps for the current
        backoff delay and re-checks exactly once before falling back.
        """
        try:
            if self.counter.has_capacity(self._clock()):
                self.backoff.reset()
                return self._grant_free(options)

            if self.counter.daily_available and self.counter.minute_exhausted:
                delay = self.backoff.delay
                logger.info("free_tier_rate_limited", wait_seconds=delay)
                await self._sleep(delay)
                self.backoff.advance()

                if self.counter.has_capacity(self._clock()):
                    return self._grant_free(options)
            else:
                self.backoff.reset()

            logger.info("free_quota_exhausted", tier="paid")
        except Exception as e:
            logger.error("key_manager_error", error=str(e))

        return self._grant_paid(options)

    def get_client(self) -> ModelProvider:
        """Return the raw provider for the next call, without backoff."""
        try:
            if self.counter.has_capacity(self._clock()):
                self.counter.increment()
                self._record("free")
                return self._free
        except Exception as e:
            logger.error("key_manager_error", error=str(e))

        self._record("paid")
        return self._paid

    def _grant_free(self, options: dict[str, Any]) -> Any:
        handle = self._free.get_generative_model(**options)
        self.counter.increment()
        self._record("free")
        return handle

    def _grant_paid(self, options: dict[str, Any]) -> Any:
        handle = self._paid.get_generative_model(**options)
        self._record("paid")
        return handle

    # ─────────────────────────────────────────────────────────────────────
    # Metrics
    # ─────────────────────────────────────────────────────────────────────

    def track_provider_usage(self, provider: str | None) -> None:
        """Count one call against an LLM provider (gemini, mistral)."""
        name = (provider or DEFAULT_PROVIDERS[0]).lower()
        if name not in self.metrics.providers:
            name = DEFAULT_PROVIDERS[0]
        self._count(self.metrics.provider(name), provider=name)

    def _record(self, tier: Tier) -> None:
        self._count(self.metrics.tier(tier), tier=tier)

    def _count(self, target: TierMetrics, **log_context: Any) -> None:
        try:
            total = target.record(day_bucket(self._clock()))
        except Exception as e:
            logger.warning("usage_tracking_failed", error=str(e), **log_context)
            return
        if total % self._flush_every == 0:
            self._schedule_flush()

    def get_usage_metrics(self) -> dict[str, Any]:
        """Snapshot of current-day and historical usage for the admin dashboard."""
        day = day_bucket(self._clock())

        def section(m: TierMetrics) -> dict[str, Any]:
            return {
                "daily_usage": dict(m.daily_usage),
                "total_usage": m.total_usage,
                "current_day_usage": m.current_day_usage(day),
                "last_reset": m.last_reset.isoformat() if m.last_reset else None,
            }

        free = section(self.metrics.free)
        free["quota_limit"] = self.counter.daily_limit
        free["rate"] = self.counter.status()

        return {
            "free": free,
            "paid": section(self.metrics.paid),
            "providers": {
                name: section(m) for name, m in self.metrics.providers.items()
            },
            "summary": {
                "current_day": day,
                "backoff_index": self.backoff.index,
                "cost_savings": self.calculate_cost_savings(),
            },
        }

    def calculate_cost_savings(self) -> dict[str, Any]:
        """Estimated spend avoided by serving calls from the free tier."""
        total_free = self.metrics.free.total_usage
        usd = (total_free / 1000) * self._config.cost_per_1000_requests
        return {
            "total_free_requests": total_free,
            "cost_savings_usd": usd,
            "cost_savings_eur": usd * self._config.usd_to_eur,
        }

    async def reset_metrics(self, tier: ResetTarget = "all") -> None:
        """Zero persisted counters for a tier and write immediately.

        Background writes still in flight are awaited first so that no
        pre-reset snapshot can land after the reset write.

        Raises:
            ValueError: If tier is not free, paid, providers or all
        """
        targets: list[TierMetrics]
        if tier == "free":
            targets = [self.metrics.free]
        elif tier == "paid":
            targets = [self.metrics.paid]
        elif tier == "providers":
            targets = list(self.metrics.providers.values())
        elif tier == "all":
            targets = [self.metrics.free, self.metrics.paid, *self.metrics.providers.values()]
        else:
            raise ValueError(f"Unknown metrics tier: {tier}")

        await self.drain()
        now = self._clock()
        for target in targets:
            target.reset(now)

        logger.info("metrics_reset", tier=tier)
        if self._store is not None:
            self._store.write(self.metrics.to_json())

    # ─────────────────────────────────────────────────────────────────────
    # Persistence
    # ─────────────────────────────────────────────────────────────────────

    def _schedule_flush(self) -> None:
        """Write a snapshot in the background; not awaited by the caller."""
        if self._store is None:
            return

        payload = self.metrics.to_json()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._store.write(payload)
            return

        future = loop.run_in_executor(None, self._store.write, payload)
        self._pending.add(future)
        future.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for background writes that are still in flight."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def flush(self) -> None:
        """Persist the current metrics now."""
        await self.drain()
        if self._store is not None:
            await asyncio.to_thread(self._store.write, self.metrics.to_json())

    async def aclose(self) -> None:
        """Graceful shutdown: flush metrics."""
        await self.flush()
        logger.info(
            "key_manager_closed",
            free_total=self.metrics.free.total_usage,
            paid_total=self.metrics.paid.total_usage,
        )
