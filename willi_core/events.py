"""
Event Bus - Async pub/sub shared by the registry, plugins and the host.

The registry announces lifecycle transitions here (`plugin-activated`,
`plugin-deactivated`); plugins use it through their PluginContext to talk to
each other without importing one another.

Usage:
    bus = EventBus()

    unsubscribe = bus.on(handler, source="registry", topic="plugin-*")
    await bus.emit("registry", "plugin-activated", {"name": "metrics-exporter"})
    unsubscribe()
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, field
from fnmatch import fnmatch
from typing import Any

import structlog

__all__ = ["Event", "EventBus", "Handler", "Subscription"]

logger = structlog.get_logger(__name__)

Handler = Callable[["Event"], Any | Coroutine[Any, Any, Any]]


@dataclass(slots=True, frozen=True)
class Event:
    """Immutable event envelope.

    Attributes:
        source: Origin identifier ("registry", a plugin name, "host")
        topic: What happened ("plugin-activated", "document.indexed")
        data: Payload
        ts: Unix timestamp (auto-set)
    """
    source: str
    topic: str
    data: dict = field(default_factory=dict)
    ts: float = field(default_factory=time.time)


@dataclass(slots=True)
class Subscription:
    """Single subscription with glob filters."""
    handler: Handler
    source: str = "*"
    topic: str = "*"

    def matches(self, event: Event) -> bool:
        return fnmatch(event.source, self.source) and fnmatch(event.topic, self.topic)


class EventBus:
    """Async event bus with pattern-based subscriptions.

    Handlers run concurrently. A failing handler is logged and does not
    affect the other handlers or the emitter.
    """

    __slots__ = ("_subs", "_pending", "_logger")

    def __init__(self) -> None:
        self._subs: list[Subscription] = []
        self._pending: set[asyncio.Task] = set()
        self._logger = logger.bind(component="event_bus")

    def on(
        self,
        handler: Handler,
        *,
        source: str = "*",
        topic: str = "*",
    ) -> Callable[[], None]:
        """Subscribe to events matching filters.

        Args:
            handler: Async or sync callable receiving Event
            source: Glob pattern for source filter
            topic: Glob pattern for topic filter

        Returns:
            Unsubscribe function
        """
        sub = Subscription(handler, source, topic)
        self._subs.append(sub)
        return lambda: self._remove(sub)

    def off(self, handler: Handler) -> int:
        """Remove every subscription of a handler. Returns how many were removed."""
        before = len(self._subs)
        self._subs = [s for s in self._subs if s.handler is not handler]
        return before - len(self._subs)

    def listener_count(self, topic: str | None = None) -> int:
        if topic is None:
            return len(self._subs)
        return sum(1 for s in self._subs if fnmatch(topic, s.topic))

    async def emit(self, source: str, topic: str, data: dict | None = None) -> None:
        """Emit an event to all matching subscribers and wait for them."""
        event = Event(source, topic, data or {})
        handlers = [s.handler for s in self._subs if s.matches(event)]
        if not handlers:
            return

        async def run_handler(h: Handler) -> None:
            try:
                result = h(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                self._logger.error(
                    "handler_error",
                    source=event.source,
                    topic=event.topic,
                    error=str(e),
                )

        await asyncio.gather(*[run_handler(h) for h in handlers])

    def emit_sync(self, source: str, topic: str, data: dict | None = None) -> None:
        """Fire-and-forget emit for sync contexts."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._logger.debug("emit_skipped_no_loop", source=source, topic=topic)
            return
        task = loop.create_task(self.emit(source, topic, data))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def _remove(self, sub: Subscription) -> None:
        if sub in self._subs:
            self._subs.remove(sub)
