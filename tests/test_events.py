"""Tests for the event bus and plugin context."""

import asyncio

import pytest

from willi_core.events import EventBus
from willi_core.plugins import PluginContext


class TestEventBus:
    """Test pub/sub with glob filters."""

    @pytest.mark.asyncio
    async def test_topic_patterns(self):
        """Handlers receive only matching events."""
        bus = EventBus()
        seen = []
        bus.on(lambda e: seen.append(e.topic), topic="plugin-*")

        await bus.emit("registry", "plugin-activated", {"name": "a"})
        await bus.emit("host", "app.started")

        assert seen == ["plugin-activated"]

    @pytest.mark.asyncio
    async def test_source_filter_and_async_handler(self):
        """Async handlers are awaited; source filters apply."""
        bus = EventBus()
        seen = []

        async def handler(event):
            await asyncio.sleep(0)
            seen.append(event.data)

        bus.on(handler, source="export-ui")
        await bus.emit("export-ui", "export.finished", {"rows": 42})
        await bus.emit("other", "export.finished", {"rows": 1})

        assert seen == [{"rows": 42}]

    @pytest.mark.asyncio
    async def test_failing_handler_isolated(self):
        """A raising handler does not affect others or the emitter."""
        bus = EventBus()
        seen = []

        def broken(event):
            raise RuntimeError("boom")

        bus.on(broken)
        bus.on(lambda e: seen.append(e.topic))

        await bus.emit("host", "tick")

        assert seen == ["tick"]

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        """The returned callable removes the subscription."""
        bus = EventBus()
        seen = []
        unsubscribe = bus.on(lambda e: seen.append(e))

        unsubscribe()
        await bus.emit("host", "tick")

        assert seen == []
        assert bus.listener_count() == 0

    @pytest.mark.asyncio
    async def test_emit_sync(self):
        """Fire-and-forget emit runs on the current loop."""
        bus = EventBus()
        seen = []
        bus.on(lambda e: seen.append(e.topic))

        bus.emit_sync("host", "tick")
        await asyncio.sleep(0.01)

        assert seen == ["tick"]

    def test_emit_sync_without_loop(self):
        """Without a running loop the event is dropped."""
        EventBus().emit_sync("host", "tick")


class TestPluginContext:
    """Test the shared service map."""

    def test_services(self, config):
        """Services are shared by name."""
        context = PluginContext(config, services={"key_manager": "km"})
        context.register_service("indexer", "idx")

        assert context.get_service("key_manager") == "km"
        assert context.get_optional_service("missing") is None
        assert sorted(context.services()) == ["indexer", "key_manager"]

    def test_duplicate_service(self, config):
        """Registering a name twice is an error."""
        context = PluginContext(config)
        context.register_service("indexer", 1)

        with pytest.raises(ValueError):
            context.register_service("indexer", 2)

    def test_unknown_service(self, config):
        """get_service raises for unknown names."""
        with pytest.raises(KeyError):
            PluginContext(config).get_service("missing")

    @pytest.mark.asyncio
    async def test_emit_through_context(self, config):
        """Context shortcuts use its bus."""
        context = PluginContext(config)
        seen = []
        context.on(lambda e: seen.append((e.source, e.topic)), topic="export.*")

        await context.emit("export-ui", "export.finished")

        assert seen == [("export-ui", "export.finished")]
