"""Shared test fixtures."""

import tempfile
from pathlib import Path

import pytest

from willi_core.config import WilliConfig
from willi_core.keys import KeyManager

from fakes import FakeClock, FakeProvider, MemoryStore, RecordingSleep


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as d:
        yield Path(d)


@pytest.fixture
def config(temp_dir):
    """Create a test configuration with temp metrics file."""
    return WilliConfig(
        host="127.0.0.1",
        port=19100,  # Different port for tests
        free_daily_limit=100,
        free_minute_limit=10,
        backoff_seconds=(1.0, 2.0, 5.0, 10.0, 15.0),
        metrics_file=temp_dir / "api-key-metrics.json",
        metrics_flush_every=10,
        allowed_plugins=None,
        blocked_plugins=(),
        plugin_dirs=(),
        hook_timeout=None,
        admin_token="secret",
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def free_provider():
    return FakeProvider("free")


@pytest.fixture
def paid_provider():
    return FakeProvider("paid")


@pytest.fixture
def manager(config, free_provider, paid_provider, store, clock, sleep):
    """KeyManager on fake providers, clock, sleep and store."""
    return KeyManager(config, free_provider, paid_provider, store, clock=clock, sleep=sleep)
