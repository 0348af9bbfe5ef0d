"""Pytest configuration and fixtures."""

import logging

import pytest
import pytest_asyncio

from redis_cleaner.backends.memory import MemoryKeyStore
from redis_cleaner.models import Rule
from redis_cleaner.observability import ROOT_LOGGER, clear_metric_callbacks


@pytest.fixture
def sample_rules_data():
    """Sample rule file contents, as loaded from YAML."""
    return [
        {"name": "sessions", "pattern": "session:*", "ttlSeconds": 3600, "batch": 100},
        {"name": "carts", "pattern": "cart:?*", "ttlSeconds": 86400, "batch": 50},
    ]


@pytest.fixture
def memory_store() -> MemoryKeyStore:
    """Create an empty memory key store."""
    return MemoryKeyStore()


@pytest_asyncio.fixture
async def abc_store() -> MemoryKeyStore:
    """Store with a1 (no TTL), a2 (TTL 50), a3 (no TTL) and an unrelated key."""
    store = MemoryKeyStore()
    await store.set("a1", b"1")
    await store.set("a2", b"2", ttl=50)
    await store.set("a3", b"3")
    await store.set("b1", b"other")
    store.calls.clear()
    return store


@pytest.fixture
def a_rule() -> Rule:
    """Rule matching the a* keys."""
    return Rule(name="a-keys", pattern="a*", ttl_seconds=3600, batch=10)


@pytest.fixture(autouse=True)
def _reset_observability():
    yield
    clear_metric_callbacks()
    root = logging.getLogger(ROOT_LOGGER)
    root.handlers.clear()
    root.setLevel(logging.NOTSET)
