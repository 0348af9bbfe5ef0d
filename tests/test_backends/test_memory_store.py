"""Tests for in-memory key store backend."""

import asyncio

import pytest

from redis_cleaner.backends.memory import MemoryKeyStore, glob_to_regex
from redis_cleaner.exceptions import InvalidCursor


async def _scan_all(store: MemoryKeyStore, match: str, count: int) -> tuple[list[str], int]:
    return await _scan_all_from(store, 0, match, count)


async def _scan_all_from(
    store: MemoryKeyStore, cursor: int, match: str, count: int
) -> tuple[list[str], int]:
    keys: list[str] = []
    calls = 0
    while True:
        cursor, batch = await store.scan(cursor, match, count)
        calls += 1
        keys.extend(batch)
        if cursor == 0:
            return keys, calls


class TestGlobToRegex:
    """Tests for Redis glob translation."""

    @pytest.mark.parametrize(
        ("pattern", "key", "matches"),
        [
            ("a*", "a1", True),
            ("a*", "ba", False),
            ("h?llo", "hello", True),
            ("h?llo", "heello", False),
            ("h[ae]llo", "hallo", True),
            ("h[ae]llo", "hillo", False),
            ("h[^e]llo", "hallo", True),
            ("h[^e]llo", "hello", False),
            ("h[a-c]llo", "hbllo", True),
            ("user\\*", "user*", True),
            ("user\\*", "user1", False),
            ("cache.v1:*", "cache.v1:x", True),
            ("cache.v1:*", "cacheXv1:x", False),
        ],
    )
    def test_matching(self, pattern: str, key: str, matches: bool) -> None:
        assert (glob_to_regex(pattern).fullmatch(key) is not None) is matches


class TestMemoryKeyStore:
    """Tests for MemoryKeyStore."""

    @pytest.mark.asyncio
    async def test_ttl_without_expiry(self, memory_store):
        """Keys set without TTL report -1."""
        await memory_store.set("key")
        assert await memory_store.ttl("key") == -1

    @pytest.mark.asyncio
    async def test_ttl_missing_key(self, memory_store):
        """Missing keys report -2."""
        assert await memory_store.ttl("nonexistent") == -2

    @pytest.mark.asyncio
    async def test_ttl_with_expiry(self, memory_store):
        """Keys with TTL report the remaining seconds."""
        await memory_store.set("key", ttl=50)
        assert 0 < await memory_store.ttl("key") <= 50

    @pytest.mark.asyncio
    async def test_expire_existing(self, memory_store):
        """Expire sets a TTL on an existing key."""
        await memory_store.set("key")
        assert await memory_store.expire("key", 3600) is True
        assert 3599 <= await memory_store.ttl("key") <= 3600

    @pytest.mark.asyncio
    async def test_expire_missing(self, memory_store):
        """Expire on a missing key returns False."""
        assert await memory_store.expire("nonexistent", 10) is False

    @pytest.mark.asyncio
    async def test_expired_keys_disappear(self, memory_store):
        """Keys vanish once their TTL passes."""
        await memory_store.set("key")
        await memory_store.expire("key", 1)
        await asyncio.sleep(1.1)
        assert await memory_store.ttl("key") == -2

    @pytest.mark.asyncio
    async def test_scan_visits_every_matching_key(self, memory_store):
        """A full scan returns each matching key exactly once."""
        for i in range(25):
            await memory_store.set(f"user:{i}")
        await memory_store.set("other")

        keys, calls = await _scan_all(memory_store, "user:*", 10)

        assert sorted(keys) == sorted(f"user:{i}" for i in range(25))
        assert calls == 3

    @pytest.mark.asyncio
    async def test_scan_empty_store_terminates(self, memory_store):
        """Scanning an empty store returns cursor 0 on the first call."""
        cursor, keys = await memory_store.scan(0, "*", 10)
        assert cursor == 0
        assert keys == []

    @pytest.mark.asyncio
    async def test_scan_can_return_empty_page_mid_scan(self, memory_store):
        """Non-matching windows give an empty page with a live cursor."""
        for i in range(5):
            await memory_store.set(f"a{i}")
        for i in range(5):
            await memory_store.set(f"z{i}")

        cursor, keys = await memory_store.scan(0, "z*", 5)
        assert keys == []
        assert cursor != 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("cursor", [-1, 7])
    async def test_scan_unknown_cursor(self, memory_store, cursor):
        """Cursors the store never handed out are rejected."""
        await memory_store.set("key")
        with pytest.raises(InvalidCursor):
            await memory_store.scan(cursor, "*", 10)

    @pytest.mark.asyncio
    async def test_scan_survives_expiry_behind_cursor(self, memory_store):
        """A key expiring behind the cursor does not make the scan skip later keys."""
        await memory_store.set("a", ttl=60)
        for key in ("b", "c", "d", "e"):
            await memory_store.set(key)

        cursor, first = await memory_store.scan(0, "*", 2)
        await memory_store.expire("a", 0)
        await memory_store.ttl("a")
        rest, _ = await _scan_all_from(memory_store, cursor, "*", 2)

        assert first == ["a", "b"]
        assert rest == ["c", "d", "e"]

    @pytest.mark.asyncio
    async def test_scan_survives_delete_behind_cursor(self, memory_store):
        for key in ("a", "b", "c", "d"):
            await memory_store.set(key)

        cursor, first = await memory_store.scan(0, "*", 2)
        await memory_store.delete("a")
        await memory_store.delete("b")
        rest, _ = await _scan_all_from(memory_store, cursor, "*", 2)

        assert first + rest == ["a", "b", "c", "d"]

    @pytest.mark.asyncio
    async def test_scan_skips_expired_keys(self, memory_store):
        await memory_store.set("a", ttl=0)
        await memory_store.set("b")

        keys, _ = await _scan_all(memory_store, "*", 10)

        assert keys == ["b"]

    @pytest.mark.asyncio
    async def test_zero_ttl_expires_immediately(self, memory_store):
        """A TTL of 0 removes the key rather than leaving it without expiry."""
        await memory_store.set("key", ttl=0)
        assert await memory_store.ttl("key") == -2

    @pytest.mark.asyncio
    async def test_calls_are_counted(self, memory_store):
        """Protocol calls are tallied per method."""
        await memory_store.set("key")
        await memory_store.ttl("key")
        await memory_store.expire("key", 5)
        await memory_store.scan(0, "*", 10)

        assert memory_store.calls == {"ttl": 1, "expire": 1, "scan": 1}

    @pytest.mark.asyncio
    async def test_clear(self, memory_store):
        """Clear drops data and call counts."""
        await memory_store.set("key")
        await memory_store.ttl("key")
        await memory_store.clear()

        assert await memory_store.ttl("key") == -2
        assert memory_store.calls == {"ttl": 1}

    @pytest.mark.asyncio
    async def test_async_context_manager(self):
        """Store works as an async context manager."""
        async with MemoryKeyStore() as store:
            assert await store.ping() is True
