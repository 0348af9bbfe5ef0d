"""Tests for the TTL enforcer."""

from unittest.mock import AsyncMock

import pytest

from redis_cleaner.backends.memory import MemoryKeyStore
from redis_cleaner.enforcer import TTLEnforcer
from redis_cleaner.exceptions import StoreUnavailable
from redis_cleaner.models import BatchResult, Rule, RuleProgress


class VanishingStore(MemoryKeyStore):
    """Deletes a key right after its TTL is checked, like a concurrent client would."""

    def __init__(self, victim: str) -> None:
        super().__init__()
        self.victim = victim

    async def ttl(self, key: str) -> int:
        result = await super().ttl(key)
        if key == self.victim:
            await self.delete(key)
        return result


class TestTTLEnforcer:
    """Tests for TTLEnforcer."""

    @pytest.mark.asyncio
    async def test_sets_ttl_on_keys_without_expiry(self, abc_store) -> None:
        """Keys without TTL get the default; keys with TTL are untouched."""
        enforcer = TTLEnforcer(abc_store)
        result = await enforcer.enforce(["a1", "a2", "a3"], 3600, dry_run=False)

        assert result == BatchResult(scanned=3, modified=2, skipped=0)
        assert await abc_store.ttl("a1") == 3600
        assert await abc_store.ttl("a3") == 3600
        assert 0 < await abc_store.ttl("a2") <= 50

    @pytest.mark.asyncio
    async def test_never_expires_keys_that_have_a_ttl(self, abc_store) -> None:
        """No EXPIRE is issued for a key that already has a TTL."""
        enforcer = TTLEnforcer(abc_store)
        await enforcer.enforce(["a2"], 3600, dry_run=False)

        assert abc_store.calls["ttl"] == 1
        assert abc_store.calls["expire"] == 0

    @pytest.mark.asyncio
    async def test_dry_run_issues_no_writes(self, abc_store) -> None:
        """Dry run counts would-be changes and only checks TTLs."""
        enforcer = TTLEnforcer(abc_store)
        result = await enforcer.enforce(["a1", "a2", "a3"], 3600, dry_run=True)

        assert result == BatchResult(scanned=3, modified=2, skipped=0)
        assert abc_store.calls["expire"] == 0
        assert abc_store.calls["ttl"] == 3
        assert await abc_store.ttl("a1") == -1

    @pytest.mark.asyncio
    async def test_empty_batch(self, memory_store) -> None:
        enforcer = TTLEnforcer(memory_store)
        assert await enforcer.enforce([], 60, dry_run=False) == BatchResult()

    @pytest.mark.asyncio
    async def test_key_deleted_before_check_is_skipped(self, abc_store) -> None:
        """A key gone by the TTL check is skipped, not modified."""
        await abc_store.delete("a1")
        enforcer = TTLEnforcer(abc_store)
        result = await enforcer.enforce(["a1", "a3"], 3600, dry_run=False)

        assert result == BatchResult(scanned=2, modified=1, skipped=1)
        assert abc_store.calls["expire"] == 1

    @pytest.mark.asyncio
    async def test_key_deleted_before_expire_is_skipped(self) -> None:
        """A key gone between check and EXPIRE is skipped and the batch continues."""
        store = VanishingStore(victim="k1")
        await store.set("k1")
        await store.set("k2")
        enforcer = TTLEnforcer(store)

        result = await enforcer.enforce(["k1", "k2"], 60, dry_run=False)

        assert result == BatchResult(scanned=2, modified=1, skipped=1)
        assert 0 < await store.ttl("k2") <= 60

    @pytest.mark.asyncio
    async def test_connection_loss_aborts_batch(self) -> None:
        """StoreUnavailable propagates and stops the batch."""
        store = AsyncMock()
        store.ttl.side_effect = [-1, StoreUnavailable("connection lost")]
        store.expire.return_value = True
        enforcer = TTLEnforcer(store)

        with pytest.raises(StoreUnavailable):
            await enforcer.enforce(["k1", "k2", "k3"], 60, dry_run=False)
        assert store.ttl.await_count == 2

    @pytest.mark.asyncio
    async def test_modified_never_exceeds_scanned(self, memory_store) -> None:
        for i in range(20):
            await memory_store.set(f"k{i}", ttl=100 if i % 3 == 0 else None)
        enforcer = TTLEnforcer(memory_store)

        result = await enforcer.enforce([f"k{i}" for i in range(20)] + ["missing"], 60, dry_run=False)

        assert result.scanned == 21
        assert result.modified == 13
        assert result.skipped == 1
        assert result.modified <= result.scanned

    @pytest.mark.asyncio
    async def test_inspect(self, abc_store) -> None:
        enforcer = TTLEnforcer(abc_store)
        record = await enforcer.inspect("a1")
        assert record.exists and not record.has_expiry
        record = await enforcer.inspect("nope")
        assert not record.exists

    @pytest.mark.asyncio
    async def test_progress_tracks_each_settled_key(self, abc_store) -> None:
        """Keys settled before a connection loss stay counted on the rule's progress."""
        progress = RuleProgress(Rule(name="a-keys", pattern="a*", ttl_seconds=60))
        enforcer = TTLEnforcer(abc_store)
        await enforcer.enforce(["a1", "a2"], 60, dry_run=False, progress=progress)

        failing = AsyncMock()
        failing.ttl.side_effect = [-1, StoreUnavailable("connection lost")]
        failing.expire.return_value = True
        with pytest.raises(StoreUnavailable):
            await TTLEnforcer(failing).enforce(["k1", "k2"], 60, dry_run=False, progress=progress)

        assert (progress.keys_scanned, progress.keys_modified, progress.keys_skipped) == (3, 2, 0)
