"""Per-batch TTL enforcement."""

from typing import Sequence

from redis_cleaner.exceptions import KeyRaceSkipped
from redis_cleaner.models import BatchResult, KeyRecord, RuleProgress
from redis_cleaner.observability import get_logger
from redis_cleaner.protocols import KeyStore

logger = get_logger(__name__)


class TTLEnforcer:
    """Assigns a default TTL to keys that have none.

    Keys that already carry an expiry are never touched. In dry-run mode
    only TTL checks are issued; the counts are identical to a live run
    against the same keyspace.
    """

    def __init__(self, store: KeyStore) -> None:
        self.store = store

    async def inspect(self, key: str) -> KeyRecord:
        """Read the expiry state of a key."""
        return KeyRecord(key=key, ttl=await self.store.ttl(key))

    async def enforce(
        self,
        keys: Sequence[str],
        ttl: int,
        dry_run: bool,
        progress: RuleProgress | None = None,
    ) -> BatchResult:
        """Enforce ``ttl`` on every key of the batch that lacks one.

        Args:
            keys: Keys returned by one scan step
            ttl: TTL in seconds to assign
            dry_run: Count would-be changes without issuing EXPIRE
            progress: Rule totals to update as each key is settled, so an
                interrupted batch still accounts for the EXPIREs it issued

        Returns:
            Batch counts. ``modified`` excludes keys lost to a race.

        Raises:
            StoreUnavailable: If the connection is lost; the batch is abandoned
        """
        modified = 0
        skipped = 0

        for key in keys:
            outcome = await self._settle(key, ttl, dry_run)
            if outcome == "modified":
                modified += 1
            elif outcome == "skipped":
                skipped += 1
            if progress is not None:
                progress.add(BatchResult(
                    scanned=1,
                    modified=int(outcome == "modified"),
                    skipped=int(outcome == "skipped"),
                ))

        return BatchResult(scanned=len(keys), modified=modified, skipped=skipped)

    async def _settle(self, key: str, ttl: int, dry_run: bool) -> str:
        record = await self.inspect(key)
        if not record.exists:
            self._skip(KeyRaceSkipped(key, "TTL check"))
            return "skipped"
        if record.has_expiry:
            return "kept"

        if not dry_run and not await self.store.expire(key, ttl):
            self._skip(KeyRaceSkipped(key, "EXPIRE"))
            return "skipped"
        return "modified"

    @staticmethod
    def _skip(race: KeyRaceSkipped) -> None:
        logger.debug(str(race), context={"key": race.key, "stage": race.stage})
