"""Cursor-based key enumeration."""

from redis_cleaner.exceptions import InvalidCursor
from redis_cleaner.models import ScanPage
from redis_cleaner.protocols import KeyStore

# Cursor that starts a scan; its return after a call means the scan is done
START_CURSOR = 0


class CursorScanner:
    """Enumerates keys matching a pattern one SCAN step at a time.

    The cursor is an explicit token handed back to the caller, so a scan
    can be resumed, inspected or abandoned between steps without holding
    the keyspace in memory.
    """

    def __init__(self, store: KeyStore) -> None:
        self.store = store

    async def scan(self, pattern: str, cursor: int, count: int) -> ScanPage:
        """Run one scan step.

        Args:
            pattern: Glob expression the keys must match
            cursor: START_CURSOR or the ``next_cursor`` of the previous page
            count: Advisory number of keys to visit

        Returns:
            The next cursor and the keys matched in this step (possibly empty)

        Raises:
            ValueError: If pattern is empty or count is not positive
            InvalidCursor: If cursor is not a non-negative integer
            StoreUnavailable: If the store connection is lost
        """
        if not pattern:
            raise ValueError("pattern must not be empty")
        if count <= 0:
            raise ValueError("count must be positive")
        if isinstance(cursor, bool) or not isinstance(cursor, int) or cursor < 0:
            raise InvalidCursor(f"invalid scan cursor: {cursor!r}")

        next_cursor, keys = await self.store.scan(cursor, pattern, count)
        return ScanPage(next_cursor=next_cursor, keys=keys)

    @staticmethod
    def is_exhausted(page: ScanPage) -> bool:
        """Whether a page ends the scan."""
        return page.next_cursor == START_CURSOR
