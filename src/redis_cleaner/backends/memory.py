"""In-memory key store with Redis-compatible scan and expiry semantics."""

import asyncio
import bisect
import itertools
import math
import re
import time
from collections import Counter
from dataclasses import dataclass
from typing import Any

from redis_cleaner.exceptions import InvalidCursor
from redis_cleaner.models import KEY_MISSING, NO_EXPIRY


@dataclass
class StoreEntry:
    """A stored value with optional expiration."""

    value: bytes
    expires_at: float | None = None

    def is_expired(self) -> bool:
        """Check if this entry has expired."""
        if self.expires_at is None:
            return False
        return time.time() >= self.expires_at


def glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Compile a Redis MATCH glob into a regular expression.

    Supports ``*``, ``?``, ``[...]`` (with ``^`` negation and ranges) and
    backslash escapes.
    """
    out: list[str] = []
    i = 0
    n = len(pattern)
    while i < n:
        c = pattern[i]
        if c == "\\" and i + 1 < n:
            out.append(re.escape(pattern[i + 1]))
            i += 2
            continue
        if c == "*":
            out.append(".*")
        elif c == "?":
            out.append(".")
        elif c == "[":
            end = pattern.find("]", i + 1)
            if end == -1:
                out.append(re.escape(c))
            else:
                body = pattern[i + 1:end]
                negate = body.startswith("^")
                if negate:
                    body = body[1:]
                body = body.replace("\\", "\\\\")
                out.append(f"[{'^' if negate else ''}{body}]")
                i = end
        else:
            out.append(re.escape(c))
        i += 1
    return re.compile("".join(out), re.DOTALL)


class MemoryKeyStore:
    """In-memory key store.

    Suitable for development, rehearsals and testing. Data is lost on
    restart. Every protocol call is counted in ``calls``.
    """

    def __init__(self, **kwargs: Any) -> None:
        """Initialize memory key store.

        Args:
            **kwargs: Ignored (for compatibility with other backends)
        """
        self._data: dict[str, StoreEntry] = {}
        self._lock = asyncio.Lock()
        self.calls: Counter[str] = Counter()
        self._cursors: dict[int, str] = {}
        self._cursor_ids = itertools.count(1)

    def _live(self, key: str) -> StoreEntry | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        if entry.is_expired():
            del self._data[key]
            return None
        return entry

    async def scan(self, cursor: int, match: str, count: int) -> tuple[int, list[str]]:
        """One SCAN step over the keys in sorted order.

        Each non-zero cursor stands for the last key visited, so a scan
        resumes after that key even if keys before it were deleted or have
        expired. Keys present for the whole scan are returned at least once.
        """
        self.calls["scan"] += 1
        regex = glob_to_regex(match)
        async with self._lock:
            keys = sorted(self._data)
            if cursor == 0:
                start = 0
            elif cursor in self._cursors:
                start = bisect.bisect_right(keys, self._cursors[cursor])
            else:
                raise InvalidCursor(f"invalid cursor: {cursor}")

            window = keys[start:start + count]
            matched = [
                k for k in window
                if regex.fullmatch(k) and not self._data[k].is_expired()
            ]
            if start + count >= len(keys):
                return 0, matched
            next_cursor = next(self._cursor_ids)
            self._cursors[next_cursor] = window[-1]
            return next_cursor, matched

    async def ttl(self, key: str) -> int:
        """Remaining TTL in seconds, rounded up."""
        self.calls["ttl"] += 1
        async with self._lock:
            entry = self._live(key)
            if entry is None:
                return KEY_MISSING
            if entry.expires_at is None:
                return NO_EXPIRY
            return math.ceil(entry.expires_at - time.time())

    async def expire(self, key: str, seconds: int) -> bool:
        """Set a TTL on an existing key."""
        self.calls["expire"] += 1
        async with self._lock:
            entry = self._live(key)
            if entry is None:
                return False
            entry.expires_at = time.time() + seconds
            return True

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        pass

    async def set(self, key: str, value: bytes = b"", ttl: int | None = None) -> None:
        """Set a value with optional TTL in seconds."""
        expires_at = time.time() + ttl if ttl is not None else None
        async with self._lock:
            self._data[key] = StoreEntry(value=value, expires_at=expires_at)

    async def delete(self, key: str) -> None:
        """Delete a key. No-op if it doesn't exist."""
        async with self._lock:
            self._data.pop(key, None)

    async def clear(self) -> None:
        """Clear all data. Useful for testing."""
        async with self._lock:
            self._data.clear()
            self._cursors.clear()
        self.calls.clear()

    async def __aenter__(self) -> "MemoryKeyStore":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
