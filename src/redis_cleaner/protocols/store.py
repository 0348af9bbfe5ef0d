"""KeyStore protocol for stores that support cursor scans and expiries."""

from typing import Protocol, runtime_checkable


@runtime_checkable
class KeyStore(Protocol):
    """Protocol for key stores the cleaner can enforce TTLs on (Redis, memory)."""

    async def scan(self, cursor: int, match: str, count: int) -> tuple[int, list[str]]:
        """Run one SCAN step. Returns the next cursor and the matched keys."""
        ...

    async def ttl(self, key: str) -> int:
        """Remaining TTL in seconds; -1 if the key has none, -2 if it is missing."""
        ...

    async def expire(self, key: str, seconds: int) -> bool:
        """Set a TTL on a key. Returns False if the key does not exist."""
        ...

    async def ping(self) -> bool:
        """Check connectivity."""
        ...

    async def close(self) -> None:
        """Release connections."""
        ...
