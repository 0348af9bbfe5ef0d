"""Redis key store backed by ``redis.asyncio``."""

from contextlib import contextmanager
from typing import Any, Iterator

import redis.asyncio as aioredis
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError, ResponseError
from redis.exceptions import TimeoutError as RedisTimeoutError

from redis_cleaner.exceptions import InvalidCursor, StoreError, StoreUnavailable
from redis_cleaner.observability import get_logger

logger = get_logger(__name__)


@contextmanager
def _translate_errors(operation: str) -> Iterator[None]:
    """Map redis-py errors onto the cleaner's store errors."""
    try:
        yield
    except (RedisConnectionError, RedisTimeoutError) as e:
        raise StoreUnavailable(f"Redis {operation} failed: {e}") from e
    except ResponseError as e:
        if operation == "SCAN" and "cursor" in str(e).lower():
            raise InvalidCursor(f"Redis rejected scan cursor: {e}") from e
        raise StoreError(f"Redis {operation} failed: {e}") from e
    except RedisError as e:
        raise StoreError(f"Redis {operation} failed: {e}") from e


class RedisKeyStore:
    """Redis key store.

    Connection and timeout errors are retried with exponential backoff by
    the client; once retries are exhausted they surface as
    ``StoreUnavailable``.
    """

    def __init__(
        self,
        url: str | None = None,
        socket_timeout: float = 10.0,
        retries: int = 3,
        backoff_cap: float = 10.0,
        backoff_base: float = 0.5,
        client: Any | None = None,
        **kwargs: Any,
    ) -> None:
        """Initialize Redis key store.

        Args:
            url: Connection URL (redis:// or rediss://)
            socket_timeout: Per-command socket timeout in seconds
            retries: Retries on connection and timeout errors
            backoff_cap: Maximum backoff between retries in seconds
            backoff_base: Base backoff in seconds
            client: Pre-built ``redis.asyncio.Redis`` client (skips url)
            **kwargs: Ignored
        """
        if client is not None:
            self._client = client
            return
        if not url:
            raise ValueError(
                "RedisKeyStore requires a connection url. "
                "Use 'memory' backend for development."
            )
        self._client = aioredis.from_url(
            url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
            retry=Retry(ExponentialBackoff(cap=backoff_cap, base=backoff_base), retries),
            retry_on_error=[RedisConnectionError, RedisTimeoutError],
        )

    async def scan(self, cursor: int, match: str, count: int) -> tuple[int, list[str]]:
        """Run one SCAN step."""
        with _translate_errors("SCAN"):
            next_cursor, keys = await self._client.scan(cursor=cursor, match=match, count=count)
        return int(next_cursor), list(keys)

    async def ttl(self, key: str) -> int:
        """Remaining TTL of a key."""
        with _translate_errors("TTL"):
            return int(await self._client.ttl(key))

    async def expire(self, key: str, seconds: int) -> bool:
        """Set a TTL on a key."""
        with _translate_errors("EXPIRE"):
            return bool(await self._client.expire(key, seconds))

    async def ping(self) -> bool:
        """Check connectivity."""
        with _translate_errors("PING"):
            return bool(await self._client.ping())

    async def close(self) -> None:
        """Close the connection pool."""
        try:
            await self._client.aclose()
        except RedisError as e:
            logger.warning("Error closing Redis connection", error=e)

    async def __aenter__(self) -> "RedisKeyStore":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
