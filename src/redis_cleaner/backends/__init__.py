"""Key store backends."""

from typing import Any

from redis_cleaner.exceptions import ConfigInvalid
from redis_cleaner.protocols import KeyStore

BACKENDS = ("redis", "memory")


def create_key_store(backend: str = "redis", **kwargs: Any) -> KeyStore:
    """Create a key store by backend name.

    Args:
        backend: Backend name ("redis" or "memory")
        **kwargs: Backend-specific options (url, socket_timeout, retries, ...)

    Returns:
        Configured key store

    Raises:
        ConfigInvalid: If the backend is unknown
    """
    if backend == "redis":
        from redis_cleaner.backends.redis import RedisKeyStore

        return RedisKeyStore(**kwargs)

    elif backend == "memory":
        from redis_cleaner.backends.memory import MemoryKeyStore

        return MemoryKeyStore(**kwargs)

    else:
        raise ConfigInvalid(f"Unknown store backend: {backend}. Use one of: {', '.join(BACKENDS)}.")
