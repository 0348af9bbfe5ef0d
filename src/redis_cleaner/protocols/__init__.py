"""Protocol interfaces for pluggable backends."""

from redis_cleaner.protocols.notifier import Notifier
from redis_cleaner.protocols.store import KeyStore

__all__ = [
    "KeyStore",
    "Notifier",
]
