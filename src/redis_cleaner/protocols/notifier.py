"""Notifier protocol for run summary delivery."""

from typing import Protocol, runtime_checkable

from redis_cleaner.models import RunSummary


@runtime_checkable
class Notifier(Protocol):
    """Protocol for consumers of a finished run summary."""

    async def notify(self, summary: RunSummary) -> bool:
        """Deliver the summary. Returns False when delivery is disabled.

        Raises NotificationFailed when delivery was attempted and failed.
        """
        ...
