"""Redis Cleaner exceptions."""


class CleanerError(Exception):
    """Base exception for redis-cleaner."""

    pass


class ConfigInvalid(CleanerError):
    """A rule or setting violates its invariants. Fatal at startup."""

    pass


class StoreError(CleanerError):
    """Key store error."""

    pass


class StoreUnavailable(StoreError):
    """Connection to the store was lost and retries were exhausted."""

    pass


class InvalidCursor(StoreError):
    """A malformed scan cursor was supplied.

    Indicates a programming error rather than a transient condition.
    """

    pass


class KeyRaceSkipped(CleanerError):
    """A key vanished between the scan and the expiry check or set."""

    def __init__(self, key: str, stage: str) -> None:
        self.key = key
        self.stage = stage
        super().__init__(f"Key '{key}' disappeared during {stage}")


class NotificationFailed(CleanerError):
    """Delivery of the run summary failed."""

    pass
