"""Rule and result types."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

# Reply from TTL for a key with no associated expiry
NO_EXPIRY = -1
# Reply from TTL for a key that does not exist
KEY_MISSING = -2

# A rule with this TTL would leave keys unset
TTL_UNSET = -1


class Rule(BaseModel):
    """One TTL policy: keys matching ``pattern`` get ``ttl_seconds`` if they have none."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    pattern: str
    ttl_seconds: int = Field(
        validation_alias=AliasChoices("ttlSeconds", "ttl_seconds"),
    )
    batch: int = Field(
        default=100,
        validation_alias=AliasChoices("batch", "batch_size", "batchSize"),
    )

    @field_validator("pattern")
    @classmethod
    def _pattern_not_empty(cls, value: str) -> str:
        if not value:
            raise ValueError("pattern must not be empty")
        return value

    @field_validator("ttl_seconds", "batch", mode="before")
    @classmethod
    def _not_boolean(cls, value: object) -> object:
        # YAML reads yes/no/true/false as booleans, which int would accept as 1/0
        if isinstance(value, bool):
            raise ValueError("must be an integer, not a boolean")
        return value

    @field_validator("ttl_seconds")
    @classmethod
    def _ttl_positive(cls, value: int) -> int:
        if value == TTL_UNSET:
            raise ValueError("ttlSeconds of -1 leaves keys without expiry; set a positive value")
        if value <= 0:
            raise ValueError("ttlSeconds must be a positive number of seconds")
        return value

    @field_validator("batch")
    @classmethod
    def _batch_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("batch must be a positive integer")
        return value


@dataclass(frozen=True)
class KeyRecord:
    """Expiry state of a single key within one batch."""

    key: str
    ttl: int

    @property
    def exists(self) -> bool:
        return self.ttl != KEY_MISSING

    @property
    def has_expiry(self) -> bool:
        return self.ttl >= 0


@dataclass(frozen=True)
class ScanPage:
    """One step of a cursor scan."""

    next_cursor: int
    keys: list[str]


@dataclass(frozen=True)
class BatchResult:
    """Counts for one enforced batch."""

    scanned: int = 0
    modified: int = 0
    skipped: int = 0


class RuleStatus(str, Enum):
    """Outcome of a single rule."""

    COMPLETE = "complete"
    INCOMPLETE = "incomplete"


@dataclass(frozen=True)
class RuleResult:
    """Totals for one rule, frozen once its scan is finished."""

    rule_name: str
    pattern: str
    ttl_seconds: int
    keys_scanned: int = 0
    keys_modified: int = 0
    keys_skipped: int = 0
    iterations: int = 0
    status: RuleStatus = RuleStatus.COMPLETE
    error: str = ""
    duration_ms: float = 0.0

    @property
    def is_complete(self) -> bool:
        return self.status == RuleStatus.COMPLETE


@dataclass
class RuleProgress:
    """Mutable accumulator for a rule that is still running.

    The orchestrator reserves one per rule up front so partial counts
    survive cancellation of the task doing the work.
    """

    rule: Rule
    keys_scanned: int = 0
    keys_modified: int = 0
    keys_skipped: int = 0
    iterations: int = 0
    started: bool = False
    finished: bool = False
    status: RuleStatus = RuleStatus.INCOMPLETE
    error: str = ""
    duration_ms: float = 0.0

    def add(self, batch: BatchResult) -> None:
        """Fold one batch into the running totals."""
        self.keys_scanned += batch.scanned
        self.keys_modified += batch.modified
        self.keys_skipped += batch.skipped

    def finish(self, status: RuleStatus, error: str = "") -> None:
        self.status = status
        self.error = error
        self.finished = True

    def to_result(self) -> RuleResult:
        """Freeze into a RuleResult. Unfinished progress is reported incomplete."""
        status = self.status if self.finished else RuleStatus.INCOMPLETE
        error = self.error
        if not self.finished and not error:
            error = "cancelled" if self.started else "cancelled before start"
        return RuleResult(
            rule_name=self.rule.name,
            pattern=self.rule.pattern,
            ttl_seconds=self.rule.ttl_seconds,
            keys_scanned=self.keys_scanned,
            keys_modified=self.keys_modified,
            keys_skipped=self.keys_skipped,
            iterations=self.iterations,
            status=status,
            error=error,
            duration_ms=self.duration_ms,
        )


@dataclass(frozen=True)
class RunSummary:
    """Results of one campaign, in rule input order."""

    results: list[RuleResult]
    dry_run: bool
    started_at: datetime
    finished_at: datetime

    @property
    def succeeded(self) -> bool:
        """True when every rule completed."""
        return all(r.is_complete for r in self.results)

    @property
    def incomplete(self) -> list[RuleResult]:
        return [r for r in self.results if not r.is_complete]

    @property
    def total_scanned(self) -> int:
        return sum(r.keys_scanned for r in self.results)

    @property
    def total_modified(self) -> int:
        return sum(r.keys_modified for r in self.results)

    @property
    def duration_seconds(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()
