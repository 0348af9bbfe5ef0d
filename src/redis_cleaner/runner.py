"""Drives one rule through a complete cursor scan."""

import asyncio
from typing import Any

from redis_cleaner.enforcer import TTLEnforcer
from redis_cleaner.exceptions import InvalidCursor, StoreError
from redis_cleaner.models import Rule, RuleProgress, RuleResult, RuleStatus
from redis_cleaner.observability import RunContext, Timer, emit_counter, emit_metric, get_logger
from redis_cleaner.protocols import KeyStore
from redis_cleaner.scanner import START_CURSOR, CursorScanner

logger = get_logger(__name__)

DEFAULT_MAX_ITERATIONS = 100_000


class RuleRunner:
    """Runs a rule batch by batch until its scan cursor wraps around.

    Batches are strictly sequential: the next SCAN is issued only after
    the previous batch has been enforced.
    """

    def __init__(
        self,
        scanner: CursorScanner,
        enforcer: TTLEnforcer,
        stop_event: asyncio.Event | None = None,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
    ) -> None:
        """Initialize rule runner.

        Args:
            scanner: Cursor scanner bound to the store
            enforcer: TTL enforcer bound to the same store
            stop_event: When set, no further store calls are issued
            max_iterations: Upper bound on scan steps per rule
        """
        if max_iterations <= 0:
            raise ValueError("max_iterations must be positive")
        self.scanner = scanner
        self.enforcer = enforcer
        self.stop_event = stop_event
        self.max_iterations = max_iterations

    @classmethod
    def for_store(cls, store: KeyStore, **kwargs: Any) -> "RuleRunner":
        """Build a runner whose scanner and enforcer share ``store``."""
        return cls(CursorScanner(store), TTLEnforcer(store), **kwargs)

    def _stopped(self) -> bool:
        return self.stop_event is not None and self.stop_event.is_set()

    async def run(
        self,
        rule: Rule,
        dry_run: bool,
        progress: RuleProgress | None = None,
    ) -> RuleResult:
        """Enforce one rule over the whole keyspace.

        Args:
            rule: Rule to enforce
            dry_run: Count would-be changes without writing
            progress: Slot to accumulate into; kept current after every batch

        Returns:
            The rule's totals. Store failures, the stop signal and the
            iteration limit produce an incomplete result with partial counts.

        Raises:
            InvalidCursor: On a cursor the store rejects (programming error)
        """
        if progress is None:
            progress = RuleProgress(rule)
        progress.started = True

        with RunContext(rule_name=rule.name), Timer() as timer:
            logger.info(
                "Rule started",
                context={"pattern": rule.pattern, "ttl_seconds": rule.ttl_seconds, "batch": rule.batch},
            )
            cursor = START_CURSOR
            try:
                while True:
                    if self._stopped():
                        progress.finish(RuleStatus.INCOMPLETE, "cancelled")
                        break
                    if progress.iterations >= self.max_iterations:
                        progress.finish(
                            RuleStatus.INCOMPLETE,
                            f"iteration limit of {self.max_iterations} reached",
                        )
                        break

                    page = await self.scanner.scan(rule.pattern, cursor, rule.batch)
                    progress.iterations += 1
                    batch = await self.enforcer.enforce(
                        page.keys, rule.ttl_seconds, dry_run, progress=progress
                    )
                    progress.duration_ms = timer.duration_ms

                    logger.debug(
                        "Batch processed",
                        context={
                            "iteration": progress.iterations,
                            "scanned": batch.scanned,
                            "modified": batch.modified,
                            "skipped": batch.skipped,
                        },
                    )

                    cursor = page.next_cursor
                    if CursorScanner.is_exhausted(page):
                        progress.finish(RuleStatus.COMPLETE)
                        break
            except InvalidCursor:
                raise
            except StoreError as e:
                progress.finish(RuleStatus.INCOMPLETE, str(e))
                logger.error("Rule aborted by store failure", error=e)
            finally:
                progress.duration_ms = timer.duration_ms

            result = progress.to_result()
            self._report(result)
            return result

    @staticmethod
    def _report(result: RuleResult) -> None:
        context = {
            "keys_scanned": result.keys_scanned,
            "keys_modified": result.keys_modified,
            "keys_skipped": result.keys_skipped,
            "iterations": result.iterations,
            "status": result.status.value,
        }
        if result.is_complete:
            logger.info("Rule finished", context=context, duration_ms=result.duration_ms)
        else:
            context["error"] = result.error
            logger.warning("Rule incomplete", context=context, duration_ms=result.duration_ms)
            emit_counter("rule.incomplete")
        emit_metric("rule.keys_scanned", result.keys_scanned)
        emit_metric("rule.keys_modified", result.keys_modified)
