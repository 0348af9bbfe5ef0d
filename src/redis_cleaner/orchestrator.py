"""Runs every configured rule and aggregates the results."""

import asyncio
from datetime import datetime, timezone
from typing import Sequence

from redis_cleaner.exceptions import NotificationFailed
from redis_cleaner.models import Rule, RuleProgress, RunSummary
from redis_cleaner.observability import RunContext, Timer, get_logger
from redis_cleaner.protocols import Notifier
from redis_cleaner.runner import RuleRunner

logger = get_logger(__name__)


class Campaign:
    """Runs a set of rules and builds one RunSummary.

    Rules run concurrently up to ``concurrency`` at a time; each rule's
    batches stay sequential. Results are always reported in input order.
    A rule that fails on the store is reported incomplete and never stops
    the others.

    Example:
        campaign = Campaign(RuleRunner.for_store(store), notifier, concurrency=4)
        summary = await campaign.run_all(rules, dry_run=True)
    """

    def __init__(
        self,
        runner: RuleRunner,
        notifier: Notifier | None = None,
        concurrency: int = 4,
        timeout: float | None = None,
    ) -> None:
        """Initialize campaign.

        Args:
            runner: Rule runner shared by all rules
            notifier: Receives the summary once all rules were attempted
            concurrency: Maximum rules in flight (1 = sequential)
            timeout: Seconds before in-flight rules are cancelled
        """
        if concurrency <= 0:
            raise ValueError("concurrency must be positive")
        if runner.stop_event is None:
            runner.stop_event = asyncio.Event()
        self.runner = runner
        self.notifier = notifier
        self.concurrency = concurrency
        self.timeout = timeout

    @property
    def stop_event(self) -> asyncio.Event:
        assert self.runner.stop_event is not None
        return self.runner.stop_event

    def stop(self) -> None:
        """Ask all rules to stop before their next store call.

        Applies to the current run, or to the next one if none is active.
        """
        if not self.stop_event.is_set():
            logger.warning("Stop requested; in-flight rules will report incomplete")
        self.stop_event.set()

    async def _run_slot(
        self,
        semaphore: asyncio.Semaphore,
        rule: Rule,
        dry_run: bool,
        slot: RuleProgress,
    ) -> None:
        async with semaphore:
            await self.runner.run(rule, dry_run, progress=slot)

    async def run_all(self, rules: Sequence[Rule], dry_run: bool) -> RunSummary:
        """Run every rule and return the ordered summary.

        Args:
            rules: Rules in reporting order
            dry_run: Count would-be changes without writing

        Returns:
            Summary with one result per rule, in input order

        Raises:
            InvalidCursor: Or any other unexpected error from a rule, after
                the remaining rules have settled
        """
        started_at = datetime.now(timezone.utc)
        slots = [RuleProgress(rule) for rule in rules]
        semaphore = asyncio.Semaphore(self.concurrency)
        fatal: BaseException | None = None

        with RunContext(dry_run=dry_run), Timer() as timer:
            logger.info(
                "Campaign started",
                context={"rules": len(rules), "concurrency": self.concurrency},
            )

            tasks = [
                asyncio.create_task(
                    self._run_slot(semaphore, rule, dry_run, slot),
                    name=f"rule:{rule.name}",
                )
                for rule, slot in zip(rules, slots)
            ]

            if tasks:
                _, pending = await asyncio.wait(tasks, timeout=self.timeout)
                if pending:
                    logger.warning(
                        "Run timeout reached; cancelling in-flight rules",
                        context={"pending": len(pending), "timeout": self.timeout},
                    )
                    self.stop_event.set()
                    for task in pending:
                        task.cancel()
                    await asyncio.gather(*pending, return_exceptions=True)

                for task in tasks:
                    if task.cancelled():
                        continue
                    error = task.exception()
                    if error is not None and fatal is None:
                        fatal = error

            # Every task has settled; a stop only applies to the run it interrupted
            self.stop_event.clear()

            summary = RunSummary(
                results=[slot.to_result() for slot in slots],
                dry_run=dry_run,
                started_at=started_at,
                finished_at=datetime.now(timezone.utc),
            )

            if fatal is not None:
                logger.error("Campaign aborted by unexpected error", error=fatal)
                raise fatal

            logger.info(
                "Campaign finished",
                context={
                    "keys_scanned": summary.total_scanned,
                    "keys_modified": summary.total_modified,
                    "incomplete": len(summary.incomplete),
                },
                duration_ms=timer.duration_ms,
            )

            await self._notify(summary)
        return summary

    async def _notify(self, summary: RunSummary) -> None:
        if self.notifier is None:
            return
        try:
            await self.notifier.notify(summary)
        except NotificationFailed as e:
            logger.error("Notification failed", error=e)
