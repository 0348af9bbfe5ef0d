"""Tests for rule and result models."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from redis_cleaner.models import (
    BatchResult,
    KeyRecord,
    Rule,
    RuleProgress,
    RuleResult,
    RuleStatus,
    RunSummary,
)


class TestRule:
    """Tests for Rule."""

    def test_yaml_field_names(self) -> None:
        rule = Rule.model_validate({"name": "s", "pattern": "s:*", "ttlSeconds": 60, "batch": 5})
        assert rule.ttl_seconds == 60
        assert rule.batch == 5

    def test_python_field_names(self) -> None:
        rule = Rule(name="s", pattern="s:*", ttl_seconds=60, batch_size=5)
        assert rule.batch == 5

    def test_default_batch(self) -> None:
        assert Rule(name="s", pattern="s:*", ttl_seconds=60).batch == 100

    def test_frozen(self) -> None:
        rule = Rule(name="s", pattern="s:*", ttl_seconds=60)
        with pytest.raises(ValidationError):
            rule.ttl_seconds = 10

    @pytest.mark.parametrize(
        ("field", "value"),
        [("pattern", ""), ("ttl_seconds", -1), ("ttl_seconds", 0), ("batch", 0), ("batch", -5)],
    )
    def test_invariants(self, field: str, value) -> None:
        data = {"name": "s", "pattern": "s:*", "ttl_seconds": 60, "batch": 10}
        data[field] = value
        with pytest.raises(ValidationError):
            Rule(**data)

    def test_rejects_booleans(self) -> None:
        with pytest.raises(ValidationError):
            Rule.model_validate({"name": "s", "pattern": "s:*", "ttlSeconds": True})
        with pytest.raises(ValidationError):
            Rule.model_validate({"name": "s", "pattern": "s:*", "ttlSeconds": 60, "batch": False})


class TestKeyRecord:
    def test_states(self) -> None:
        assert not KeyRecord("k", -1).has_expiry
        assert KeyRecord("k", -1).exists
        assert KeyRecord("k", 0).has_expiry
        assert KeyRecord("k", 50).has_expiry
        assert not KeyRecord("k", -2).exists


class TestRuleProgress:
    """Tests for RuleProgress."""

    @pytest.fixture
    def rule(self) -> Rule:
        return Rule(name="s", pattern="s:*", ttl_seconds=60)

    def test_accumulates_batches(self, rule) -> None:
        progress = RuleProgress(rule)
        progress.add(BatchResult(scanned=10, modified=4, skipped=1))
        progress.add(BatchResult(scanned=5, modified=5))
        progress.finish(RuleStatus.COMPLETE)

        result = progress.to_result()
        assert (result.keys_scanned, result.keys_modified, result.keys_skipped) == (15, 9, 1)
        assert result.is_complete
        assert result.error == ""

    def test_unfinished_is_incomplete(self, rule) -> None:
        progress = RuleProgress(rule, started=True)
        progress.add(BatchResult(scanned=3, modified=1))

        result = progress.to_result()
        assert result.status == RuleStatus.INCOMPLETE
        assert result.error == "cancelled"
        assert result.keys_scanned == 3

    def test_never_started(self, rule) -> None:
        assert RuleProgress(rule).to_result().error == "cancelled before start"


class TestRunSummary:
    def test_aggregates(self) -> None:
        start = datetime(2024, 1, 1, tzinfo=timezone.utc)
        ok = RuleResult("a", "a*", 60, keys_scanned=10, keys_modified=3)
        failed = RuleResult(
            "b", "b*", 60, keys_scanned=4, keys_modified=1,
            status=RuleStatus.INCOMPLETE, error="connection lost",
        )
        summary = RunSummary(
            results=[ok, failed],
            dry_run=False,
            started_at=start,
            finished_at=start + timedelta(seconds=2),
        )

        assert not summary.succeeded
        assert summary.incomplete == [failed]
        assert summary.total_scanned == 14
        assert summary.total_modified == 4
        assert summary.duration_seconds == 2.0
