"""Structured logging and observability utilities.

Provides structured logging with run/rule context propagation, timing
helpers and metric collection hooks.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

# Context variables for run-scoped data
run_id_var: ContextVar[str | None] = ContextVar("run_id", default=None)
rule_name_var: ContextVar[str | None] = ContextVar("rule_name", default=None)
dry_run_var: ContextVar[bool | None] = ContextVar("dry_run", default=None)

ROOT_LOGGER = "redis_cleaner"


class LogLevel(str, Enum):
    """Log levels matching Python's logging module."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass
class LogContext:
    """Context data to include with every log entry."""

    run_id: str | None = None
    rule_name: str | None = None
    dry_run: bool | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def current(cls) -> "LogContext":
        """Get current context from context variables."""
        return cls(
            run_id=run_id_var.get(),
            rule_name=rule_name_var.get(),
            dry_run=dry_run_var.get(),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary, excluding unset values."""
        result: dict[str, Any] = {}
        if self.run_id:
            result["run_id"] = self.run_id
        if self.rule_name:
            result["rule"] = self.rule_name
        if self.dry_run is not None:
            result["dry_run"] = self.dry_run
        result.update(self.extra)
        return result


@dataclass
class LogEntry:
    """A structured log entry."""

    level: LogLevel
    message: str
    timestamp: str
    logger: str
    context: dict[str, Any] = field(default_factory=dict)
    error: dict[str, Any] | None = None
    duration_ms: float | None = None

    def to_json(self) -> str:
        """Serialize to JSON string."""
        data: dict[str, Any] = {
            "level": self.level.value,
            "message": self.message,
            "timestamp": self.timestamp,
            "logger": self.logger,
        }
        if self.context:
            data["context"] = self.context
        if self.error:
            data["error"] = self.error
        if self.duration_ms is not None:
            data["duration_ms"] = self.duration_ms
        return json.dumps(data, default=str)


class StructuredFormatter(logging.Formatter):
    """Formats log records as structured JSON."""

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as JSON."""
        context = LogContext.current().to_dict()

        if hasattr(record, "context") and isinstance(record.context, dict):
            context.update(record.context)

        error = None
        if record.exc_info:
            error = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else "Unknown",
                "message": str(record.exc_info[1]) if record.exc_info[1] else "",
            }

        entry = LogEntry(
            level=LogLevel(record.levelname),
            message=record.getMessage(),
            timestamp=datetime.now(timezone.utc).isoformat(),
            logger=record.name,
            context=context,
            error=error,
            duration_ms=getattr(record, "duration_ms", None),
        )

        return entry.to_json()


class TextFormatter(logging.Formatter):
    """Human-readable formatter that appends the run context."""

    def __init__(self) -> None:
        super().__init__("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = LogContext.current().to_dict()
        if hasattr(record, "context") and isinstance(record.context, dict):
            context.update(record.context)
        if context:
            line += " " + " ".join(f"{k}={v}" for k, v in context.items())
        return line


class StructuredLogger:
    """Wrapper around Python logging with structured output.

    Example:
        logger = StructuredLogger("redis_cleaner.runner")
        logger.info("Rule finished", context={"keys_modified": 12})
        logger.error("Rule aborted", error=exception)
    """

    def __init__(self, name: str, level: LogLevel | None = None) -> None:
        """Initialize structured logger.

        Args:
            name: Logger name (typically module name)
            level: Minimum log level; inherited from the parent when omitted
        """
        self.logger = logging.getLogger(name)
        if level is not None:
            self.logger.setLevel(level.value)

    def _log(
        self,
        level: LogLevel,
        message: str,
        context: dict[str, Any] | None = None,
        error: Exception | None = None,
        duration_ms: float | None = None,
    ) -> None:
        """Internal log method."""
        extra: dict[str, Any] = {}
        if context:
            extra["context"] = context
        if duration_ms is not None:
            extra["duration_ms"] = duration_ms

        log_func = getattr(self.logger, level.value.lower())
        if error:
            log_func(message, exc_info=(type(error), error, error.__traceback__), extra=extra)
        else:
            log_func(message, extra=extra)

    def debug(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        duration_ms: float | None = None,
    ) -> None:
        """Log at DEBUG level."""
        self._log(LogLevel.DEBUG, message, context, duration_ms=duration_ms)

    def info(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        duration_ms: float | None = None,
    ) -> None:
        """Log at INFO level."""
        self._log(LogLevel.INFO, message, context, duration_ms=duration_ms)

    def warning(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        error: Exception | None = None,
        duration_ms: float | None = None,
    ) -> None:
        """Log at WARNING level."""
        self._log(LogLevel.WARNING, message, context, error, duration_ms)

    def error(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        error: Exception | None = None,
        duration_ms: float | None = None,
    ) -> None:
        """Log at ERROR level."""
        self._log(LogLevel.ERROR, message, context, error, duration_ms)


class RunContext:
    """Context manager for run- and rule-scoped logging context.

    Example:
        with RunContext(dry_run=True):
            with RunContext(rule_name="sessions"):
                # All logs in this block include run_id, dry_run and rule
                logger.info("Scanning")
    """

    def __init__(
        self,
        run_id: str | None = None,
        rule_name: str | None = None,
        dry_run: bool | None = None,
    ) -> None:
        """Initialize run context.

        Args:
            run_id: Run identifier; generated when neither it nor a rule is given
            rule_name: Name of the rule being processed
            dry_run: Whether the run is a dry run
        """
        if run_id is None and rule_name is None:
            run_id = uuid.uuid4().hex[:12]
        self.run_id = run_id
        self.rule_name = rule_name
        self.dry_run = dry_run
        # (var, token) pairs so we can reset properly
        self._tokens: list[tuple[ContextVar, Any]] = []

    def __enter__(self) -> "RunContext":
        """Set context variables."""
        if self.run_id:
            self._tokens.append((run_id_var, run_id_var.set(self.run_id)))
        if self.rule_name:
            self._tokens.append((rule_name_var, rule_name_var.set(self.rule_name)))
        if self.dry_run is not None:
            self._tokens.append((dry_run_var, dry_run_var.set(self.dry_run)))
        return self

    def __exit__(self, *args: Any) -> None:
        """Reset context variables to their previous values."""
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()


class Timer:
    """Context manager for timing operations.

    Example:
        with Timer() as t:
            await do_operation()
        logger.info("Operation complete", duration_ms=t.duration_ms)
    """

    def __init__(self) -> None:
        """Initialize timer."""
        self.start_time: float = 0
        self.end_time: float = 0

    @property
    def duration_ms(self) -> float:
        """Get duration in milliseconds, live while the timer is running."""
        end = self.end_time or time.perf_counter()
        return (end - self.start_time) * 1000

    def __enter__(self) -> "Timer":
        """Start timer."""
        self.start_time = time.perf_counter()
        self.end_time = 0
        return self

    def __exit__(self, *args: Any) -> None:
        """Stop timer."""
        self.end_time = time.perf_counter()


# Metric collection hook type
MetricCallback = Callable[[str, float, dict[str, Any]], None]

_metric_callbacks: list[MetricCallback] = []


def register_metric_callback(callback: MetricCallback) -> None:
    """Register a callback to receive metric events.

    Args:
        callback: Function(name, value, labels) to call on metrics
    """
    _metric_callbacks.append(callback)


def clear_metric_callbacks() -> None:
    """Remove all registered metric callbacks."""
    _metric_callbacks.clear()


def emit_metric(name: str, value: float, labels: dict[str, Any] | None = None) -> None:
    """Emit a metric to all registered callbacks.

    Args:
        name: Metric name
        value: Metric value
        labels: Optional labels/dimensions
    """
    labels = labels or {}

    context = LogContext.current()
    if context.rule_name:
        labels.setdefault("rule", context.rule_name)
    if context.dry_run is not None:
        labels.setdefault("dry_run", context.dry_run)

    for callback in _metric_callbacks:
        try:
            callback(name, value, labels)
        except Exception:
            pass  # Don't let metric errors affect enforcement


def emit_counter(name: str, labels: dict[str, Any] | None = None) -> None:
    """Emit a counter metric (increment by 1)."""
    emit_metric(name, 1.0, labels)


def configure_logging(
    level: LogLevel = LogLevel.INFO,
    format: str = "text",
) -> None:
    """Configure the package logger tree for the application.

    Args:
        level: Minimum log level
        format: Output format ("json" or "text")
    """
    root_logger = logging.getLogger(ROOT_LOGGER)
    root_logger.setLevel(level.value)

    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)

    if format == "json":
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(TextFormatter())

    root_logger.addHandler(handler)


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger for a module.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structured logger
    """
    return StructuredLogger(name)
