"""Redis Cleaner - assign default TTLs to Redis keys that never expire."""

from redis_cleaner.config import Settings, load_rules
from redis_cleaner.enforcer import TTLEnforcer
from redis_cleaner.exceptions import (
    CleanerError,
    ConfigInvalid,
    InvalidCursor,
    KeyRaceSkipped,
    NotificationFailed,
    StoreError,
    StoreUnavailable,
)
from redis_cleaner.models import (
    BatchResult,
    KeyRecord,
    Rule,
    RuleProgress,
    RuleResult,
    RuleStatus,
    RunSummary,
    ScanPage,
)
from redis_cleaner.notifier import WebhookNotifier
from redis_cleaner.orchestrator import Campaign
from redis_cleaner.runner import RuleRunner
from redis_cleaner.scanner import START_CURSOR, CursorScanner

__version__ = "0.1.0"
__all__ = [
    # Engine
    "Campaign",
    "CursorScanner",
    "RuleRunner",
    "START_CURSOR",
    "TTLEnforcer",
    "WebhookNotifier",
    # Models
    "BatchResult",
    "KeyRecord",
    "Rule",
    "RuleProgress",
    "RuleResult",
    "RuleStatus",
    "RunSummary",
    "ScanPage",
    # Configuration
    "Settings",
    "load_rules",
    # Errors
    "CleanerError",
    "ConfigInvalid",
    "InvalidCursor",
    "KeyRaceSkipped",
    "NotificationFailed",
    "StoreError",
    "StoreUnavailable",
]
