"""Rule file loading and environment-driven settings."""

import os
import re
from pathlib import Path
from typing import Any, Literal
from urllib.parse import quote

import yaml
from pydantic import AliasChoices, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from redis_cleaner.exceptions import ConfigInvalid
from redis_cleaner.models import Rule

ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)\}")


def substitute_env_vars(value: Any) -> Any:
    """Recursively substitute ${VAR_NAME} patterns with environment variables."""
    if isinstance(value, str):
        def replace(match: re.Match[str]) -> str:
            var_name = match.group(1)
            env_value = os.environ.get(var_name)
            if env_value is None:
                raise ValueError(f"Environment variable {var_name} is not set")
            return env_value

        return ENV_VAR_PATTERN.sub(replace, value)
    elif isinstance(value, dict):
        return {k: substitute_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [substitute_env_vars(v) for v in value]
    return value


def _format_validation_error(index: int, error: ValidationError) -> str:
    problems = "; ".join(
        f"{'.'.join(str(p) for p in e['loc']) or 'rule'}: {e['msg']}" for e in error.errors()
    )
    return f"rule #{index + 1}: {problems}"


def parse_rules(data: Any) -> list[Rule]:
    """Validate raw rule data into Rules.

    Accepts either a list of rule mappings or a mapping with a ``rules`` list.

    Raises:
        ConfigInvalid: If any rule violates its invariants or names repeat
    """
    if isinstance(data, dict) and "rules" in data:
        data = data["rules"]
    if not isinstance(data, list):
        raise ConfigInvalid("rule file must contain a list of rules")

    try:
        data = substitute_env_vars(data)
    except ValueError as e:
        raise ConfigInvalid(str(e)) from e

    rules: list[Rule] = []
    problems: list[str] = []
    for index, item in enumerate(data):
        if not isinstance(item, dict):
            problems.append(f"rule #{index + 1}: expected a mapping, got {type(item).__name__}")
            continue
        try:
            rules.append(Rule.model_validate(item))
        except ValidationError as e:
            problems.append(_format_validation_error(index, e))
    if problems:
        raise ConfigInvalid("invalid rules: " + " | ".join(problems))

    seen: set[str] = set()
    for rule in rules:
        if rule.name in seen:
            raise ConfigInvalid(f"duplicate rule name: {rule.name}")
        seen.add(rule.name)
    return rules


def load_rules(path: str | Path) -> list[Rule]:
    """Load rules from a YAML file.

    Raises:
        ConfigInvalid: If the file cannot be read or parsed, or holds invalid rules
    """
    path = Path(path)
    try:
        with path.open() as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigInvalid(f"cannot read rule file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigInvalid(f"cannot parse rule file {path}: {e}") from e

    if data is None:
        raise ConfigInvalid(f"rule file {path} is empty")
    return parse_rules(data)


class Settings(BaseSettings):
    """Connection and runtime settings, read from the environment and ``.env``.

    Example::

        export REDIS_HOST=cache.internal
        export REDIS_PASSWORD=secret
        export NOTIFICATION_WEBHOOK_URL=https://hooks.slack.com/services/...
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ── Store ────────────────────────────────────────────────────────
    store_backend: Literal["redis", "memory"] = Field(
        default="redis",
        validation_alias=AliasChoices("CLEANER_STORE_BACKEND", "store_backend"),
    )
    redis_host: str = ""
    redis_port: int = 6379
    redis_username: str = ""
    redis_password: str = ""
    redis_protocol: Literal["redis", "rediss"] = "rediss"
    redis_db: int = 0
    redis_socket_timeout: float = 10.0
    redis_retries: int = Field(default=3, ge=0)

    # ── Notification ─────────────────────────────────────────────────
    notification_webhook_url: str = ""
    notification_cleanup_title: str = "Redis Cleanup"
    notification_template_file: str = "notification.j2"
    notification_timeout: float = 10.0

    # ── Runtime ──────────────────────────────────────────────────────
    concurrency: int = Field(
        default=4, gt=0, validation_alias=AliasChoices("CLEANER_CONCURRENCY", "concurrency")
    )
    run_timeout: float | None = Field(
        default=None, gt=0, validation_alias=AliasChoices("CLEANER_RUN_TIMEOUT", "run_timeout")
    )
    max_iterations: int = Field(
        default=100_000, gt=0, validation_alias=AliasChoices("CLEANER_MAX_ITERATIONS", "max_iterations")
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", validation_alias=AliasChoices("CLEANER_LOG_LEVEL", "log_level")
    )
    log_format: Literal["text", "json"] = Field(
        default="text", validation_alias=AliasChoices("CLEANER_LOG_FORMAT", "log_format")
    )

    @classmethod
    def load(cls, **overrides: Any) -> "Settings":
        """Load settings, raising ConfigInvalid on bad values."""
        try:
            return cls(**overrides)
        except ValidationError as e:
            raise ConfigInvalid(f"invalid settings: {e}") from e

    def redis_url(self) -> str:
        """Build the connection URL from the individual settings."""
        if not self.redis_host:
            raise ConfigInvalid("REDIS_HOST must be set for the redis backend")
        auth = ""
        if self.redis_username or self.redis_password:
            auth = f"{quote(self.redis_username, safe='')}:{quote(self.redis_password, safe='')}@"
        return f"{self.redis_protocol}://{auth}{self.redis_host}:{self.redis_port}/{self.redis_db}"

    def store_options(self) -> dict[str, Any]:
        """Keyword arguments for ``create_key_store``."""
        if self.store_backend == "memory":
            return {}
        return {
            "url": self.redis_url(),
            "socket_timeout": self.redis_socket_timeout,
            "retries": self.redis_retries,
        }
