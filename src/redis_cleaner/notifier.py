"""Webhook notification of run summaries."""

from pathlib import Path
from typing import Any

import httpx
from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateError

from redis_cleaner.exceptions import NotificationFailed
from redis_cleaner.models import RunSummary
from redis_cleaner.observability import get_logger

logger = get_logger(__name__)

COLOR_SUCCESS = "#2EB67D"
COLOR_FAILURE = "#E01E5A"

DEFAULT_TEMPLATE = """\
{% if dry_run %}*Dry run*: no expiries were written.
{% endif %}{% for result in results -%}
{% if result.is_complete -%}
- {{ result.rule_name }} (`{{ result.pattern }}`): {{ result.keys_modified }} of {{ result.keys_scanned }} keys {{ "would get" if dry_run else "got" }} a TTL of {{ result.ttl_seconds }}s in {{ result.iterations }} iterations
{% else -%}
- {{ result.rule_name }} (`{{ result.pattern }}`): INCOMPLETE after {{ result.keys_scanned }} keys, {{ result.keys_modified }} modified: {{ result.error }}
{% endif -%}
{% endfor %}"""


class WebhookNotifier:
    """Posts a rendered run summary to an incoming webhook.

    The payload uses the Slack attachment format. With no webhook URL
    configured, notification is skipped.
    """

    def __init__(
        self,
        webhook_url: str = "",
        title: str = "Redis Cleanup",
        template_file: str | Path | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize notifier.

        Args:
            webhook_url: Target URL; empty disables notification
            title: Attachment title
            template_file: Jinja2 template; the built-in one is used if missing
            timeout: HTTP timeout in seconds
            transport: Custom httpx transport (mainly for tests)
        """
        self.webhook_url = webhook_url
        self.title = title
        self.template_file = Path(template_file) if template_file else None
        self.timeout = timeout
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.webhook_url)

    def _environment(self, search_path: Path) -> Environment:
        return Environment(
            loader=FileSystemLoader(str(search_path)),
            undefined=StrictUndefined,
            keep_trailing_newline=True,
        )

    def render(self, summary: RunSummary) -> str:
        """Render the summary text.

        Raises:
            NotificationFailed: If the template cannot be rendered
        """
        context: dict[str, Any] = {
            "results": summary.results,
            "summary": summary,
            "dry_run": summary.dry_run,
        }
        try:
            if self.template_file is not None and self.template_file.is_file():
                env = self._environment(self.template_file.parent)
                template = env.get_template(self.template_file.name)
            else:
                if self.template_file is not None:
                    logger.debug(
                        "Notification template not found, using built-in template",
                        context={"template": str(self.template_file)},
                    )
                template = self._environment(Path(".")).from_string(DEFAULT_TEMPLATE)
            return template.render(**context)
        except TemplateError as e:
            raise NotificationFailed(f"cannot render notification: {e}") from e

    def build_payload(self, summary: RunSummary) -> dict[str, Any]:
        """Build the webhook request body."""
        return {
            "attachments": [
                {
                    "title": self.title,
                    "text": self.render(summary),
                    "color": COLOR_SUCCESS if summary.succeeded else COLOR_FAILURE,
                }
            ]
        }

    async def notify(self, summary: RunSummary) -> bool:
        """Send the summary.

        Returns:
            True if sent, False if notification is disabled

        Raises:
            NotificationFailed: On render, transport or non-2xx errors
        """
        if not self.enabled:
            logger.debug("No webhook configured, skipping notification")
            return False

        payload = self.build_payload(summary)
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                response = await client.post(
                    self.webhook_url,
                    json=payload,
                    headers={"Content-Type": "application/json"},
                )
            except httpx.HTTPError as e:
                raise NotificationFailed(f"webhook request failed: {e}") from e

        if response.is_error:
            raise NotificationFailed(
                f"webhook returned {response.status_code}: {response.text}"
            )

        logger.info("Notification has been sent successfully")
        return True
