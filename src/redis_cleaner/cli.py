"""CLI for redis-cleaner: run / validate commands."""

import asyncio
import signal
from pathlib import Path
from typing import Any, Optional

import typer
from rich.console import Console
from rich.table import Table

from redis_cleaner.backends import create_key_store
from redis_cleaner.config import Settings, load_rules
from redis_cleaner.exceptions import ConfigInvalid, StoreError, StoreUnavailable
from redis_cleaner.models import Rule, RunSummary
from redis_cleaner.notifier import WebhookNotifier
from redis_cleaner.observability import LogLevel, configure_logging, get_logger
from redis_cleaner.orchestrator import Campaign
from redis_cleaner.runner import RuleRunner

app = typer.Typer(name="redis-cleaner", help="Assign default TTLs to Redis keys that never expire")
console = Console()
logger = get_logger(__name__)

EXIT_INCOMPLETE = 1
EXIT_CONFIG = 2


def _build_settings(
    concurrency: Optional[int],
    timeout: Optional[float],
    backend: Optional[str],
    log_format: Optional[str],
    verbose: bool,
) -> Settings:
    """Build settings, overriding env defaults with CLI flags."""
    overrides: dict[str, Any] = {}
    if concurrency is not None:
        overrides["concurrency"] = concurrency
    if timeout is not None:
        overrides["run_timeout"] = timeout
    if backend:
        overrides["store_backend"] = backend
    if log_format:
        overrides["log_format"] = log_format
    if verbose:
        overrides["log_level"] = "DEBUG"
    return Settings.load(**overrides)


def _rules_table(rules: list[Rule]) -> Table:
    table = Table(title="Rules")
    table.add_column("Name", style="cyan")
    table.add_column("Pattern", style="green")
    table.add_column("TTL (s)", justify="right")
    table.add_column("Batch", justify="right")
    for rule in rules:
        table.add_row(rule.name, rule.pattern, str(rule.ttl_seconds), str(rule.batch))
    return table


def _summary_table(summary: RunSummary) -> Table:
    title = "Dry run results" if summary.dry_run else "Results"
    table = Table(title=title)
    table.add_column("Rule", style="cyan")
    table.add_column("Pattern", style="green")
    table.add_column("Scanned", justify="right")
    table.add_column("Would modify" if summary.dry_run else "Modified", justify="right")
    table.add_column("Iterations", justify="right")
    table.add_column("Status")
    for result in summary.results:
        status = "[green]complete[/green]" if result.is_complete else f"[red]incomplete[/red] {result.error}"
        table.add_row(
            result.rule_name,
            result.pattern,
            str(result.keys_scanned),
            str(result.keys_modified),
            str(result.iterations),
            status,
        )
    return table


async def _execute(settings: Settings, rules: list[Rule], dry_run: bool) -> RunSummary:
    notifier = WebhookNotifier(
        webhook_url=settings.notification_webhook_url,
        title=settings.notification_cleanup_title,
        template_file=settings.notification_template_file,
        timeout=settings.notification_timeout,
    )
    store = create_key_store(settings.store_backend, **settings.store_options())
    try:
        if not await store.ping():
            raise StoreUnavailable(f"{settings.store_backend} store did not answer PING")

        runner = RuleRunner.for_store(store, max_iterations=settings.max_iterations)
        campaign = Campaign(
            runner,
            notifier=notifier,
            concurrency=settings.concurrency,
            timeout=settings.run_timeout,
        )

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, campaign.stop)
            except (NotImplementedError, RuntimeError):
                pass  # Not supported on this platform or thread

        return await campaign.run_all(rules, dry_run)
    finally:
        await store.close()


@app.command()
def run(
    config: Path = typer.Option(Path("config.yaml"), "--config", "-c", help="YAML rule file"),
    dry_run: bool = typer.Option(False, "--dry-run", "-d", help="Report without setting TTLs"),
    concurrency: Optional[int] = typer.Option(None, help="Rules processed in parallel"),
    timeout: Optional[float] = typer.Option(None, help="Seconds before in-flight rules are cancelled"),
    backend: Optional[str] = typer.Option(None, help="Store backend (redis or memory)"),
    log_format: Optional[str] = typer.Option(None, "--log-format", help="text or json"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Assign the configured TTL to every matching key that has none."""
    try:
        settings = _build_settings(concurrency, timeout, backend, log_format, verbose)
        configure_logging(LogLevel(settings.log_level), settings.log_format)
        rules = load_rules(config)
    except ConfigInvalid as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(EXIT_CONFIG)

    logger.info(f"Dry run: {dry_run}", context={"rules": len(rules)})

    try:
        summary = asyncio.run(_execute(settings, rules, dry_run))
    except ConfigInvalid as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(EXIT_CONFIG)
    except StoreError as e:
        console.print(f"[red]Store error:[/red] {e}")
        raise typer.Exit(EXIT_INCOMPLETE)

    console.print(_summary_table(summary))
    console.print(
        f"\nTotal scanned: {summary.total_scanned}, "
        f"{'would modify' if dry_run else 'modified'}: {summary.total_modified}"
    )

    if not summary.succeeded:
        console.print(f"[red]{len(summary.incomplete)} rule(s) incomplete[/red]")
        raise typer.Exit(EXIT_INCOMPLETE)


@app.command()
def validate(
    config: Path = typer.Option(Path("config.yaml"), "--config", "-c", help="YAML rule file"),
) -> None:
    """Check a rule file without connecting to the store."""
    try:
        rules = load_rules(config)
    except ConfigInvalid as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(EXIT_CONFIG)

    console.print(_rules_table(rules))
    console.print(f"[green]{len(rules)} rule(s) valid[/green]")


def main() -> None:
    """Entry point for the redis-cleaner command."""
    app()


if __name__ == "__main__":
    main()
