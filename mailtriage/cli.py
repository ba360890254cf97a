"""CLI entry point for the mailtriage inbox triage tool.

Commands:
    mailtriage classify     classify one email and print the decision
    mailtriage run          triage an account's inbox
    mailtriage setup        create the triage labels
    mailtriage accounts     list configured accounts
    mailtriage history      show recent triage decisions
    mailtriage stats ...    build, inspect or clear historical statistics
    mailtriage lists        show VIP / protected sender lists
    mailtriage list-add     add a sender or domain to a list
    mailtriage list-remove  remove a sender or domain from a list
    mailtriage rationalize  dedupe lists and drop redundant entries
"""

import asyncio
import logging
import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path

import click

from mailtriage.config import (
    AUDIT_LOG_PATH,
    CACHE_DB_PATH,
    CACHE_TTL_SECONDS,
    MAX_PER_RUN,
    SENDER_LISTS_PATH,
    STATS_PATH,
    default_run_mode,
    find_account,
    load_email_accounts,
    load_triage_config,
)
from mailtriage.schemas.mailbox import RunMode
from mailtriage.schemas.sender_lists import LIST_NAMES


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def cli(verbose: bool) -> None:
    """mailtriage: rule-based Gmail triage with historical intelligence."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _stats_provider(cache):
    from mailtriage.stats.provider import CachedStatisticsProvider, source_for_path

    return CachedStatisticsProvider(
        source_for_path(STATS_PATH),
        cache=cache,
        ttl_seconds=CACHE_TTL_SECONDS,
    )


def _build_classifier(cache=None):
    """Classifier with sender lists applied; historical statistics only when a cache is given."""
    from mailtriage.executors.classifier import TriageClassifier
    from mailtriage.sender_lists import SenderListManager

    config = SenderListManager.load(SENDER_LISTS_PATH).apply_to(load_triage_config())
    provider = _stats_provider(cache) if cache is not None else None
    return TriageClassifier(config, provider=provider)


def _require_account(account: str | None):
    accounts = load_email_accounts()
    if not accounts:
        click.echo("Error: No email accounts configured (set EMAIL_ACCOUNTS).", err=True)
        sys.exit(1)
    config = find_account(accounts, account)
    if config is None:
        click.echo(f"Error: No account found matching '{account}'.", err=True)
        sys.exit(1)
    return config


# ------------------------------------------------------------------
# mailtriage classify
# ------------------------------------------------------------------


@cli.command()
@click.option("--from", "from_header", required=True, help='From header, e.g. "Jane <jane@x.edu>".')
@click.option("--subject", "-s", default="", help="Subject line.")
@click.option("--body", "-b", default="", help="Body text (first 500 chars are used).")
@click.option("--stats/--no-stats", "use_stats", default=True, show_default=True, help="Use historical statistics.")
def classify(from_header: str, subject: str, body: str, use_stats: bool) -> None:
    """Classify a single email and print the decision as JSON."""
    from mailtriage.stats.cache import StatisticsCache

    if use_stats:
        with StatisticsCache(CACHE_DB_PATH) as cache:
            decision = _build_classifier(cache).classify_message(from_header, subject, body)
    else:
        decision = _build_classifier().classify_message(from_header, subject, body)
    click.echo(decision.model_dump_json(indent=2))


# ------------------------------------------------------------------
# mailtriage run
# ------------------------------------------------------------------


@cli.command()
@click.option("--account", "-a", default=None, help="Account email (defaults to the first configured).")
@click.option("--limit", "-n", default=MAX_PER_RUN, show_default=True, help="Max threads to process.")
@click.option(
    "--mode",
    type=click.Choice([m.value for m in RunMode]),
    default=None,
    help="Run mode (defaults to TRIAGE_DRY_RUN / TRIAGE_PREVIEW_MODE settings).",
)
def run(account: str | None, limit: int, mode: str | None) -> None:
    """Triage unstarred, unprocessed inbox threads."""
    from mailtriage.stats.cache import StatisticsCache

    account_config = _require_account(account)
    run_mode = RunMode(mode) if mode else default_run_mode()
    with StatisticsCache(CACHE_DB_PATH) as cache:
        asyncio.run(_run_async(account_config, _build_classifier(cache), limit, run_mode))


async def _run_async(account_config, classifier, limit: int, mode: RunMode) -> None:
    from mailtriage.orchestrator.pipeline import run_triage

    result = await run_triage(
        account_config=account_config,
        classifier=classifier,
        mode=mode,
        limit=limit,
        audit_log_path=AUDIT_LOG_PATH,
        on_progress=click.echo,
    )
    if result.errors:
        click.echo(f"{result.errors} thread(s) failed; see log for details.", err=True)


# ------------------------------------------------------------------
# mailtriage setup
# ------------------------------------------------------------------


@cli.command()
@click.option("--account", "-a", default=None, help="Account email (defaults to the first configured).")
def setup(account: str | None) -> None:
    """Create the labels the triage run uses."""
    account_config = _require_account(account)
    created = asyncio.run(_setup_async(account_config))
    for label in created:
        click.echo(f"Created label: {label}")
    click.echo("Setup complete.")


async def _setup_async(account_config) -> list[str]:
    from mailtriage.integrations.imap import GmailImapClient
    from mailtriage.router.mailbox import SETUP_LABELS

    async with GmailImapClient(account_config) as gmail:
        return await gmail.ensure_labels(SETUP_LABELS)


# ------------------------------------------------------------------
# mailtriage accounts
# ------------------------------------------------------------------


@cli.command()
def accounts() -> None:
    """List configured email accounts."""
    configured = load_email_accounts()
    if not configured:
        click.echo("No email accounts configured. Set EMAIL_ACCOUNTS in secrets/triage.env.")
        return
    for acct in configured:
        click.echo(f"  {acct.get('name', '?')}: {acct.get('email', '?')} ({acct.get('server', 'imap.gmail.com')})")


# ------------------------------------------------------------------
# mailtriage history
# ------------------------------------------------------------------


@cli.command()
@click.option("--hours", default=24, show_default=True, help="Lookback period in hours.")
@click.option("--limit", "-n", default=50, show_default=True, help="Max entries to show.")
def history(hours: int, limit: int) -> None:
    """Show recent triage decisions from the audit log."""
    from mailtriage.audit.logger import TriageAuditLog

    since = datetime.now(UTC) - timedelta(hours=hours)
    entries = TriageAuditLog(AUDIT_LOG_PATH).read_entries(since=since, limit=limit)
    if not entries:
        click.echo(f"No triage decisions in the last {hours} hour(s).")
        return

    for e in entries:
        label = f" -> {e.decision.label}" if e.decision.label else ""
        click.echo(
            f"{e.timestamp:%Y-%m-%d %H:%M} [{e.mode.value}] {e.decision.action.value}{label} "
            f"({e.decision.confidence:.0%}) {e.sender}: {e.subject}"
        )
    click.echo(f"\n{len(entries)} decision(s).")


# ------------------------------------------------------------------
# mailtriage stats
# ------------------------------------------------------------------


@cli.group()
def stats() -> None:
    """Build, inspect or clear historical statistics."""


@stats.command("show")
@click.option("--top", default=10, show_default=True, help="How many senders/keywords to show.")
def stats_show(top: int) -> None:
    """Summarize the current historical statistics bundle."""
    from mailtriage.stats.cache import StatisticsCache

    with StatisticsCache(CACHE_DB_PATH) as cache:
        bundle = _stats_provider(cache).get()
    if bundle is None:
        click.echo(f"No historical statistics available (looked at {STATS_PATH}).")
        return

    meta = bundle.metadata
    click.echo(f"Last updated: {meta.last_updated or 'unknown'}")
    click.echo(f"Emails analyzed: {meta.email_count if meta.email_count is not None else 'unknown'}")
    click.echo(f"Senders: {len(bundle.sender_profiles)}")
    click.echo(f"Keywords: {len(bundle.keyword_profiles)}")
    click.echo(f"Labels: {len(bundle.label_profiles)}")

    keywords = sorted(bundle.keyword_profiles.items(), key=lambda kv: kv[1].count, reverse=True)
    if keywords:
        click.echo("\nTop keywords:")
        for keyword, profile in keywords[:top]:
            click.echo(f"  {keyword}: {profile.count} -> {profile.common_label or '-'}")

    if bundle.label_profiles:
        click.echo("\nLabels:")
        for name, lp in sorted(bundle.label_profiles.items()):
            click.echo(
                f"  {name}: {lp.thread_volume} thread(s), "
                f"action {lp.avg_action_rate:.1f}%, urgent {lp.avg_urgent_rate:.1f}%"
            )


@stats.command("clear-cache")
def stats_clear_cache() -> None:
    """Force the next run to rebuild statistics from the source."""
    from mailtriage.stats.cache import StatisticsCache

    with StatisticsCache(CACHE_DB_PATH) as cache:
        _stats_provider(cache).invalidate()
    click.echo("Statistics cache cleared.")


@stats.command("build")
@click.option("--account", "-a", default=None, help="Account email (defaults to the first configured).")
@click.option("--label", "-l", "labels", multiple=True, help="Label to read (repeatable; default: all user labels).")
@click.option("--per-label", default=500, show_default=True, help="Newest messages read per label (0 = all).")
@click.option("--output", "-o", default=None, help="Snapshot path (defaults to TRIAGE_STATS_PATH).")
def stats_build(account: str | None, labels: tuple[str, ...], per_label: int, output: str | None) -> None:
    """Collect statistics from labeled mail and write a JSON snapshot."""
    from mailtriage.orchestrator.pipeline import collect_statistics
    from mailtriage.stats.cache import StatisticsCache
    from mailtriage.stats.provider import write_snapshot

    path = Path(output or STATS_PATH)
    if path.is_dir() or not path.suffix:
        click.echo(f"Error: {path} is not a JSON file path; stats build writes a snapshot file.", err=True)
        sys.exit(1)

    account_config = _require_account(account)
    bundle = asyncio.run(
        collect_statistics(
            account_config=account_config,
            config=load_triage_config(),
            labels=list(labels) or None,
            per_label_limit=per_label,
            on_progress=click.echo,
        )
    )
    write_snapshot(path, bundle)
    with StatisticsCache(CACHE_DB_PATH) as cache:
        cache.clear()
    click.echo(f"Wrote statistics from {bundle.metadata.email_count} message(s) to {path}.")


# ------------------------------------------------------------------
# mailtriage lists / list-add / list-remove / rationalize
# ------------------------------------------------------------------


@cli.command()
def lists() -> None:
    """Show the VIP and protected sender lists."""
    from mailtriage.sender_lists import SenderListManager

    data = SenderListManager.load(SENDER_LISTS_PATH).data
    empty = True
    for name in LIST_NAMES:
        lst = getattr(data, name)
        entries = [*lst.senders, *lst.domains]
        if not entries:
            continue
        empty = False
        click.echo(f"{name} ({lst.description or 'no description'}):")
        for entry in entries:
            click.echo(f"  {entry}")
    if empty:
        click.echo("No sender lists configured.")


@cli.command("list-add")
@click.argument("list_name", type=click.Choice(LIST_NAMES))
@click.argument("entry")
def list_add(list_name: str, entry: str) -> None:
    """Add a sender address or domain to a list."""
    from mailtriage.sender_lists import SenderListManager

    mgr = SenderListManager.load(SENDER_LISTS_PATH)
    if mgr.add(list_name, entry):
        click.echo(f"Added {entry.lower()} to '{list_name}'.")
    else:
        click.echo(f"{entry.lower()} is already in '{list_name}'.")


@cli.command("list-remove")
@click.argument("list_name", type=click.Choice(LIST_NAMES))
@click.argument("entry")
def list_remove(list_name: str, entry: str) -> None:
    """Remove a sender address or domain from a list."""
    from mailtriage.sender_lists import SenderListManager

    mgr = SenderListManager.load(SENDER_LISTS_PATH)
    if mgr.remove(list_name, entry):
        click.echo(f"Removed {entry.lower()} from '{list_name}'.")
    else:
        click.echo(f"{entry.lower()} not found in '{list_name}'.")


@cli.command()
def rationalize() -> None:
    """Dedupe sender lists and drop entries already covered by VIP."""
    from mailtriage.sender_lists import SenderListManager

    actions = SenderListManager.load(SENDER_LISTS_PATH).rationalize()
    if not actions:
        click.echo("Sender lists are clean. No changes.")
        return
    for action in actions:
        click.echo(f"  {action}")
    click.echo(f"{len(actions)} change(s) made.")
