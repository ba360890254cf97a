"""Pipeline handlers: batch triage of an inbox, statistics collection from labeled mail.

CLI commands call these handlers; each returns a typed result.
"""

import asyncio
import logging
from collections.abc import Callable

from mailtriage.audit.logger import TriageAuditLog
from mailtriage.executors.classifier import TriageClassifier
from mailtriage.integrations.imap import GmailImapClient
from mailtriage.router.mailbox import PROCESSED_LABEL, SETUP_LABELS, apply_decision
from mailtriage.schemas.mailbox import EmailAccountConfig, RunMode, TriageRunResult
from mailtriage.schemas.triage import EmailSignal, HistoricalStatistics, TriageConfig
from mailtriage.stats.collector import CorpusCollector

logger = logging.getLogger(__name__)

# Courtesy throttle for the IMAP server: pause after every N threads.
PAUSE_EVERY = 10
PAUSE_SECONDS = 0.1


async def run_triage(
    *,
    account_config: EmailAccountConfig,
    classifier: TriageClassifier,
    mode: RunMode,
    limit: int = 50,
    audit_log_path: str,
    pause_every: int = PAUSE_EVERY,
    pause_seconds: float = PAUSE_SECONDS,
    on_progress: Callable[[str], None] | None = None,
    mailbox_factory: Callable[[EmailAccountConfig], GmailImapClient] = GmailImapClient,
) -> TriageRunResult:
    """Triage inbox threads for one account.

    Flow:
    1. Connect to IMAP, ensure triage labels exist (not in dry-run).
    2. Fetch unstarred inbox threads not yet labeled as processed.
    3. For each thread: classify, apply according to ``mode``, audit.
    4. Return result with counts.

    A thread that fails is logged and counted; the run continues.

    Args:
        account_config: Gmail account configuration.
        classifier: Classifier bound to the config and statistics provider.
        mode: DRY_RUN, PREVIEW or PRODUCTION.
        limit: Maximum threads to process.
        audit_log_path: Path to the triage audit log.
        pause_every: Pause after this many threads (0 disables).
        pause_seconds: Length of each pause.
        on_progress: Optional callback for progress messages.
        mailbox_factory: Builds the mailbox client (swapped out in tests).

    Returns:
        TriageRunResult with counts and label breakdown.
    """

    def _emit(msg: str) -> None:
        if on_progress:
            on_progress(msg)

    audit_log = TriageAuditLog(audit_log_path)
    result = TriageRunResult(account_email=account_config.email, mode=mode)

    async with mailbox_factory(account_config) as mailbox:
        if mode != RunMode.DRY_RUN:
            await mailbox.ensure_labels(SETUP_LABELS)

        _emit(f"Fetching threads from {account_config.inbox}...")
        threads = await mailbox.fetch_threads(limit=limit, skip_label=PROCESSED_LABEL)

        if not threads:
            _emit("No threads to process.")
            return result

        _emit(f"Found {len(threads)} thread(s). Processing ({mode.value})...")

        for i, thread in enumerate(threads, 1):
            try:
                signal = EmailSignal.from_message(thread.from_header, thread.subject, thread.snippet)
                decision = classifier.classify(signal)
                _emit(
                    f"[{i}/{len(threads)}] {thread.subject}\n"
                    f"  From: {signal.sender}\n"
                    f"  Decision: {decision.action.value}"
                    f"{' -> ' + decision.label if decision.label else ''}"
                    f" (confidence={decision.confidence:.0%}, {decision.reason})"
                )

                applied = await apply_decision(
                    thread,
                    decision,
                    mailbox=mailbox,
                    config=classifier.config,
                    mode=mode,
                    audit_log=audit_log,
                )

                result.processed += 1
                result.starred += int(applied.starred)
                result.labeled += int(applied.labeled)
                result.archived += int(applied.archived)
                if decision.label:
                    result.labels[decision.label] = result.labels.get(decision.label, 0) + 1

            except Exception:
                result.errors += 1
                logger.exception("Error processing thread %s: %s", thread.uid, thread.subject)
                _emit("  ERROR: Failed to process (see log for details)")

            if pause_every > 0 and i % pause_every == 0:
                await asyncio.sleep(pause_seconds)

    _emit(format_summary(result))
    return result


def format_summary(result: TriageRunResult) -> str:
    """Human-readable summary of a run."""
    lines = [
        f"Triage summary for {result.account_email} ({result.mode.value}):",
        f"  - Processed: {result.processed}",
        f"  - VIP/Starred: {result.starred}",
        f"  - Labeled: {result.labeled}",
        f"  - Archived: {result.archived}",
        f"  - Errors: {result.errors}",
    ]
    for label, count in sorted(result.labels.items(), key=lambda kv: (-kv[1], kv[0])):
        lines.append(f"    {label}: {count}")
    return "\n".join(lines)


async def collect_statistics(
    *,
    account_config: EmailAccountConfig,
    config: TriageConfig,
    labels: list[str] | None = None,
    per_label_limit: int = 500,
    on_progress: Callable[[str], None] | None = None,
    mailbox_factory: Callable[[EmailAccountConfig], GmailImapClient] = GmailImapClient,
) -> HistoricalStatistics:
    """Build historical statistics from an account's labeled mail.

    Args:
        account_config: Gmail account configuration.
        config: Supplies the PII salt and internal domains.
        labels: Labels to read; None means every user label.
        per_label_limit: Newest messages read per label (0 = all).
        on_progress: Optional callback for progress messages.
        mailbox_factory: Builds the mailbox client (swapped out in tests).

    Returns:
        The aggregated bundle. A message filed under several labels is
        counted once per label.
    """

    def _emit(msg: str) -> None:
        if on_progress:
            on_progress(msg)

    collector = CorpusCollector(config)

    async with mailbox_factory(account_config) as mailbox:
        if labels is None:
            labels = await mailbox.list_labels()
        _emit(f"Collecting from {len(labels)} label(s)...")

        for label in labels:
            try:
                threads = await mailbox.fetch_labeled(label, limit=per_label_limit)
            except Exception:
                logger.exception("Error reading label %s", label)
                _emit(f"  {label}: ERROR (see log for details)")
                continue
            for thread in threads:
                collector.add(thread)
            _emit(f"  {label}: {len(threads)} message(s)")

    return collector.build()
