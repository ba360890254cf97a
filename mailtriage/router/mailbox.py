"""Deterministic router applying triage decisions to the mailbox.

Receives a ClassificationDecision from the classifier and performs the
side effects allowed by the run mode. No classification logic here,
only the archive policy gate.
"""

import logging
from typing import Protocol

from mailtriage.audit.logger import TriageAuditLog
from mailtriage.executors.classifier import VIP_LABEL
from mailtriage.schemas.mailbox import AppliedActions, MailThread, RunMode
from mailtriage.schemas.triage import ClassificationDecision, TriageAction, TriageConfig
from mailtriage.senders import normalize_sender

logger = logging.getLogger(__name__)

TRIAGE_LABEL_PREFIX = "_Triage"
PROCESSED_LABEL = f"{TRIAGE_LABEL_PREFIX}/Processed"
PREVIEW_LABEL_PREFIX = f"{TRIAGE_LABEL_PREFIX}/PREVIEW-"

# Labels created by `mailtriage setup`.
SETUP_LABELS = [
    PROCESSED_LABEL,
    VIP_LABEL,
    "Important",
    "Students",
    "Department",
    "Meetings",
    "Newsletters",
]


class Mailbox(Protocol):
    """Mailbox operations needed to apply a decision."""

    async def add_label(self, uid: str, label: str) -> None: ...

    async def star(self, uid: str) -> None: ...

    async def mark_important(self, uid: str) -> None: ...

    async def archive(self, uid: str) -> None: ...


def is_never_archive(sender: str, config: TriageConfig) -> bool:
    return any(sender.endswith(suffix) for suffix in config.never_archive_suffixes)


def should_archive(
    decision: ClassificationDecision,
    sender: str,
    config: TriageConfig,
) -> bool:
    """Archive policy gate.

    ``label`` decisions archive only at high confidence; ``archive``
    decisions always do. Neither archives a never-archive sender.
    """
    if is_never_archive(sender, config):
        return False
    if decision.action == TriageAction.LABEL:
        return decision.confidence >= config.high_confidence
    return decision.action == TriageAction.ARCHIVE


async def _apply_production(
    thread: MailThread,
    decision: ClassificationDecision,
    *,
    mailbox: Mailbox,
    config: TriageConfig,
    applied: AppliedActions,
) -> bool:
    """Perform the decision. Returns True if the thread should be archived."""
    sender = normalize_sender(thread.from_header)

    if decision.action == TriageAction.STAR:
        await mailbox.add_label(thread.uid, VIP_LABEL)
        applied.labels_added.append(VIP_LABEL)
        await mailbox.mark_important(thread.uid)
        if not thread.is_starred:
            await mailbox.star(thread.uid)
        applied.starred = True
        logger.info("Starred VIP: %s", thread.subject)
        return False

    if decision.action == TriageAction.LABEL and decision.label:
        await mailbox.add_label(thread.uid, decision.label)
        applied.labels_added.append(decision.label)
        applied.labeled = True
        logger.info("Labeled as %s: %s", decision.label, thread.subject)
        return should_archive(decision, sender, config)

    if decision.action == TriageAction.ARCHIVE:
        if should_archive(decision, sender, config):
            return True
        logger.info("Kept (never-archive sender): %s", thread.subject)
        return False

    logger.info("Kept: %s", thread.subject)
    return False


async def apply_decision(
    thread: MailThread,
    decision: ClassificationDecision,
    *,
    mailbox: Mailbox,
    config: TriageConfig,
    mode: RunMode,
    audit_log: TriageAuditLog,
) -> AppliedActions:
    """Apply a decision to a thread according to the run mode.

    Args:
        thread: The thread the decision was made for.
        decision: The classifier's decision.
        mailbox: An open mailbox client.
        config: Triage config (archive thresholds and never-archive senders).
        mode: DRY_RUN logs only; PREVIEW adds preview labels; PRODUCTION acts.
        audit_log: Every call is recorded here.

    Returns:
        The side effects performed.
    """
    applied = AppliedActions()

    if mode == RunMode.DRY_RUN:
        logger.info("[DRY RUN] Would %s: %s", decision.action.value, thread.subject)
        if decision.label:
            logger.info("[DRY RUN] Would label as: %s", decision.label)

    elif mode == RunMode.PREVIEW:
        preview_labels = [f"{PREVIEW_LABEL_PREFIX}{decision.action.value}"]
        if decision.label:
            preview_labels.append(f"{PREVIEW_LABEL_PREFIX}{decision.label}")
        for label in [*preview_labels, PROCESSED_LABEL]:
            await mailbox.add_label(thread.uid, label)
            applied.labels_added.append(label)
        logger.info("[PREVIEW] Marked for %s: %s", decision.action.value, thread.subject)

    else:
        archive = await _apply_production(
            thread, decision, mailbox=mailbox, config=config, applied=applied
        )
        # Label before archiving: the message leaves the inbox on archive.
        await mailbox.add_label(thread.uid, PROCESSED_LABEL)
        applied.labels_added.append(PROCESSED_LABEL)
        if archive:
            await mailbox.archive(thread.uid)
            applied.archived = True
            logger.info("Archived: %s", thread.subject)

    audit_log.log_decision(thread, decision, applied, mode=mode)
    return applied
