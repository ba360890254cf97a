"""Append-only audit log for triage decisions.

Writes TriageAuditEntry records as JSON Lines (one JSON object per line).
"""

import logging
from datetime import UTC, datetime
from pathlib import Path

from mailtriage.schemas.mailbox import AppliedActions, MailThread, RunMode, TriageAuditEntry
from mailtriage.schemas.triage import ClassificationDecision
from mailtriage.senders import normalize_sender

logger = logging.getLogger(__name__)


class TriageAuditLog:
    """Append-only JSONL audit log.

    Usage::

        audit = TriageAuditLog("/path/to/triage_audit.jsonl")
        audit.log_decision(thread, decision, applied, mode=RunMode.DRY_RUN)

        entries = audit.read_entries(since=some_datetime)
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def log(self, entry: TriageAuditEntry) -> None:
        """Append a single audit entry to the log file."""
        with self._path.open("a") as f:
            f.write(entry.model_dump_json() + "\n")
        logger.debug(
            "Triage audit: %s uid=%s action=%s label=%s",
            entry.mode.value,
            entry.uid,
            entry.decision.action.value,
            entry.decision.label,
        )

    def log_decision(
        self,
        thread: MailThread,
        decision: ClassificationDecision,
        applied: AppliedActions,
        *,
        mode: RunMode,
    ) -> TriageAuditEntry:
        entry = TriageAuditEntry(
            timestamp=datetime.now(UTC),
            mode=mode,
            account_email=thread.account_email,
            uid=thread.uid,
            subject=thread.subject,
            sender=normalize_sender(thread.from_header),
            decision=decision,
            applied=applied,
        )
        self.log(entry)
        return entry

    def read_entries(
        self,
        *,
        since: datetime | None = None,
        limit: int | None = None,
    ) -> list[TriageAuditEntry]:
        """Read audit entries, optionally filtered by timestamp.

        Args:
            since: Only return entries after this timestamp.
            limit: Maximum number of entries to return (newest after filtering).

        Returns:
            List of TriageAuditEntry objects, oldest first.
        """
        if not self._path.exists():
            return []

        entries: list[TriageAuditEntry] = []
        with self._path.open() as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                entry = TriageAuditEntry.model_validate_json(line)
                if since and entry.timestamp <= since:
                    continue
                entries.append(entry)

        if limit is not None:
            entries = entries[-limit:]

        return entries
