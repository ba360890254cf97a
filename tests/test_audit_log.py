"""Tests for mailtriage.audit.logger: JSONL triage audit log."""

import json
from datetime import UTC, datetime, timedelta

from mailtriage.audit.logger import TriageAuditLog
from mailtriage.schemas.mailbox import AppliedActions, MailThread, RunMode, TriageAuditEntry
from mailtriage.schemas.triage import ClassificationDecision, TriageAction


def _thread(uid: str = "1") -> MailThread:
    return MailThread(
        uid=uid,
        account_email="me@gmail.com",
        from_header="Jane <Jane@Alaska.edu>",
        subject=f"Subject {uid}",
    )


DECISION = ClassificationDecision(
    action=TriageAction.LABEL, label="Meetings", confidence=0.8, reason="Meeting related"
)


class TestTriageAuditLog:
    def test_log_decision_writes_jsonl(self, tmp_path):
        path = tmp_path / "audit.jsonl"
        audit = TriageAuditLog(path)

        entry = audit.log_decision(_thread(), DECISION, AppliedActions(labeled=True), mode=RunMode.PRODUCTION)

        lines = path.read_text().splitlines()
        assert len(lines) == 1
        data = json.loads(lines[0])
        assert data["uid"] == "1"
        assert data["sender"] == "jane@alaska.edu"
        assert data["decision"]["label"] == "Meetings"
        assert data["mode"] == "production"
        assert entry.applied.labeled

    def test_read_entries_roundtrip(self, tmp_path):
        audit = TriageAuditLog(tmp_path / "audit.jsonl")
        audit.log_decision(_thread("1"), DECISION, AppliedActions(), mode=RunMode.DRY_RUN)
        audit.log_decision(_thread("2"), DECISION, AppliedActions(), mode=RunMode.DRY_RUN)

        entries = audit.read_entries()

        assert [e.uid for e in entries] == ["1", "2"]
        assert entries[0].decision == DECISION

    def test_read_entries_since_and_limit(self, tmp_path):
        audit = TriageAuditLog(tmp_path / "audit.jsonl")
        now = datetime.now(UTC)
        for i, age in enumerate([48, 2, 1]):
            audit.log(
                TriageAuditEntry(
                    timestamp=now - timedelta(hours=age),
                    mode=RunMode.PREVIEW,
                    account_email="me@gmail.com",
                    uid=str(i),
                    subject="s",
                    sender="a@b.com",
                    decision=DECISION,
                    applied=AppliedActions(),
                )
            )

        recent = audit.read_entries(since=now - timedelta(hours=24))
        assert [e.uid for e in recent] == ["1", "2"]
        assert [e.uid for e in audit.read_entries(limit=1)] == ["2"]

    def test_missing_file(self, tmp_path):
        assert TriageAuditLog(tmp_path / "none" / "audit.jsonl").read_entries() == []
