"""Schemas for the mailbox side of a triage run.

Covers the lifecycle after classification:
  IMAP fetch -> classify -> apply (dry run / preview / production) -> audit log
"""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field

from mailtriage.schemas.triage import ClassificationDecision

# --- Config ---


class EmailAccountConfig(BaseModel):
    """Configuration for a single Gmail account reached over IMAP."""

    name: str
    email: str
    password: str  # app password
    server: str = "imap.gmail.com"
    port: int = 993
    inbox: str = "INBOX"


class RunMode(StrEnum):
    """How far a triage run is allowed to touch the mailbox."""

    DRY_RUN = "dry_run"  # log only
    PREVIEW = "preview"  # add _Triage/PREVIEW-* labels only
    PRODUCTION = "production"  # apply the decision


# --- Mail data ---


class MailThread(BaseModel):
    """A candidate thread, represented by its first message."""

    uid: str
    account_email: str
    from_header: str
    subject: str = ""
    snippet: str = ""
    flags: list[str] = Field(default_factory=list)
    labels: list[str] = Field(default_factory=list)

    @property
    def is_starred(self) -> bool:
        return "\\Flagged" in self.flags


# --- Results ---


class AppliedActions(BaseModel):
    """Side effects actually performed (or simulated) for one thread."""

    starred: bool = False
    labeled: bool = False
    archived: bool = False
    labels_added: list[str] = Field(default_factory=list)


class TriageRunResult(BaseModel):
    """Pipeline result for one batch triage run."""

    account_email: str
    mode: RunMode
    processed: int = 0
    starred: int = 0
    labeled: int = 0
    archived: int = 0
    errors: int = 0
    labels: dict[str, int] = Field(default_factory=dict)  # label -> count


# --- Audit ---


class TriageAuditEntry(BaseModel):
    """A record of one triage decision and what was done about it."""

    timestamp: datetime
    mode: RunMode
    account_email: str
    uid: str
    subject: str
    sender: str
    decision: ClassificationDecision
    applied: AppliedActions
