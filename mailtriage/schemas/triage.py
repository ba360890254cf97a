"""Schemas for the triage classifier.

Covers the classification contract:
  EmailSignal + HistoricalStatistics + TriageConfig -> ClassificationDecision
"""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from mailtriage.senders import normalize_sender

# Body text considered by the classifier, in characters.
MAX_SNIPPET_CHARS = 500

# Number of label associations kept per sender / keyword profile.
TOP_K_LABELS = 3


class TriageAction(StrEnum):
    """Mailbox action proposed by the classifier."""

    STAR = "star"
    KEEP = "keep"
    LABEL = "label"
    ARCHIVE = "archive"


# --- Input ---


class EmailSignal(BaseModel):
    """The parts of an email thread the classifier looks at."""

    model_config = ConfigDict(frozen=True)

    sender: str = ""  # normalized (lowercased) address
    subject: str = ""
    snippet: str = ""

    @field_validator("sender", "subject", "snippet", mode="before")
    @classmethod
    def _none_to_empty(cls, v: str | None) -> str:
        return "" if v is None else v

    @field_validator("sender")
    @classmethod
    def _normalize_sender(cls, v: str) -> str:
        return normalize_sender(v)

    @field_validator("snippet")
    @classmethod
    def _truncate_snippet(cls, v: str) -> str:
        return v[:MAX_SNIPPET_CHARS]

    @classmethod
    def from_message(
        cls, from_header: str | None, subject: str | None, body: str | None
    ) -> "EmailSignal":
        """Build a signal from a From header, subject, and body text."""
        return cls(
            sender=from_header,
            subject=subject,
            snippet=body,
        )

    @property
    def text(self) -> str:
        """Lowercased subject + snippet, the haystack for keyword checks."""
        return f"{self.subject} {self.snippet}".lower()


# --- Historical statistics ---


class LabelConfidence(BaseModel):
    """A label and how often (percent) it was applied in the corpus."""

    model_config = ConfigDict(frozen=True)

    label: str
    confidence: float = Field(default=0.0, ge=0.0, le=100.0)


def _rank_top_labels(labels: list[LabelConfidence]) -> list[LabelConfidence]:
    ranked = sorted(labels, key=lambda lc: lc.confidence, reverse=True)
    return ranked[:TOP_K_LABELS]


class SenderProfile(BaseModel):
    """Aggregated history for one sender (raw address or hashed key)."""

    model_config = ConfigDict(frozen=True)

    count: int = Field(default=0, ge=0)
    avg_labels: float = 0.0
    top_labels: list[LabelConfidence] = Field(default_factory=list)
    is_internal: bool = False

    @field_validator("top_labels")
    @classmethod
    def _rank(cls, v: list[LabelConfidence]) -> list[LabelConfidence]:
        return _rank_top_labels(v)

    @property
    def is_high_importance(self) -> bool:
        return self.count > 10


class KeywordProfile(BaseModel):
    """Aggregated history for one lowercase keyword."""

    model_config = ConfigDict(frozen=True)

    count: int = Field(default=0, ge=0)
    top_labels: list[LabelConfidence] = Field(default_factory=list)

    @field_validator("top_labels")
    @classmethod
    def _rank(cls, v: list[LabelConfidence]) -> list[LabelConfidence]:
        return _rank_top_labels(v)

    @property
    def weight(self) -> float:
        """Keyword influence, capped at 1 regardless of corpus frequency."""
        return min(self.count / 100, 1.0)

    @property
    def common_label(self) -> str | None:
        if not self.top_labels:
            return None
        return self.top_labels[0].label or None


class LabelProfile(BaseModel):
    """Behavioral averages for threads carrying a label."""

    model_config = ConfigDict(frozen=True)

    avg_action_rate: float = 0.0
    avg_urgent_rate: float = 0.0
    avg_question_rate: float = 0.0
    thread_volume: int = 0
    top_senders: list[str] = Field(default_factory=list)
    top_keywords: list[str] = Field(default_factory=list)


class StatisticsMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    last_updated: datetime | None = None
    email_count: int | None = None


class HistoricalStatistics(BaseModel):
    """Read-only bundle of corpus-derived lookup tables."""

    model_config = ConfigDict(frozen=True)

    sender_profiles: dict[str, SenderProfile] = Field(default_factory=dict)
    keyword_profiles: dict[str, KeywordProfile] = Field(default_factory=dict)
    label_profiles: dict[str, LabelProfile] = Field(default_factory=dict)
    metadata: StatisticsMetadata = Field(default_factory=StatisticsMetadata)

    @field_validator("sender_profiles", "keyword_profiles", "label_profiles", mode="before")
    @classmethod
    def _none_to_empty(cls, v: dict | None) -> dict:
        return {} if v is None else v

    @field_validator("keyword_profiles")
    @classmethod
    def _lowercase_keywords(cls, v: dict[str, KeywordProfile]) -> dict[str, KeywordProfile]:
        return {k.lower(): p for k, p in v.items() if k}


# --- Output ---


class ClassificationDecision(BaseModel):
    """Classifier output: what to do with a thread and how sure we are."""

    model_config = ConfigDict(frozen=True)

    action: TriageAction
    label: str | None = None
    confidence: float = Field(ge=0.0, le=1.0)
    reason: str

    @model_validator(mode="after")
    def _label_matches_action(self) -> "ClassificationDecision":
        needs_label = self.action in (TriageAction.LABEL, TriageAction.STAR)
        if needs_label and not self.label:
            raise ValueError(f"action '{self.action}' requires a label")
        if not needs_label and self.label is not None:
            raise ValueError(f"action '{self.action}' must not carry a label")
        return self


# --- Config ---


class TriageConfig(BaseModel):
    """Process-wide classifier settings, built once per run."""

    model_config = ConfigDict(frozen=True)

    vip_senders: list[str] = Field(default_factory=list)
    vip_domains: list[str] = Field(default_factory=list)
    protected_senders: list[str] = Field(default_factory=list)
    protected_domains: list[str] = Field(default_factory=list)
    internal_domains: list[str] = Field(default_factory=lambda: ["alaska.edu", "ua.edu"])
    never_archive_suffixes: list[str] = Field(default_factory=lambda: [".edu"])
    high_confidence: float = Field(default=0.8, ge=0.0, le=1.0)
    medium_confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    sender_hash_salt: str | None = None

    @field_validator(
        "vip_senders",
        "vip_domains",
        "protected_senders",
        "protected_domains",
        "internal_domains",
        "never_archive_suffixes",
    )
    @classmethod
    def _clean_entries(cls, v: list[str]) -> list[str]:
        cleaned = (s.strip().lower() for s in v)
        return [s for s in cleaned if s]
