"""Aggregate labeled mail into a HistoricalStatistics bundle.

Feed every message of the labeled corpus through ``CorpusCollector.add``,
then call ``build()``. Per message the collector extracts:

- the sender key (HMAC hash when a salt is configured, else the address),
  its domain and whether the domain is internal;
- keywords from the subject and snippet, after stripping addresses, phone
  numbers and URLs and dropping stop words;
- urgent / question / action indicators, averaged per label.

Sender and keyword ``top_labels`` carry the percentage of that key's
label assignments going to each label.
"""

import logging
import re
import unicodedata
from collections import Counter
from dataclasses import dataclass, field
from datetime import UTC, datetime

from mailtriage.schemas.mailbox import MailThread
from mailtriage.schemas.triage import (
    HistoricalStatistics,
    KeywordProfile,
    LabelConfidence,
    LabelProfile,
    SenderProfile,
    StatisticsMetadata,
    TOP_K_LABELS,
    TriageConfig,
)
from mailtriage.senders import hash_sender, normalize_sender, sender_domain
from mailtriage.stats.builder import MAX_KEYWORD_ROWS, MAX_SENDER_ROWS

logger = logging.getLogger(__name__)

MIN_WORD_LENGTH = 3
# Keywords seen fewer times than this across the corpus are dropped.
MIN_KEYWORD_COUNT = 2
# Entries kept in LabelProfile.top_senders / top_keywords.
TOP_PER_LABEL = 10

STOP_WORDS = frozenset(
    """
    i me my we our you your he him his she her it its they them their what which
    who whom this that these those am is are was were be been being have has had
    do does did a an the and but if or because as until while of at by for with
    about against between into through during before after above below to from
    up down in out on off over under again further then once
    fw fwd re cc bcc email message wrote date
    dr prof professor student students class course
    uaa uaf uas alaska university college campus
    jan feb mar apr may jun jul aug sep oct nov dec
    monday tuesday wednesday thursday friday saturday sunday
    best regards sincerely thanks cheers cordially
    """.split()
)

_EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
_PHONE_RE = re.compile(r"(\+?1[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}")
_URL_RE = re.compile(r"https?://\S+")
_NON_WORD_RE = re.compile(r"[^\w\s]|_")

URGENT_RE = re.compile(r"\b(urgent|asap|deadline|immediately|critical|emergency|time[-\s]?sensitive)\b")
QUESTION_RE = re.compile(r"\?|\b(question|wondering|could you|can you|would you|please advise)\b")
ACTION_RE = re.compile(r"\b(action required|need to|must|should|deadline|due|respond by)\b")


def sanitize_text(text: str) -> str:
    """Remove addresses, phone numbers and URLs."""
    text = _EMAIL_RE.sub(" ", text)
    text = _PHONE_RE.sub(" ", text)
    return _URL_RE.sub(" ", text)


def extract_words(text: str) -> list[str]:
    """Lowercase words of at least MIN_WORD_LENGTH chars, stop words removed."""
    text = unicodedata.normalize("NFKC", text).lower()
    words = _NON_WORD_RE.sub(" ", text).split()
    return [w for w in words if len(w) >= MIN_WORD_LENGTH and w not in STOP_WORDS]


def _top_labels(counts: Counter[str]) -> list[LabelConfidence]:
    total = sum(counts.values())
    if not total:
        return []
    return [
        LabelConfidence(label=label, confidence=round(n * 100 / total, 1))
        for label, n in counts.most_common(TOP_K_LABELS)
    ]


def _rate(n: int, total: int) -> float:
    return round(n * 100 / total, 1) if total else 0.0


@dataclass
class _SenderAccum:
    count: int = 0
    label_assignments: int = 0
    labels: Counter[str] = field(default_factory=Counter)
    is_internal: bool = False


@dataclass
class _LabelAccum:
    threads: int = 0
    urgent: int = 0
    question: int = 0
    action: int = 0
    senders: Counter[str] = field(default_factory=Counter)
    keywords: Counter[str] = field(default_factory=Counter)


class CorpusCollector:
    """Accumulates labeled messages and builds the statistics bundle.

    Usage::

        collector = CorpusCollector(config)
        for thread in labeled_threads:
            collector.add(thread)
        stats = collector.build()
    """

    def __init__(self, config: TriageConfig) -> None:
        self._config = config
        self._messages = 0
        self._senders: dict[str, _SenderAccum] = {}
        self._keywords: dict[str, Counter[str]] = {}
        self._keyword_counts: Counter[str] = Counter()
        self._labels: dict[str, _LabelAccum] = {}

    @property
    def message_count(self) -> int:
        return self._messages

    def _sender_key(self, address: str) -> str | None:
        if "@" not in address:
            return None
        salt = self._config.sender_hash_salt
        return hash_sender(address, salt) if salt else address

    def _is_internal(self, domain: str) -> bool:
        return any(domain == d or domain.endswith("." + d) for d in self._config.internal_domains)

    def add(self, thread: MailThread) -> None:
        """Record one message under each of its labels. Unlabeled messages are skipped."""
        if not thread.labels:
            return
        self._messages += 1

        address = normalize_sender(thread.from_header)
        sender_key = self._sender_key(address)
        if sender_key is not None:
            accum = self._senders.setdefault(sender_key, _SenderAccum())
            accum.count += 1
            accum.label_assignments += len(thread.labels)
            accum.labels.update(thread.labels)
            accum.is_internal = self._is_internal(sender_domain(address))

        text = sanitize_text(f"{thread.subject} {thread.snippet}".lower())
        words = extract_words(text)
        self._keyword_counts.update(words)
        for word in set(words):
            self._keywords.setdefault(word, Counter()).update(thread.labels)

        for label in thread.labels:
            la = self._labels.setdefault(label, _LabelAccum())
            la.threads += 1
            la.urgent += bool(URGENT_RE.search(text))
            la.question += bool(QUESTION_RE.search(text))
            la.action += bool(ACTION_RE.search(text))
            if sender_key is not None:
                la.senders[sender_key] += 1
            la.keywords.update(words)

    def build(
        self,
        *,
        max_senders: int = MAX_SENDER_ROWS,
        max_keywords: int = MAX_KEYWORD_ROWS,
        min_keyword_count: int = MIN_KEYWORD_COUNT,
    ) -> HistoricalStatistics:
        """Build the bundle from everything added so far."""
        senders = sorted(self._senders.items(), key=lambda kv: (-kv[1].count, kv[0]))[:max_senders]
        sender_profiles = {
            key: SenderProfile(
                count=acc.count,
                avg_labels=round(acc.label_assignments / acc.count, 2),
                top_labels=_top_labels(acc.labels),
                is_internal=acc.is_internal,
            )
            for key, acc in senders
        }

        keywords = [
            (word, n)
            for word, n in sorted(self._keyword_counts.items(), key=lambda kv: (-kv[1], kv[0]))
            if n >= min_keyword_count
        ][:max_keywords]
        keyword_profiles = {
            word: KeywordProfile(count=n, top_labels=_top_labels(self._keywords[word]))
            for word, n in keywords
        }

        label_profiles = {
            label: LabelProfile(
                avg_action_rate=_rate(la.action, la.threads),
                avg_urgent_rate=_rate(la.urgent, la.threads),
                avg_question_rate=_rate(la.question, la.threads),
                thread_volume=la.threads,
                top_senders=[s for s, _ in la.senders.most_common(TOP_PER_LABEL)],
                top_keywords=[k for k, _ in la.keywords.most_common(TOP_PER_LABEL)],
            )
            for label, la in sorted(self._labels.items())
        }

        stats = HistoricalStatistics(
            sender_profiles=sender_profiles,
            keyword_profiles=keyword_profiles,
            label_profiles=label_profiles,
            metadata=StatisticsMetadata(last_updated=datetime.now(UTC), email_count=self._messages),
        )
        logger.info(
            "Collected statistics from %d message(s): %d sender(s), %d keyword(s), %d label(s)",
            self._messages,
            len(sender_profiles),
            len(keyword_profiles),
            len(label_profiles),
        )
        return stats
