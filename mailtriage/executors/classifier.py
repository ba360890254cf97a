"""Triage classifier executor: turns an email into a mailbox decision.

Stateless and pure: receives the email signal, the (optional) historical
statistics bundle and the config, returns a ClassificationDecision. No I/O.

Order of precedence:
  VIP sender -> protected sender -> historical pattern (if confident) -> rules
"""

import logging
from typing import Protocol

from mailtriage.schemas.triage import (
    ClassificationDecision,
    EmailSignal,
    HistoricalStatistics,
    SenderProfile,
    TriageAction,
    TriageConfig,
)
from mailtriage.senders import hash_sender, matches

logger = logging.getLogger(__name__)

VIP_LABEL = "VIP"
IMPORTANT_LABEL = "Important"

# Score added to IMPORTANT_LABEL for a frequent sender.
SENDER_IMPORTANCE_WEIGHT = 0.4
# Multiplier applied to a matched keyword's weight.
KEYWORD_WEIGHT_FACTOR = 0.3

_NO_PATTERN = ClassificationDecision(
    action=TriageAction.KEEP,
    confidence=0.0,
    reason="No pattern match",
)

# (keywords, label, confidence, reason), evaluated in order for internal senders.
_INTERNAL_RULES: list[tuple[tuple[str, ...], str, float, str]] = [
    (("meeting", "schedule"), "Meetings", 0.8, "Meeting related"),
    (("student", "grade"), "Students", 0.8, "Student related"),
    (("department", "faculty"), "Department", 0.7, "Department business"),
]

_NEWSLETTER_KEYWORDS = ("unsubscribe", "newsletter")


class StatisticsProvider(Protocol):
    """Anything that can hand out the current statistics bundle."""

    def get(self) -> HistoricalStatistics | None: ...


def _find_sender_profile(
    sender: str,
    stats: HistoricalStatistics,
    salt: str | None,
) -> SenderProfile | None:
    """Look up a sender by raw address, then by hashed key."""
    profile = stats.sender_profiles.get(sender)
    if profile is None and salt:
        key = hash_sender(sender, salt)
        if key is not None:
            profile = stats.sender_profiles.get(key)
    return profile


def _pick_best_label(scores: dict[str, float]) -> tuple[str | None, float]:
    """Highest score wins; ties go to the lexicographically smallest label."""
    best_label: str | None = None
    best_score = 0.0
    for label in sorted(scores):
        score = scores[label]
        if score > best_score:
            best_label, best_score = label, score
    return best_label, best_score


def score_historical(
    signal: EmailSignal,
    stats: HistoricalStatistics,
    *,
    salt: str | None = None,
) -> ClassificationDecision:
    """Score an email against historical sender and keyword statistics.

    Args:
        signal: The email to score.
        stats: Read-only statistics bundle. Missing entries contribute nothing.
        salt: HMAC salt, used when sender profiles are keyed by hash.

    Returns:
        A ``label`` decision with confidence ``best / total`` (capped at 1),
        or a ``keep`` decision with confidence 0 when nothing matched.
    """
    scores: dict[str, float] = {}
    total_weight = 0.0

    profile = _find_sender_profile(signal.sender, stats, salt)
    if profile is not None and profile.is_high_importance:
        scores[IMPORTANT_LABEL] = scores.get(IMPORTANT_LABEL, 0.0) + SENDER_IMPORTANCE_WEIGHT
        total_weight += SENDER_IMPORTANCE_WEIGHT

    text = signal.text
    for keyword, kw_profile in stats.keyword_profiles.items():
        if keyword not in text:
            continue
        label = kw_profile.common_label
        if not label:
            continue
        contribution = kw_profile.weight * KEYWORD_WEIGHT_FACTOR
        scores[label] = scores.get(label, 0.0) + contribution
        total_weight += contribution

    best_label, best_score = _pick_best_label(scores)
    if best_label is None or total_weight <= 0:
        return _NO_PATTERN

    return ClassificationDecision(
        action=TriageAction.LABEL,
        label=best_label,
        confidence=min(best_score / total_weight, 1.0),
        reason="Historical pattern match",
    )


def classify_by_rules(signal: EmailSignal, config: TriageConfig) -> ClassificationDecision:
    """Static keyword/domain heuristics used when history is absent or weak.

    The meeting/student/department rules only apply to senders in
    ``config.internal_domains``; newsletter detection applies to everyone.
    """
    text = signal.text

    if matches(signal.sender, (), config.internal_domains):
        for keywords, label, confidence, reason in _INTERNAL_RULES:
            if any(kw in text for kw in keywords):
                return ClassificationDecision(
                    action=TriageAction.LABEL,
                    label=label,
                    confidence=confidence,
                    reason=reason,
                )

    if any(kw in text for kw in _NEWSLETTER_KEYWORDS):
        return ClassificationDecision(
            action=TriageAction.LABEL,
            label="Newsletters",
            confidence=0.9,
            reason="Newsletter detected",
        )

    return ClassificationDecision(
        action=TriageAction.KEEP,
        confidence=0.3,
        reason="No specific rule matched",
    )


def is_vip(sender: str, config: TriageConfig) -> bool:
    return matches(sender, config.vip_senders, config.vip_domains)


def is_protected(sender: str, config: TriageConfig) -> bool:
    return matches(sender, config.protected_senders, config.protected_domains)


def classify(
    signal: EmailSignal,
    stats: HistoricalStatistics | None,
    config: TriageConfig,
) -> ClassificationDecision:
    """Classify an email into a triage decision.

    Args:
        signal: Normalized sender, subject and snippet.
        stats: Historical statistics, or None to use rules only.
        config: Allow-lists and confidence thresholds.

    Returns:
        The decision. Never raises for missing or partial data.
    """
    if is_vip(signal.sender, config):
        return ClassificationDecision(
            action=TriageAction.STAR,
            label=VIP_LABEL,
            confidence=1.0,
            reason="VIP sender",
        )

    if is_protected(signal.sender, config):
        return ClassificationDecision(
            action=TriageAction.KEEP,
            confidence=1.0,
            reason="Protected sender",
        )

    if stats is not None:
        decision = score_historical(signal, stats, salt=config.sender_hash_salt)
        if decision.confidence >= config.medium_confidence:
            return decision

    return classify_by_rules(signal, config)


class TriageClassifier:
    """Classifier bound to a config and a statistics provider.

    Usage::

        classifier = TriageClassifier(config, provider=stats_provider)
        decision = classifier.classify_message(from_header, subject, body)
    """

    def __init__(
        self,
        config: TriageConfig,
        provider: StatisticsProvider | None = None,
    ) -> None:
        self._config = config
        self._provider = provider

    @property
    def config(self) -> TriageConfig:
        return self._config

    def _current_stats(self) -> HistoricalStatistics | None:
        if self._provider is None:
            return None
        try:
            return self._provider.get()
        except Exception:
            logger.exception("Statistics provider failed, using rules only")
            return None

    def classify(self, signal: EmailSignal) -> ClassificationDecision:
        decision = classify(signal, self._current_stats(), self._config)
        logger.debug(
            "Classified %s / %r: action=%s label=%s confidence=%.2f (%s)",
            signal.sender,
            signal.subject,
            decision.action.value,
            decision.label,
            decision.confidence,
            decision.reason,
        )
        return decision

    def classify_message(
        self, from_header: str | None, subject: str | None, body: str | None
    ) -> ClassificationDecision:
        """Classify from raw message fields (From header, subject, body)."""
        return self.classify(EmailSignal.from_message(from_header, subject, body))
