"""Build a HistoricalStatistics bundle from tabular corpus exports.

Rows are plain dicts keyed by column header, as produced by
``csv.DictReader`` or a spreadsheet API. Unknown columns are ignored,
blank keys are skipped and unparseable numbers read as 0.
"""

import logging
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from typing import Any

from mailtriage.schemas.triage import (
    HistoricalStatistics,
    KeywordProfile,
    LabelConfidence,
    LabelProfile,
    SenderProfile,
    StatisticsMetadata,
)

logger = logging.getLogger(__name__)

MAX_SENDER_ROWS = 500
MAX_KEYWORD_ROWS = 200

Row = Mapping[str, Any]


def _number(value: Any, default: float = 0.0) -> float:
    if value is None or value == "":
        return default
    try:
        return float(str(value).strip().rstrip("%"))
    except ValueError:
        return default


def _flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "yes", "1")


def _split_list(value: Any) -> list[str]:
    if not value:
        return []
    return [s.strip() for s in str(value).split(",") if s.strip()]


def parse_top_labels(value: Any) -> list[LabelConfidence]:
    """Parse ``"Meetings:80, Students:15"`` into LabelConfidence entries.

    A bare label without a percentage counts as 100%.
    """
    labels: list[LabelConfidence] = []
    for item in _split_list(value):
        name, sep, pct = item.rpartition(":")
        if not sep:
            name, pct = item, "100"
        name = name.strip()
        if not name:
            continue
        confidence = min(max(_number(pct), 0.0), 100.0)
        labels.append(LabelConfidence(label=name, confidence=confidence))
    return labels


def build_sender_profiles(rows: Iterable[Row]) -> dict[str, SenderProfile]:
    profiles: dict[str, SenderProfile] = {}
    for row in rows:
        if len(profiles) >= MAX_SENDER_ROWS:
            break
        key = str(row.get("Sender") or "").strip()
        if not key:
            continue
        profiles[key] = SenderProfile(
            count=int(_number(row.get("Count"))),
            avg_labels=_number(row.get("Avg Labels")),
            top_labels=parse_top_labels(row.get("Top Labels")),
            is_internal=_flag(row.get("Internal", False)),
        )
    return profiles


def build_keyword_profiles(rows: Iterable[Row]) -> dict[str, KeywordProfile]:
    profiles: dict[str, KeywordProfile] = {}
    for row in rows:
        if len(profiles) >= MAX_KEYWORD_ROWS:
            break
        keyword = str(row.get("Keyword") or "").strip().lower()
        if not keyword:
            continue
        top = parse_top_labels(row.get("Top Labels"))
        if not top and row.get("Most Common Label"):
            top = [LabelConfidence(label=str(row["Most Common Label"]).strip(), confidence=100.0)]
        profiles[keyword] = KeywordProfile(
            count=int(_number(row.get("Count"))),
            top_labels=top,
        )
    return profiles


def build_label_profiles(rows: Iterable[Row]) -> dict[str, LabelProfile]:
    profiles: dict[str, LabelProfile] = {}
    for row in rows:
        label = str(row.get("Label") or "").strip()
        if not label:
            continue
        profiles[label] = LabelProfile(
            avg_action_rate=_number(row.get("Avg Action Rate")),
            avg_urgent_rate=_number(row.get("Avg Urgent Rate")),
            avg_question_rate=_number(row.get("Avg Question Rate")),
            thread_volume=int(_number(row.get("Thread Volume"))),
            top_senders=_split_list(row.get("Top Senders")),
            top_keywords=_split_list(row.get("Top Keywords")),
        )
    return profiles


def build_statistics(
    sender_rows: Iterable[Row] = (),
    keyword_rows: Iterable[Row] = (),
    label_rows: Iterable[Row] = (),
    *,
    email_count: int | None = None,
) -> HistoricalStatistics:
    """Aggregate corpus rows into a statistics bundle stamped with the build time."""
    stats = HistoricalStatistics(
        sender_profiles=build_sender_profiles(sender_rows),
        keyword_profiles=build_keyword_profiles(keyword_rows),
        label_profiles=build_label_profiles(label_rows),
        metadata=StatisticsMetadata(
            last_updated=datetime.now(UTC),
            email_count=email_count,
        ),
    )
    logger.info(
        "Built historical statistics: %d sender(s), %d keyword(s), %d label(s)",
        len(stats.sender_profiles),
        len(stats.keyword_profiles),
        len(stats.label_profiles),
    )
    return stats
