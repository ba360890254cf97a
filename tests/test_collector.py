"""Tests for mailtriage.stats.collector: building statistics from labeled mail."""

import pytest

from mailtriage.executors.classifier import classify
from mailtriage.schemas.mailbox import MailThread
from mailtriage.schemas.triage import EmailSignal, TriageAction, TriageConfig
from mailtriage.senders import hash_sender
from mailtriage.stats.collector import CorpusCollector, extract_words, sanitize_text


def _thread(from_header: str, subject: str, snippet: str = "", labels: list[str] | None = None) -> MailThread:
    return MailThread(
        uid="1",
        account_email="me@alaska.edu",
        from_header=from_header,
        subject=subject,
        snippet=snippet,
        labels=labels if labels is not None else [],
    )


CORPUS = [
    _thread("Jane <Jane@alaska.edu>", "Budget deadline", "Can you review the budget?", ["Finance"]),
    _thread("jane@alaska.edu", "Budget report", "", ["Finance"]),
    _thread("jane@alaska.edu", "Budget meeting", "", ["Meetings"]),
    _thread("promo@shop.com", "Sale", "", []),
]


def _collect(config: TriageConfig | None = None, threads=CORPUS) -> CorpusCollector:
    collector = CorpusCollector(config or TriageConfig())
    for thread in threads:
        collector.add(thread)
    return collector


# --- Text helpers ---


class TestTextHelpers:
    def test_extract_words_drops_stop_words_and_short_tokens(self):
        assert extract_words("Re: Fwd: Invoice #1234 from ACME!") == ["invoice", "1234", "acme"]

    def test_sanitize_removes_pii(self):
        text = sanitize_text("call 907-555-1234 or mail a@b.com at https://x.example/z today")
        assert "555" not in text
        assert "a@b.com" not in text
        assert "https" not in text
        assert "today" in text


# --- CorpusCollector ---


class TestCorpusCollector:
    def test_unlabeled_messages_skipped(self):
        assert _collect().message_count == 3

    def test_sender_profile(self):
        stats = _collect().build()
        profile = stats.sender_profiles["jane@alaska.edu"]
        assert profile.count == 3
        assert profile.avg_labels == 1.0
        assert profile.is_internal
        assert profile.top_labels[0].label == "Finance"
        assert profile.top_labels[0].confidence == pytest.approx(66.7)
        assert "promo@shop.com" not in stats.sender_profiles

    def test_sender_keys_hashed_with_salt(self):
        stats = _collect(TriageConfig(sender_hash_salt="pepper")).build()
        assert list(stats.sender_profiles) == [hash_sender("jane@alaska.edu", "pepper")]

    def test_keyword_profiles(self):
        stats = _collect().build()
        # Only "budget" reaches the minimum count.
        assert list(stats.keyword_profiles) == ["budget"]
        budget = stats.keyword_profiles["budget"]
        assert budget.count == 4
        assert budget.common_label == "Finance"
        assert [lc.confidence for lc in budget.top_labels] == pytest.approx([66.7, 33.3])

    def test_min_keyword_count(self):
        stats = _collect().build(min_keyword_count=1)
        assert {"budget", "deadline", "review", "report", "meeting"} <= set(stats.keyword_profiles)

    def test_label_profiles(self):
        stats = _collect().build()
        finance = stats.label_profiles["Finance"]
        assert finance.thread_volume == 2
        assert finance.avg_urgent_rate == 50.0
        assert finance.avg_question_rate == 50.0
        assert finance.avg_action_rate == 50.0
        assert finance.top_senders == ["jane@alaska.edu"]
        assert finance.top_keywords[0] == "budget"
        assert stats.label_profiles["Meetings"].avg_urgent_rate == 0.0

    def test_message_in_several_labels(self):
        thread = _thread("a@b.com", "Quarterly numbers", "", ["Finance", "Reports"])
        stats = _collect(threads=[thread, thread]).build()
        assert stats.sender_profiles["a@b.com"].avg_labels == 2.0
        assert set(stats.label_profiles) == {"Finance", "Reports"}

    def test_row_limits(self):
        threads = [_thread(f"s{i}@x.com", "hello world", "", ["L"]) for i in range(5)]
        stats = _collect(threads=threads).build(max_senders=2, max_keywords=1)
        assert len(stats.sender_profiles) == 2
        assert list(stats.keyword_profiles) == ["hello"]

    def test_metadata(self):
        stats = _collect().build()
        assert stats.metadata.email_count == 3
        assert stats.metadata.last_updated is not None

    def test_empty_corpus(self):
        stats = CorpusCollector(TriageConfig()).build()
        assert stats.sender_profiles == {}
        assert stats.metadata.email_count == 0

    def test_collected_stats_drive_classifier(self):
        stats = _collect().build()
        decision = classify(EmailSignal(sender="x@shop.com", subject="Budget"), stats, TriageConfig())
        assert decision.action == TriageAction.LABEL
        assert decision.label == "Finance"
