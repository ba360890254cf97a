"""Tests for mailtriage.integrations.imap: Gmail IMAP client with mocked MailBox."""

import asyncio
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest

from mailtriage.integrations.imap import (
    ALL_MAIL_FOLDER,
    IMPORTANT_FOLDER,
    GmailImapClient,
    _parse_thread,
)
from mailtriage.schemas.mailbox import EmailAccountConfig


# --- Mock helpers ---


class MockAddress:
    def __init__(self, full: str):
        self.full = full


class MockMailMessage:
    """Minimal mock for an imap-tools MailMessage."""

    def __init__(
        self,
        uid="123",
        from_="jane@alaska.edu",
        from_full="Jane Doe <jane@alaska.edu>",
        subject="Meeting tomorrow",
        date=datetime(2024, 1, 1, tzinfo=timezone.utc),
        flags=("\\Seen",),
        text="Agenda attached",
        html="",
    ):
        self.uid = uid
        self.from_ = from_
        self.from_values = MockAddress(from_full) if from_full else None
        self.subject = subject
        self.date = date
        self.flags = flags
        self.text = text
        self.html = html


class MockFolder:
    def __init__(self, name: str):
        self.name = name


def _make_config(**overrides) -> EmailAccountConfig:
    defaults = dict(name="Work", email="me@alaska.edu", password="secret")
    defaults.update(overrides)
    return EmailAccountConfig(**defaults)


def _connected_client(mock_mb: MagicMock) -> GmailImapClient:
    client = GmailImapClient(_make_config())
    client._mailbox = mock_mb
    return client


# --- _parse_thread ---


class TestParseThread:
    def test_basic(self):
        thread = _parse_thread(MockMailMessage(), "me@alaska.edu")
        assert thread.uid == "123"
        assert thread.from_header == "Jane Doe <jane@alaska.edu>"
        assert thread.subject == "Meeting tomorrow"
        assert thread.snippet == "Agenda attached"
        assert thread.flags == ["\\Seen"]
        assert not thread.is_starred

    def test_no_from_values(self):
        thread = _parse_thread(MockMailMessage(from_full=None), "me@alaska.edu")
        assert thread.from_header == "jane@alaska.edu"

    def test_no_subject(self):
        assert _parse_thread(MockMailMessage(subject=""), "x").subject == "(no subject)"

    def test_html_fallback_and_truncation(self):
        thread = _parse_thread(MockMailMessage(text="", html="<p>" + "x" * 1000), "x")
        assert thread.snippet.startswith("<p>")
        assert len(thread.snippet) == 500

    def test_starred(self):
        assert _parse_thread(MockMailMessage(flags=("\\Flagged",)), "x").is_starred


# --- Connection ---


class TestConnection:
    def test_context_manager_logs_in_and_out(self):
        with patch("mailtriage.integrations.imap.MailBox") as MockMailBox:
            mock_mb = MagicMock()
            MockMailBox.return_value = mock_mb

            async def _go():
                async with GmailImapClient(_make_config()) as client:
                    assert client.mailbox is mock_mb

            asyncio.run(_go())

        MockMailBox.assert_called_once_with("imap.gmail.com", port=993)
        mock_mb.login.assert_called_once_with("me@alaska.edu", "secret", initial_folder="INBOX")
        mock_mb.logout.assert_called_once()

    def test_not_connected_raises(self):
        with pytest.raises(RuntimeError, match="not connected"):
            GmailImapClient(_make_config()).mailbox


# --- Fetch ---


class TestFetchThreads:
    def test_fetch(self):
        mock_mb = MagicMock()
        mock_mb.fetch.return_value = [MockMailMessage(uid="1"), MockMailMessage(uid="2")]
        client = _connected_client(mock_mb)

        threads = asyncio.run(client.fetch_threads(limit=5, skip_label="_Triage/Processed"))

        assert [t.uid for t in threads] == ["1", "2"]
        mock_mb.folder.set.assert_called_once_with("INBOX")
        kwargs = mock_mb.fetch.call_args.kwargs
        assert kwargs["limit"] == 5
        assert kwargs["mark_seen"] is False
        criteria = str(mock_mb.fetch.call_args.args[0])
        assert "UNFLAGGED" in criteria
        assert "_Triage/Processed" in criteria

    def test_fetch_no_limit(self):
        mock_mb = MagicMock()
        mock_mb.fetch.return_value = []
        client = _connected_client(mock_mb)

        assert asyncio.run(client.fetch_threads()) == []
        assert mock_mb.fetch.call_args.kwargs["limit"] is None


# --- Actions ---


class TestActions:
    def test_add_label_copies(self):
        mock_mb = MagicMock()
        mock_mb.folder.list.return_value = [MockFolder("INBOX"), MockFolder("Newsletters")]
        asyncio.run(_connected_client(mock_mb).add_label("7", "Newsletters"))
        mock_mb.copy.assert_called_once_with(["7"], "Newsletters")
        mock_mb.folder.create.assert_not_called()

    def test_add_label_creates_missing_label_once(self):
        mock_mb = MagicMock()
        mock_mb.folder.list.return_value = [MockFolder("INBOX")]
        client = _connected_client(mock_mb)

        async def _go():
            await client.add_label("7", "_Triage/PREVIEW-label")
            await client.add_label("8", "_Triage/PREVIEW-label")

        asyncio.run(_go())

        mock_mb.folder.create.assert_called_once_with("_Triage/PREVIEW-label")
        mock_mb.folder.list.assert_called_once()
        assert mock_mb.copy.call_count == 2

    def test_label_created_before_copy(self):
        mock_mb = MagicMock()
        mock_mb.folder.list.return_value = []
        asyncio.run(_connected_client(mock_mb).add_label("7", "Finance"))
        names = [c[0] for c in mock_mb.mock_calls]
        assert names.index("folder.create") < names.index("copy")

    def test_star_flags(self):
        mock_mb = MagicMock()
        asyncio.run(_connected_client(mock_mb).star("7"))
        mock_mb.flag.assert_called_once_with(["7"], {"\\Flagged"}, True)

    def test_mark_important(self):
        mock_mb = MagicMock()
        asyncio.run(_connected_client(mock_mb).mark_important("7"))
        mock_mb.copy.assert_called_once_with(["7"], IMPORTANT_FOLDER)
        mock_mb.folder.create.assert_not_called()

    def test_archive_moves_to_all_mail(self):
        mock_mb = MagicMock()
        asyncio.run(_connected_client(mock_mb).archive("7"))
        mock_mb.move.assert_called_once_with(["7"], ALL_MAIL_FOLDER)

    def test_ensure_labels_creates_missing(self):
        mock_mb = MagicMock()
        mock_mb.folder.list.return_value = [MockFolder("INBOX"), MockFolder("VIP")]
        created = asyncio.run(_connected_client(mock_mb).ensure_labels(["VIP", "Meetings"]))

        assert created == ["Meetings"]
        mock_mb.folder.create.assert_called_once_with("Meetings")

    def test_ensure_labels_shares_cache_with_add_label(self):
        mock_mb = MagicMock()
        mock_mb.folder.list.return_value = []
        client = _connected_client(mock_mb)

        async def _go():
            await client.ensure_labels(["Meetings"])
            await client.add_label("7", "Meetings")

        asyncio.run(_go())

        mock_mb.folder.create.assert_called_once_with("Meetings")


# --- Corpus helpers ---


class TestLabeledMessages:
    def test_list_labels_skips_system_and_triage(self):
        mock_mb = MagicMock()
        mock_mb.folder.list.return_value = [
            MockFolder("INBOX"),
            MockFolder("[Gmail]/All Mail"),
            MockFolder("_Triage/Processed"),
            MockFolder("Students"),
            MockFolder("Finance"),
        ]
        assert asyncio.run(_connected_client(mock_mb).list_labels()) == ["Finance", "Students"]

    def test_fetch_labeled(self):
        mock_mb = MagicMock()
        mock_mb.fetch.return_value = [MockMailMessage(uid="9")]
        client = _connected_client(mock_mb)

        threads = asyncio.run(client.fetch_labeled("Finance", limit=20))

        mock_mb.folder.set.assert_called_once_with("Finance")
        assert mock_mb.fetch.call_args.kwargs["limit"] == 20
        assert threads[0].uid == "9"
        assert threads[0].labels == ["Finance"]
