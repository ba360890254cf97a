"""Tests for sender list management (mailtriage/sender_lists.py).

Covers: load/save, lookup precedence, add/remove of senders and domains,
case-insensitive matching, rationalize, missing file handling, and
merging into a TriageConfig.
"""

import json

import pytest

from mailtriage.schemas.triage import TriageConfig
from mailtriage.sender_lists import SenderListManager


# --- Fixtures ---


def _sample_data() -> dict:
    return {
        "vip": {
            "description": "Leadership.",
            "senders": ["provost@alaska.edu"],
            "domains": ["board.org"],
        },
        "protected": {
            "description": "Family.",
            "senders": ["Mom@Home.net"],
            "domains": ["bank.com"],
        },
    }


@pytest.fixture
def sender_lists_path(tmp_path):
    path = tmp_path / "sender_lists.json"
    path.write_text(json.dumps(_sample_data(), indent=2))
    return path


@pytest.fixture
def mgr(sender_lists_path):
    return SenderListManager.load(sender_lists_path)


# --- Load / Save ---


class TestLoadSave:
    def test_load_from_file(self, mgr):
        assert mgr.data.vip.senders == ["provost@alaska.edu"]
        assert mgr.data.protected.domains == ["bank.com"]

    def test_load_missing_file(self, tmp_path):
        mgr = SenderListManager.load(tmp_path / "nonexistent.json")
        assert mgr.data.vip.senders == []
        assert mgr.lookup("anyone@example.com") is None

    def test_save_and_reload(self, sender_lists_path):
        SenderListManager.load(sender_lists_path).add("vip", "dean@alaska.edu")
        assert SenderListManager.load(sender_lists_path).lookup("dean@alaska.edu") == "vip"

    def test_save_creates_parent_dirs(self, tmp_path):
        path = tmp_path / "subdir" / "deep" / "sender_lists.json"
        SenderListManager.load(path).add("protected", "test@example.com")
        data = json.loads(path.read_text())
        assert data["protected"]["senders"] == ["test@example.com"]

    def test_no_temp_files_left(self, sender_lists_path):
        SenderListManager.load(sender_lists_path).add("vip", "x@y.com")
        assert list(sender_lists_path.parent.glob("*.tmp")) == []


# --- Lookup ---


class TestLookup:
    def test_vip_sender(self, mgr):
        assert mgr.lookup("provost@alaska.edu") == "vip"

    def test_vip_domain(self, mgr):
        assert mgr.lookup("chair@board.org") == "vip"

    def test_protected_case_insensitive(self, mgr):
        assert mgr.lookup("MOM@home.NET") == "protected"

    def test_vip_checked_first(self, mgr):
        mgr.add("protected", "provost@alaska.edu")
        assert mgr.lookup("provost@alaska.edu") == "vip"

    def test_unknown(self, mgr):
        assert mgr.lookup("stranger@example.com") is None


# --- Add / Remove ---


class TestAddRemove:
    def test_add_sender(self, mgr):
        assert mgr.add("vip", "Dean@Alaska.edu")
        assert "dean@alaska.edu" in mgr.data.vip.senders

    def test_add_domain(self, mgr):
        assert mgr.add("protected", "Family.org")
        assert "family.org" in mgr.data.protected.domains

    def test_add_duplicate(self, mgr):
        assert not mgr.add("vip", "PROVOST@alaska.edu")

    def test_remove(self, mgr):
        assert mgr.remove("protected", "mom@home.net")
        assert mgr.data.protected.senders == []

    def test_remove_missing(self, mgr):
        assert not mgr.remove("vip", "nobody@x.com")

    def test_unknown_list(self, mgr):
        with pytest.raises(ValueError, match="Unknown sender list"):
            mgr.add("black", "x@y.com")


# --- Rationalize ---


class TestRationalize:
    def test_clean_lists(self, mgr):
        assert mgr.rationalize() == []

    def test_dedup(self, tmp_path):
        path = tmp_path / "lists.json"
        path.write_text(json.dumps({"vip": {"senders": ["a@b.com", "A@B.COM"]}}))
        mgr = SenderListManager.load(path)

        actions = mgr.rationalize()

        assert len(actions) == 1
        assert "duplicate" in actions[0]
        assert json.loads(path.read_text())["vip"]["senders"] == ["a@b.com"]

    def test_protected_covered_by_vip(self, tmp_path):
        path = tmp_path / "lists.json"
        path.write_text(
            json.dumps(
                {
                    "vip": {"domains": ["alaska.edu"]},
                    "protected": {"senders": ["x@alaska.edu", "mom@home.net"], "domains": ["alaska.edu"]},
                }
            )
        )
        mgr = SenderListManager.load(path)

        actions = mgr.rationalize()

        assert len(actions) == 2
        assert mgr.data.protected.senders == ["mom@home.net"]
        assert mgr.data.protected.domains == []


# --- apply_to ---


class TestApplyTo:
    def test_merges_into_config(self, mgr):
        base = TriageConfig(vip_senders=["env@vip.com"], high_confidence=0.9)
        config = mgr.apply_to(base)

        assert config.vip_senders == ["env@vip.com", "provost@alaska.edu"]
        assert config.vip_domains == ["board.org"]
        assert config.protected_senders == ["mom@home.net"]
        assert config.protected_domains == ["bank.com"]
        assert config.high_confidence == 0.9
        # The base config is untouched.
        assert base.vip_domains == []
