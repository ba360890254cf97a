"""Sender list manager for the VIP and protected allow-lists.

Loads lists from a JSON file, supports add/remove/rationalize with atomic
saves, and merges the lists into a TriageConfig for the classifier.
"""

import json
import logging
import os
import tempfile
from pathlib import Path

from mailtriage.schemas.sender_lists import LIST_NAMES, SenderList, SenderListsFile
from mailtriage.schemas.triage import TriageConfig
from mailtriage.senders import matches

logger = logging.getLogger(__name__)


def _entry_kind(entry: str) -> str:
    """Entries with an ``@`` are addresses; anything else is a domain."""
    return "senders" if "@" in entry else "domains"


class SenderListManager:
    """Manages the VIP and protected sender lists.

    Usage::

        mgr = SenderListManager.load("data/sender_lists.json")
        mgr.add("vip", "provost@alaska.edu")
        config = mgr.apply_to(load_triage_config())
    """

    def __init__(self, data: SenderListsFile, path: Path) -> None:
        self._data = data
        self._path = path

    @classmethod
    def load(cls, path: str | Path) -> "SenderListManager":
        """Load sender lists from a JSON file.

        If the file does not exist, returns a manager with empty lists.
        """
        path = Path(path)
        if not path.exists():
            logger.info("Sender lists file not found at %s, using empty lists", path)
            return cls(SenderListsFile(), path)

        data = SenderListsFile.model_validate(json.loads(path.read_text()))
        logger.info(
            "Loaded sender lists from %s: %d VIP, %d protected entr(ies)",
            path,
            len(data.vip.senders) + len(data.vip.domains),
            len(data.protected.senders) + len(data.protected.domains),
        )
        return cls(data, path)

    def _list(self, list_name: str) -> SenderList:
        if list_name not in LIST_NAMES:
            raise ValueError(f"Unknown sender list '{list_name}' (expected one of {LIST_NAMES})")
        return getattr(self._data, list_name)

    def add(self, list_name: str, entry: str) -> bool:
        """Add an address or domain. Returns False if it was already present."""
        normalized = entry.strip().lower()
        entries: list[str] = getattr(self._list(list_name), _entry_kind(normalized))
        if normalized in {e.lower() for e in entries}:
            return False
        entries.append(normalized)
        self.save()
        return True

    def remove(self, list_name: str, entry: str) -> bool:
        """Remove an address or domain. Returns False if it was not found."""
        normalized = entry.strip().lower()
        lst = self._list(list_name)
        kind = _entry_kind(normalized)
        entries: list[str] = getattr(lst, kind)
        kept = [e for e in entries if e.lower() != normalized]
        if len(kept) == len(entries):
            return False
        setattr(lst, kind, kept)
        self.save()
        return True

    def lookup(self, address: str) -> str | None:
        """Name of the list an address falls under (VIP checked first), or None."""
        for list_name in LIST_NAMES:
            lst = self._list(list_name)
            if matches(address, lst.senders, lst.domains):
                return list_name
        return None

    def save(self) -> None:
        """Atomic write: temp file + rename to prevent corruption."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        content = json.dumps(self._data.model_dump(mode="json"), indent=2) + "\n"

        fd, tmp_path = tempfile.mkstemp(dir=str(self._path.parent), suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                f.write(content)
            os.replace(tmp_path, str(self._path))
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def rationalize(self) -> list[str]:
        """Dedup within lists and drop protected entries already covered by VIP.

        Returns a list of human-readable actions taken.
        """
        actions: list[str] = []

        for list_name in LIST_NAMES:
            lst = self._list(list_name)
            for kind in ("senders", "domains"):
                seen: set[str] = set()
                deduped: list[str] = []
                for entry in getattr(lst, kind):
                    normalized = entry.strip().lower()
                    if normalized in seen:
                        actions.append(f"Removed duplicate '{normalized}' from '{list_name}'")
                    else:
                        seen.add(normalized)
                        deduped.append(normalized)
                setattr(lst, kind, deduped)

        vip = self._data.vip
        protected = self._data.protected
        kept_senders = []
        for sender in protected.senders:
            if matches(sender, vip.senders, vip.domains):
                actions.append(f"Removed '{sender}' from 'protected' (already covered by 'vip')")
            else:
                kept_senders.append(sender)
        protected.senders = kept_senders

        kept_domains = []
        for domain in protected.domains:
            if domain in vip.domains:
                actions.append(f"Removed '{domain}' from 'protected' (already covered by 'vip')")
            else:
                kept_domains.append(domain)
        protected.domains = kept_domains

        if actions:
            self.save()
        return actions

    @property
    def data(self) -> SenderListsFile:
        return self._data

    def apply_to(self, config: TriageConfig) -> TriageConfig:
        """Return a copy of ``config`` with these lists merged into its allow-lists."""
        vip = self._data.vip
        protected = self._data.protected
        return config.model_validate(
            {
                **config.model_dump(),
                "vip_senders": [*config.vip_senders, *vip.senders],
                "vip_domains": [*config.vip_domains, *vip.domains],
                "protected_senders": [*config.protected_senders, *protected.senders],
                "protected_domains": [*config.protected_domains, *protected.domains],
            }
        )
