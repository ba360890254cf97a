"""Async Gmail IMAP client wrapping imap-tools.

imap-tools is synchronous; all public methods use asyncio.to_thread()
for non-blocking operation.

Gmail exposes labels as IMAP folders, so:
  add label  -> COPY into the label folder (created on first use)
  archive    -> MOVE out of INBOX into All Mail
  star       -> \\Flagged
  important  -> COPY into [Gmail]/Important

Usage::

    async with GmailImapClient(account_config) as gmail:
        threads = await gmail.fetch_threads(limit=50)
        await gmail.add_label(threads[0].uid, "Newsletters")
"""

import asyncio
import logging

from imap_tools import AND, NOT, MailBox, MailboxLoginError, MailMessage

from mailtriage.schemas.mailbox import EmailAccountConfig, MailThread
from mailtriage.schemas.triage import MAX_SNIPPET_CHARS

logger = logging.getLogger(__name__)

ALL_MAIL_FOLDER = "[Gmail]/All Mail"
IMPORTANT_FOLDER = "[Gmail]/Important"
STARRED_FLAG = "\\Flagged"
SYSTEM_FOLDER_PREFIX = "[Gmail]/"
TRIAGE_FOLDER_PREFIX = "_Triage"


def _parse_thread(msg: MailMessage, account_email: str, labels: list[str] | None = None) -> MailThread:
    """Convert an imap-tools MailMessage to a MailThread."""
    from_header = msg.from_values.full if msg.from_values else msg.from_
    body = msg.text or msg.html or ""
    return MailThread(
        uid=msg.uid,
        account_email=account_email,
        from_header=from_header,
        subject=msg.subject or "(no subject)",
        snippet=body[:MAX_SNIPPET_CHARS],
        flags=list(msg.flags),
        labels=labels or [],
    )


class GmailImapClient:
    """Async Gmail client implementing the mailbox operations a triage run needs."""

    def __init__(self, config: EmailAccountConfig) -> None:
        self._config = config
        self._mailbox: MailBox | None = None
        # Folder names seen on the server; filled on first label write.
        self._labels: set[str] | None = None

    async def __aenter__(self) -> "GmailImapClient":
        self._mailbox = await asyncio.to_thread(self._connect)
        return self

    async def __aexit__(self, *exc: object) -> None:
        if self._mailbox:
            await asyncio.to_thread(self._disconnect)
            self._mailbox = None
            self._labels = None

    def _connect(self) -> MailBox:
        """Connect, login and select the inbox (sync, called via to_thread)."""
        mb = MailBox(self._config.server, port=self._config.port)
        try:
            mb.login(self._config.email, self._config.password, initial_folder=self._config.inbox)
        except MailboxLoginError:
            logger.error("IMAP login failed for %s", self._config.email)
            raise

        logger.info("Connected to %s as %s", self._config.server, self._config.email)
        return mb

    def _disconnect(self) -> None:
        if self._mailbox:
            try:
                self._mailbox.logout()
            except Exception:
                logger.debug("Error during IMAP logout", exc_info=True)

    @property
    def mailbox(self) -> MailBox:
        if self._mailbox is None:
            raise RuntimeError("GmailImapClient is not connected. Use 'async with' context.")
        return self._mailbox

    # --- Fetch ---

    async def fetch_threads(
        self,
        *,
        limit: int = 0,
        skip_label: str | None = None,
    ) -> list[MailThread]:
        """Fetch unstarred inbox messages not yet carrying ``skip_label``.

        Args:
            limit: Maximum number of messages to fetch (0 = all).
            skip_label: Gmail label marking already-processed threads.

        Returns:
            List of MailThread objects, newest first.
        """

        def _fetch() -> list[MailThread]:
            self.mailbox.folder.set(self._config.inbox)
            if skip_label:
                criteria = AND(NOT(gmail_label=skip_label), flagged=False)
            else:
                criteria = AND(flagged=False)
            msgs = self.mailbox.fetch(
                criteria,
                mark_seen=False,
                reverse=True,
                limit=limit if limit > 0 else None,
            )
            return [_parse_thread(m, self._config.email) for m in msgs]

        return await asyncio.to_thread(_fetch)

    # --- Actions ---

    async def add_label(self, uid: str, label: str) -> None:
        """Apply a Gmail label, creating the label first if it is new."""

        def _do() -> None:
            self._ensure_label(label)
            self.mailbox.copy([uid], label)
            logger.debug("Labeled %s as %s", uid, label)

        await asyncio.to_thread(_do)

    async def star(self, uid: str) -> None:
        def _do() -> None:
            self.mailbox.flag([uid], {STARRED_FLAG}, True)
            logger.debug("Starred %s", uid)

        await asyncio.to_thread(_do)

    async def mark_important(self, uid: str) -> None:
        def _do() -> None:
            self.mailbox.copy([uid], IMPORTANT_FOLDER)

        await asyncio.to_thread(_do)

    async def archive(self, uid: str) -> None:
        def _do() -> None:
            self.mailbox.move([uid], ALL_MAIL_FOLDER)
            logger.debug("Archived %s", uid)

        await asyncio.to_thread(_do)

    # --- Label management ---

    def _known_labels(self) -> set[str]:
        if self._labels is None:
            self._labels = {f.name for f in self.mailbox.folder.list()}
        return self._labels

    def _ensure_label(self, label: str) -> bool:
        """Create ``label`` unless the server already has it (sync). True if created."""
        known = self._known_labels()
        if label in known:
            return False
        self.mailbox.folder.create(label)
        known.add(label)
        logger.info("Created Gmail label: %s", label)
        return True

    async def ensure_labels(self, labels: list[str]) -> list[str]:
        """Create labels that don't exist yet. Returns the names created."""

        def _do() -> list[str]:
            return [label for label in labels if self._ensure_label(label)]

        return await asyncio.to_thread(_do)

    async def list_labels(self) -> list[str]:
        """User labels: every folder except INBOX, ``[Gmail]/...`` and triage bookkeeping."""

        def _do() -> list[str]:
            return sorted(
                name
                for name in self._known_labels()
                if name.upper() != "INBOX"
                and not name.startswith(SYSTEM_FOLDER_PREFIX)
                and not name.startswith(TRIAGE_FOLDER_PREFIX)
            )

        return await asyncio.to_thread(_do)

    async def fetch_labeled(self, label: str, *, limit: int = 0) -> list[MailThread]:
        """Fetch messages carrying ``label`` (newest first), for corpus statistics."""

        def _fetch() -> list[MailThread]:
            self.mailbox.folder.set(label)
            msgs = self.mailbox.fetch(
                AND(all=True),
                mark_seen=False,
                reverse=True,
                limit=limit if limit > 0 else None,
            )
            return [_parse_thread(m, self._config.email, [label]) for m in msgs]

        return await asyncio.to_thread(_fetch)
