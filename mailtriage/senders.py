"""Sender address helpers: normalization, allow-list matching, hashing.

Domain matching is a plain suffix test on ``"@" + domain``. It is not an
RFC 5322 parse, so a crafted local part (``"x@evil.com@alaska.edu"``
style headers that survive extraction) is not defended against.
"""

import base64
import hashlib
import hmac
import re
from collections.abc import Iterable

_ANGLE_ADDR_RE = re.compile(r"<(.+?)>")

# Length of the truncated base64 HMAC used as a sender lookup key.
SENDER_HASH_CHARS = 10


def normalize_sender(raw: str) -> str:
    """Extract a lowercase address from a From header.

    ``"Jane Doe <Jane@Example.edu>"`` -> ``"jane@example.edu"``. Input without
    an angle-bracketed address is lowercased whole. Best effort, not a
    validator.
    """
    match = _ANGLE_ADDR_RE.search(raw)
    if match:
        return match.group(1).strip().lower()
    return raw.strip().lower()


def sender_domain(address: str) -> str:
    """Return the part after the last ``@``, or ``""`` if there is none."""
    _, at, domain = address.rpartition("@")
    return domain.lower() if at else ""


def matches(address: str, senders: Iterable[str], domains: Iterable[str]) -> bool:
    """True if address is one of ``senders`` or ends with ``"@" + domain``."""
    address = address.lower()
    if any(address == s.lower() for s in senders):
        return True
    return any(address.endswith("@" + d.lower()) for d in domains)


def hash_sender(address: str, salt: str) -> str | None:
    """Privacy-preserving lookup key for a sender address.

    HMAC-SHA256 of the normalized address, URL-safe base64, truncated.
    Returns None when the address has no ``@``.
    """
    address = normalize_sender(address)
    if "@" not in address:
        return None
    digest = hmac.new(salt.encode(), address.encode(), hashlib.sha256).digest()
    return base64.urlsafe_b64encode(digest).decode()[:SENDER_HASH_CHARS]
