"""Schemas for persistent VIP / protected sender lists.

VIP senders are always starred; protected senders are always kept in the
inbox. Both bypass historical scoring and the rule-based fallback.
"""

from pydantic import BaseModel, Field

LIST_NAMES = ("vip", "protected")


class SenderList(BaseModel):
    """Exact addresses and bare domains for one list."""

    description: str = ""
    senders: list[str] = Field(default_factory=list)
    domains: list[str] = Field(default_factory=list)


class SenderListsFile(BaseModel):
    """Top-level schema for the sender_lists.json file."""

    vip: SenderList = Field(default_factory=lambda: SenderList(description="Always starred."))
    protected: SenderList = Field(
        default_factory=lambda: SenderList(description="Always kept in the inbox.")
    )
