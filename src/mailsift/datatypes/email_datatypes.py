"""
Email event and filter decision data structures.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from mailsift.datatypes.rule_datatypes import FilterRule, MatchType, RuleCategory


class FilterAction(Enum):
    """Outcome of a filter decision."""

    FORWARD = "forward"
    DROP = "drop"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class EmailEvent:
    """An incoming email as seen by the edge relay.

    Attributes:
        sender_name: Display name of the sender (may be empty).
        sender_email: Sender address.
        subject: Subject line.
        recipient: Envelope recipient.
        received_at: When the relay received the email (UTC).
    """

    sender_name: str
    sender_email: str
    subject: str
    recipient: str = ""
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def field_value(self, match_type: MatchType) -> str:
        """Return the field a rule of ``match_type`` is evaluated against."""
        if match_type is MatchType.SENDER_NAME:
            return self.sender_name or ""
        if match_type is MatchType.SUBJECT:
            return self.subject or ""
        if match_type is MatchType.SENDER_EMAIL:
            return self.sender_email or ""
        raise ValueError(f"Unknown match type: {match_type!r}")


@dataclass(frozen=True, slots=True)
class Decision:
    """Result of evaluating one email against one rule snapshot."""

    action: FilterAction
    matched_rule: Optional[FilterRule] = None
    matched_category: Optional[RuleCategory] = None
    forward_to: Optional[str] = None
    reason: str = ""

    @property
    def is_default(self) -> bool:
        """True when no rule matched and the default forward applied."""
        return self.matched_rule is None
