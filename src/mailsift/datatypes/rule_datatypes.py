"""
Rule types and data structures for the filtering engine.

This module defines the enums describing a rule (category, match type and
match mode), the persisted :class:`FilterRule` record and the DTOs used to
create and update rules.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class RuleCategory(Enum):
    """Which list a rule belongs to. Evaluation order follows declaration order."""

    WHITELIST = "whitelist"
    BLACKLIST = "blacklist"
    DYNAMIC = "dynamic"

    def __str__(self) -> str:
        return self.value


class MatchType(Enum):
    """Which email field a rule is evaluated against."""

    SENDER_NAME = "sender_name"
    SUBJECT = "subject"
    SENDER_EMAIL = "sender_email"

    def __str__(self) -> str:
        return self.value


class MatchMode(Enum):
    """How the pattern is compared with the selected field."""

    REGEX = "regex"
    CONTAINS = "contains"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class FilterRule:
    """A persisted filter rule.

    Instances are immutable so a published cache snapshot can never be
    modified by a reader.

    Attributes:
        id: Unique rule identifier (uuid4 hex).
        category: Whitelist, blacklist or dynamic.
        match_type: Email field the pattern is applied to.
        match_mode: ``contains`` (case-insensitive substring) or ``regex``.
        pattern: The pattern text.
        enabled: Disabled rules are never evaluated.
        created_at: Creation time (UTC); defines the evaluation order.
        updated_at: Last modification time (UTC).
        last_hit_at: Last time the rule decided an email, if ever.
        expires_at: Expiry time, set for dynamic rules only.
        subject_hash: Normalized subject key a dynamic rule was promoted from.
    """

    id: str
    category: RuleCategory
    match_type: MatchType
    match_mode: MatchMode
    pattern: str
    enabled: bool
    created_at: datetime
    updated_at: datetime
    last_hit_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    subject_hash: Optional[str] = None

    @property
    def sort_key(self) -> tuple:
        """Ascending creation order, ties broken by id."""
        return (self.created_at, self.id)

    def is_expired(self, now: datetime) -> bool:
        """Return True if this rule carries an expiry that has been reached."""
        return self.expires_at is not None and now >= self.expires_at


@dataclass(slots=True)
class RuleDraft:
    """Creation request for a new rule."""

    category: RuleCategory
    match_type: MatchType
    match_mode: MatchMode
    pattern: str
    enabled: bool = True
    expires_at: Optional[datetime] = None
    subject_hash: Optional[str] = None


@dataclass(slots=True)
class RuleUpdate:
    """Partial update of an existing rule; ``None`` fields are left untouched."""

    category: Optional[RuleCategory] = None
    match_type: Optional[MatchType] = None
    match_mode: Optional[MatchMode] = None
    pattern: Optional[str] = None
    enabled: Optional[bool] = None

    def is_empty(self) -> bool:
        return all(
            value is None
            for value in (self.category, self.match_type, self.match_mode, self.pattern, self.enabled)
        )


@dataclass(slots=True)
class RuleStats:
    """Per-rule counters kept by the stats recorder."""

    rule_id: str
    total_processed: int = 0
    deleted_count: int = 0
    last_updated: Optional[datetime] = None
