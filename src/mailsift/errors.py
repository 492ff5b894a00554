"""
Exception hierarchy for the filtering engine.

Repositories translate low-level ``sqlite3``/``aiosqlite`` failures into
:class:`StoreUnavailableError` at their boundary so callers only ever handle
the types defined here.
"""

from __future__ import annotations

from typing import Dict, Optional


class MailsiftError(Exception):
    """Base class for every error raised by mailsift."""


class RuleValidationError(MailsiftError):
    """A rule draft or update failed validation and was not written.

    Attributes:
        details: Mapping of field name to a human readable problem.
    """

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, str]] = None) -> None:
        super().__init__(message)
        self.details: Dict[str, str] = dict(details or {})

    def __str__(self) -> str:
        if not self.details:
            return self.args[0]
        fields = ", ".join(f"{key}: {value}" for key, value in sorted(self.details.items()))
        return f"{self.args[0]} ({fields})"


class DuplicateRuleError(MailsiftError):
    """A rule with the same category, match type, mode and pattern already exists."""


class RuleNotFoundError(MailsiftError):
    """The referenced rule id does not exist."""


class ConfigValidationError(MailsiftError):
    """A dynamic configuration update contained out-of-range values."""

    def __init__(self, message: str, details: Optional[Dict[str, str]] = None) -> None:
        super().__init__(message)
        self.details: Dict[str, str] = dict(details or {})


class StoreUnavailableError(MailsiftError):
    """The backing store could not be reached or the query failed."""
