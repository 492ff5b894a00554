"""
Validation of rule drafts and updates.

Every write to the rule store goes through these functions first, so an
invalid regular expression or a malformed rule is rejected before it is
ever persisted.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, Dict, Optional, Type, TypeVar

from mailsift.datatypes.rule_datatypes import (
    FilterRule,
    MatchMode,
    MatchType,
    RuleCategory,
    RuleDraft,
    RuleUpdate,
)
from mailsift.errors import RuleValidationError

E = TypeVar("E", bound=Enum)

# A group containing an unbounded repeat that is itself repeated, e.g. (a+)+ or (\w+\s?)*
_ATOM = r"(?:\\.|\[(?:\\.|[^\]\\])*\]|[^()\\\[\]])"
_NESTED_REPEAT = re.compile(r"\(" + _ATOM + r"*[+*]" + _ATOM + r"*\)(?:[+*]|\{\d*,\d*\})")


def is_valid_regex(pattern: str) -> bool:
    """Return True if ``pattern`` compiles as a Python regular expression."""
    try:
        re.compile(pattern)
    except (re.error, RecursionError, OverflowError):
        return False
    return True


def has_nested_repeat(pattern: str) -> bool:
    """Return True if ``pattern`` repeats a group that already repeats without bound.

    Such patterns can backtrack exponentially on a near-miss input, and the
    match engine runs on the event loop with no way to interrupt ``re``.
    """
    return _NESTED_REPEAT.search(pattern) is not None


def _regex_problem(pattern: str) -> Optional[str]:
    if not is_valid_regex(pattern):
        return "Invalid regex pattern"
    if has_nested_repeat(pattern):
        return "Regex repeats a repeated group and can backtrack catastrophically"
    return None


def _coerce_enum(enum_cls: Type[E], value: Any, field: str, details: Dict[str, str]) -> Optional[E]:
    if value is None:
        details[field] = f"{field} is required"
        return None
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        choices = ", ".join(member.value for member in enum_cls)
        details[field] = f"Invalid {field}. Must be one of: {choices}"
        return None


def _check_pattern(pattern: Any, match_mode: Optional[MatchMode], details: Dict[str, str]) -> None:
    if pattern is None:
        details["pattern"] = "Pattern is required"
    elif not isinstance(pattern, str):
        details["pattern"] = "Pattern must be a string"
    elif not pattern.strip():
        details["pattern"] = "Pattern cannot be empty"
    elif match_mode is MatchMode.REGEX:
        problem = _regex_problem(pattern)
        if problem:
            details["pattern"] = problem


def validate_create_rule(draft: RuleDraft) -> RuleDraft:
    """Validate a creation request and return it with enum fields coerced.

    Raises:
        RuleValidationError: With per-field details when anything is wrong.
    """
    details: Dict[str, str] = {}

    category = _coerce_enum(RuleCategory, draft.category, "category", details)
    match_type = _coerce_enum(MatchType, draft.match_type, "match_type", details)
    match_mode = _coerce_enum(MatchMode, draft.match_mode, "match_mode", details)
    _check_pattern(draft.pattern, match_mode, details)

    if not isinstance(draft.enabled, bool):
        details["enabled"] = "Enabled must be a boolean"

    if category is RuleCategory.DYNAMIC:
        if draft.expires_at is None:
            details["expires_at"] = "Dynamic rules require an expiry"
        if not draft.subject_hash:
            details["subject_hash"] = "Dynamic rules require a subject hash"
    elif category is not None and draft.expires_at is not None:
        details["expires_at"] = "Only dynamic rules may expire"

    if details:
        raise RuleValidationError("Validation failed", details)

    return RuleDraft(
        category=category,
        match_type=match_type,
        match_mode=match_mode,
        pattern=draft.pattern,
        enabled=draft.enabled,
        expires_at=draft.expires_at,
        subject_hash=draft.subject_hash,
    )


def validate_update_rule(update: RuleUpdate, existing: FilterRule) -> RuleUpdate:
    """Validate a partial update against the rule it applies to.

    A regex pattern is checked against the effective match mode, so switching
    an existing pattern to ``regex`` also re-validates that pattern.

    Raises:
        RuleValidationError: With per-field details when anything is wrong.
    """
    details: Dict[str, str] = {}

    category = None
    if update.category is not None:
        category = _coerce_enum(RuleCategory, update.category, "category", details)
    match_type = None
    if update.match_type is not None:
        match_type = _coerce_enum(MatchType, update.match_type, "match_type", details)
    match_mode = None
    if update.match_mode is not None:
        match_mode = _coerce_enum(MatchMode, update.match_mode, "match_mode", details)

    effective_mode = match_mode or existing.match_mode
    if update.pattern is not None:
        _check_pattern(update.pattern, effective_mode, details)
    elif match_mode is MatchMode.REGEX:
        problem = _regex_problem(existing.pattern)
        if problem:
            details["pattern"] = problem

    if update.enabled is not None and not isinstance(update.enabled, bool):
        details["enabled"] = "Enabled must be a boolean"

    # Expiry is tied to the dynamic category, which cannot be entered or left by an update
    if category is not None and (category is RuleCategory.DYNAMIC) != (existing.category is RuleCategory.DYNAMIC):
        details["category"] = "Rules cannot be moved into or out of the dynamic category"

    if details:
        raise RuleValidationError("Validation failed", details)

    return RuleUpdate(
        category=category,
        match_type=match_type,
        match_mode=match_mode,
        pattern=update.pattern,
        enabled=update.enabled,
    )
