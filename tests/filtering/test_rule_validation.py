from datetime import datetime, timezone

import pytest

from mailsift.datatypes.rule_datatypes import MatchMode, MatchType, RuleCategory, RuleDraft, RuleUpdate
from mailsift.errors import RuleValidationError
from mailsift.filtering.rule_validation import (
    has_nested_repeat,
    is_valid_regex,
    validate_create_rule,
    validate_update_rule,
)


def _draft(**overrides) -> RuleDraft:
    values = dict(
        category=RuleCategory.BLACKLIST,
        match_type=MatchType.SUBJECT,
        match_mode=MatchMode.CONTAINS,
        pattern="winner",
    )
    values.update(overrides)
    return RuleDraft(**values)


def test_is_valid_regex():
    assert is_valid_regex(r"^[a-z]+@example\.com$")
    assert not is_valid_regex("(unclosed")
    assert not is_valid_regex("[z-a]")


def test_create_coerces_string_enums():
    draft = validate_create_rule(_draft(category="whitelist", match_type="sender_email", match_mode="regex", pattern=r".*@co\.com"))

    assert draft.category is RuleCategory.WHITELIST
    assert draft.match_type is MatchType.SENDER_EMAIL
    assert draft.match_mode is MatchMode.REGEX


def test_create_rejects_invalid_regex():
    with pytest.raises(RuleValidationError) as exc_info:
        validate_create_rule(_draft(match_mode=MatchMode.REGEX, pattern="(unclosed"))

    assert exc_info.value.details == {"pattern": "Invalid regex pattern"}


@pytest.mark.parametrize("pattern", ["", "   ", None])
def test_create_rejects_empty_patterns(pattern):
    with pytest.raises(RuleValidationError) as exc_info:
        validate_create_rule(_draft(pattern=pattern))

    assert "pattern" in exc_info.value.details


def test_create_rejects_unknown_enum_values():
    with pytest.raises(RuleValidationError) as exc_info:
        validate_create_rule(_draft(category="greylist", match_mode="glob"))

    assert set(exc_info.value.details) == {"category", "match_mode"}
    assert "whitelist, blacklist, dynamic" in exc_info.value.details["category"]


def test_dynamic_rules_require_expiry_and_hash():
    with pytest.raises(RuleValidationError) as exc_info:
        validate_create_rule(_draft(category=RuleCategory.DYNAMIC))

    assert set(exc_info.value.details) == {"expires_at", "subject_hash"}


def test_static_rules_cannot_expire():
    with pytest.raises(RuleValidationError) as exc_info:
        validate_create_rule(_draft(expires_at=datetime(2030, 1, 1, tzinfo=timezone.utc)))

    assert "expires_at" in exc_info.value.details


def test_validation_error_message_lists_fields():
    with pytest.raises(RuleValidationError) as exc_info:
        validate_create_rule(_draft(pattern=" "))

    assert "pattern: Pattern cannot be empty" in str(exc_info.value)


def test_update_revalidates_existing_pattern_when_switching_to_regex(make_rule):
    existing = make_rule(match_mode=MatchMode.CONTAINS, pattern="50% off (today")

    with pytest.raises(RuleValidationError):
        validate_update_rule(RuleUpdate(match_mode=MatchMode.REGEX), existing)


def test_update_checks_new_pattern_against_existing_mode(make_rule):
    existing = make_rule(match_mode=MatchMode.REGEX, pattern=r"win+er")

    with pytest.raises(RuleValidationError):
        validate_update_rule(RuleUpdate(pattern="[broken"), existing)

    update = validate_update_rule(RuleUpdate(pattern=r"lott(o|ery)"), existing)
    assert update.pattern == r"lott(o|ery)"


def test_update_cannot_move_rule_into_dynamic(make_rule):
    existing = make_rule(category=RuleCategory.BLACKLIST)

    with pytest.raises(RuleValidationError) as exc_info:
        validate_update_rule(RuleUpdate(category="dynamic"), existing)

    assert "category" in exc_info.value.details


def test_update_between_static_categories_is_allowed(make_rule):
    existing = make_rule(category=RuleCategory.BLACKLIST)

    update = validate_update_rule(RuleUpdate(category="whitelist"), existing)

    assert update.category is RuleCategory.WHITELIST


@pytest.mark.parametrize("pattern", [r"(a+)+$", r"^(\w+\s?)*$", r"(?:x*)*y", r"(ab+c){2,}"])
def test_nested_repeats_are_flagged(pattern):
    assert has_nested_repeat(pattern)


@pytest.mark.parametrize("pattern", [r"win+er", r"(a|b)+", r"([+*]\d)+", r"(a+){2}", r"\(a+\)+", r".*@co\.com"])
def test_bounded_or_flat_repeats_are_allowed(pattern):
    assert not has_nested_repeat(pattern)


def test_create_rejects_catastrophic_regex():
    with pytest.raises(RuleValidationError) as exc_info:
        validate_create_rule(_draft(match_mode=MatchMode.REGEX, pattern=r"^(a+)+$"))

    assert "backtrack" in exc_info.value.details["pattern"]
    # The same text is harmless as a substring
    validate_create_rule(_draft(pattern=r"^(a+)+$"))


def test_update_rejects_switching_catastrophic_pattern_to_regex(make_rule):
    rule = make_rule(pattern=r"(x*)*y")

    with pytest.raises(RuleValidationError):
        validate_update_rule(RuleUpdate(match_mode=MatchMode.REGEX), rule)
