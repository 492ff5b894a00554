"""
Rule predicates.

A :class:`CompiledRule` pairs a rule with the predicate evaluating it, built
once per cache snapshot so the match path never recompiles a regex.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Optional

from mailsift.datatypes.rule_datatypes import FilterRule, MatchMode
from mailsift.util.logger import get_logger

logger = get_logger("matcher")

Predicate = Callable[[str], bool]


def _contains_predicate(pattern: str) -> Predicate:
    needle = pattern.casefold()
    return lambda value: needle in value.casefold()


def _regex_predicate(pattern: str) -> Predicate:
    compiled = re.compile(pattern, re.IGNORECASE)
    return lambda value: compiled.fullmatch(value) is not None


def build_predicate(rule: FilterRule) -> Predicate:
    """Build the predicate for ``rule``.

    Raises:
        re.error: If a regex rule does not compile.
    """
    if rule.match_mode is MatchMode.REGEX:
        return _regex_predicate(rule.pattern)
    return _contains_predicate(rule.pattern)


@dataclass(frozen=True, slots=True)
class CompiledRule:
    """A rule plus its prebuilt predicate.

    ``predicate`` is None when the pattern failed to compile; such a rule
    never matches.
    """

    rule: FilterRule
    predicate: Optional[Predicate]
    compile_error: Optional[str] = None

    @classmethod
    def compile(cls, rule: FilterRule) -> "CompiledRule":
        try:
            return cls(rule=rule, predicate=build_predicate(rule))
        except (re.error, RecursionError, OverflowError) as exc:
            logger.warning("[MATCHER] Rule %s has an uncompilable pattern %r: %s", rule.id, rule.pattern, exc)
            return cls(rule=rule, predicate=None, compile_error=str(exc))

