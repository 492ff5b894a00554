"""
Rule evaluation for a single email.

Evaluation order is fixed: whitelist rules first (a match forwards and
short-circuits), then blacklist and dynamic rules (a match drops), then the
default forward. Inside a category the oldest rule wins.

The engine is side-effect free apart from its error counter; recording stats
and touching ``last_hit_at`` is the caller's job.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional, Tuple, Union

from mailsift.datatypes.email_datatypes import Decision, EmailEvent, FilterAction
from mailsift.datatypes.rule_datatypes import FilterRule, RuleCategory
from mailsift.filtering.matcher import CompiledRule
from mailsift.rules_cache.pattern_cache import RuleSnapshot
from mailsift.util.logger import get_logger
from mailsift.util.time_utils import ensure_aware

logger = get_logger("match_engine")

_CATEGORY_ACTIONS: Tuple[Tuple[RuleCategory, FilterAction], ...] = (
    (RuleCategory.WHITELIST, FilterAction.FORWARD),
    (RuleCategory.BLACKLIST, FilterAction.DROP),
    (RuleCategory.DYNAMIC, FilterAction.DROP),
)


class MatchEngine:
    """Decides forward/drop for an email against one rule snapshot."""

    def __init__(self, default_forward_to: str = "") -> None:
        self.default_forward_to = default_forward_to
        self.match_errors = 0

    def _matches(self, entry: CompiledRule, event: EmailEvent) -> bool:
        if entry.predicate is None:
            self.match_errors += 1
            return False
        try:
            return entry.predicate(event.field_value(entry.rule.match_type))
        except Exception as exc:
            # A broken rule is skipped; it never fails the evaluation
            self.match_errors += 1
            logger.warning("[MATCH ENGINE] Rule %s raised during evaluation: %s", entry.rule.id, exc)
            return False

    def decide(
        self,
        event: EmailEvent,
        rules: Union[RuleSnapshot, Iterable[FilterRule]],
        now: Optional[datetime] = None,
    ) -> Decision:
        """Evaluate ``event`` against ``rules``.

        Args:
            event: The incoming email.
            rules: A published snapshot, or plain rules to build an ad-hoc one from.
            now: Reference time for skipping dynamic rules that expired but
                were not swept yet; defaults to the event's receive time.
        """
        snapshot = rules if isinstance(rules, RuleSnapshot) else RuleSnapshot.build(rules)
        now = ensure_aware(now or event.received_at)

        for category, action in _CATEGORY_ACTIONS:
            for entry in snapshot.compiled(category):
                rule = entry.rule
                if not rule.enabled or rule.is_expired(now):
                    continue
                if self._matches(entry, event):
                    logger.debug(
                        "[MATCH ENGINE] %s matched %s rule %s (%s %s %r)",
                        action, category, rule.id, rule.match_type, rule.match_mode, rule.pattern,
                    )
                    return Decision(
                        action=action,
                        matched_rule=rule,
                        matched_category=category,
                        forward_to=self.default_forward_to if action is FilterAction.FORWARD else None,
                        reason=f"{category.value} rule {rule.id}",
                    )

        return Decision(
            action=FilterAction.FORWARD,
            forward_to=self.default_forward_to,
            reason="no rule matched",
        )
