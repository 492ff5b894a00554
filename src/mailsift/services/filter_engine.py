"""
Snapshot selection for the match path.

``FilterEngine.decide`` picks the rule snapshot an email is evaluated
against: the published cache snapshot when it is fresh, otherwise a direct
read from the rule store. Categories the cache does not mirror are always
read from the store.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from mailsift.datatypes.email_datatypes import Decision, EmailEvent
from mailsift.datatypes.rule_datatypes import RuleCategory
from mailsift.filtering.match_engine import MatchEngine
from mailsift.repositories.rule_repo import RuleRepository
from mailsift.rules_cache.pattern_cache import STATIC_CATEGORIES, PatternCache, RuleSnapshot
from mailsift.util.logger import get_logger

logger = get_logger("filter_engine")


class FilterEngine:
    """Couples the match engine with the cache and its store fallback."""

    def __init__(self, repo: RuleRepository, cache: PatternCache, match_engine: MatchEngine) -> None:
        self._repo = repo
        self._cache = cache
        self.match_engine = match_engine

    async def current_snapshot(self) -> RuleSnapshot:
        """One consistent rule set for a single evaluation.

        Raises:
            StoreUnavailableError: If a store read is needed and fails.
        """
        if self._cache.is_stale():
            self._cache.record_miss()
            logger.debug("[FILTER ENGINE] Cache stale, reading rules from the store")
            return RuleSnapshot.build(await self._repo.find_enabled())

        snapshot = self._cache.snapshot()
        if self._cache.mirror_static:
            self._cache.record_hit()
            return snapshot

        static = []
        for category in STATIC_CATEGORIES:
            static.extend(await self._repo.find_enabled(category))
        self._cache.record_hit()
        return snapshot.merged_with(static)

    async def decide(self, event: EmailEvent, now: Optional[datetime] = None) -> Decision:
        snapshot = await self.current_snapshot()
        return self.match_engine.decide(event, snapshot, now)

    async def rules_for(self, category: RuleCategory):
        """Rules of ``category`` as the match path currently sees them."""
        return (await self.current_snapshot()).get(category)
