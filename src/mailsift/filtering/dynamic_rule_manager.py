"""
Burst promotion and expiry of dynamic rules.

Every processed email is reported through :meth:`DynamicRuleManager.on_email_seen`.
When a normalized subject shows up ``threshold_count`` times inside the
configured window, a time-limited ``dynamic`` rule matching that subject is
written to the rule store and published to the pattern cache.

Promotion is idempotent per subject hash:
    - inside a process, promotions for one hash serialize on an ``asyncio.Lock``
    - across processes, the existence check and the insert share one
      ``BEGIN IMMEDIATE`` transaction, backed by a partial unique index
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from mailsift.configuration.dynamic_config_store import DynamicConfigStore
from mailsift.datatypes.dynamic_config import DynamicConfig
from mailsift.datatypes.rule_datatypes import FilterRule, MatchMode, MatchType, RuleCategory, RuleDraft
from mailsift.errors import MailsiftError
from mailsift.filtering.burst_detection import is_burst
from mailsift.filtering.subject_normalizer import strip_prefixes
from mailsift.filtering.subject_tracker import SubjectBurstTracker
from mailsift.repositories.rule_repo import RuleRepository
from mailsift.rules_cache.pattern_cache import PatternCache
from mailsift.util.logger import get_logger
from mailsift.util.time_utils import ensure_aware, utcnow

logger = get_logger("dynamic_rule_manager")


class DynamicRuleManager:
    """Turns subject bursts into dynamic rules and sweeps them once expired."""

    def __init__(
        self,
        repo: RuleRepository,
        tracker: SubjectBurstTracker,
        cache: PatternCache,
        config_store: DynamicConfigStore,
        *,
        tracker_retention_hours: float = 24,
    ) -> None:
        self._repo = repo
        self._tracker = tracker
        self._cache = cache
        self._config_store = config_store
        self.tracker_retention_hours = tracker_retention_hours

        self._hash_locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

        self.promotions = 0
        self.promotion_failures = 0
        self.swept = 0
        self.last_promotion_at: Optional[datetime] = None
        self.last_sweep_at: Optional[datetime] = None
        self.last_purge_at: Optional[datetime] = None

    async def on_email_seen(self, subject_hash: str, subject: str, at: datetime) -> Optional[FilterRule]:
        """Record one occurrence and promote the subject if it is bursting.

        Returns:
            The newly created dynamic rule, or None (no burst, detection
            disabled, already covered, or the write failed).

        Raises:
            StoreUnavailableError: If the occurrence itself could not be recorded.
        """
        at = ensure_aware(at)
        await self._tracker.record(subject_hash, subject, at)

        config = await self._config_store.get()
        if not config.enabled:
            return None

        count = await self._tracker.count_in_window(subject_hash, config.time_window_minutes, at)
        if count < config.threshold_count:
            return None

        timestamps = None
        if config.time_span_threshold_minutes is not None:
            timestamps = await self._tracker.timestamps_in_window(subject_hash, config.time_window_minutes, at)
        if not is_burst(count, config, timestamps):
            logger.debug("[DYNAMIC RULES] %r reached %d but spread over too long a time span", subject, count)
            return None

        pattern = strip_prefixes(subject)
        if not pattern:
            return None

        async with self._hash_locks[subject_hash]:
            try:
                existing = await self._repo.find_active_dynamic(subject_hash, at)
                if existing is not None:
                    await self._repo.update_last_hit(existing.id, at)
                    await self.extend_on_hit(existing, at, config)
                    return None

                draft = RuleDraft(
                    category=RuleCategory.DYNAMIC,
                    match_type=MatchType.SUBJECT,
                    match_mode=MatchMode.CONTAINS,
                    pattern=pattern,
                    expires_at=at + timedelta(hours=config.expiration_hours),
                    subject_hash=subject_hash,
                )
                rule, created = await self._repo.create_dynamic_if_absent(draft, at)
            except MailsiftError as exc:
                # The occurrence stays recorded, so the next qualifying email retries
                self.promotion_failures += 1
                logger.error("[DYNAMIC RULES] Failed to promote %r: %s", pattern, exc)
                return None

            if not created:
                return None

            # An expired, unswept predecessor was replaced in the store
            for previous in self._cache.get(RuleCategory.DYNAMIC):
                if previous.subject_hash == subject_hash and previous.id != rule.id:
                    await self._cache.evict(previous.id)
            await self._cache.upsert(rule)

        self.promotions += 1
        self.last_promotion_at = utcnow()
        logger.info(
            "[DYNAMIC RULES] Promoted %r after %d occurrence(s) in %d minute(s); rule %s expires %s",
            pattern, count, config.time_window_minutes, rule.id, rule.expires_at.isoformat(),
        )
        return rule

    async def extend_on_hit(
        self, rule: FilterRule, at: datetime, config: Optional[DynamicConfig] = None
    ) -> Optional[FilterRule]:
        """Keep a dynamic rule that is still being hit alive.

        With ``last_hit_threshold_hours`` set, the rule's expiry becomes at
        least ``at`` plus that many hours and the cache gets the new copy.

        Returns:
            The extended rule, or None when nothing changed.

        Raises:
            StoreUnavailableError: If the store could not be updated.
        """
        if rule.category is not RuleCategory.DYNAMIC:
            return None
        config = config or await self._config_store.get()
        if config.last_hit_threshold_hours is None:
            return None

        target = ensure_aware(at) + timedelta(hours=config.last_hit_threshold_hours)
        if rule.expires_at is not None and rule.expires_at >= target:
            return None
        if not await self._repo.extend_expiry(rule.id, target):
            return None

        extended = await self._repo.find_by_id(rule.id)
        if extended is not None:
            await self._cache.upsert(extended)
            logger.debug("[DYNAMIC RULES] Rule %s extended to %s", rule.id, target.isoformat())
        return extended

    async def sweep_expired(self, now: Optional[datetime] = None) -> List[str]:
        """Delete dynamic rules whose expiry has passed and evict them from the cache.

        Works from a point-in-time list of expired rules and deletes each one
        only if its stored expiry is still in the past, so a rule extended or
        re-created after the list was taken survives.

        Returns:
            Ids of the rules actually deleted. Store errors are logged and an
            empty or partial list is returned; the next sweep retries.
        """
        now = ensure_aware(now or utcnow())
        try:
            expired = await self._repo.find_expired_dynamic(now)
        except MailsiftError as exc:
            logger.error("[DYNAMIC RULES] Sweep could not list expired rules: %s", exc)
            return []

        deleted: List[str] = []
        for rule in expired:
            try:
                removed = await self._repo.delete_if_expired(rule.id, now)
            except MailsiftError as exc:
                logger.error("[DYNAMIC RULES] Sweep could not delete rule %s: %s", rule.id, exc)
                continue
            if removed:
                deleted.append(rule.id)
                await self._cache.evict(rule.id)

        self.swept += len(deleted)
        self.last_sweep_at = now
        if deleted:
            logger.info("[DYNAMIC RULES] Swept %d expired dynamic rule(s)", len(deleted))
        return deleted

    async def purge_tracker(self, now: Optional[datetime] = None) -> int:
        """Delete tracker rows older than the retention horizon.

        The horizon never drops below twice the detection window so a purge
        cannot shrink a window count.
        """
        now = ensure_aware(now or utcnow())
        try:
            config = await self._config_store.get()
            retention = max(
                timedelta(hours=self.tracker_retention_hours),
                timedelta(minutes=2 * config.time_window_minutes),
            )
            purged = await self._tracker.purge_older_than(now - retention)
        except MailsiftError as exc:
            logger.error("[DYNAMIC RULES] Tracker purge failed: %s", exc)
            return 0
        self.last_purge_at = now

        for key, lock in list(self._hash_locks.items()):
            if not lock.locked():
                del self._hash_locks[key]
        return purged

    def stats(self) -> Dict[str, Any]:
        return {
            "promotions": self.promotions,
            "promotion_failures": self.promotion_failures,
            "swept": self.swept,
            "last_promotion_at": self.last_promotion_at,
            "last_sweep_at": self.last_sweep_at,
            "last_purge_at": self.last_purge_at,
        }
