"""In-memory mirror of enabled rules, published as immutable snapshots.

The cache never mutates a published snapshot. Every change (load, refresh,
upsert, evict) builds a new :class:`RuleSnapshot` and replaces the single
``_snapshot`` reference, so a reader that grabbed a snapshot keeps a
consistent rule set for the whole evaluation without taking a lock. Writers
serialize on an ``asyncio.Lock``.

The rule store stays the source of truth: when the cache is stale the filter
engine reads the store directly and ``refresh()`` resynchronizes.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from mailsift.datatypes.rule_datatypes import FilterRule, RuleCategory
from mailsift.errors import StoreUnavailableError
from mailsift.filtering.matcher import CompiledRule
from mailsift.repositories.rule_repo import RuleRepository
from mailsift.util.logger import get_logger
from mailsift.util.time_utils import utcnow

logger = get_logger("pattern_cache")

STATIC_CATEGORIES = (RuleCategory.WHITELIST, RuleCategory.BLACKLIST)


@dataclass(frozen=True)
class RuleSnapshot:
    """A point-in-time, immutable view of the enabled rule set.

    Attributes:
        version: Monotonic publish counter of the cache that built it (0 for ad-hoc snapshots).
        loaded_at: When the contents were last synchronized with the store.
        categories: Categories this snapshot is authoritative for.
    """

    rules: Mapping[RuleCategory, Tuple[CompiledRule, ...]] = field(default_factory=dict)
    version: int = 0
    loaded_at: Optional[datetime] = None
    categories: frozenset = frozenset(RuleCategory)

    @classmethod
    def build(
        cls,
        rules: Iterable[FilterRule],
        *,
        version: int = 0,
        loaded_at: Optional[datetime] = None,
        categories: Iterable[RuleCategory] = tuple(RuleCategory),
        compiled: Optional[Mapping[str, CompiledRule]] = None,
    ) -> "RuleSnapshot":
        """Group enabled rules by category in evaluation order.

        ``compiled`` lets a rebuild reuse predicates of unchanged rules.
        """
        categories = frozenset(categories)
        grouped: Dict[RuleCategory, list] = {category: [] for category in RuleCategory}
        for rule in rules:
            if not rule.enabled or rule.category not in categories:
                continue
            previous = compiled.get(rule.id) if compiled else None
            grouped[rule.category].append(
                previous if previous is not None and previous.rule == rule else CompiledRule.compile(rule)
            )
        frozen = {
            category: tuple(sorted(entries, key=lambda entry: entry.rule.sort_key))
            for category, entries in grouped.items()
        }
        return cls(rules=MappingProxyType(frozen), version=version, loaded_at=loaded_at, categories=categories)

    def compiled(self, category: RuleCategory) -> Tuple[CompiledRule, ...]:
        return self.rules.get(category, ())

    def get(self, category: RuleCategory) -> Tuple[FilterRule, ...]:
        """Enabled rules of ``category`` in ascending creation order."""
        return tuple(entry.rule for entry in self.compiled(category))

    def all_rules(self) -> Tuple[FilterRule, ...]:
        return tuple(entry.rule for category in RuleCategory for entry in self.compiled(category))

    def compiled_index(self) -> Dict[str, CompiledRule]:
        return {entry.rule.id: entry for category in RuleCategory for entry in self.compiled(category)}

    def merged_with(self, rules: Iterable[FilterRule]) -> "RuleSnapshot":
        """Ad-hoc snapshot adding ``rules`` for the categories this one does not cover."""
        extra = [rule for rule in rules if rule.category not in self.categories]
        return RuleSnapshot.build(
            list(self.all_rules()) + extra,
            version=self.version,
            loaded_at=self.loaded_at,
            compiled=self.compiled_index(),
        )

    def __len__(self) -> int:
        return sum(len(entries) for entries in self.rules.values())

    def __contains__(self, rule_id: object) -> bool:
        return any(entry.rule.id == rule_id for entries in self.rules.values() for entry in entries)


class PatternCache:
    """
    Snapshot-and-swap mirror of the rule store.

    Lifecycle:
        1. ``PatternCache(repo, mirror_static=True)``
        2. ``await load_from_store()`` at startup
        3. ``upsert()`` / ``evict()`` as dynamic rules come and go
        4. ``refresh()`` whenever ``is_stale()`` reports drift
        5. ``close()`` at shutdown
    """

    def __init__(
        self,
        repo: RuleRepository,
        *,
        mirror_static: bool = True,
        max_age_seconds: Optional[float] = None,
    ) -> None:
        """
        Args:
            repo: Rule store the cache mirrors.
            mirror_static: Also mirror whitelist and blacklist rules, not only dynamic ones.
            max_age_seconds: Snapshot age after which the cache reports itself stale; None disables it.
        """
        self._repo = repo
        self.mirror_static = mirror_static
        self.max_age_seconds = max_age_seconds
        self._categories = frozenset(RuleCategory) if mirror_static else frozenset({RuleCategory.DYNAMIC})

        self._snapshot = RuleSnapshot(categories=self._categories)
        self._write_lock = asyncio.Lock()
        self._version = 0
        self._loaded = False
        self._stale = True
        self._synced_monotonic: Optional[float] = None

        self.hits = 0
        self.misses = 0
        self.load_failures = 0

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def _fetch(self) -> list:
        if self.mirror_static:
            return await self._repo.find_enabled()
        return await self._repo.find_enabled(RuleCategory.DYNAMIC)

    def _publish(self, rules: Iterable[FilterRule], *, loaded_at: Optional[datetime]) -> RuleSnapshot:
        self._version += 1
        snapshot = RuleSnapshot.build(
            rules,
            version=self._version,
            loaded_at=loaded_at,
            categories=self._categories,
            compiled=self._snapshot.compiled_index(),
        )
        self._snapshot = snapshot
        return snapshot

    async def load_from_store(self) -> bool:
        """Populate the cache from the store.

        Never raises: on failure the cache publishes an empty snapshot and
        stays stale so the filter engine reads the store directly.

        Returns:
            True if the store was read successfully.
        """
        async with self._write_lock:
            try:
                rules = await self._fetch()
            except StoreUnavailableError as exc:
                self.load_failures += 1
                logger.error("[PATTERN CACHE] Initial load failed, serving an empty snapshot: %s", exc)
                self._publish((), loaded_at=None)
                self._loaded = True
                self._stale = True
                return False

            snapshot = self._publish(rules, loaded_at=utcnow())
            self._loaded = True
            self._stale = False
            self._synced_monotonic = time.monotonic()

        logger.info(
            "[PATTERN CACHE] Loaded %d rule(s) (version %d, mirror_static=%s)",
            len(snapshot), snapshot.version, self.mirror_static,
        )
        return True

    async def refresh(self) -> bool:
        """Resynchronize with the store.

        On failure the last good snapshot keeps being served and the cache
        stays stale.
        """
        async with self._write_lock:
            try:
                rules = await self._fetch()
            except StoreUnavailableError as exc:
                self.load_failures += 1
                self._stale = True
                logger.warning("[PATTERN CACHE] Refresh failed, keeping version %d: %s", self._snapshot.version, exc)
                return False

            before = len(self._snapshot)
            snapshot = self._publish(rules, loaded_at=utcnow())
            self._loaded = True
            self._stale = False
            self._synced_monotonic = time.monotonic()

        logger.info("[PATTERN CACHE] Refreshed: %d -> %d rule(s) (version %d)", before, len(snapshot), snapshot.version)
        return True

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def snapshot(self) -> RuleSnapshot:
        """The currently published snapshot; never locks."""
        return self._snapshot

    def get(self, category: RuleCategory) -> Tuple[FilterRule, ...]:
        return self._snapshot.get(category)

    def covers(self, category: RuleCategory) -> bool:
        return category in self._categories

    def is_stale(self) -> bool:
        if not self._loaded or self._stale:
            return True
        if self.max_age_seconds is not None and self._synced_monotonic is not None:
            return time.monotonic() - self._synced_monotonic > self.max_age_seconds
        return False

    def mark_stale(self) -> None:
        """Flag out-of-band store changes so the next check resynchronizes."""
        self._stale = True
        logger.debug("[PATTERN CACHE] Marked stale")

    def record_hit(self) -> None:
        self.hits += 1

    def record_miss(self) -> None:
        self.misses += 1

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def upsert(self, rule: FilterRule) -> None:
        """Insert or replace ``rule``; a disabled rule is removed instead."""
        if rule.category not in self._categories:
            return
        async with self._write_lock:
            rules = [existing for existing in self._snapshot.all_rules() if existing.id != rule.id]
            if rule.enabled:
                rules.append(rule)
            snapshot = self._publish(rules, loaded_at=self._snapshot.loaded_at)
        logger.debug("[PATTERN CACHE] Upserted %s rule %s (version %d)", rule.category, rule.id, snapshot.version)

    async def evict(self, rule_id: str) -> bool:
        """Remove ``rule_id``; returns False when it was not cached."""
        async with self._write_lock:
            if rule_id not in self._snapshot:
                return False
            rules = [existing for existing in self._snapshot.all_rules() if existing.id != rule_id]
            snapshot = self._publish(rules, loaded_at=self._snapshot.loaded_at)
        logger.debug("[PATTERN CACHE] Evicted rule %s (version %d)", rule_id, snapshot.version)
        return True

    # ------------------------------------------------------------------
    # Lifecycle / observability
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Drop the published rules. The cache reports stale afterwards."""
        self._snapshot = RuleSnapshot(categories=self._categories)
        self._loaded = False
        self._stale = True
        logger.info("[PATTERN CACHE] Closed")

    def stats(self) -> Dict[str, Any]:
        snapshot = self._snapshot
        return {
            "size": len(snapshot),
            "by_category": {category.value: len(snapshot.compiled(category)) for category in RuleCategory},
            "version": snapshot.version,
            "loaded_at": snapshot.loaded_at,
            "stale": self.is_stale(),
            "mirror_static": self.mirror_static,
            "hits": self.hits,
            "misses": self.misses,
            "load_failures": self.load_failures,
        }
