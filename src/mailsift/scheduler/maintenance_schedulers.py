"""Background maintenance jobs of a running engine.

- **SWEEP**: deletes expired dynamic rules and evicts them from the cache
- **CACHE CHECK**: resynchronizes the pattern cache when it reports stale
- **TRACKER PURGE**: drops subject occurrences past the retention horizon
"""

from __future__ import annotations

from typing import List

from mailsift.configuration.app_configuration import AppConfig
from mailsift.filtering.dynamic_rule_manager import DynamicRuleManager
from mailsift.rules_cache.pattern_cache import PatternCache
from mailsift.scheduler.periodic_scheduler import PeriodicScheduler
from mailsift.util.logger import get_logger

logger = get_logger("maintenance_schedulers")


async def refresh_if_stale(cache: PatternCache) -> bool:
    """Refresh ``cache`` only when it reports drift; returns True if a refresh ran."""
    if not cache.is_stale():
        return False
    logger.info("[CACHE CHECK] Pattern cache is stale, refreshing")
    await cache.refresh()
    return True


def build_maintenance_schedulers(
    app_config: AppConfig,
    dynamic_rules: DynamicRuleManager,
    cache: PatternCache,
) -> List[PeriodicScheduler]:
    """Create (but do not start) the engine's periodic jobs."""
    return [
        PeriodicScheduler(
            "SWEEP",
            dynamic_rules.sweep_expired,
            lambda: app_config.sweep_interval,
        ),
        PeriodicScheduler(
            "CACHE CHECK",
            lambda: refresh_if_stale(cache),
            lambda: app_config.cache_check_interval,
        ),
        PeriodicScheduler(
            "TRACKER PURGE",
            dynamic_rules.purge_tracker,
            lambda: app_config.tracker_purge_interval,
        ),
    ]
