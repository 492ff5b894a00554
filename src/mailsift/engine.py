"""
Composition of a running filtering engine.

``MailsiftEngine.create`` wires the rule store, cache, burst detection and
orchestration together from an :class:`AppConfig`; ``start`` loads the cache
and launches the maintenance schedulers; ``shutdown`` reverses both.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from mailsift.configuration.app_configuration import AppConfig
from mailsift.configuration.dynamic_config_store import DynamicConfigStore
from mailsift.database.database import Database
from mailsift.errors import StoreUnavailableError
from mailsift.filtering.dynamic_rule_manager import DynamicRuleManager
from mailsift.filtering.match_engine import MatchEngine
from mailsift.filtering.subject_tracker import SubjectBurstTracker
from mailsift.repositories.rule_repo import RuleRepository
from mailsift.repositories.rule_stats_repo import StatsRecorder
from mailsift.rules_cache.pattern_cache import PatternCache
from mailsift.scheduler.maintenance_schedulers import build_maintenance_schedulers
from mailsift.scheduler.periodic_scheduler import PeriodicScheduler
from mailsift.services.email_service import EmailService
from mailsift.services.filter_engine import FilterEngine
from mailsift.util.logger import get_logger

logger = get_logger("engine")


@dataclass
class MailsiftEngine:
    """Every long-lived component of one engine process."""

    app_config: AppConfig
    database: Database
    rules: RuleRepository
    tracker: SubjectBurstTracker
    dynamic_config: DynamicConfigStore
    stats: StatsRecorder
    cache: PatternCache
    match_engine: MatchEngine
    dynamic_rules: DynamicRuleManager
    filter_engine: FilterEngine
    email_service: EmailService
    schedulers: List[PeriodicScheduler] = field(default_factory=list)

    @classmethod
    async def create(cls, app_config: AppConfig) -> "MailsiftEngine":
        """Open the database and build the components.

        Raises:
            StoreUnavailableError: If the database cannot be initialized.
        """
        database = Database(app_config.database_path)
        if not await database.initialize():
            raise StoreUnavailableError(f"Could not initialize database at {app_config.database_path}")

        rules = RuleRepository(database)
        tracker = SubjectBurstTracker(database)
        dynamic_config = DynamicConfigStore(database)
        stats = StatsRecorder(database)
        cache = PatternCache(
            rules,
            mirror_static=app_config.mirror_static_rules,
            max_age_seconds=app_config.cache_max_age,
        )
        match_engine = MatchEngine(default_forward_to=app_config.default_forward_to)
        dynamic_rules = DynamicRuleManager(
            rules,
            tracker,
            cache,
            dynamic_config,
            tracker_retention_hours=app_config.tracker_retention_hours,
        )
        filter_engine = FilterEngine(rules, cache, match_engine)
        email_service = EmailService(
            filter_engine,
            rules,
            stats,
            dynamic_rules,
            track_only_unmatched=app_config.track_only_unmatched,
        )
        return cls(
            app_config=app_config,
            database=database,
            rules=rules,
            tracker=tracker,
            dynamic_config=dynamic_config,
            stats=stats,
            cache=cache,
            match_engine=match_engine,
            dynamic_rules=dynamic_rules,
            filter_engine=filter_engine,
            email_service=email_service,
            schedulers=build_maintenance_schedulers(app_config, dynamic_rules, cache),
        )

    async def start(self) -> None:
        """Load the cache and start the background jobs."""
        if not await self.cache.load_from_store():
            logger.warning("[ENGINE] Starting with an empty pattern cache; rules are read from the store")
        for scheduler in self.schedulers:
            scheduler.start()
        logger.info("[ENGINE] Engine started with %d scheduler(s)", len(self.schedulers))

    async def shutdown(self) -> None:
        for scheduler in self.schedulers:
            try:
                await scheduler.shutdown()
            except Exception as exc:
                logger.exception("[ENGINE] Error stopping scheduler %s: %s", scheduler.name, exc)
        await self.email_service.shutdown()
        self.cache.close()
        await self.database.shutdown()
        logger.info("[ENGINE] Engine shutdown complete")
