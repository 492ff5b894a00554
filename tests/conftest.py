"""
Pytest configuration and fixtures for mailsift tests.
"""

import os
import sys
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import pytest_asyncio
import yaml

# Keep session log files out of the working tree
os.environ.setdefault("MAILSIFT_LOGS_DIR", tempfile.mkdtemp(prefix="mailsift-test-logs-"))

# Add src directory to path so imports work
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from mailsift.configuration.app_configuration import AppConfig  # noqa: E402
from mailsift.configuration.dynamic_config_store import DynamicConfigStore  # noqa: E402
from mailsift.database.database import Database  # noqa: E402
from mailsift.datatypes.rule_datatypes import FilterRule, MatchMode, MatchType, RuleCategory  # noqa: E402
from mailsift.engine import MailsiftEngine  # noqa: E402
from mailsift.filtering.dynamic_rule_manager import DynamicRuleManager  # noqa: E402
from mailsift.filtering.subject_tracker import SubjectBurstTracker  # noqa: E402
from mailsift.repositories.rule_repo import RuleRepository  # noqa: E402
from mailsift.rules_cache.pattern_cache import PatternCache  # noqa: E402

BASE_TIME = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def base_time() -> datetime:
    return BASE_TIME


@pytest.fixture
def make_rule():
    """Build in-memory FilterRule records; ``age`` orders them oldest first."""
    counter = {"n": 0}

    def _make(
        category=RuleCategory.BLACKLIST,
        match_type=MatchType.SUBJECT,
        match_mode=MatchMode.CONTAINS,
        pattern="pattern",
        *,
        enabled=True,
        rule_id=None,
        created_at=None,
        expires_at=None,
        subject_hash=None,
    ) -> FilterRule:
        counter["n"] += 1
        created = created_at or BASE_TIME + timedelta(seconds=counter["n"])
        if category is RuleCategory.DYNAMIC and expires_at is None:
            expires_at = BASE_TIME + timedelta(days=365)
        return FilterRule(
            id=rule_id or f"rule-{counter['n']:03d}",
            category=category,
            match_type=match_type,
            match_mode=match_mode,
            pattern=pattern,
            enabled=enabled,
            created_at=created,
            updated_at=created,
            expires_at=expires_at,
            subject_hash=subject_hash,
        )

    return _make


@pytest_asyncio.fixture
async def test_db():
    """Create a temporary test database."""
    with tempfile.TemporaryDirectory() as tmpdir:
        db = Database(Path(tmpdir) / "test.db")
        assert await db.initialize()
        yield db
        await db.shutdown()


@pytest.fixture
def rule_repo(test_db) -> RuleRepository:
    return RuleRepository(test_db)


@pytest.fixture
def tracker(test_db) -> SubjectBurstTracker:
    return SubjectBurstTracker(test_db)


@pytest.fixture
def config_store(test_db) -> DynamicConfigStore:
    return DynamicConfigStore(test_db)


@pytest_asyncio.fixture
async def pattern_cache(rule_repo):
    cache = PatternCache(rule_repo)
    await cache.load_from_store()
    yield cache
    cache.close()


@pytest.fixture
def manager(rule_repo, tracker, pattern_cache, config_store) -> DynamicRuleManager:
    return DynamicRuleManager(rule_repo, tracker, pattern_cache, config_store)


@pytest.fixture
def app_config_factory(tmp_path, monkeypatch):
    """Write an app_config.yml under ``tmp_path`` and load it."""
    monkeypatch.delenv("MAILSIFT_DB_PATH", raising=False)
    monkeypatch.delenv("MAILSIFT_DEFAULT_FORWARD_TO", raising=False)

    def _make(**sections) -> AppConfig:
        payload = {
            "database": {"path": str(tmp_path / "engine.db")},
            "default_forward_to": "inbox@example.com",
            "cache": {"mirror_static_rules": True, "max_age_seconds": 300},
        }
        payload.update(sections)
        path = tmp_path / "app_config.yml"
        path.write_text(yaml.safe_dump(payload), encoding="utf-8")
        return AppConfig(path)

    return _make


@pytest_asyncio.fixture
async def engine_factory(app_config_factory):
    """Build engines with a loaded cache; background schedulers are not started."""
    engines = []

    async def _make(**sections) -> MailsiftEngine:
        engine = await MailsiftEngine.create(app_config_factory(**sections))
        await engine.cache.load_from_store()
        engines.append(engine)
        return engine

    yield _make
    for engine in engines:
        await engine.shutdown()
