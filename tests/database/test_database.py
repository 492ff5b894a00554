"""
Tests for the rule store database layer.

Covers schema creation, serialized transactions, performance monitoring
and maintenance operations.
"""

import tempfile
from pathlib import Path

import aiosqlite
import pytest

from mailsift.database.database import Database
from mailsift.database.db_schema import SCHEMA_VERSION


@pytest.mark.asyncio
async def test_schema_creates_tables(test_db):
    async with test_db.read() as conn:
        cursor = await conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
        tables = {row[0] for row in await cursor.fetchall()}

    assert {"filter_rules", "rule_stats", "global_stats", "dynamic_config", "email_subject_tracker"} <= tables


@pytest.mark.asyncio
async def test_schema_version_recorded(test_db):
    async with test_db.read() as conn:
        cursor = await conn.execute("SELECT MAX(version) FROM schema_version")
        row = await cursor.fetchone()

    assert row[0] == SCHEMA_VERSION


@pytest.mark.asyncio
async def test_initialize_is_idempotent(test_db):
    assert await test_db.initialize() is True
    assert test_db.is_initialized


@pytest.mark.asyncio
async def test_transaction_rolls_back_on_error(test_db):
    with pytest.raises(RuntimeError):
        async with test_db.transaction() as conn:
            await conn.execute("UPDATE global_stats SET total_processed = 99 WHERE id = 1")
            raise RuntimeError("abort")

    async with test_db.read() as conn:
        cursor = await conn.execute("SELECT total_processed FROM global_stats WHERE id = 1")
        row = await cursor.fetchone()
    assert row[0] == 0


@pytest.mark.asyncio
async def test_dynamic_category_requires_expiry_at_schema_level(test_db):
    with pytest.raises(aiosqlite.IntegrityError):
        async with test_db.transaction() as conn:
            await conn.execute(
                "INSERT INTO filter_rules (id, category, match_type, match_mode, pattern, enabled, created_at, updated_at) "
                "VALUES ('x', 'dynamic', 'subject', 'contains', 'p', 1, 0, 0)"
            )


@pytest.mark.asyncio
async def test_performance_monitoring_tracks_timed_blocks(test_db):
    test_db.reset_db_performance_stats()

    with test_db.db_perf_mon.timed("probe"):
        async with test_db.read() as conn:
            await conn.execute("SELECT 1")

    stats = test_db.get_db_performance_stats()
    assert stats["probe"]["count"] == 1
    assert stats["probe"]["total_time"] >= 0
    assert "probe" in test_db.db_perf_mon.get_summary()


@pytest.mark.asyncio
async def test_slow_query_logged(caplog):
    with tempfile.TemporaryDirectory() as tmpdir:
        db = Database(Path(tmpdir) / "slow.db", slow_query_threshold_ms=0.0)
        await db.initialize()
        try:
            db.db_perf_mon.track("slow_probe", 0.5)
        finally:
            await db.shutdown()

    assert any("Slow query: slow_probe" in r.getMessage() for r in caplog.records)


@pytest.mark.asyncio
async def test_vacuum_and_analyze(test_db):
    assert await test_db.analyze() is True
    assert await test_db.vacuum() is True
    assert "VACUUM" in test_db.get_db_performance_stats()


@pytest.mark.asyncio
async def test_initialize_failure_returns_false():
    with tempfile.TemporaryDirectory() as tmpdir:
        blocker = Path(tmpdir) / "not_a_dir"
        blocker.write_text("file in the way")
        db = Database(blocker / "rules.db")

        assert await db.initialize() is False
        assert not db.is_initialized


@pytest.mark.asyncio
async def test_shutdown_is_safe_to_repeat(test_db):
    await test_db.shutdown()
    await test_db.shutdown()
    assert not test_db.is_initialized
