import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from mailsift.scheduler.maintenance_schedulers import build_maintenance_schedulers, refresh_if_stale
from mailsift.scheduler.periodic_scheduler import PeriodicScheduler


@pytest.mark.asyncio
async def test_run_once_counts_successes_and_failures():
    job = AsyncMock(side_effect=[None, RuntimeError("boom"), None])
    scheduler = PeriodicScheduler("TEST", job, lambda: 1)

    for _ in range(3):
        await scheduler.run_once()

    assert scheduler.runs == 2
    assert scheduler.failures == 1


@pytest.mark.asyncio
async def test_loop_keeps_running_after_a_failure():
    calls = []
    done = asyncio.Event()

    async def job():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("first run fails")
        if len(calls) >= 3:
            done.set()

    scheduler = PeriodicScheduler("TEST", job, lambda: 0.01)
    scheduler.start()
    await asyncio.wait_for(done.wait(), timeout=2)
    await scheduler.shutdown()

    assert scheduler.failures == 1
    assert scheduler.runs >= 2
    assert not scheduler.is_running


@pytest.mark.asyncio
async def test_start_is_idempotent_and_skips_non_positive_interval():
    job = AsyncMock()
    scheduler = PeriodicScheduler("TEST", job, lambda: 60)
    scheduler.start()
    task = scheduler._task
    scheduler.start()
    assert scheduler._task is task
    await scheduler.shutdown()

    disabled = PeriodicScheduler("OFF", job, lambda: 0)
    disabled.start()
    assert not disabled.is_running


@pytest.mark.asyncio
async def test_shutdown_without_start():
    scheduler = PeriodicScheduler("TEST", AsyncMock(), lambda: 1)
    await scheduler.shutdown()
    assert not scheduler.is_running


@pytest.mark.asyncio
async def test_refresh_if_stale_only_refreshes_stale_cache():
    cache = MagicMock()
    cache.refresh = AsyncMock()

    cache.is_stale.return_value = False
    assert await refresh_if_stale(cache) is False
    cache.refresh.assert_not_awaited()

    cache.is_stale.return_value = True
    assert await refresh_if_stale(cache) is True
    cache.refresh.assert_awaited_once()


def test_maintenance_jobs_use_configured_intervals():
    app_config = MagicMock(sweep_interval=10.0, cache_check_interval=20.0, tracker_purge_interval=30.0)

    schedulers = build_maintenance_schedulers(app_config, MagicMock(), MagicMock())

    assert [s.name for s in schedulers] == ["SWEEP", "CACHE CHECK", "TRACKER PURGE"]
    assert [s._get_interval() for s in schedulers] == [10.0, 20.0, 30.0]
