"""
Subject occurrence tracking for burst detection.

Occurrences are appended to ``email_subject_tracker`` and every count is
recomputed from the stored rows, so several engine processes sharing one
database see the same numbers.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List

import aiosqlite

from mailsift.database.database import Database
from mailsift.errors import StoreUnavailableError
from mailsift.filtering.burst_detection import window_bounds
from mailsift.repositories.subject_tracker_repo import SubjectCount, SubjectTrackerRepo
from mailsift.util.logger import get_logger
from mailsift.util.time_utils import from_epoch, to_epoch

logger = get_logger("subject_tracker")


class SubjectBurstTracker:
    """Records subject occurrences and answers windowed count queries."""

    def __init__(self, database: Database) -> None:
        self._db = database

    @asynccontextmanager
    async def _guard(self, query_name: str) -> AsyncIterator[None]:
        with self._db.db_perf_mon.timed(query_name):
            try:
                yield
            except (aiosqlite.Error, RuntimeError, ValueError) as exc:
                logger.error("[SUBJECT TRACKER] %s failed: %s", query_name, exc)
                raise StoreUnavailableError(f"{query_name} failed: {exc}") from exc

    async def record(self, subject_hash: str, subject: str, at: datetime) -> None:
        async with self._guard("record_subject"):
            async with self._db.transaction() as conn:
                await SubjectTrackerRepo.insert(conn, subject_hash, subject, to_epoch(at))

    async def count_in_window(self, subject_hash: str, window_minutes: int, at: datetime) -> int:
        """Occurrences of ``subject_hash`` with ``at - window <= received_at <= at``."""
        start, end = window_bounds(at, window_minutes)
        async with self._guard("count_subject_window"):
            async with self._db.read() as conn:
                return await SubjectTrackerRepo.count_between(conn, subject_hash, to_epoch(start), to_epoch(end))

    async def timestamps_in_window(self, subject_hash: str, window_minutes: int, at: datetime) -> List[datetime]:
        """Ascending occurrence times inside the window."""
        start, end = window_bounds(at, window_minutes)
        async with self._guard("subject_window_timestamps"):
            async with self._db.read() as conn:
                values = await SubjectTrackerRepo.timestamps_between(
                    conn, subject_hash, to_epoch(start), to_epoch(end)
                )
        return [from_epoch(value) for value in values]

    async def purge_older_than(self, cutoff: datetime) -> int:
        """Delete occurrences received before ``cutoff``; returns how many."""
        async with self._guard("purge_subject_tracker"):
            async with self._db.transaction() as conn:
                deleted = await SubjectTrackerRepo.delete_older_than(conn, to_epoch(cutoff))
        if deleted:
            logger.info("[SUBJECT TRACKER] Purged %d occurrence(s) older than %s", deleted, cutoff.isoformat())
        return deleted

    async def top_subjects(self, window_minutes: int, at: datetime, limit: int = 10) -> List[SubjectCount]:
        """Most frequent subjects inside the window, busiest first."""
        start, end = window_bounds(at, window_minutes)
        async with self._guard("top_subjects"):
            async with self._db.read() as conn:
                return await SubjectTrackerRepo.top_between(conn, to_epoch(start), to_epoch(end), limit)

    async def stats(self) -> Dict[str, Any]:
        async with self._guard("subject_tracker_stats"):
            async with self._db.read() as conn:
                total, oldest, newest = await SubjectTrackerRepo.summary(conn)
        return {
            "total_records": total,
            "oldest": from_epoch(oldest),
            "newest": from_epoch(newest),
        }
