"""
Database maintenance operations.

Provides VACUUM and ANALYZE helpers for the rule store.
"""

import time

import aiosqlite

from mailsift.database.db_perf_mon import DatabasePerformanceMonitor
from mailsift.util.logger import get_logger

logger = get_logger("database_maintenance")


class MaintenanceOperations:
    """Handles database maintenance and optimization operations."""

    def __init__(self, performance: DatabasePerformanceMonitor):
        self._performance = performance

    async def vacuum(self, db: aiosqlite.Connection) -> bool:
        """
        Reclaim space left behind by purged tracker rows and swept rules.

        Returns:
            True if vacuum succeeded, False otherwise
        """
        try:
            logger.info("[MAINTENANCE] Starting VACUUM operation")
            start_time = time.perf_counter()
            await db.execute("VACUUM")
            duration = time.perf_counter() - start_time
            logger.info("[MAINTENANCE] VACUUM completed in %.2f seconds", duration)
            self._performance.track("VACUUM", duration)
            return True
        except Exception as e:
            logger.error("[MAINTENANCE] VACUUM failed: %s", e)
            return False

    async def analyze(self, db: aiosqlite.Connection) -> bool:
        """
        Update database statistics for the query optimizer.

        Returns:
            True if analyze succeeded, False otherwise
        """
        try:
            logger.info("[MAINTENANCE] Starting ANALYZE operation")
            start_time = time.perf_counter()
            await db.execute("ANALYZE")
            await db.commit()
            duration = time.perf_counter() - start_time
            logger.info("[MAINTENANCE] ANALYZE completed in %.2f seconds", duration)
            self._performance.track("ANALYZE", duration)
            return True
        except Exception as e:
            logger.error("[MAINTENANCE] ANALYZE failed: %s", e)
            return False
