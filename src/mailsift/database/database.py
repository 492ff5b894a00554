"""
Rule store database coordinator.

This module provides the Database class that owns the SQLite connection
and coordinates schema management, performance monitoring and maintenance.
Repositories receive a Database instance and run their queries through its
``read()`` and ``transaction()`` contexts.

The class is constructed explicitly (no module-level instance) so tests and
several engine instances can each use their own file.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Dict

import aiosqlite

from mailsift.database.db_connection import ConnectionManager
from mailsift.database.db_maintenance import MaintenanceOperations
from mailsift.database.db_perf_mon import DatabasePerformanceMonitor
from mailsift.database.db_schema import SchemaManager
from mailsift.util.logger import get_logger

logger = get_logger("database")


class Database:
    """
    Central coordinator for the rule store.

    Lifecycle:
        1. ``await initialize()`` at program startup
        2. Repositories use ``read()`` / ``transaction()``
        3. ``await shutdown()`` at program end
    """

    def __init__(self, db_path: Path, *, slow_query_threshold_ms: float = 100.0):
        """
        Args:
            db_path: Path to the SQLite database file
            slow_query_threshold_ms: Queries slower than this are logged
        """
        self.db_path = db_path
        self._initialized = False
        self._connection = ConnectionManager()
        self.db_perf_mon = DatabasePerformanceMonitor(slow_query_threshold_ms)
        self._maintenance = MaintenanceOperations(self.db_perf_mon)

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> bool:
        """
        Open the connection and create the schema.

        Returns:
            True if initialization succeeded, False otherwise
        """
        if self._initialized:
            logger.debug("[DATABASE] Already initialized, skipping")
            return True

        try:
            await self._connection.open(self.db_path)
            await SchemaManager.initialize_schema(self._connection.connection)
        except Exception as e:
            logger.error("[DATABASE] Database initialization failed: %s", e)
            await self._connection.close()
            return False

        self._initialized = True
        logger.info("[DATABASE] Database initialized at %s", self.db_path)
        return True

    async def shutdown(self) -> None:
        """Close the connection. Safe to call more than once."""
        if not self._initialized:
            return

        await self._connection.close()
        self._initialized = False
        logger.info("[DATABASE] Database shutdown complete")

    @asynccontextmanager
    async def read(self) -> AsyncIterator[aiosqlite.Connection]:
        async with self._connection.read() as conn:
            yield conn

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        async with self._connection.transaction() as conn:
            yield conn

    async def vacuum(self) -> bool:
        async with self._connection.read() as db:
            return await self._maintenance.vacuum(db)

    async def analyze(self) -> bool:
        async with self._connection.read() as db:
            return await self._maintenance.analyze(db)

    def get_db_performance_stats(self) -> Dict[str, Dict[str, float]]:
        """Query timing statistics keyed by query name."""
        return self.db_perf_mon.get_statistics()

    def reset_db_performance_stats(self) -> None:
        self.db_perf_mon.reset()
