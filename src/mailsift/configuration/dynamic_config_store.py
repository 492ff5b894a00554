"""
Database-backed dynamic rule settings.

Values live in the ``dynamic_config`` table rather than the YAML file so an
update made through one engine process is seen by every other process on
its next evaluation.
"""

from __future__ import annotations

from typing import Any

import aiosqlite

from mailsift.database.database import Database
from mailsift.datatypes.dynamic_config import DynamicConfig
from mailsift.errors import StoreUnavailableError
from mailsift.util.logger import get_logger

logger = get_logger("dynamic_config_store")


class DynamicConfigStore:
    """Hot-reloadable access to :class:`DynamicConfig`."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def get(self) -> DynamicConfig:
        """Read the current settings; missing keys take their defaults."""
        try:
            with self._db.db_perf_mon.timed("get_dynamic_config"):
                async with self._db.read() as conn:
                    cursor = await conn.execute("SELECT key, value FROM dynamic_config")
                    rows = await cursor.fetchall()
        except (aiosqlite.Error, RuntimeError, ValueError) as exc:
            raise StoreUnavailableError(f"get_dynamic_config failed: {exc}") from exc
        return DynamicConfig.from_rows({row["key"]: row["value"] for row in rows})

    async def update(self, **changes: Any) -> DynamicConfig:
        """Validate and persist ``changes``; returns the resulting settings.

        Raises:
            ConfigValidationError: If any value is unknown or out of range.
        """
        config = (await self.get()).updated(**changes)
        rows = config.to_rows()
        try:
            async with self._db.transaction() as conn:
                await conn.executemany(
                    """
                    INSERT INTO dynamic_config (key, value) VALUES (?, ?)
                    ON CONFLICT(key) DO UPDATE SET value = excluded.value
                    """,
                    [(key, rows[key]) for key in changes],
                )
        except (aiosqlite.Error, RuntimeError, ValueError) as exc:
            raise StoreUnavailableError(f"update_dynamic_config failed: {exc}") from exc

        logger.info("[DYNAMIC CONFIG] Updated %s", ", ".join(f"{key}={rows[key] or 'off'}" for key in changes))
        return config
