"""
Match outcome counters.

``StatsRecorder`` is the sink for decisions: it bumps the per-rule counters
in ``rule_stats`` and the single-row totals in ``global_stats``. Each
recorded decision is one short write transaction.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

import aiosqlite

from mailsift.database.database import Database
from mailsift.datatypes.email_datatypes import Decision, FilterAction
from mailsift.datatypes.rule_datatypes import RuleStats
from mailsift.errors import StoreUnavailableError
from mailsift.util.logger import get_logger
from mailsift.util.time_utils import from_epoch, to_epoch, utcnow

logger = get_logger("stats_recorder")


@dataclass
class GlobalStats:
    total_processed: int = 0
    total_forwarded: int = 0
    total_dropped: int = 0

    def as_dict(self) -> Dict[str, int]:
        return {
            "total_processed": self.total_processed,
            "total_forwarded": self.total_forwarded,
            "total_dropped": self.total_dropped,
        }


class StatsRecorder:
    """Per-rule and global counters for processed emails."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def record(self, decision: Decision) -> None:
        """Count one decided email.

        The matched rule (if any) gets ``total_processed`` bumped, and
        ``deleted_count`` too when the decision dropped the email.

        Raises:
            StoreUnavailableError: If the counters could not be written.
        """
        now = to_epoch(utcnow())
        dropped = decision.action is FilterAction.DROP
        try:
            with self._db.db_perf_mon.timed("record_stats"):
                async with self._db.transaction() as conn:
                    await conn.execute(
                        """
                        UPDATE global_stats SET
                            total_processed = total_processed + 1,
                            total_forwarded = total_forwarded + ?,
                            total_dropped   = total_dropped + ?,
                            last_updated    = ?
                        WHERE id = 1
                        """,
                        (0 if dropped else 1, 1 if dropped else 0, now),
                    )
                    if decision.matched_rule is not None:
                        await conn.execute(
                            """
                            UPDATE rule_stats SET
                                total_processed = total_processed + 1,
                                deleted_count   = deleted_count + ?,
                                last_updated    = ?
                            WHERE rule_id = ?
                            """,
                            (1 if dropped else 0, now, decision.matched_rule.id),
                        )
        except (aiosqlite.Error, RuntimeError, ValueError) as exc:
            raise StoreUnavailableError(f"record_stats failed: {exc}") from exc

    async def get_rule_stats(self, rule_id: str) -> Optional[RuleStats]:
        try:
            async with self._db.read() as conn:
                cursor = await conn.execute(
                    "SELECT rule_id, total_processed, deleted_count, last_updated FROM rule_stats WHERE rule_id = ?",
                    (rule_id,),
                )
                row = await cursor.fetchone()
        except (aiosqlite.Error, RuntimeError, ValueError) as exc:
            raise StoreUnavailableError(f"get_rule_stats failed: {exc}") from exc

        if row is None:
            return None
        return RuleStats(
            rule_id=row["rule_id"],
            total_processed=int(row["total_processed"]),
            deleted_count=int(row["deleted_count"]),
            last_updated=from_epoch(row["last_updated"]),
        )

    async def get_global_stats(self) -> GlobalStats:
        try:
            async with self._db.read() as conn:
                cursor = await conn.execute(
                    "SELECT total_processed, total_forwarded, total_dropped FROM global_stats WHERE id = 1"
                )
                row = await cursor.fetchone()
        except (aiosqlite.Error, RuntimeError, ValueError) as exc:
            raise StoreUnavailableError(f"get_global_stats failed: {exc}") from exc

        if row is None:
            return GlobalStats()
        return GlobalStats(
            total_processed=int(row["total_processed"]),
            total_forwarded=int(row["total_forwarded"]),
            total_dropped=int(row["total_dropped"]),
        )
