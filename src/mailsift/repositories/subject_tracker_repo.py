"""
Persistent storage for subject occurrences used by burst detection.

Timestamps are stored as REAL unix seconds (UTC) so window queries are
plain numeric range comparisons.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple

import aiosqlite


@dataclass
class SubjectOccurrence:
    """A single row from the ``email_subject_tracker`` table."""
    subject_hash: str
    subject: str
    received_at: float   # unix seconds (UTC)


@dataclass
class SubjectCount:
    """Aggregated occurrences of one subject hash inside a window."""
    subject_hash: str
    subject: str
    count: int
    first_seen: float
    last_seen: float


class SubjectTrackerRepo:
    """Low-level access to the ``email_subject_tracker`` table."""

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @staticmethod
    async def insert(
        conn: aiosqlite.Connection,
        subject_hash: str,
        subject: str,
        received_at: float,
    ) -> None:
        await conn.execute(
            "INSERT INTO email_subject_tracker (subject_hash, subject, received_at) VALUES (?, ?, ?)",
            (subject_hash, subject, received_at),
        )

    @staticmethod
    async def delete_older_than(conn: aiosqlite.Connection, cutoff: float) -> int:
        """Remove rows received strictly before ``cutoff``; returns the row count."""
        cursor = await conn.execute(
            "DELETE FROM email_subject_tracker WHERE received_at < ?",
            (cutoff,),
        )
        return cursor.rowcount

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @staticmethod
    async def count_between(
        conn: aiosqlite.Connection,
        subject_hash: str,
        start: float,
        end: float,
    ) -> int:
        """Occurrences of ``subject_hash`` with ``start <= received_at <= end``."""
        cursor = await conn.execute(
            "SELECT COUNT(*) FROM email_subject_tracker "
            "WHERE subject_hash = ? AND received_at >= ? AND received_at <= ?",
            (subject_hash, start, end),
        )
        row = await cursor.fetchone()
        return int(row[0])

    @staticmethod
    async def timestamps_between(
        conn: aiosqlite.Connection,
        subject_hash: str,
        start: float,
        end: float,
    ) -> List[float]:
        """Ascending receive times of ``subject_hash`` inside ``[start, end]``."""
        cursor = await conn.execute(
            "SELECT received_at FROM email_subject_tracker "
            "WHERE subject_hash = ? AND received_at >= ? AND received_at <= ? "
            "ORDER BY received_at ASC",
            (subject_hash, start, end),
        )
        rows = await cursor.fetchall()
        return [float(row[0]) for row in rows]

    @staticmethod
    async def top_between(
        conn: aiosqlite.Connection,
        start: float,
        end: float,
        limit: int,
    ) -> List[SubjectCount]:
        """Most frequent subject hashes inside ``[start, end]``."""
        cursor = await conn.execute(
            "SELECT subject_hash, MAX(subject) AS subject, COUNT(*) AS count, "
            "MIN(received_at) AS first_seen, MAX(received_at) AS last_seen "
            "FROM email_subject_tracker "
            "WHERE received_at >= ? AND received_at <= ? "
            "GROUP BY subject_hash "
            "ORDER BY count DESC, last_seen DESC "
            "LIMIT ?",
            (start, end, limit),
        )
        rows = await cursor.fetchall()
        return [
            SubjectCount(
                subject_hash=row["subject_hash"],
                subject=row["subject"],
                count=int(row["count"]),
                first_seen=float(row["first_seen"]),
                last_seen=float(row["last_seen"]),
            )
            for row in rows
        ]

    @staticmethod
    async def summary(conn: aiosqlite.Connection) -> Tuple[int, Optional[float], Optional[float]]:
        """``(total_rows, oldest_received_at, newest_received_at)``."""
        cursor = await conn.execute(
            "SELECT COUNT(*), MIN(received_at), MAX(received_at) FROM email_subject_tracker"
        )
        row = await cursor.fetchone()
        return int(row[0]), row[1], row[2]
