"""
Persistent storage for filter rules (the rule store).

The store is the single source of truth for rules; the in-memory pattern
cache mirrors it. Timestamps are stored as REAL unix seconds (UTC).

Low-level ``aiosqlite`` failures are translated into
:class:`~mailsift.errors.StoreUnavailableError` here so callers never see
driver exceptions.
"""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, List, Optional, Tuple

import aiosqlite

from mailsift.database.database import Database
from mailsift.datatypes.rule_datatypes import (
    FilterRule,
    MatchMode,
    MatchType,
    RuleCategory,
    RuleDraft,
    RuleUpdate,
)
from mailsift.errors import DuplicateRuleError, RuleNotFoundError, StoreUnavailableError
from mailsift.filtering.rule_validation import validate_create_rule, validate_update_rule
from mailsift.util.logger import get_logger
from mailsift.util.time_utils import from_epoch, to_epoch, utcnow

logger = get_logger("rule_repository")

_COLUMNS = (
    "id, category, match_type, match_mode, pattern, enabled, "
    "created_at, updated_at, last_hit_at, expires_at, subject_hash"
)
_ORDER = "ORDER BY created_at ASC, id ASC"


def row_to_rule(row: aiosqlite.Row) -> FilterRule:
    """Map a ``filter_rules`` row to an immutable FilterRule."""
    return FilterRule(
        id=row["id"],
        category=RuleCategory(row["category"]),
        match_type=MatchType(row["match_type"]),
        match_mode=MatchMode(row["match_mode"]),
        pattern=row["pattern"],
        enabled=bool(row["enabled"]),
        created_at=from_epoch(row["created_at"]),
        updated_at=from_epoch(row["updated_at"]),
        last_hit_at=from_epoch(row["last_hit_at"]),
        expires_at=from_epoch(row["expires_at"]),
        subject_hash=row["subject_hash"],
    )


class RuleRepository:
    """CRUD and lifecycle queries for the ``filter_rules`` table."""

    def __init__(self, database: Database) -> None:
        self._db = database

    @asynccontextmanager
    async def _guard(self, query_name: str) -> AsyncIterator[None]:
        """Time the block and translate driver failures."""
        with self._db.db_perf_mon.timed(query_name):
            try:
                yield
            except aiosqlite.IntegrityError:
                raise
            except (aiosqlite.Error, RuntimeError, ValueError) as exc:
                logger.error("[RULE REPOSITORY] %s failed: %s", query_name, exc)
                raise StoreUnavailableError(f"{query_name} failed: {exc}") from exc

    async def _fetch_all(self, query_name: str, sql: str, params: tuple = ()) -> List[FilterRule]:
        async with self._guard(query_name):
            async with self._db.read() as conn:
                cursor = await conn.execute(sql, params)
                rows = await cursor.fetchall()
        return [row_to_rule(row) for row in rows]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @staticmethod
    async def _insert(conn: aiosqlite.Connection, draft: RuleDraft, now: datetime) -> FilterRule:
        rule = FilterRule(
            id=uuid.uuid4().hex,
            category=draft.category,
            match_type=draft.match_type,
            match_mode=draft.match_mode,
            pattern=draft.pattern,
            enabled=draft.enabled,
            created_at=now,
            updated_at=now,
            expires_at=draft.expires_at,
            subject_hash=draft.subject_hash,
        )
        await conn.execute(
            f"INSERT INTO filter_rules ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                rule.id,
                rule.category.value,
                rule.match_type.value,
                rule.match_mode.value,
                rule.pattern,
                1 if rule.enabled else 0,
                to_epoch(now),
                to_epoch(now),
                None,
                to_epoch(rule.expires_at) if rule.expires_at else None,
                rule.subject_hash,
            ),
        )
        return rule

    async def create(self, draft: RuleDraft) -> FilterRule:
        """Validate and persist a new rule.

        Raises:
            RuleValidationError: If the draft is invalid (nothing is written).
            DuplicateRuleError: If an identical rule already exists.
            StoreUnavailableError: If the store cannot be written.
        """
        draft = validate_create_rule(draft)
        try:
            async with self._guard("create_rule"):
                async with self._db.transaction() as conn:
                    rule = await self._insert(conn, draft, utcnow())
        except aiosqlite.IntegrityError as exc:
            raise DuplicateRuleError(
                f"{draft.category.value} rule {draft.match_type.value}/{draft.match_mode.value} "
                f"{draft.pattern!r} already exists"
            ) from exc

        logger.info(
            "[RULE REPOSITORY] Created %s rule %s (%s %s %r)",
            rule.category, rule.id, rule.match_type, rule.match_mode, rule.pattern,
        )
        return rule

    async def create_dynamic_if_absent(self, draft: RuleDraft, now: datetime) -> Tuple[FilterRule, bool]:
        """Create a dynamic rule unless an active one exists for its subject hash.

        The check and the insert run in one write transaction. An expired rule
        for the same hash that no sweep has removed yet is replaced.

        Returns:
            ``(rule, created)`` where ``rule`` is the new rule or the active one
            that already covered the hash.
        """
        draft = validate_create_rule(draft)
        try:
            async with self._guard("create_dynamic_rule"):
                async with self._db.transaction() as conn:
                    cursor = await conn.execute(
                        f"SELECT {_COLUMNS} FROM filter_rules "
                        "WHERE category = 'dynamic' AND subject_hash = ? LIMIT 1",
                        (draft.subject_hash,),
                    )
                    row = await cursor.fetchone()
                    if row is not None:
                        existing = row_to_rule(row)
                        if not existing.is_expired(now):
                            return existing, False
                        await conn.execute("DELETE FROM filter_rules WHERE id = ?", (existing.id,))
                        logger.debug("[RULE REPOSITORY] Replacing expired dynamic rule %s", existing.id)
                    rule = await self._insert(conn, draft, now)
        except aiosqlite.IntegrityError as exc:
            raise DuplicateRuleError(f"Dynamic rule for {draft.pattern!r} collides with an existing rule") from exc
        logger.info("[RULE REPOSITORY] Created dynamic rule %s for %r", rule.id, rule.pattern)
        return rule, True

    async def update(self, rule_id: str, update: RuleUpdate) -> FilterRule:
        """Apply a validated partial update.

        Raises:
            RuleNotFoundError: If ``rule_id`` does not exist.
            RuleValidationError: If the update is invalid.
            DuplicateRuleError: If the result collides with another rule.
        """
        existing = await self.find_by_id(rule_id)
        if existing is None:
            raise RuleNotFoundError(rule_id)
        update = validate_update_rule(update, existing)
        if update.is_empty():
            return existing

        assignments = ["updated_at = ?"]
        params: list = [to_epoch(utcnow())]
        for column, value in (
            ("category", update.category.value if update.category else None),
            ("match_type", update.match_type.value if update.match_type else None),
            ("match_mode", update.match_mode.value if update.match_mode else None),
            ("pattern", update.pattern),
            ("enabled", None if update.enabled is None else int(update.enabled)),
        ):
            if value is not None:
                assignments.append(f"{column} = ?")
                params.append(value)
        params.append(rule_id)

        try:
            async with self._guard("update_rule"):
                async with self._db.transaction() as conn:
                    await conn.execute(f"UPDATE filter_rules SET {', '.join(assignments)} WHERE id = ?", tuple(params))
        except aiosqlite.IntegrityError as exc:
            raise DuplicateRuleError(f"Update of {rule_id} collides with an existing rule") from exc

        updated = await self.find_by_id(rule_id)
        if updated is None:
            raise RuleNotFoundError(rule_id)
        return updated

    async def toggle(self, rule_id: str) -> FilterRule:
        """Flip the enabled flag of a rule."""
        existing = await self.find_by_id(rule_id)
        if existing is None:
            raise RuleNotFoundError(rule_id)
        return await self.update(rule_id, RuleUpdate(enabled=not existing.enabled))

    async def delete(self, rule_id: str) -> bool:
        """Delete a rule (its stats row cascades). Returns False if it did not exist."""
        async with self._guard("delete_rule"):
            async with self._db.transaction() as conn:
                cursor = await conn.execute("DELETE FROM filter_rules WHERE id = ?", (rule_id,))
                return cursor.rowcount > 0

    async def delete_if_expired(self, rule_id: str, now: datetime) -> bool:
        """Delete a dynamic rule only if its stored expiry is still ``<= now``.

        A rule whose expiry was pushed out after a sweep snapshot was taken
        is left alone.
        """
        async with self._guard("delete_expired_rule"):
            async with self._db.transaction() as conn:
                cursor = await conn.execute(
                    "DELETE FROM filter_rules WHERE id = ? AND category = 'dynamic' AND expires_at <= ?",
                    (rule_id, to_epoch(now)),
                )
                return cursor.rowcount > 0

    async def extend_expiry(self, rule_id: str, expires_at: datetime) -> bool:
        """Push a dynamic rule's expiry out to ``expires_at``; never shortens it.

        Returns:
            True if the stored expiry moved.
        """
        async with self._guard("extend_rule_expiry"):
            async with self._db.transaction() as conn:
                cursor = await conn.execute(
                    "UPDATE filter_rules SET expires_at = ?, updated_at = ? "
                    "WHERE id = ? AND category = 'dynamic' AND expires_at < ?",
                    (to_epoch(expires_at), to_epoch(utcnow()), rule_id, to_epoch(expires_at)),
                )
                return cursor.rowcount > 0

    async def update_last_hit(self, rule_id: str, at: Optional[datetime] = None) -> None:
        async with self._guard("update_last_hit"):
            async with self._db.transaction() as conn:
                await conn.execute(
                    "UPDATE filter_rules SET last_hit_at = ? WHERE id = ?",
                    (to_epoch(at or utcnow()), rule_id),
                )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def find_by_id(self, rule_id: str) -> Optional[FilterRule]:
        rules = await self._fetch_all(
            "find_rule_by_id", f"SELECT {_COLUMNS} FROM filter_rules WHERE id = ?", (rule_id,)
        )
        return rules[0] if rules else None

    async def find_all(self, category: Optional[RuleCategory] = None) -> List[FilterRule]:
        """All rules, enabled or not, in evaluation order."""
        if category is None:
            return await self._fetch_all("find_all_rules", f"SELECT {_COLUMNS} FROM filter_rules {_ORDER}")
        return await self._fetch_all(
            "find_all_rules",
            f"SELECT {_COLUMNS} FROM filter_rules WHERE category = ? {_ORDER}",
            (category.value,),
        )

    async def find_enabled(self, category: Optional[RuleCategory] = None) -> List[FilterRule]:
        """Enabled rules in ascending creation order, optionally for one category."""
        if category is None:
            return await self._fetch_all(
                "find_enabled_rules", f"SELECT {_COLUMNS} FROM filter_rules WHERE enabled = 1 {_ORDER}"
            )
        return await self._fetch_all(
            "find_enabled_rules",
            f"SELECT {_COLUMNS} FROM filter_rules WHERE enabled = 1 AND category = ? {_ORDER}",
            (category.value,),
        )

    async def find_active_dynamic(self, subject_hash: str, now: datetime) -> Optional[FilterRule]:
        """The unexpired dynamic rule promoted from ``subject_hash``, if any."""
        rules = await self._fetch_all(
            "find_active_dynamic",
            f"SELECT {_COLUMNS} FROM filter_rules "
            "WHERE category = 'dynamic' AND subject_hash = ? AND expires_at > ? LIMIT 1",
            (subject_hash, to_epoch(now)),
        )
        return rules[0] if rules else None

    async def find_expired_dynamic(self, now: datetime) -> List[FilterRule]:
        """Dynamic rules with ``expires_at <= now``."""
        return await self._fetch_all(
            "find_expired_dynamic",
            f"SELECT {_COLUMNS} FROM filter_rules WHERE category = 'dynamic' AND expires_at <= ? {_ORDER}",
            (to_epoch(now),),
        )

    async def count(self, category: Optional[RuleCategory] = None) -> int:
        async with self._guard("count_rules"):
            async with self._db.read() as conn:
                if category is None:
                    cursor = await conn.execute("SELECT COUNT(*) FROM filter_rules")
                else:
                    cursor = await conn.execute(
                        "SELECT COUNT(*) FROM filter_rules WHERE category = ?", (category.value,)
                    )
                row = await cursor.fetchone()
        return int(row[0])
