"""
Per-email orchestration.

The edge relay calls :meth:`EmailService.process_email` once per received
email. The service decides first and returns; the bookkeeping (stats,
``last_hit_at``, burst tracking) runs afterwards in a background task.
Bookkeeping failures are logged and never change or delay the decision.
"""

from __future__ import annotations

import asyncio
from typing import Set

from mailsift.datatypes.email_datatypes import Decision, EmailEvent, FilterAction
from mailsift.errors import MailsiftError
from mailsift.filtering.dynamic_rule_manager import DynamicRuleManager
from mailsift.filtering.subject_normalizer import normalize_subject, subject_hash
from mailsift.repositories.rule_repo import RuleRepository
from mailsift.repositories.rule_stats_repo import StatsRecorder
from mailsift.services.filter_engine import FilterEngine
from mailsift.util.logger import get_logger
from mailsift.util.time_utils import ensure_aware

logger = get_logger("email_service")


class EmailService:
    """Decide, record, track."""

    def __init__(
        self,
        filter_engine: FilterEngine,
        repo: RuleRepository,
        stats: StatsRecorder,
        dynamic_rules: DynamicRuleManager,
        *,
        track_only_unmatched: bool = False,
    ) -> None:
        """
        Args:
            filter_engine: Produces the decision.
            repo: Used to touch ``last_hit_at`` on the matched rule.
            stats: Counter sink.
            dynamic_rules: Receives every subject for burst detection.
            track_only_unmatched: Feed only emails no rule matched to the burst tracker.
        """
        self.filter_engine = filter_engine
        self._repo = repo
        self._stats = stats
        self._dynamic_rules = dynamic_rules
        self.track_only_unmatched = track_only_unmatched
        self.internal_errors = 0

        self._pending: Set[asyncio.Task] = set()

    async def process_email(self, event: EmailEvent) -> Decision:
        """Return the forward/drop decision for ``event``.

        Any internal failure while deciding yields a forward decision so a
        fault can never silently drop legitimate mail.
        """
        received_at = ensure_aware(event.received_at)
        try:
            decision = await self.filter_engine.decide(event, received_at)
        except Exception as exc:
            self.internal_errors += 1
            logger.exception("[EMAIL SERVICE] Decision failed for %s, forwarding: %s", event.sender_email, exc)
            decision = Decision(
                action=FilterAction.FORWARD,
                forward_to=self.filter_engine.match_engine.default_forward_to,
                reason="internal error",
            )

        logger.debug(
            "[EMAIL SERVICE] %s <%s> %r -> %s (%s)",
            event.sender_name, event.sender_email, event.subject, decision.action, decision.reason,
        )

        self._schedule_bookkeeping(event, decision, received_at)
        return decision

    @property
    def pending_bookkeeping(self) -> int:
        return len(self._pending)

    def _schedule_bookkeeping(self, event: EmailEvent, decision: Decision, received_at) -> None:
        task = asyncio.get_running_loop().create_task(self._bookkeeping(event, decision, received_at))
        self._pending.add(task)

        def _cleanup(completed: asyncio.Task) -> None:
            self._pending.discard(completed)
            if completed.cancelled():
                return
            try:
                completed.result()
            except Exception:
                logger.exception("[EMAIL SERVICE] Bookkeeping task failed for %r", event.subject)

        task.add_done_callback(_cleanup)

    async def drain(self) -> None:
        """Wait for every scheduled bookkeeping task, including ones scheduled meanwhile."""
        while self._pending:
            pending = list(self._pending)
            await asyncio.gather(*pending, return_exceptions=True)

    async def shutdown(self) -> None:
        if self._pending:
            logger.info("[EMAIL SERVICE] Waiting for %d bookkeeping task(s)", len(self._pending))
        await self.drain()

    async def _bookkeeping(self, event: EmailEvent, decision: Decision, received_at) -> None:
        await self._record(decision, received_at)
        if not (self.track_only_unmatched and decision.matched_rule is not None):
            await self._track(event, received_at)

    async def _record(self, decision: Decision, received_at) -> None:
        try:
            await self._stats.record(decision)
        except MailsiftError as exc:
            logger.warning("[EMAIL SERVICE] Could not record stats: %s", exc)

        rule = decision.matched_rule
        if rule is None:
            return
        try:
            await self._repo.update_last_hit(rule.id, received_at)
            await self._dynamic_rules.extend_on_hit(rule, received_at)
        except MailsiftError as exc:
            logger.warning("[EMAIL SERVICE] Could not touch rule %s: %s", rule.id, exc)

    async def _track(self, event: EmailEvent, received_at) -> None:
        # Subjects that normalize to nothing would all share one bucket
        if not normalize_subject(event.subject):
            return
        try:
            await self._dynamic_rules.on_email_seen(subject_hash(event.subject), event.subject, received_at)
        except Exception as exc:
            logger.error("[EMAIL SERVICE] Burst tracking failed for %r: %s", event.subject, exc)
