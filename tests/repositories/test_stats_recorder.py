import pytest

from mailsift.datatypes.email_datatypes import Decision, FilterAction
from mailsift.datatypes.rule_datatypes import MatchMode, MatchType, RuleCategory, RuleDraft
from mailsift.errors import StoreUnavailableError
from mailsift.repositories.rule_stats_repo import StatsRecorder


@pytest.fixture
def recorder(test_db) -> StatsRecorder:
    return StatsRecorder(test_db)


async def _rule(rule_repo, category=RuleCategory.BLACKLIST):
    return await rule_repo.create(
        RuleDraft(category=category, match_type=MatchType.SUBJECT, match_mode=MatchMode.CONTAINS, pattern="winner")
    )


@pytest.mark.asyncio
async def test_new_rule_starts_with_zeroed_stats(recorder, rule_repo):
    rule = await _rule(rule_repo)

    stats = await recorder.get_rule_stats(rule.id)

    assert stats.total_processed == 0
    assert stats.deleted_count == 0


@pytest.mark.asyncio
async def test_drop_counts_against_rule_and_totals(recorder, rule_repo):
    rule = await _rule(rule_repo)
    decision = Decision(action=FilterAction.DROP, matched_rule=rule, matched_category=rule.category)

    await recorder.record(decision)
    await recorder.record(decision)

    stats = await recorder.get_rule_stats(rule.id)
    totals = await recorder.get_global_stats()
    assert (stats.total_processed, stats.deleted_count) == (2, 2)
    assert totals.as_dict() == {"total_processed": 2, "total_forwarded": 0, "total_dropped": 2}


@pytest.mark.asyncio
async def test_whitelist_forward_is_processed_but_not_deleted(recorder, rule_repo):
    rule = await _rule(rule_repo, RuleCategory.WHITELIST)

    await recorder.record(
        Decision(action=FilterAction.FORWARD, matched_rule=rule, matched_category=rule.category, forward_to="x@y")
    )

    stats = await recorder.get_rule_stats(rule.id)
    assert (stats.total_processed, stats.deleted_count) == (1, 0)
    assert (await recorder.get_global_stats()).total_forwarded == 1


@pytest.mark.asyncio
async def test_default_forward_only_touches_totals(recorder):
    await recorder.record(Decision(action=FilterAction.FORWARD, forward_to="inbox@example.com"))

    totals = await recorder.get_global_stats()
    assert totals.total_processed == 1
    assert totals.total_forwarded == 1


@pytest.mark.asyncio
async def test_unknown_rule_has_no_stats(recorder):
    assert await recorder.get_rule_stats("missing") is None


@pytest.mark.asyncio
async def test_closed_store_raises(recorder, test_db):
    await test_db.shutdown()

    with pytest.raises(StoreUnavailableError):
        await recorder.record(Decision(action=FilterAction.FORWARD))
    with pytest.raises(StoreUnavailableError):
        await recorder.get_global_stats()
