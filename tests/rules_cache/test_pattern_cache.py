from unittest.mock import AsyncMock

import pytest

from mailsift.datatypes.rule_datatypes import MatchMode, MatchType, RuleCategory, RuleDraft
from mailsift.errors import StoreUnavailableError
from mailsift.rules_cache.pattern_cache import PatternCache, RuleSnapshot


def _draft(pattern, category=RuleCategory.BLACKLIST) -> RuleDraft:
    return RuleDraft(category=category, match_type=MatchType.SUBJECT, match_mode=MatchMode.CONTAINS, pattern=pattern)


@pytest.mark.asyncio
async def test_load_groups_enabled_rules(rule_repo):
    white = await rule_repo.create(_draft("boss", RuleCategory.WHITELIST))
    black = await rule_repo.create(_draft("winner"))
    disabled = _draft("off")
    disabled.enabled = False
    await rule_repo.create(disabled)
    cache = PatternCache(rule_repo)

    assert await cache.load_from_store() is True

    assert cache.get(RuleCategory.WHITELIST) == (white,)
    assert cache.get(RuleCategory.BLACKLIST) == (black,)
    assert not cache.is_stale()
    assert cache.stats()["size"] == 2


@pytest.mark.asyncio
async def test_published_snapshot_is_never_mutated(pattern_cache, make_rule):
    before = pattern_cache.snapshot()

    await pattern_cache.upsert(make_rule(RuleCategory.DYNAMIC, pattern="promo", subject_hash="h"))

    assert len(before) == 0
    assert len(pattern_cache.snapshot()) == 1
    assert pattern_cache.snapshot().version > before.version


@pytest.mark.asyncio
async def test_upsert_replaces_and_disabled_upsert_removes(pattern_cache, make_rule):
    rule = make_rule(pattern="promo", rule_id="r1")
    await pattern_cache.upsert(rule)
    edited = make_rule(pattern="promotion", rule_id="r1", created_at=rule.created_at)
    await pattern_cache.upsert(edited)

    assert pattern_cache.get(RuleCategory.BLACKLIST) == (edited,)

    disabled = make_rule(pattern="promotion", rule_id="r1", created_at=rule.created_at, enabled=False)
    await pattern_cache.upsert(disabled)
    assert "r1" not in pattern_cache.snapshot()


@pytest.mark.asyncio
async def test_evict(pattern_cache, make_rule):
    rule = make_rule(RuleCategory.DYNAMIC, pattern="promo", subject_hash="h")
    await pattern_cache.upsert(rule)

    assert await pattern_cache.evict(rule.id) is True
    assert await pattern_cache.evict(rule.id) is False
    assert len(pattern_cache.snapshot()) == 0


@pytest.mark.asyncio
async def test_failed_initial_load_serves_empty_stale_snapshot(rule_repo):
    rule_repo.find_enabled = AsyncMock(side_effect=StoreUnavailableError("down"))
    cache = PatternCache(rule_repo)

    assert await cache.load_from_store() is False

    assert len(cache.snapshot()) == 0
    assert cache.is_stale()
    assert cache.load_failures == 1


@pytest.mark.asyncio
async def test_failed_refresh_keeps_last_good_snapshot(rule_repo):
    rule = await rule_repo.create(_draft("winner"))
    cache = PatternCache(rule_repo)
    await cache.load_from_store()
    good = cache.snapshot()

    rule_repo.find_enabled = AsyncMock(side_effect=StoreUnavailableError("down"))

    assert await cache.refresh() is False
    assert cache.snapshot() is good
    assert cache.get(RuleCategory.BLACKLIST) == (rule,)
    assert cache.is_stale()


@pytest.mark.asyncio
async def test_refresh_picks_up_out_of_band_changes(pattern_cache, rule_repo):
    pattern_cache.mark_stale()
    assert pattern_cache.is_stale()

    rule = await rule_repo.create(_draft("winner"))
    assert await pattern_cache.refresh() is True

    assert pattern_cache.get(RuleCategory.BLACKLIST) == (rule,)
    assert not pattern_cache.is_stale()


@pytest.mark.asyncio
async def test_max_age_makes_cache_stale(rule_repo, monkeypatch):
    clock = {"now": 1000.0}
    monkeypatch.setattr("mailsift.rules_cache.pattern_cache.time.monotonic", lambda: clock["now"])
    cache = PatternCache(rule_repo, max_age_seconds=30)
    await cache.load_from_store()

    assert not cache.is_stale()
    clock["now"] += 31
    assert cache.is_stale()


@pytest.mark.asyncio
async def test_dynamic_only_mirror_ignores_static_rules(rule_repo, make_rule):
    await rule_repo.create(_draft("winner"))
    cache = PatternCache(rule_repo, mirror_static=False)
    await cache.load_from_store()

    await cache.upsert(make_rule(RuleCategory.BLACKLIST, pattern="ignored"))

    assert len(cache.snapshot()) == 0
    assert not cache.covers(RuleCategory.BLACKLIST)
    assert cache.covers(RuleCategory.DYNAMIC)


def test_merged_snapshot_fills_uncovered_categories(make_rule):
    dynamic = make_rule(RuleCategory.DYNAMIC, pattern="promo", subject_hash="h")
    black = make_rule(RuleCategory.BLACKLIST, pattern="winner")
    ignored = make_rule(RuleCategory.DYNAMIC, pattern="stale copy", subject_hash="h2")
    partial = RuleSnapshot.build([dynamic], categories=[RuleCategory.DYNAMIC])

    merged = partial.merged_with([black, ignored])

    assert merged.get(RuleCategory.BLACKLIST) == (black,)
    assert merged.get(RuleCategory.DYNAMIC) == (dynamic,)
    assert len(partial) == 1


def test_rebuild_reuses_compiled_predicates(make_rule):
    rule = make_rule(pattern="winner")
    first = RuleSnapshot.build([rule])

    second = RuleSnapshot.build([rule], compiled=first.compiled_index())

    assert second.compiled(RuleCategory.BLACKLIST)[0] is first.compiled(RuleCategory.BLACKLIST)[0]
