import pytest

from mailsift.configuration.dynamic_config_store import DynamicConfigStore
from mailsift.datatypes.dynamic_config import DEFAULT_DYNAMIC_CONFIG, DynamicConfig
from mailsift.errors import ConfigValidationError


@pytest.mark.asyncio
async def test_defaults_when_table_is_empty(config_store):
    assert await config_store.get() == DEFAULT_DYNAMIC_CONFIG


@pytest.mark.asyncio
async def test_update_persists_changed_keys(config_store):
    updated = await config_store.update(threshold_count=3, time_span_threshold_minutes=10)

    assert updated.threshold_count == 3
    assert await config_store.get() == updated


@pytest.mark.asyncio
async def test_update_is_visible_to_other_stores_on_the_same_database(config_store, test_db):
    await config_store.update(enabled=False)

    assert (await DynamicConfigStore(test_db).get()).enabled is False


@pytest.mark.asyncio
async def test_clearing_time_span_threshold(config_store):
    await config_store.update(time_span_threshold_minutes=5)
    cleared = await config_store.update(time_span_threshold_minutes=None)

    assert cleared.time_span_threshold_minutes is None
    assert (await config_store.get()).time_span_threshold_minutes is None


@pytest.mark.asyncio
async def test_last_hit_threshold_is_optional(config_store):
    assert (await config_store.get()).last_hit_threshold_hours is None

    await config_store.update(last_hit_threshold_hours=72)
    assert (await config_store.get()).last_hit_threshold_hours == 72

    await config_store.update(last_hit_threshold_hours=None)
    assert (await config_store.get()).last_hit_threshold_hours is None

    with pytest.raises(ConfigValidationError):
        await config_store.update(last_hit_threshold_hours=0)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "changes",
    [{"threshold_count": 0}, {"expiration_hours": -1}, {"enabled": "yes"}, {"colour": 3}, {"time_window_minutes": True}],
)
async def test_invalid_updates_rejected_and_not_written(config_store, changes):
    with pytest.raises(ConfigValidationError):
        await config_store.update(**changes)

    assert await config_store.get() == DEFAULT_DYNAMIC_CONFIG


def test_rows_round_trip_and_tolerate_garbage():
    config = DynamicConfig(enabled=False, threshold_count=7, time_span_threshold_minutes=None)

    assert DynamicConfig.from_rows(config.to_rows()) == config
    assert DynamicConfig.from_rows({"threshold_count": "many", "unknown": "1"}) == DynamicConfig()
