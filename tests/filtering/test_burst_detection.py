from datetime import timedelta

from mailsift.datatypes.dynamic_config import DynamicConfig
from mailsift.filtering.burst_detection import count_in_window, is_burst, time_span_minutes, window_bounds


def test_window_bounds_are_inclusive(base_time):
    start, end = window_bounds(base_time, 60)

    assert end == base_time
    assert start == base_time - timedelta(minutes=60)


def test_count_in_window_includes_edges(base_time):
    timestamps = [
        base_time - timedelta(minutes=61),   # outside
        base_time - timedelta(minutes=60),   # window start
        base_time - timedelta(minutes=5),
        base_time,                           # window end
        base_time + timedelta(seconds=1),    # future
    ]

    assert count_in_window(timestamps, base_time, 60) == 3


def test_time_span_between_first_and_nth(base_time):
    timestamps = [base_time + timedelta(minutes=m) for m in (0, 2, 7, 30)]

    assert time_span_minutes(timestamps, 3) == 7
    assert time_span_minutes(timestamps, 5) is None


def test_is_burst_threshold_only():
    config = DynamicConfig(threshold_count=3)

    assert not is_burst(2, config)
    assert is_burst(3, config)
    assert is_burst(10, config)


def test_time_span_rule_suppresses_slow_bursts(base_time):
    config = DynamicConfig(threshold_count=3, time_span_threshold_minutes=5)
    fast = [base_time + timedelta(minutes=m) for m in (0, 1, 4)]
    slow = [base_time + timedelta(minutes=m) for m in (0, 10, 20)]

    assert is_burst(3, config, fast)
    assert not is_burst(3, config, slow)
    assert not is_burst(3, config, None)
