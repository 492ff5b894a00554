"""
Pure burst detection arithmetic.

Nothing here touches the database or the clock; callers pass in the
timestamps they loaded and the moment of evaluation.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable, Optional, Sequence, Tuple

from mailsift.datatypes.dynamic_config import DynamicConfig


def window_bounds(at: datetime, window_minutes: int) -> Tuple[datetime, datetime]:
    """Inclusive ``[at - window, at]`` bounds of a detection window."""
    return at - timedelta(minutes=window_minutes), at


def count_in_window(timestamps: Iterable[datetime], at: datetime, window_minutes: int) -> int:
    """Number of ``timestamps`` inside the inclusive window ending at ``at``."""
    start, end = window_bounds(at, window_minutes)
    return sum(1 for ts in timestamps if start <= ts <= end)


def time_span_minutes(timestamps: Sequence[datetime], threshold_count: int) -> Optional[float]:
    """Minutes between the first and the ``threshold_count``-th of ascending ``timestamps``.

    Returns None when fewer than ``threshold_count`` timestamps are given.
    """
    if threshold_count <= 0 or len(timestamps) < threshold_count:
        return None
    return (timestamps[threshold_count - 1] - timestamps[0]).total_seconds() / 60.0


def is_burst(count: int, config: DynamicConfig, window_timestamps: Optional[Sequence[datetime]] = None) -> bool:
    """Decide whether a subject's occurrences constitute a burst.

    Args:
        count: Occurrences inside the detection window.
        config: Current dynamic settings.
        window_timestamps: Ascending occurrence times inside the window; only
            consulted when ``time_span_threshold_minutes`` is set.
    """
    if count < config.threshold_count:
        return False
    if config.time_span_threshold_minutes is None:
        return True
    span = time_span_minutes(window_timestamps or (), config.threshold_count)
    return span is not None and span <= config.time_span_threshold_minutes
