"""
Dynamic rule generation settings.

The configuration is persisted as key/value rows in the ``dynamic_config``
table so every engine process sharing the database sees the same values.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from typing import Any, Dict, Optional

from mailsift.errors import ConfigValidationError

_OPTIONAL_KEYS = ("time_span_threshold_minutes", "last_hit_threshold_hours")
_INT_KEYS = ("time_window_minutes", "threshold_count", "expiration_hours") + _OPTIONAL_KEYS


@dataclass(frozen=True, slots=True)
class DynamicConfig:
    """Trigger and TTL settings for burst promotion.

    Attributes:
        enabled: When False, occurrences are still recorded but no rule is created.
        time_window_minutes: Sliding detection window.
        threshold_count: Occurrences inside the window needed to promote.
        expiration_hours: Lifetime of a promoted rule.
        time_span_threshold_minutes: Optional cap on the time between the
            first and the threshold-th occurrence; ``None`` disables the check.
        last_hit_threshold_hours: When set, a hit on an active dynamic rule
            pushes its expiry out to at least this many hours after the hit.
    """

    enabled: bool = True
    time_window_minutes: int = 60
    threshold_count: int = 50
    expiration_hours: int = 48
    time_span_threshold_minutes: Optional[int] = None
    last_hit_threshold_hours: Optional[int] = None

    def to_rows(self) -> Dict[str, str]:
        """Serialize to the string key/value form stored in the database."""
        rows = {}
        for key, value in asdict(self).items():
            if value is None:
                rows[key] = ""
            elif isinstance(value, bool):
                rows[key] = "true" if value else "false"
            else:
                rows[key] = str(value)
        return rows

    @classmethod
    def from_rows(cls, rows: Dict[str, str]) -> "DynamicConfig":
        """Build a config from stored rows; unknown or unparsable keys keep their default."""
        config = cls()
        changes: Dict[str, Any] = {}
        for key, raw in rows.items():
            if key == "enabled":
                changes["enabled"] = raw.strip().lower() == "true"
            elif key in _OPTIONAL_KEYS and not raw.strip():
                changes[key] = None
            elif key in _INT_KEYS:
                try:
                    changes[key] = int(raw)
                except ValueError:
                    continue
        return replace(config, **changes)

    def updated(self, **changes: Any) -> "DynamicConfig":
        """Return a validated copy with ``changes`` applied.

        Raises:
            ConfigValidationError: On unknown keys or non-positive numbers.
        """
        details: Dict[str, str] = {}
        allowed = set(asdict(self))
        for key, value in changes.items():
            if key not in allowed:
                details[key] = "Unknown setting"
            elif key == "enabled":
                if not isinstance(value, bool):
                    details[key] = "Must be a boolean"
            elif key in _OPTIONAL_KEYS and value is None:
                continue
            elif isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                details[key] = "Must be a positive integer"

        if details:
            raise ConfigValidationError("Invalid dynamic configuration", details)
        return replace(self, **changes)


DEFAULT_DYNAMIC_CONFIG = DynamicConfig()
