from __future__ import annotations
from pathlib import Path
import fcntl
import os
from typing import Any, Dict
import yaml

from mailsift.util.logger import get_logger

logger = get_logger("app_configuration")


CONFIG_PATH = Path("./config/app_config.yml").resolve()
DEFAULT_DB_PATH = Path("./data/mailsift.db")


class AppConfig:
    """File-lock based accessor around the YAML-based application configuration.

    The class caches the contents of ``./config/app_config.yml``, exposes
    dictionary-like access helpers and typed shortcuts for the engine
    settings. Uses fcntl file locks for safe concurrent access across
    processes. ``MAILSIFT_*`` environment variables override file values.
    """

    def __init__(self, config_path: Path = CONFIG_PATH) -> None:
        self.config_path = config_path
        self._data: Dict[str, Any] = {}
        self.reload()

    # --------------------------
    # Private helpers
    # --------------------------
    def load_from_disk(self) -> Dict[str, Any]:
        try:
            with self.config_path.open("r", encoding="utf-8") as f:
                # Acquire a shared lock for reading
                fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                try:
                    data = yaml.safe_load(f)
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except FileNotFoundError:
            logger.warning("[APP CONFIGURATION] Config file %s not found, using defaults.", self.config_path)
            return {}
        except Exception as exc:
            logger.error("[APP CONFIGURATION] Failed to load config %s: %s", self.config_path, exc)
            return {}

        if not isinstance(data, dict):
            if data is not None:
                logger.error("[APP CONFIGURATION] Config %s is not a mapping, ignoring it.", self.config_path)
            return {}
        return data

    def _section(self, name: str) -> Dict[str, Any]:
        section = self._data.get(name, {})
        return section if isinstance(section, dict) else {}

    def _number(self, section: str, key: str, default: float) -> float:
        value = self._section(section).get(key, default)
        try:
            return float(value)
        except (TypeError, ValueError):
            logger.warning("[APP CONFIGURATION] Invalid %s.%s=%r, using %s", section, key, value, default)
            return default

    # --------------------------
    # Public API
    # --------------------------
    def reload(self) -> Dict[str, Any]:
        """Reload configuration from disk and return the loaded mapping.

        Returns the raw mapping that was loaded (an empty dict on error).
        """
        self._data = self.load_from_disk()
        return self._data

    @property
    def data(self) -> Dict[str, Any]:
        """Return the current cached configuration mapping.

        The returned dict is the internal cache (shallow reference). Callers
        should not mutate it; use get(...) or the typed properties instead.
        """
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        """Safe lookup for top-level configuration keys."""
        return self._data.get(key, default)

    # --------------------------
    # High-level shortcuts
    # --------------------------
    @property
    def database_path(self) -> Path:
        """Path of the SQLite rule store (``MAILSIFT_DB_PATH`` wins over ``database.path``)."""
        if env_path := os.getenv("MAILSIFT_DB_PATH"):
            return Path(env_path).resolve()
        value = self._section("database").get("path")
        return Path(value).resolve() if value else DEFAULT_DB_PATH.resolve()

    @property
    def default_forward_to(self) -> str:
        """Address used when no rule matches (``MAILSIFT_DEFAULT_FORWARD_TO`` wins)."""
        if env_value := os.getenv("MAILSIFT_DEFAULT_FORWARD_TO"):
            return env_value
        return str(self._data.get("default_forward_to") or "")

    @property
    def mirror_static_rules(self) -> bool:
        """Whether the pattern cache also mirrors whitelist and blacklist rules."""
        return bool(self._section("cache").get("mirror_static_rules", True))

    @property
    def cache_max_age(self) -> float:
        """Seconds after which a cache snapshot counts as stale. Default is 300."""
        return self._number("cache", "max_age_seconds", 300.0)

    @property
    def sweep_interval(self) -> float:
        """Seconds between expired dynamic rule sweeps. Default is 300."""
        return self._number("scheduler", "sweep_interval_seconds", 300.0)

    @property
    def cache_check_interval(self) -> float:
        """Seconds between cache staleness checks. Default is 60."""
        return self._number("scheduler", "cache_check_interval_seconds", 60.0)

    @property
    def tracker_purge_interval(self) -> float:
        """Seconds between subject tracker retention purges. Default is 3600."""
        return self._number("scheduler", "tracker_purge_interval_seconds", 3600.0)

    @property
    def tracker_retention_hours(self) -> float:
        """Hours of subject history kept for burst detection. Default is 24."""
        return self._number("tracker", "retention_hours", 24.0)

    @property
    def track_only_unmatched(self) -> bool:
        """Feed only default-forwarded emails to the burst tracker. Default False."""
        return bool(self._section("tracking").get("only_unmatched", False))
