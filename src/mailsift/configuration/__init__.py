"""
Configuration management for mailsift.

- **app_configuration.py**: File-lock based YAML loader for process-level
  settings (database path, default forward address, cache and scheduler
  intervals, tracker retention). Falls back to defaults on missing or
  malformed files; ``MAILSIFT_*`` environment variables take precedence.

- **dynamic_config_store.py**: Database-backed, hot-reloadable
  ``DynamicConfig`` shared by every engine process using the same store.
"""
