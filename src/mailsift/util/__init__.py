"""
Utility functions and helpers for mailsift.

- **logger.py**: Centralized logging configuration with colored console output,
  rotating file handlers, and per-session log aggregation. Uses prompt_toolkit
  so log lines never corrupt the operator console prompt.

- **time_utils.py**: UTC helpers and conversion between ``datetime`` and the
  REAL unix seconds stored in the database.
"""
