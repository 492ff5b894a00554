"""
mailsift - Dynamic Email Filtering Engine

mailsift decides whether an incoming email is forwarded or dropped. It
evaluates whitelist, blacklist and dynamically generated rules, and turns
campaign bursts (many emails sharing a subject in a short window) into
time-limited blacklist rules on its own.

Core Components:

- **Rule Store**: SQLite-backed rules, subject occurrences, counters and
  dynamic settings (aiosqlite, WAL, serialized writers)
- **Pattern Cache**: Immutable rule snapshots published by reference swap,
  with a store fallback whenever the cache is stale
- **Match Engine**: Fixed whitelist / blacklist / dynamic evaluation order
- **Dynamic Rules**: Burst detection, idempotent promotion and expiry sweeps
- **Email Service**: Per-email orchestration (decide, count, track)
- **Schedulers**: Periodic sweeps, cache checks and tracker purges
- **Console**: prompt_toolkit operator console
"""
