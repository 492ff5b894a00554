"""
Periodic background work for the filtering engine.

- **periodic_scheduler.py**: ``PeriodicScheduler``, a reusable interval task
  runner with start/shutdown lifecycle and per-run error logging.

- **maintenance_schedulers.py**: The engine's jobs built on it: expired rule
  sweeps, pattern cache staleness checks and subject tracker purges, each
  with its own configurable interval.

Key Features:
- A failed run is logged and retried on the next tick
- Graceful task cancellation on shutdown
- Sweeps and purges never run on the email classification path
"""
