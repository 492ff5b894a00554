"""
Database package for mailsift.

Provides the SQLite-backed rule store plumbing with performance monitoring
and serialized writes.

Public API:
    - Database: Connection, schema and maintenance coordinator
    - ConnectionManager: One long-lived aiosqlite connection with a write semaphore
"""
