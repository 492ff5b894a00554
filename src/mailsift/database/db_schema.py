"""
Database schema initialization and migration management.

Handles creation of tables, indexes, triggers, and schema version tracking.
"""

import aiosqlite
from mailsift.util.logger import get_logger

logger = get_logger("database_schema")

SCHEMA_VERSION = 1


class SchemaManager:
    """Manages database schema creation and migrations."""

    @staticmethod
    async def initialize_schema(db: aiosqlite.Connection) -> None:
        """
        Create or update all database tables, indexes, and triggers.

        Args:
            db: Open database connection
        """
        await SchemaManager._create_tables(db)
        await SchemaManager._create_indexes(db)
        await SchemaManager._create_triggers(db)
        await SchemaManager._update_schema_version(db)
        await db.commit()
        logger.info("[SCHEMA] Database schema initialized (version %d)", SCHEMA_VERSION)

    @staticmethod
    async def _create_tables(db: aiosqlite.Connection) -> None:
        """Create all required database tables."""
        # Filter rules; timestamps are REAL unix seconds (UTC)
        await db.execute("""
            CREATE TABLE IF NOT EXISTS filter_rules (
                id TEXT PRIMARY KEY,
                category TEXT NOT NULL CHECK(category IN ('whitelist', 'blacklist', 'dynamic')),
                match_type TEXT NOT NULL CHECK(match_type IN ('sender_name', 'subject', 'sender_email')),
                match_mode TEXT NOT NULL CHECK(match_mode IN ('regex', 'contains')),
                pattern TEXT NOT NULL,
                enabled INTEGER NOT NULL DEFAULT 1,
                created_at REAL NOT NULL,
                updated_at REAL NOT NULL,
                last_hit_at REAL,
                expires_at REAL,
                subject_hash TEXT,
                CHECK ((category = 'dynamic') = (expires_at IS NOT NULL)),
                UNIQUE (category, match_type, match_mode, pattern)
            )
        """)

        # Per-rule counters
        await db.execute("""
            CREATE TABLE IF NOT EXISTS rule_stats (
                rule_id TEXT PRIMARY KEY,
                total_processed INTEGER NOT NULL DEFAULT 0,
                deleted_count INTEGER NOT NULL DEFAULT 0,
                last_updated REAL NOT NULL,
                FOREIGN KEY (rule_id) REFERENCES filter_rules(id) ON DELETE CASCADE
            )
        """)

        # Global counters (single row)
        await db.execute("""
            CREATE TABLE IF NOT EXISTS global_stats (
                id INTEGER PRIMARY KEY CHECK(id = 1),
                total_processed INTEGER NOT NULL DEFAULT 0,
                total_forwarded INTEGER NOT NULL DEFAULT 0,
                total_dropped INTEGER NOT NULL DEFAULT 0,
                last_updated REAL NOT NULL
            )
        """)
        await db.execute("""
            INSERT OR IGNORE INTO global_stats (id, total_processed, total_forwarded, total_dropped, last_updated)
            VALUES (1, 0, 0, 0, strftime('%s', 'now'))
        """)

        # Dynamic rule settings as key/value rows
        await db.execute("""
            CREATE TABLE IF NOT EXISTS dynamic_config (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
        """)

        # Subject occurrences used for burst detection
        await db.execute("""
            CREATE TABLE IF NOT EXISTS email_subject_tracker (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                subject_hash TEXT NOT NULL,
                subject TEXT NOT NULL,
                received_at REAL NOT NULL
            )
        """)

        # Schema version table
        await db.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

    @staticmethod
    async def _create_indexes(db: aiosqlite.Connection) -> None:
        """Create indexes for the hot queries."""
        await db.execute("CREATE INDEX IF NOT EXISTS idx_filter_rules_enabled ON filter_rules(enabled, category, created_at)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_filter_rules_expires ON filter_rules(expires_at) WHERE category = 'dynamic'")
        # At most one dynamic rule per subject hash, across every process sharing the file
        await db.execute(
            "CREATE UNIQUE INDEX IF NOT EXISTS idx_filter_rules_dynamic_hash "
            "ON filter_rules(subject_hash) WHERE category = 'dynamic'"
        )
        await db.execute("CREATE INDEX IF NOT EXISTS idx_subject_tracker_lookup ON email_subject_tracker(subject_hash, received_at)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_subject_tracker_received ON email_subject_tracker(received_at)")

    @staticmethod
    async def _create_triggers(db: aiosqlite.Connection) -> None:
        """Create triggers keeping the stats rows in step with rules."""
        await db.execute("""
            CREATE TRIGGER IF NOT EXISTS create_rule_stats
            AFTER INSERT ON filter_rules
            FOR EACH ROW
            BEGIN
                INSERT OR IGNORE INTO rule_stats (rule_id, total_processed, deleted_count, last_updated)
                VALUES (NEW.id, 0, 0, NEW.created_at);
            END
        """)

    @staticmethod
    async def _update_schema_version(db: aiosqlite.Connection) -> None:
        """Update schema version tracking."""
        await db.execute("INSERT OR IGNORE INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
