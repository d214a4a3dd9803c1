"""
Database schema definitions.
"""
import sqlite3
import logging

CURRENT_SCHEMA_VERSION = 1

def init_schema(conn: sqlite3.Connection):
    """
    Applies the ledger schema to the database.
    Idempotent: safe to run on every startup.
    """
    with conn:
        # 1. Version Tracking (For future migrations)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY
            );
        """)

        cur = conn.cursor()
        cur.execute("SELECT version FROM schema_version")
        if not cur.fetchone():
            conn.execute("INSERT INTO schema_version (version) VALUES (?)", (CURRENT_SCHEMA_VERSION,))

        # 2. Processed Photos (the dedup ledger)
        # One row per archived access key, with record linkage for auditing
        conn.execute("""
        CREATE TABLE IF NOT EXISTS processed_photos (
            id              INTEGER PRIMARY KEY AUTOINCREMENT,
            access_key      TEXT NOT NULL UNIQUE,
            record_id       TEXT NOT NULL,
            project_number  TEXT NOT NULL DEFAULT '',
            recorded_at     TEXT NOT NULL
        );
        """)

        conn.execute("CREATE INDEX IF NOT EXISTS idx_processed_record ON processed_photos(record_id);")

    logging.debug("Ledger schema initialized.")
