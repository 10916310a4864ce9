"""
Database schema definitions for the persisted duplicate / tie-break index.
"""
import sqlite3
import logging

CURRENT_SCHEMA_VERSION = 1

def init_schema(conn: sqlite3.Connection):
    """
    Applies the core schema to the database.
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

        # 2. Content fingerprint -> canonical destination (relative to the output root)
        conn.execute("""
        CREATE TABLE IF NOT EXISTS fingerprints (
            fingerprint     TEXT PRIMARY KEY,
            dest_path       TEXT NOT NULL,
            recorded_at     TEXT NOT NULL
        );
        """)

        # 3. Base name (path without ordinal) -> next unused ordinal
        conn.execute("""
        CREATE TABLE IF NOT EXISTS tiebreaks (
            base_name       TEXT PRIMARY KEY,
            next_ordinal    INTEGER NOT NULL
        );
        """)

        conn.execute("CREATE INDEX IF NOT EXISTS idx_fingerprints_dest ON fingerprints(dest_path);")

    logging.debug("Database schema initialized.")
