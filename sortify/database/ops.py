import sqlite3
import logging
from datetime import datetime, UTC
from typing import Dict, Mapping

from ..exceptions import DatabaseError

class DBOperations:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def load_fingerprints(self) -> Dict[str, str]:
        """Returns {fingerprint: dest_path} from previous runs."""
        return dict(self._fetch_all("SELECT fingerprint, dest_path FROM fingerprints"))

    def load_tiebreaks(self) -> Dict[str, int]:
        """Returns {base_name: next_ordinal} from previous runs."""
        return dict(self._fetch_all("SELECT base_name, next_ordinal FROM tiebreaks"))

    def _fetch_all(self, sql: str) -> list:
        try:
            cur = self.conn.cursor()
            cur.execute(sql)
            return cur.fetchall()
        except sqlite3.Error as e:
            raise DatabaseError(f"Index query failed: {e}") from e

    def save_fingerprints(self, entries: Mapping[str, str]):
        """
        Inserts new fingerprints. An existing fingerprint keeps its first destination.
        """
        now_iso = datetime.now(UTC).isoformat()
        try:
            with self.conn:
                self.conn.executemany(
                    "INSERT OR IGNORE INTO fingerprints (fingerprint, dest_path, recorded_at) VALUES (?, ?, ?)",
                    [(fp, dest, now_iso) for fp, dest in entries.items()],
                )
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to save fingerprints: {e}") from e
        logging.debug(f"Saved {len(entries)} fingerprints to index.")

    def save_tiebreaks(self, counters: Mapping[str, int]):
        """Upserts counters; a stored ordinal never goes backwards."""
        try:
            with self.conn:
                self.conn.executemany(
                    """
                    INSERT INTO tiebreaks (base_name, next_ordinal) VALUES (?, ?)
                    ON CONFLICT(base_name) DO UPDATE
                    SET next_ordinal = MAX(next_ordinal, excluded.next_ordinal)
                    """,
                    list(counters.items()),
                )
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to save tie-break counters: {e}") from e
        logging.debug(f"Saved {len(counters)} tie-break counters to index.")
