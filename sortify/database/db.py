"""
Connection handling for the persisted index file.
"""
import sqlite3
import logging
from pathlib import Path
from typing import Optional

from ..exceptions import DatabaseError
from .schema import CURRENT_SCHEMA_VERSION, init_schema

class DBManager:
    """
    Opens the index at `db_path`.

    With `read_only` (dry runs) nothing is created or written: an existing
    index is opened through a `mode=ro` URI, a missing one is replaced by an
    empty in-memory database.
    """

    def __init__(self, db_path: Path, read_only: bool = False):
        self.db_path = Path(db_path)
        self.read_only = read_only
        self._conn: Optional[sqlite3.Connection] = None

    def connect(self) -> sqlite3.Connection:
        """
        Connects to the SQLite database and configures pragmas.
        The connection is only used from the thread that runs the pool.
        """
        if self._conn:
            return self._conn

        logging.info(f"Connecting to index database: {self.db_path}"
                     f"{' (read-only)' if self.read_only else ''}")
        try:
            if not self.read_only:
                self._conn = sqlite3.connect(self.db_path)
                self._conn.execute("PRAGMA journal_mode=WAL;")
                self._conn.execute("PRAGMA synchronous=NORMAL;")
                init_schema(self._conn)
            elif self.db_path.exists():
                self._conn = sqlite3.connect(f"{self.db_path.resolve().as_uri()}?mode=ro", uri=True)
            else:
                self._conn = sqlite3.connect(":memory:")
                init_schema(self._conn)

            self._check_version()
        except sqlite3.Error as e:
            self.close()
            raise DatabaseError(f"Cannot open index {self.db_path}: {e}") from e
        except DatabaseError:
            self.close()
            raise

        return self._conn

    def _check_version(self):
        row = self._conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
        version = row[0] if row else None
        if version is None or version > CURRENT_SCHEMA_VERSION:
            raise DatabaseError(
                f"Index {self.db_path} has schema version {version}; "
                f"this sortify understands up to {CURRENT_SCHEMA_VERSION}"
            )

    def close(self):
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self.connect()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
