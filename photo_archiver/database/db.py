"""
Database connection management.
"""
import sqlite3
import logging
import threading
from pathlib import Path
from typing import Optional

from .schema import init_schema

class DBManager:
    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None
        # Serializes ledger inserts
        self._write_lock = threading.Lock()

    def connect(self) -> sqlite3.Connection:
        """
        Connects to the SQLite ledger database and configures pragmas.
        """
        if self._conn:
            return self._conn

        logging.info(f"Connecting to ledger database: {self.db_path}")
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)

        # Durability matters more than speed for the ledger
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.execute("PRAGMA synchronous=FULL;")

        # Ensure schema exists
        init_schema(self._conn)

        return self._conn

    def close(self):
        if self._conn:
            self._conn.close()
            self._conn = None

    @property
    def write_lock(self) -> threading.Lock:
        """Returns the write lock serializing ledger inserts."""
        return self._write_lock
