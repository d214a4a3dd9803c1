import sqlite3
from typing import Set

from ..models import LedgerEntry

class LedgerOps:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def fetch_access_keys(self) -> Set[str]:
        """Returns every access key recorded in the ledger."""
        cur = self.conn.cursor()
        cur.execute("SELECT access_key FROM processed_photos")
        return {row[0] for row in cur.fetchall()}

    def insert_processed(self, entry: LedgerEntry) -> int:
        """
        Records a processed photo. A duplicate access key is ignored and the
        existing row id returned.
        """
        cur = self.conn.cursor()
        cur.execute("""
            INSERT OR IGNORE INTO processed_photos (access_key, record_id, project_number, recorded_at)
            VALUES (?, ?, ?, ?)
        """, (entry.access_key, entry.record_id, entry.project_number, entry.recorded_at.isoformat()))

        if cur.rowcount == 0:
            cur.execute("SELECT id FROM processed_photos WHERE access_key = ?", (entry.access_key,))
            return int(cur.fetchone()[0])

        if cur.lastrowid is None:
            raise RuntimeError("Database INSERT failed to return a row ID.")
        return cur.lastrowid
