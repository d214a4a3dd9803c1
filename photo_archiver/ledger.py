"""
The dedup ledger: which photo access keys have already been archived.

Two interchangeable stores implement `LedgerRepository`:
  - RemoteLookupLedger: rows in a Fulcrum lookup form (production).
  - SqliteLedger: a local SQLite file (tests and offline runs).
"""
import logging
import sqlite3
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Set

from . import config
from .database.db import DBManager
from .database.ops import LedgerOps
from .exceptions import LedgerWriteError, RemoteApiError
from .logutil import ctx
from .models import LedgerEntry, Record
from .remote.client import FulcrumClient


class LedgerRepository(ABC):
    @abstractmethod
    def snapshot(self) -> Set[str]:
        """Returns every access key already processed."""

    @abstractmethod
    def append(self, access_key: str, record: Record) -> LedgerEntry:
        """
        Records `access_key` as processed. Only call after the photo was
        copied into the archive.

        Raises:
            LedgerWriteError: the entry could not be stored.
        """


class RemoteLookupLedger(LedgerRepository):
    def __init__(self,
                 client: FulcrumClient,
                 lookup_form_id: str,
                 latitude: float = config.DEFAULT_LOOKUP_LATITUDE,
                 longitude: float = config.DEFAULT_LOOKUP_LONGITUDE):
        self.client = client
        self.lookup_form_id = lookup_form_id
        self.latitude = latitude
        self.longitude = longitude

    def snapshot(self) -> Set[str]:
        keys: Set[str] = set()
        for row in self.client.query_lookup_table(self.lookup_form_id):
            values = row.get("form_values") or {}
            key = values.get(config.LOOKUP_FIELD_ACCESS_KEY)
            if key:
                keys.add(str(key))
            else:
                logging.warning(f"Lookup record {row.get('id')} has no access key")
        logging.debug(f"Ledger snapshot holds {len(keys)} access keys")
        return keys

    def append(self, access_key: str, record: Record) -> LedgerEntry:
        form_values = {
            config.LOOKUP_FIELD_ACCESS_KEY: access_key,
            config.LOOKUP_FIELD_PROJECT: record.project_number,
        }
        try:
            created = self.client.insert_lookup_row(
                self.lookup_form_id, form_values,
                latitude=self.latitude, longitude=self.longitude,
            )
        except RemoteApiError as e:
            raise LedgerWriteError(f"Failed to record access key {access_key}: {e}") from e

        logging.info(f"Ledger entry {created['id']} created{ctx(access_key=access_key, record=record.id)}")
        return LedgerEntry(
            access_key=access_key,
            record_id=record.id,
            project_number=record.project_number,
            recorded_at=datetime.now(timezone.utc),
            entry_id=str(created["id"]),
        )


class SqliteLedger(LedgerRepository):
    def __init__(self, db_path: Path):
        self.db_manager = DBManager(db_path)
        self.ops = LedgerOps(self.db_manager.connect())

    def snapshot(self) -> Set[str]:
        return self.ops.fetch_access_keys()

    def append(self, access_key: str, record: Record) -> LedgerEntry:
        entry = LedgerEntry(
            access_key=access_key,
            record_id=record.id,
            project_number=record.project_number,
            recorded_at=datetime.now(timezone.utc),
        )
        try:
            with self.db_manager.write_lock:
                entry_id = self.ops.insert_processed(entry)
                self.ops.conn.commit()
        except (sqlite3.Error, RuntimeError) as e:
            raise LedgerWriteError(f"Failed to record access key {access_key}: {e}") from e

        entry.entry_id = str(entry_id)
        logging.info(f"Ledger entry {entry_id} created{ctx(access_key=access_key, record=record.id)}")
        return entry

    def close(self):
        self.db_manager.close()
