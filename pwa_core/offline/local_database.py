# =============================================================================
# pwa_core/offline/local_database.py
# Local SQLite store for offline form records
# =============================================================================
"""
FormStore - durable key-value store of FormRecords keyed by local id.

Features:
- Versioned schema (PRAGMA user_version), opened at a fixed version
- Full-scan read in insertion order
- Atomic single-record upsert
- Thread-local connections
"""

from __future__ import annotations
import json
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
import logging

from pwa_core.errors import LocalStoreError
from pwa_core.offline.config import WorkerConfig

logger = logging.getLogger(__name__)


@dataclass
class FormRecord:
    """One unit of offline work (a filled-in service order form)."""
    fields: Dict[str, Any]
    unique_key: str
    local_id: Optional[int] = None
    synced: bool = False
    server_id: Optional[Any] = None
    synced_at: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> FormRecord:
        return cls(
            fields=json.loads(row["data_json"]) if row["data_json"] else {},
            unique_key=row["chave_unica"],
            local_id=row["id"],
            synced=bool(row["sincronizado"]),
            server_id=row["server_id"],
            synced_at=row["synced_at"],
            created_at=row["created_at"],
        )


class FormStore:
    """
    SQLite-backed form record store.

    Usage:
        store = FormStore(config.db_path, db_version=4).open()
        for record in store.get_all():
            ...
        store.put(record)
    """

    SCHEMA = """
        CREATE TABLE IF NOT EXISTS {table} (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            chave_unica TEXT NOT NULL,
            sincronizado INTEGER NOT NULL DEFAULT 0,
            server_id,
            synced_at TEXT,
            data_json TEXT NOT NULL,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP
        )
    """

    def __init__(
        self,
        db_path: Union[str, Path],
        db_name: str = "FormulariosDB",
        db_version: int = 4,
        store_name: str = "formularios",
    ):
        if not store_name.isidentifier():
            raise LocalStoreError(f"Invalid store name: {store_name!r}", db_name=db_name, recoverable=False)
        self.db_path = Path(db_path)
        self.db_name = db_name
        self.db_version = db_version
        self.store_name = store_name
        self._local = threading.local()
        self._opened = False

    @classmethod
    def from_config(cls, config: WorkerConfig) -> FormStore:
        return cls(
            config.db_path,
            db_name=config.db_name,
            db_version=config.db_version,
            store_name=config.store_name,
        )

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        if getattr(self._local, "connection", None) is None:
            self._local.connection = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._local.connection.row_factory = sqlite3.Row
        return self._local.connection

    @contextmanager
    def transaction(self):
        """Context manager for database transactions."""
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    def open(self) -> FormStore:
        """
        Open the database at the configured schema version, upgrading if needed.

        Raises:
            LocalStoreError: database missing/unreadable, or stored version is newer
        """
        if self._opened:
            return self

        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = self._get_connection()
            current = conn.execute("PRAGMA user_version").fetchone()[0]

            if current > self.db_version:
                raise LocalStoreError(
                    f"Requested version {self.db_version} is lower than existing version {current}",
                    db_name=self.db_name,
                    recoverable=False,
                )

            if current < self.db_version:
                with self.transaction() as conn:
                    conn.execute(self.SCHEMA.format(table=self.store_name))
                    conn.execute(f"PRAGMA user_version = {int(self.db_version)}")
                logger.info(f"Upgraded {self.db_name} from version {current} to {self.db_version}")
        except sqlite3.Error as e:
            raise LocalStoreError(f"Cannot open {self.db_name}: {e}", db_name=self.db_name) from e

        self._opened = True
        return self

    # =========================================================================
    # RECORD ACCESS
    # =========================================================================

    def get_all(self) -> List[FormRecord]:
        """Full scan in insertion order."""
        try:
            rows = self._get_connection().execute(
                f"SELECT * FROM {self.store_name} ORDER BY id ASC"
            ).fetchall()
        except sqlite3.Error as e:
            raise LocalStoreError(f"Cannot read {self.store_name}: {e}", db_name=self.db_name) from e
        return [FormRecord.from_row(row) for row in rows]

    def get(self, local_id: int) -> Optional[FormRecord]:
        try:
            row = self._get_connection().execute(
                f"SELECT * FROM {self.store_name} WHERE id = ?",
                [local_id],
            ).fetchone()
        except sqlite3.Error as e:
            raise LocalStoreError(f"Cannot read record: {e}", db_name=self.db_name, record_id=local_id) from e
        return FormRecord.from_row(row) if row else None

    def put(self, record: FormRecord) -> int:
        """
        Insert or replace a record by local id.

        Once a record is stored as synced its unique key and server id can no
        longer change.

        Returns:
            The record's local id
        """
        if record.local_id is not None:
            existing = self.get(record.local_id)
            if existing is not None and existing.synced:
                if (
                    not record.synced
                    or record.unique_key != existing.unique_key
                    or record.server_id != existing.server_id
                ):
                    raise LocalStoreError(
                        "Synced record is immutable",
                        db_name=self.db_name,
                        record_id=record.local_id,
                        recoverable=False,
                    )

        values = [
            record.unique_key,
            int(record.synced),
            record.server_id,
            record.synced_at,
            json.dumps(record.fields),
        ]
        try:
            with self.transaction() as conn:
                if record.local_id is None:
                    cursor = conn.execute(
                        f"""
                        INSERT INTO {self.store_name}
                            (chave_unica, sincronizado, server_id, synced_at, data_json)
                        VALUES (?, ?, ?, ?, ?)
                        """,
                        values,
                    )
                    record.local_id = cursor.lastrowid
                else:
                    conn.execute(
                        f"""
                        INSERT OR REPLACE INTO {self.store_name}
                            (id, chave_unica, sincronizado, server_id, synced_at, data_json, created_at)
                        VALUES (?, ?, ?, ?, ?, ?, COALESCE(?, CURRENT_TIMESTAMP))
                        """,
                        [record.local_id] + values + [record.created_at],
                    )
        except sqlite3.Error as e:
            raise LocalStoreError(
                f"Cannot write record: {e}",
                db_name=self.db_name,
                record_id=record.local_id,
            ) from e

        return record.local_id

    def add(self, fields: Dict[str, Any], unique_key: Optional[str] = None) -> FormRecord:
        """Queue a new unsynced form (the form UI's side of the store)."""
        record = FormRecord(fields=dict(fields), unique_key=unique_key or str(uuid.uuid4()))
        self.put(record)
        logger.info(f"Queued form {record.local_id} for sync")
        return record

    def get_pending_count(self) -> int:
        """Count of records not yet synced."""
        try:
            row = self._get_connection().execute(
                f"SELECT COUNT(*) AS count FROM {self.store_name} WHERE sincronizado = 0"
            ).fetchone()
        except sqlite3.Error as e:
            raise LocalStoreError(f"Cannot count pending records: {e}", db_name=self.db_name) from e
        return row["count"] if row else 0

    def close(self) -> None:
        """Close database connection."""
        if getattr(self._local, "connection", None) is not None:
            self._local.connection.close()
            self._local.connection = None
        self._opened = False
