"""
SQLite storage for Warden audit entries.

AuditDB is the durable sink behind the AuditLogger: the dispatcher writes
each entry here from its background thread, and the CLI reopens the file
to query, aggregate and export past decisions.

Design Principles:
    - Append-only: entries are inserted, never updated
    - Self-contained: one .db file holds the whole trail
    - Thread-safe: one connection shared behind a lock

Tables:
    - schema_version: Applied schema version
    - audit_entries: One row per AuditEntry
"""

import json
import sqlite3
import threading
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Generator

from warden.errors import StorageConnectionError, StorageReadError, StorageWriteError
from warden.schema import ActorType, AuditEntry, AuditResult

# Schema version for migrations
SCHEMA_VERSION = 1

# SQL for creating tables
CREATE_TABLES_SQL = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL
);

-- Audit entries: one row per decision
CREATE TABLE IF NOT EXISTS audit_entries (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    entry_id TEXT NOT NULL UNIQUE,
    tenant_id TEXT,
    actor_id TEXT NOT NULL,
    actor_type TEXT NOT NULL,
    action TEXT NOT NULL,
    resource TEXT NOT NULL,
    result TEXT NOT NULL,
    details_json TEXT NOT NULL,
    timestamp TEXT NOT NULL
);

-- Indexes for common queries
CREATE INDEX IF NOT EXISTS idx_audit_entries_tenant ON audit_entries(tenant_id);
CREATE INDEX IF NOT EXISTS idx_audit_entries_actor ON audit_entries(actor_id);
CREATE INDEX IF NOT EXISTS idx_audit_entries_timestamp ON audit_entries(timestamp);
"""


def now_iso() -> str:
    """Get current UTC time in ISO format."""
    return datetime.now(UTC).isoformat()


class AuditDB:
    """
    SQLite database for audit entries.

    Usage:
        db = AuditDB("warden.db")
        db.write(entry)
        entries = db.list_entries(tenant_id="acme")
        db.close()

    Or use as context manager:
        with AuditDB("warden.db") as db:
            ...
    """

    def __init__(self, db_path: str | Path) -> None:
        """
        Initialize the database connection.

        Args:
            db_path: Path to the SQLite database file.
                     Will be created if it doesn't exist.
        """
        self.db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()
        self._connect()
        self._init_schema()

    def _connect(self) -> None:
        """Establish database connection."""
        try:
            self._conn = sqlite3.connect(
                str(self.db_path),
                check_same_thread=False,
            )
            self._conn.row_factory = sqlite3.Row
        except sqlite3.Error as e:
            raise StorageConnectionError(
                db_path=str(self.db_path),
                operation="connect",
                message=f"Failed to connect to database: {e}",
            ) from e

    def _init_schema(self) -> None:
        """Initialize database schema if needed."""
        try:
            with self._lock:
                cursor = self._conn.executescript(CREATE_TABLES_SQL)
                cursor.close()

                cursor = self._conn.execute(
                    "SELECT version FROM schema_version ORDER BY version DESC LIMIT 1"
                )
                row = cursor.fetchone()
                if row is None:
                    self._conn.execute(
                        "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                        (SCHEMA_VERSION, now_iso()),
                    )
                self._conn.commit()
        except sqlite3.Error as e:
            raise StorageWriteError(
                operation="init_schema",
                underlying_error=str(e),
            ) from e

    @contextmanager
    def transaction(self) -> Generator[None, None, None]:
        """Context manager for database transactions."""
        with self._lock:
            try:
                yield
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None

    def __enter__(self) -> "AuditDB":
        """Enter context manager."""
        return self

    def __exit__(self, *args: Any) -> None:
        """Exit context manager."""
        self.close()

    # =========================================================================
    # Audit Entry Operations
    # =========================================================================

    def write(self, entry: AuditEntry) -> None:
        """
        Insert an audit entry.

        Args:
            entry: The entry to persist

        Raises:
            StorageWriteError: If the insert fails (including a closed database)
        """
        if self._conn is None:
            raise StorageWriteError(operation="write", underlying_error="database is closed")

        try:
            with self.transaction():
                self._conn.execute(
                    """
                    INSERT INTO audit_entries (
                        entry_id, tenant_id, actor_id, actor_type, action,
                        resource, result, details_json, timestamp
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        entry.id,
                        entry.tenant_id,
                        entry.actor_id,
                        entry.actor_type.value,
                        entry.action,
                        entry.resource,
                        entry.result.value,
                        json.dumps(entry.details, default=str),
                        entry.timestamp.isoformat(),
                    ),
                )
        except sqlite3.Error as e:
            raise StorageWriteError(
                operation="write",
                underlying_error=str(e),
            ) from e

    def list_entries(self, tenant_id: str | None = None) -> list[AuditEntry]:
        """
        List stored entries in the order they were written.

        Args:
            tenant_id: Restrict to one tenant (None returns everything)

        Returns:
            List of AuditEntry objects, oldest first
        """
        sql = "SELECT * FROM audit_entries"
        params: tuple[Any, ...] = ()
        if tenant_id is not None:
            sql += " WHERE tenant_id = ?"
            params = (tenant_id,)
        sql += " ORDER BY seq"

        try:
            with self._lock:
                rows = self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise StorageReadError(
                operation="list_entries",
                underlying_error=str(e),
            ) from e

        return [self._row_to_entry(row) for row in rows]

    def count(self) -> int:
        """Number of stored entries."""
        try:
            with self._lock:
                row = self._conn.execute("SELECT COUNT(*) AS n FROM audit_entries").fetchone()
        except sqlite3.Error as e:
            raise StorageReadError(
                operation="count",
                underlying_error=str(e),
            ) from e
        return row["n"]

    def purge(self, before: datetime) -> int:
        """
        Delete entries older than a cutoff. Administrative use only.

        Args:
            before: Entries with an earlier timestamp are deleted

        Returns:
            Number of rows deleted
        """
        if before.tzinfo is None:
            before = before.replace(tzinfo=UTC)

        # Compare parsed timestamps; ISO strings with offsets don't sort reliably
        stale = [
            entry.id
            for entry in self.list_entries()
            if entry.timestamp < before
        ]
        if not stale:
            return 0

        try:
            with self.transaction():
                self._conn.executemany(
                    "DELETE FROM audit_entries WHERE entry_id = ?",
                    [(entry_id,) for entry_id in stale],
                )
        except sqlite3.Error as e:
            raise StorageWriteError(
                operation="purge",
                underlying_error=str(e),
            ) from e
        return len(stale)

    @staticmethod
    def _row_to_entry(row: sqlite3.Row) -> AuditEntry:
        return AuditEntry(
            id=row["entry_id"],
            tenant_id=row["tenant_id"],
            actor_id=row["actor_id"],
            actor_type=ActorType(row["actor_type"]),
            action=row["action"],
            resource=row["resource"],
            result=AuditResult(row["result"]),
            details=json.loads(row["details_json"]),
            timestamp=datetime.fromisoformat(row["timestamp"]),
        )
