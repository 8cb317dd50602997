"""
SQLite audit trail for EXEX.

Every request the dispatcher handles, allowed or denied, is appended to a
single table. Nothing is ever updated or deleted.

Design Principles:
    - Append-only: Historical data is never modified
    - Integrity: The input hash lets an event be matched to a request
    - Self-contained: Single .db file holds the whole trail

Tables:
    - schema_version: Applied schema version
    - events: One row per dispatched request
"""

import hashlib
import json
import sqlite3
import threading
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from exex.errors import StorageConnectionError, StorageReadError, StorageWriteError
from exex.schema import AuditEvent, OperationStatus

# Schema version for migrations
SCHEMA_VERSION = 1

CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS events (
    event_id TEXT PRIMARY KEY,
    created_at TEXT NOT NULL,
    operation TEXT NOT NULL,
    target TEXT,
    args_json TEXT NOT NULL,
    status TEXT NOT NULL,
    reason TEXT NOT NULL DEFAULT '',
    rule TEXT,
    error TEXT,
    duration_ms REAL NOT NULL DEFAULT 0,
    input_hash TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_events_created_at ON events(created_at);
CREATE INDEX IF NOT EXISTS idx_events_status ON events(status);
"""

# Arguments whose values are not stored verbatim
REDACTED_ARGS = ("content",)


def generate_id() -> str:
    """Generate a unique event ID."""
    return uuid.uuid4().hex[:12]


def compute_hash(data: Any) -> str:
    """Compute SHA256 hash of data."""
    if data is None:
        return ""
    if isinstance(data, str):
        content = data.encode("utf-8")
    elif isinstance(data, bytes):
        content = data
    else:
        content = json.dumps(data, sort_keys=True, default=str).encode("utf-8")
    return hashlib.sha256(content).hexdigest()


def now_iso() -> str:
    """Get current UTC time in ISO format."""
    return datetime.now(UTC).isoformat()


def redact_args(args: dict[str, Any]) -> dict[str, Any]:
    """Replace file content with its length so the trail stays small."""
    redacted = dict(args)
    for key in REDACTED_ARGS:
        value = redacted.get(key)
        if isinstance(value, str):
            redacted[key] = f"<{len(value)} chars>"
    return redacted


class AuditDB:
    """
    SQLite database holding the audit trail.

    Usage:
        with AuditDB("exex-audit.db") as db:
            db.record_event("fs.read", {"path": "/tmp/a"}, OperationStatus.SUCCESS)
            for event in db.list_events(limit=20):
                ...

    The connection is shared across request threads; writes are serialized
    with a lock.
    """

    def __init__(self, db_path: str | Path) -> None:
        """
        Open (and create if needed) the audit database.

        Args:
            db_path: Path to the SQLite database file, or ":memory:"
        """
        self.db_path = Path(db_path) if str(db_path) != ":memory:" else db_path
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()
        self._connect()
        self._init_schema()

    def _connect(self) -> None:
        try:
            if isinstance(self.db_path, Path):
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(
                str(self.db_path),
                check_same_thread=False,
            )
            self._conn.row_factory = sqlite3.Row
        except (sqlite3.Error, OSError) as e:
            raise StorageConnectionError(
                db_path=str(self.db_path),
                operation="connect",
                message=f"Failed to connect to database: {e}",
            ) from e

    def _init_schema(self) -> None:
        try:
            cursor = self._conn.executescript(CREATE_TABLES_SQL)
            cursor.close()

            cursor = self._conn.execute(
                "SELECT version FROM schema_version ORDER BY version DESC LIMIT 1"
            )
            if cursor.fetchone() is None:
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

    def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> "AuditDB":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    # =========================================================================
    # Event Operations
    # =========================================================================

    def record_event(
        self,
        operation: str,
        args: dict[str, Any],
        status: OperationStatus,
        reason: str = "",
        rule: str | None = None,
        error: str | None = None,
        duration_ms: float = 0.0,
        target: str | None = None,
    ) -> str:
        """
        Append one event to the trail.

        Args:
            operation: Operation name
            args: Request arguments (content is redacted before storing)
            status: Outcome of the request
            reason: Policy decision reason
            rule: Policy rule that decided
            error: Error message for failed operations
            duration_ms: Time spent handling the request
            target: Primary path or command

        Returns:
            The generated event_id
        """
        event_id = generate_id()
        args_json = json.dumps(redact_args(args), default=str)
        input_hash = compute_hash(args)

        try:
            with self._lock:
                self._conn.execute(
                    """
                    INSERT INTO events (
                        event_id, created_at, operation, target, args_json,
                        status, reason, rule, error, duration_ms, input_hash
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        event_id,
                        now_iso(),
                        operation,
                        target,
                        args_json,
                        status.value,
                        reason,
                        rule,
                        error,
                        duration_ms,
                        input_hash,
                    ),
                )
                self._conn.commit()
            return event_id
        except sqlite3.Error as e:
            raise StorageWriteError(
                operation="record_event",
                underlying_error=str(e),
            ) from e

    def get_event(self, event_id: str) -> AuditEvent | None:
        """Get an event by ID, or None if not found."""
        try:
            with self._lock:
                row = self._conn.execute(
                    "SELECT * FROM events WHERE event_id = ?",
                    (event_id,),
                ).fetchone()
        except sqlite3.Error as e:
            raise StorageReadError(
                operation="get_event",
                underlying_error=str(e),
            ) from e
        return _row_to_event(row) if row is not None else None

    def list_events(
        self,
        limit: int = 100,
        status: OperationStatus | None = None,
    ) -> list[AuditEvent]:
        """
        List recent events, most recent first.

        Args:
            limit: Maximum number of events to return
            status: Only return events with this status
        """
        query = "SELECT * FROM events"
        params: list[Any] = []
        if status is not None:
            query += " WHERE status = ?"
            params.append(status.value)
        query += " ORDER BY created_at DESC, rowid DESC LIMIT ?"
        params.append(limit)

        try:
            with self._lock:
                rows = self._conn.execute(query, params).fetchall()
        except sqlite3.Error as e:
            raise StorageReadError(
                operation="list_events",
                underlying_error=str(e),
            ) from e
        return [_row_to_event(row) for row in rows]

    def count_by_status(self) -> dict[str, int]:
        """Number of events per status (every status present, zero if none)."""
        counts = {status.value: 0 for status in OperationStatus}
        try:
            with self._lock:
                rows = self._conn.execute(
                    "SELECT status, COUNT(*) AS n FROM events GROUP BY status"
                ).fetchall()
        except sqlite3.Error as e:
            raise StorageReadError(
                operation="count_by_status",
                underlying_error=str(e),
            ) from e
        for row in rows:
            counts[row["status"]] = row["n"]
        return counts


def _row_to_event(row: sqlite3.Row) -> AuditEvent:
    return AuditEvent(
        event_id=row["event_id"],
        timestamp=datetime.fromisoformat(row["created_at"]),
        operation=row["operation"],
        target=row["target"],
        args=json.loads(row["args_json"]),
        status=OperationStatus(row["status"]),
        reason=row["reason"],
        rule=row["rule"],
        error=row["error"],
        duration_ms=row["duration_ms"],
        input_hash=row["input_hash"],
    )
