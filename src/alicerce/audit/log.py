"""
SQLite Audit Log - append-only record of who did what

The audit table lives in the same database file as the record store but is
never touched by it. Triggers abort any UPDATE or DELETE, so even a
hand-written SQL statement cannot rewrite history.
"""

import json
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

from alicerce.audit.models import AuditAction, AuditEntry
from alicerce.kernel.errors import AuditLogError
from alicerce.kernel.retry import retry_on_sqlite_lock


class SQLiteAuditLog:
    """
    SQLite-based append-only audit log

    Schema:
    - audit_log table: one row per entry
    - Triggers: audit_log_no_update, audit_log_no_delete
    - Indices: resource_id, action, occurred_at
    """

    def __init__(self, db_path: str | Path) -> None:
        """
        Initialize audit log with SQLite database

        Args:
            db_path: Path to SQLite database file (usually the store's file)
        """
        self.db_path = Path(db_path)
        self._initialize_schema()

    def _initialize_schema(self) -> None:
        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("""
                CREATE TABLE IF NOT EXISTS audit_log (
                    entry_id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    user_name TEXT NOT NULL,
                    user_role TEXT NOT NULL,
                    action TEXT NOT NULL,
                    resource_type TEXT NOT NULL,
                    resource_id TEXT NOT NULL,
                    details_json TEXT NOT NULL,
                    occurred_at TEXT NOT NULL
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_audit_resource ON audit_log(resource_id)"
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_audit_action ON audit_log(action)")
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_audit_time ON audit_log(occurred_at)"
            )
            conn.execute("""
                CREATE TRIGGER IF NOT EXISTS audit_log_no_update
                BEFORE UPDATE ON audit_log
                BEGIN
                    SELECT RAISE(ABORT, 'audit_log is append-only');
                END
            """)
            conn.execute("""
                CREATE TRIGGER IF NOT EXISTS audit_log_no_delete
                BEFORE DELETE ON audit_log
                BEGIN
                    SELECT RAISE(ABORT, 'audit_log is append-only');
                END
            """)
            conn.commit()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(str(self.db_path), timeout=5.0)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    @retry_on_sqlite_lock()
    def append(self, entry: AuditEntry) -> AuditEntry:
        """
        Append one entry

        Raises:
            AuditLogError: If the entry id already exists
        """
        with self._connect() as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO audit_log (
                        entry_id, user_id, user_name, user_role, action,
                        resource_type, resource_id, details_json, occurred_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                    (
                        entry.entry_id,
                        entry.user_id,
                        entry.user_name,
                        entry.user_role,
                        entry.action.value,
                        entry.resource_type,
                        entry.resource_id,
                        json.dumps(entry.details, default=str),
                        entry.timestamp.isoformat(),
                    ),
                )
                conn.commit()
            except sqlite3.IntegrityError as e:
                conn.rollback()
                raise AuditLogError(f"Failed to append audit entry: {e}") from e
        return entry

    def entries(
        self,
        resource_id: str | None = None,
        action: AuditAction | str | None = None,
        limit: int | None = None,
    ) -> list[AuditEntry]:
        """
        Load entries in chronological order

        Args:
            resource_id: Only entries about this resource
            action: Only entries with this action
            limit: Keep only the most recent N entries
        """
        clauses: list[str] = []
        params: list[object] = []
        if resource_id is not None:
            clauses.append("resource_id = ?")
            params.append(resource_id)
        if action is not None:
            clauses.append("action = ?")
            params.append(action.value if isinstance(action, AuditAction) else action)

        query = "SELECT * FROM audit_log"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY occurred_at, rowid"

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()

        entries = [
            AuditEntry(
                entry_id=row["entry_id"],
                user_id=row["user_id"],
                user_name=row["user_name"],
                user_role=row["user_role"],
                action=AuditAction(row["action"]),
                resource_type=row["resource_type"],
                resource_id=row["resource_id"],
                details=json.loads(row["details_json"]),
                timestamp=datetime.fromisoformat(row["occurred_at"]),
            )
            for row in rows
        ]
        if limit is not None:
            entries = entries[-limit:]
        return entries

    def count(self) -> int:
        with self._connect() as conn:
            return int(conn.execute("SELECT COUNT(*) FROM audit_log").fetchone()[0])
