"""
Record Store - generic CRUD over the engine's collections

The engine talks to persistence only through the Store protocol: get, list,
insert, update, delete, plus transaction() for writes that must land
together. SQLiteStore keeps every collection in one table of versioned JSON
documents.

Every record carries an "id" and a "version". update() with an
expected_version is a compare-and-set: two writers that read the same
version cannot both win.
"""

import json
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

from alicerce.kernel.errors import DuplicateRecord, RecordNotFound, StoreError, VersionConflict
from alicerce.kernel.logging import get_logger
from alicerce.kernel.metrics import records_written_total, version_conflicts_total
from alicerce.kernel.retry import retry_on_sqlite_lock

logger = get_logger(__name__)

COLLECTIONS = frozenset(
    {"demands", "items", "proposals", "questions", "suppliers", "groups", "email_logs"}
)

Record = dict[str, Any]


class Store(Protocol):
    """Persistence contract consumed by the engine and the registry"""

    def get(self, collection: str, record_id: str) -> Record | None: ...

    def list(self, collection: str, filter: dict[str, Any] | None = None) -> list[Record]: ...

    def insert(self, collection: str, record: Record) -> Record: ...

    def update(
        self,
        collection: str,
        record_id: str,
        patch: dict[str, Any],
        expected_version: int | None = None,
    ) -> Record: ...

    def delete(self, collection: str, record_id: str) -> None: ...

    def transaction(self) -> Any: ...


def _check_collection(collection: str) -> None:
    if collection not in COLLECTIONS:
        raise StoreError(f"Unknown collection '{collection}'")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _row_to_record(row: sqlite3.Row) -> Record:
    record = json.loads(row["data_json"])
    record["id"] = row["record_id"]
    record["version"] = row["version"]
    return record


def _matches(record: Record, filter: dict[str, Any]) -> bool:
    return all(record.get(key) == value for key, value in filter.items())


class _Operations:
    """
    Collection operations bound to one open connection

    Used directly inside transaction(); SQLiteStore wraps each call in its
    own short-lived connection otherwise.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def get(self, collection: str, record_id: str) -> Record | None:
        _check_collection(collection)
        row = self.conn.execute(
            "SELECT record_id, version, data_json FROM records "
            "WHERE collection = ? AND record_id = ?",
            (collection, record_id),
        ).fetchone()
        return _row_to_record(row) if row else None

    def list(self, collection: str, filter: dict[str, Any] | None = None) -> list[Record]:
        _check_collection(collection)
        rows = self.conn.execute(
            "SELECT record_id, version, data_json FROM records "
            "WHERE collection = ? ORDER BY rowid",
            (collection,),
        ).fetchall()
        records = [_row_to_record(row) for row in rows]
        if filter:
            records = [r for r in records if _matches(r, filter)]
        return records

    def insert(self, collection: str, record: Record) -> Record:
        _check_collection(collection)
        record_id = record.get("id")
        if not record_id:
            raise StoreError(f"Record for {collection} has no id")

        data = {k: v for k, v in record.items() if k not in ("id", "version")}
        now = _now()
        try:
            self.conn.execute(
                "INSERT INTO records (collection, record_id, version, data_json, created_at, updated_at) "
                "VALUES (?, ?, 1, ?, ?, ?)",
                (collection, record_id, json.dumps(data), now, now),
            )
        except sqlite3.IntegrityError as e:
            raise DuplicateRecord(collection, record_id) from e

        records_written_total.labels(collection=collection, operation="insert").inc()
        return {**data, "id": record_id, "version": 1}

    def update(
        self,
        collection: str,
        record_id: str,
        patch: dict[str, Any],
        expected_version: int | None = None,
    ) -> Record:
        _check_collection(collection)
        current = self.get(collection, record_id)
        if current is None:
            raise RecordNotFound(collection, record_id)

        if expected_version is not None and current["version"] != expected_version:
            version_conflicts_total.labels(collection=collection).inc()
            raise VersionConflict(collection, record_id, expected_version, current["version"])

        merged = {**current, **patch}
        data = {k: v for k, v in merged.items() if k not in ("id", "version")}

        # Compare-and-set on the version read above
        cursor = self.conn.execute(
            "UPDATE records SET data_json = ?, version = version + 1, updated_at = ? "
            "WHERE collection = ? AND record_id = ? AND version = ?",
            (json.dumps(data), _now(), collection, record_id, current["version"]),
        )
        if cursor.rowcount != 1:
            actual = self.get(collection, record_id)
            version_conflicts_total.labels(collection=collection).inc()
            raise VersionConflict(
                collection,
                record_id,
                current["version"],
                actual["version"] if actual else -1,
            )

        records_written_total.labels(collection=collection, operation="update").inc()
        return {**data, "id": record_id, "version": current["version"] + 1}

    def delete(self, collection: str, record_id: str) -> None:
        _check_collection(collection)
        cursor = self.conn.execute(
            "DELETE FROM records WHERE collection = ? AND record_id = ?",
            (collection, record_id),
        )
        if cursor.rowcount == 0:
            raise RecordNotFound(collection, record_id)
        records_written_total.labels(collection=collection, operation="delete").inc()


class SQLiteStore:
    """
    SQLite-based record store

    WAL mode for concurrent readers. Connections run in autocommit mode;
    transaction() opens BEGIN IMMEDIATE so a multi-record write holds the
    write lock from its first read.

    Schema:
    - records table: (collection, record_id) primary key, version, JSON body
    """

    def __init__(self, db_path: str | Path, timeout: float = 5.0) -> None:
        """
        Initialize store with SQLite database

        Args:
            db_path: Path to SQLite database file
            timeout: Seconds to wait on a locked database before failing
        """
        self.db_path = Path(db_path)
        self.timeout = timeout
        self._initialize_schema()

    def _initialize_schema(self) -> None:
        """Create tables and indices if they don't exist"""
        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
            conn.execute("""
                CREATE TABLE IF NOT EXISTS records (
                    collection TEXT NOT NULL,
                    record_id TEXT NOT NULL,
                    version INTEGER NOT NULL,
                    data_json TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,

                    PRIMARY KEY (collection, record_id)
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_records_collection ON records(collection)"
            )

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Context manager for autocommit connections"""
        conn = sqlite3.connect(str(self.db_path), timeout=self.timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    @retry_on_sqlite_lock()
    def get(self, collection: str, record_id: str) -> Record | None:
        """
        Load a record by id

        Returns:
            Record dict (with id and version) or None
        """
        with self._connect() as conn:
            return _Operations(conn).get(collection, record_id)

    @retry_on_sqlite_lock()
    def list(self, collection: str, filter: dict[str, Any] | None = None) -> list[Record]:
        """
        List records of a collection in insertion order

        Args:
            collection: Collection name
            filter: Optional field -> value equality filter
        """
        with self._connect() as conn:
            return _Operations(conn).list(collection, filter)

    @retry_on_sqlite_lock()
    def insert(self, collection: str, record: Record) -> Record:
        """
        Insert a new record at version 1

        Raises:
            DuplicateRecord: If the id is already used in the collection
        """
        with self._connect() as conn:
            return _Operations(conn).insert(collection, record)

    @retry_on_sqlite_lock()
    def update(
        self,
        collection: str,
        record_id: str,
        patch: dict[str, Any],
        expected_version: int | None = None,
    ) -> Record:
        """
        Merge patch into a record and bump its version

        Args:
            collection: Collection name
            record_id: Record id
            patch: Fields to overwrite
            expected_version: Version the caller read (optimistic locking)

        Raises:
            RecordNotFound: If the record does not exist
            VersionConflict: If the record changed since expected_version
        """
        with self._connect() as conn:
            return _Operations(conn).update(collection, record_id, patch, expected_version)

    @retry_on_sqlite_lock()
    def delete(self, collection: str, record_id: str) -> None:
        """
        Delete a record

        Raises:
            RecordNotFound: If the record does not exist
        """
        with self._connect() as conn:
            _Operations(conn).delete(collection, record_id)

    @retry_on_sqlite_lock()
    def _begin(self, conn: sqlite3.Connection) -> None:
        conn.execute("BEGIN IMMEDIATE")

    @contextmanager
    def transaction(self) -> Iterator[_Operations]:
        """
        Run several operations atomically

        Yields an object with the same get/list/insert/update/delete
        methods. Commits on normal exit, rolls back on any exception.

        Example:
            >>> with store.transaction() as tx:
            ...     tx.update("demands", demand_id, {"status": "Em Cotação"}, expected_version=3)
            ...     tx.insert("items", item)
        """
        with self._connect() as conn:
            self._begin(conn)
            try:
                yield _Operations(conn)
            except BaseException:
                conn.rollback()
                logger.debug("Store transaction rolled back", db_path=str(self.db_path))
                raise
            conn.commit()

    def count(self, collection: str) -> int:
        """Number of records in a collection"""
        _check_collection(collection)
        with self._connect() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS n FROM records WHERE collection = ?", (collection,)
            ).fetchone()
            return int(row["n"])
