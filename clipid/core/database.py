"""SQLite storage collaborator for the fingerprint catalog."""

from __future__ import annotations

import logging
import re
import sqlite3
import threading
import uuid
from collections.abc import Generator, Iterable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

from clipid.core.errors import InvalidArgument, StorageError

if TYPE_CHECKING:
    from clipid.core.repositories import AudioRepository, ContextRepository

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _dict_factory(cursor: sqlite3.Cursor, row: tuple) -> dict[str, Any]:
    """Row factory that returns dicts instead of sqlite3.Row."""
    return {col[0]: row[i] for i, col in enumerate(cursor.description)}


def check_identifier(name: str) -> str:
    """Return *name* unchanged if it is a plain SQL identifier.

    Raises:
        InvalidArgument: If the name could smuggle SQL into a statement
    """
    if not isinstance(name, str) or not _IDENTIFIER.match(name):
        raise InvalidArgument(f"Invalid SQL identifier: {name!r}")
    return name


class RowCursor:
    """Result rows of one query, consumed with ``Database.get_next_row()``.

    Rows are fetched while the connection lock is held, so a cursor stays
    valid while other threads keep using the shared connection.
    """

    def __init__(self, rows: list[dict[str, Any]]) -> None:
        self._rows = iter(rows)
        self.total = len(rows)

    def __iter__(self) -> Iterator[dict[str, Any]]:
        return self._rows

    def next_row(self) -> dict[str, Any] | None:
        return next(self._rows, None)


class Database:
    """SQLite database manager exposing the primitive storage surface.

    The catalog and the fingerprint store only ever talk to storage through
    ``execute``, ``query``, ``insert``, ``insert_or_replace`` and
    ``get_next_row`` (plus ``executemany``/``insert_many`` for bulk frames).

    Provides access to specialized repositories:
        - contexts: ContextRepository for named catalog partitions
        - audio: AudioRepository for fingerprinted reference clips

    One connection is shared across threads. Every primitive runs under a
    reentrant lock, and ``transaction()`` holds that lock until it commits or
    rolls back.
    """

    def __init__(self, db_path: Path | str = ":memory:"):
        """Initialize database.

        Args:
            db_path: Path to SQLite database file, or ":memory:"
        """
        self.db_path = db_path
        self.conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()
        self._in_transaction: bool = False
        # Repositories (lazy initialized after connect)
        self._contexts: ContextRepository | None = None
        self._audio: AudioRepository | None = None

    @property
    def is_memory(self) -> bool:
        return str(self.db_path) == ":memory:"

    def connect(self) -> None:
        """Connect to the database."""
        if not self.is_memory:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        try:
            self.conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        except sqlite3.Error as e:
            raise StorageError(f"Could not open database {self.db_path}: {e}") from e
        self.conn.row_factory = _dict_factory
        logging.debug(f"[Database] Connected to {self.db_path}")

    def close(self) -> None:
        """Close database connection."""
        with self._lock:
            if self.conn:
                self.conn.close()
                self.conn = None

    # ========== Repository Properties ==========

    @property
    def contexts(self) -> ContextRepository:
        """Get the context repository."""
        if self._contexts is None:
            from clipid.core.repositories import ContextRepository

            self._contexts = ContextRepository(self)
        return self._contexts

    @property
    def audio(self) -> AudioRepository:
        """Get the audio record repository."""
        if self._audio is None:
            from clipid.core.repositories import AudioRepository

            self._audio = AudioRepository(self)
        return self._audio

    # ========== Transaction Management ==========

    @contextmanager
    def transaction(self) -> Generator[None, None, None]:
        """Context manager for database transactions.

        Provides atomic operations with automatic commit on success
        or rollback on failure. Primitives skip their individual commits
        while inside a transaction. Nested use from the owning thread joins
        the outer transaction.

        Usage:
            with database.transaction():
                database.audio.add(record)
                fingerprints.store_frames(context, record.uuid, frames)
            # All operations committed, or all rolled back on error

        Raises:
            RuntimeError: If database not connected
            StorageError: If the transaction cannot be started or committed
        """
        with self._lock:
            conn = self._connection
            if self._in_transaction:
                yield
                return

            self._in_transaction = True
            try:
                # SQLite auto-commits by default, so we start a transaction explicitly
                self._run("BEGIN")
                yield
                try:
                    conn.commit()
                except sqlite3.Error as e:
                    raise StorageError(f"Commit failed: {e}") from e
            except BaseException:
                conn.rollback()
                raise
            finally:
                self._in_transaction = False

    # ========== Schema Management ==========

    def initialize_schema(self) -> None:
        """Create the catalog tables.

        The fingerprint table belongs to the fingerprint store, which creates
        it with its own coefficient width.
        """
        with self._lock:
            self._run(
                """
                CREATE TABLE IF NOT EXISTS contexts (
                    name TEXT PRIMARY KEY,
                    directory TEXT
                )
            """
            )

            self._run(
                """
                CREATE TABLE IF NOT EXISTS audio (
                    uuid TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    context TEXT NOT NULL,
                    hash TEXT NOT NULL,
                    UNIQUE (context, hash)
                )
            """
            )

            self._run("CREATE INDEX IF NOT EXISTS idx_audio_context ON audio(context)")
            self._commit()

    @contextmanager
    def scratch_table(self, columns: str) -> Generator[str, None, None]:
        """Create a uniquely named TEMP table and drop it on exit.

        Args:
            columns: Column definitions, e.g. ``"audio_uuid TEXT NOT NULL"``

        Yields:
            The table name, unique per call
        """
        name = f"scratch_{uuid.uuid4().hex}"
        self.execute(f"CREATE TEMP TABLE {name} ({columns})")
        try:
            yield name
        finally:
            try:
                self.execute(f"DROP TABLE IF EXISTS temp.{name}")
            except (StorageError, RuntimeError) as e:
                logging.warning(f"[Database] Could not drop scratch table {name}: {e}")

    def table_columns(self, table: str) -> list[str]:
        """Return the column names of *table* (empty if it does not exist)."""
        cursor = self.query(f"PRAGMA table_info({check_identifier(table)})")
        return [row["name"] for row in cursor]

    # ========== Primitive Surface ==========

    def execute(self, statement: str, params: Iterable[Any] = ()) -> int:
        """Run a statement that returns no rows.

        Returns:
            Number of rows changed (sqlite rowcount)
        """
        with self._lock:
            cursor = self._run(statement, tuple(params))
            self._commit()
            return cursor.rowcount

    def executemany(self, statement: str, seq_of_params: Iterable[Iterable[Any]]) -> int:
        """Run one statement for every parameter tuple."""
        with self._lock:
            try:
                cursor = self._connection.executemany(statement, seq_of_params)
            except sqlite3.Error as e:
                raise StorageError(f"Statement failed: {e}") from e
            self._commit()
            return cursor.rowcount

    def query(self, statement: str, params: Iterable[Any] = ()) -> RowCursor:
        """Run a statement and return its rows as a cursor."""
        with self._lock:
            rows = self._run(statement, tuple(params)).fetchall()
        return RowCursor(rows)

    @staticmethod
    def get_next_row(cursor: RowCursor) -> dict[str, Any] | None:
        """Return the next row of *cursor*, or None at the end."""
        return cursor.next_row()

    def insert(self, table: str, record: dict[str, Any]) -> None:
        """Insert one record (column name -> value) into *table*."""
        self._insert("INSERT", table, [record])

    def insert_or_replace(self, table: str, record: dict[str, Any]) -> None:
        """Insert one record, replacing any row with the same key."""
        self._insert("INSERT OR REPLACE", table, [record])

    def insert_many(self, table: str, records: list[dict[str, Any]]) -> int:
        """Bulk insert records sharing the same columns.

        Returns:
            Number of records inserted
        """
        if not records:
            return 0
        self._insert("INSERT", table, records)
        return len(records)

    # ========== Internals ==========

    @property
    def _connection(self) -> sqlite3.Connection:
        if self.conn is None:
            raise RuntimeError("Database not connected")
        return self.conn

    def _run(self, statement: str, params: tuple = ()) -> sqlite3.Cursor:
        try:
            return self._connection.execute(statement, params)
        except sqlite3.Error as e:
            raise StorageError(f"Statement failed: {e}") from e

    def _insert(self, verb: str, table: str, records: list[dict[str, Any]]) -> None:
        columns = [check_identifier(c) for c in records[0]]
        placeholders = ", ".join(["?"] * len(columns))
        statement = (
            f"{verb} INTO {check_identifier(table)} ({', '.join(columns)}) "
            f"VALUES ({placeholders})"
        )
        rows = []
        for record in records:
            if list(record) != columns:
                raise InvalidArgument(f"Records for {table} must share the same columns")
            rows.append(tuple(record.values()))

        if len(rows) == 1:
            self.execute(statement, rows[0])
        else:
            self.executemany(statement, rows)

    def _commit(self) -> None:
        """Commit if not inside a transaction.

        When inside a database.transaction() block, commits are deferred
        to the transaction manager.
        """
        if not self._in_transaction:
            try:
                self._connection.commit()
            except sqlite3.Error as e:
                raise StorageError(f"Commit failed: {e}") from e
