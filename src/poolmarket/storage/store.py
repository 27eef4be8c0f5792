"""Record store: one DuckDB database behind a single reader/writer lock."""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Iterator

import structlog

from poolmarket.storage.db import get_connection, init_schema
from poolmarket.storage.lock import RWLock

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

log = structlog.get_logger(__name__)


class Store:
    """Owns the database connection and the store-wide lock.

    Mutations go through ``writing()`` (exclusive) and reads through
    ``reading()`` (shared). Table access itself lives in the sibling modules
    (users, events, positions, ...) as plain functions taking a connection.
    """

    def __init__(self, db_path: str | Path, lock_timeout_sec: float | None = 10.0) -> None:
        self.db_path = str(db_path)
        self.lock_timeout_sec = lock_timeout_sec
        self._conn = get_connection(db_path)
        init_schema(self._conn)
        self._lock = RWLock()
        log.debug("store_opened", db_path=self.db_path)

    @property
    def lock(self) -> RWLock:
        return self._lock

    @contextmanager
    def reading(self) -> Iterator[DuckDBPyConnection]:
        """Shared lock plus a per-call cursor, so concurrent readers never share one."""
        with self._lock.read(self.lock_timeout_sec):
            cursor = self._conn.cursor()
            try:
                yield cursor
            finally:
                cursor.close()

    @contextmanager
    def writing(self) -> Iterator[DuckDBPyConnection]:
        """Exclusive lock for the whole block; released on every exit path."""
        with self._lock.write(self.lock_timeout_sec):
            yield self._conn

    @staticmethod
    @contextmanager
    def transaction(conn: DuckDBPyConnection) -> Iterator[DuckDBPyConnection]:
        """All-or-nothing block: commit on success, roll back on any exception."""
        conn.begin()
        try:
            yield conn
        except BaseException:
            conn.rollback()
            raise
        conn.commit()

    def close(self) -> None:
        with self._lock.write(self.lock_timeout_sec):
            self._conn.close()
        log.debug("store_closed", db_path=self.db_path)
