"""Database connection used for the lifetime of one snapshot run.

A snapshot only ever reads, so connections expose ``begin`` and ``rollback``
but no way to commit.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Iterator, List, Optional, Sequence, Tuple

from snapflow.logging import get_logger

logger = get_logger(__name__)

Row = Tuple[Any, ...]


class ResultCursor:
    """Forward-only iteration over a query result, fetched in batches.

    Server-side cursors may only describe their columns after the first
    fetch, so ``columns`` is read lazily.
    """

    def __init__(self, cursor: Any, fetch_size: int):
        self._cursor = cursor
        self.fetch_size = fetch_size

    @property
    def columns(self) -> List[str]:
        return [desc[0] for desc in self._cursor.description or []]

    def __iter__(self) -> Iterator[Row]:
        while True:
            rows = self._cursor.fetchmany(self.fetch_size)
            if not rows:
                return
            for row in rows:
                yield tuple(row)


class DatabaseConnection(ABC):
    """A single database connection holding one read transaction."""

    def __init__(self):
        self._connection: Optional[Any] = None
        self.in_transaction = False

    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    def connect(self) -> Any:
        """Open the connection if needed and return the driver connection."""
        if self._connection is None:
            self._connection = self._open()
            logger.debug(f"{self.__class__.__name__}: connection opened")
        return self._connection

    def connection(self) -> Any:
        if self._connection is None:
            raise RuntimeError("Connection is not open")
        return self._connection

    def begin(self) -> None:
        """Start the transaction that is held for the rest of the run."""
        self._begin(self.connect())
        self.in_transaction = True

    def rollback(self) -> None:
        """Roll back the current transaction; no-op when nothing is open."""
        if self._connection is None or not self.in_transaction:
            return
        self.in_transaction = False
        self._connection.rollback()
        logger.debug(f"{self.__class__.__name__}: transaction rolled back")

    def close(self) -> None:
        if self._connection is None:
            return
        try:
            self.rollback()
        finally:
            self._connection.close()
            self._connection = None
            logger.debug(f"{self.__class__.__name__}: connection closed")

    def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> None:
        cursor = self._execute(sql, params)
        self._close_cursor(cursor)

    def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[Row]:
        cursor = self._execute(sql, params)
        try:
            return [tuple(row) for row in cursor.fetchall()]
        finally:
            self._close_cursor(cursor)

    def query_one(
        self, sql: str, params: Optional[Sequence[Any]] = None
    ) -> Optional[Row]:
        rows = self.query(sql, params)
        return rows[0] if rows else None

    @contextmanager
    def stream(self, sql: str, fetch_size: int) -> Iterator[ResultCursor]:
        """Run ``sql`` and yield a cursor fetching ``fetch_size`` rows at a time."""
        cursor = self._open_stream(sql, fetch_size)
        try:
            yield ResultCursor(cursor, fetch_size)
        finally:
            self._close_cursor(cursor)

    def _execute(self, sql: str, params: Optional[Sequence[Any]]) -> Any:
        cursor = self.connection().cursor()
        if params:
            cursor.execute(sql, params)
        else:
            cursor.execute(sql)
        return cursor

    def _close_cursor(self, cursor: Any) -> None:
        cursor.close()

    def _open_stream(self, sql: str, fetch_size: int) -> Any:
        return self._execute(sql, None)

    @abstractmethod
    def _open(self) -> Any:
        """Open and return a DB-API connection."""

    @abstractmethod
    def _begin(self, connection: Any) -> None:
        """Start a transaction on ``connection``."""
