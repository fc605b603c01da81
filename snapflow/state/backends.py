"""State backend implementations for snapflow.

This module provides the abstract StateBackend interface and a DuckDB
implementation used to persist committed offsets between runs.
"""

import json
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, ContextManager, List, Optional

import duckdb

from snapflow.logging import get_logger

logger = get_logger(__name__)


class StateBackend(ABC):
    """Abstract interface for state persistence."""

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Get value for the given key.

        Args:
            key: The state key to retrieve

        Returns:
            The stored value or None if key doesn't exist
        """

    @abstractmethod
    def set(self, key: str, value: Any, timestamp: Optional[datetime] = None) -> None:
        """Set value for the given key.

        Args:
            key: The state key to store
            value: The value to store
            timestamp: Optional timestamp for the operation
        """

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Delete the given key.

        Args:
            key: The state key to delete

        Returns:
            True if key existed and was deleted, False otherwise
        """

    @abstractmethod
    def keys(self, prefix: str = "") -> List[str]:
        """List stored keys starting with ``prefix``."""

    @abstractmethod
    def transaction(self) -> ContextManager[Any]:
        """Context manager for atomic transactions."""

    @abstractmethod
    def close(self) -> None:
        """Close the backend and clean up resources."""


class DuckDBStateBackend(StateBackend):
    """DuckDB-based state persistence backend.

    Stores JSON encoded values in a single key-value table.
    """

    def __init__(
        self,
        connection: Optional[duckdb.DuckDBPyConnection] = None,
        path: str = ":memory:",
    ):
        """Initialize DuckDB state backend.

        Args:
            connection: Optional existing DuckDB connection
            path: Database file used when no connection is given
        """
        self.connection = connection or duckdb.connect(path)
        self._create_state_tables()
        logger.info("DuckDB state backend initialized")

    def _create_state_tables(self) -> None:
        """Create state management tables if they don't exist."""
        self.connection.execute(
            """
            CREATE TABLE IF NOT EXISTS snapflow_state (
                key VARCHAR PRIMARY KEY,
                value VARCHAR NOT NULL,  -- JSON encoded
                timestamp TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """
        )
        logger.debug("State tables created successfully")

    def get(self, key: str) -> Optional[Any]:
        try:
            result = self.connection.execute(
                "SELECT value FROM snapflow_state WHERE key = ?", [key]
            ).fetchone()

            if result is None:
                return None

            return json.loads(result[0])

        except Exception as e:
            logger.error(f"Failed to get state for key {key}: {e}")
            raise

    def set(self, key: str, value: Any, timestamp: Optional[datetime] = None) -> None:
        try:
            json_value = json.dumps(value, default=str)
            ts = timestamp or datetime.utcnow()

            self.connection.execute(
                """
                INSERT OR REPLACE INTO snapflow_state (key, value, timestamp)
                VALUES (?, ?, ?)
            """,
                [key, json_value, ts],
            )

            logger.debug(f"Set state for key {key}")

        except Exception as e:
            logger.error(f"Failed to set state for key {key}: {e}")
            raise

    def delete(self, key: str) -> bool:
        try:
            exists = self.connection.execute(
                "SELECT 1 FROM snapflow_state WHERE key = ?", [key]
            ).fetchone()

            if not exists:
                return False

            self.connection.execute("DELETE FROM snapflow_state WHERE key = ?", [key])

            logger.debug(f"Deleted state for key {key}")
            return True

        except Exception as e:
            logger.error(f"Failed to delete state for key {key}: {e}")
            raise

    def keys(self, prefix: str = "") -> List[str]:
        rows = self.connection.execute(
            "SELECT key FROM snapflow_state WHERE starts_with(key, ?) ORDER BY key",
            [prefix],
        ).fetchall()
        return [row[0] for row in rows]

    def transaction(self) -> ContextManager[Any]:
        """Context manager for atomic transactions."""
        return DuckDBTransaction(self.connection)

    def close(self) -> None:
        """Close the backend and clean up resources."""
        if self.connection:
            self.connection.close()
            logger.info("DuckDB state backend closed")


class DuckDBTransaction:
    """Context manager for DuckDB transactions."""

    def __init__(self, connection: duckdb.DuckDBPyConnection):
        self.connection = connection

    def __enter__(self):
        """Begin transaction."""
        self.connection.execute("BEGIN TRANSACTION")
        logger.debug("Started DuckDB transaction")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """End transaction, rolling back on error."""
        if exc_type is not None:
            self.connection.execute("ROLLBACK")
            logger.debug("Rolled back DuckDB transaction due to error")
        else:
            self.connection.execute("COMMIT")
            logger.debug("Committed DuckDB transaction")
