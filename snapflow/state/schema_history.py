"""Schema history: the record of table structures a connector has seen."""

import json
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import duckdb

from snapflow.logging import get_logger
from snapflow.pipeline.events import SchemaChangeEvent

logger = get_logger(__name__)


class SchemaHistory(ABC):
    """Receives schema change events in the order they are captured."""

    @abstractmethod
    def apply_schema_change(self, event: SchemaChangeEvent) -> None:
        """Record one schema change."""

    def close(self) -> None:
        """Release resources."""


class InMemorySchemaHistory(SchemaHistory):
    def __init__(self):
        self.events: List[SchemaChangeEvent] = []

    def apply_schema_change(self, event: SchemaChangeEvent) -> None:
        self.events.append(event)


class DuckDBSchemaHistory(SchemaHistory):
    """Appends schema change events as JSON documents to a DuckDB table."""

    def __init__(
        self,
        connector: str,
        connection: Optional[duckdb.DuckDBPyConnection] = None,
        path: str = ":memory:",
    ):
        self.connector = connector
        self.connection = connection or duckdb.connect(path)
        self.connection.execute("CREATE SEQUENCE IF NOT EXISTS snapflow_schema_history_seq")
        self.connection.execute(
            """
            CREATE TABLE IF NOT EXISTS snapflow_schema_history (
                id BIGINT PRIMARY KEY DEFAULT nextval('snapflow_schema_history_seq'),
                connector VARCHAR NOT NULL,
                table_id VARCHAR NOT NULL,
                event VARCHAR NOT NULL,  -- JSON encoded
                recorded_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """
        )

    def apply_schema_change(self, event: SchemaChangeEvent) -> None:
        table_id = str(event.table.id)
        self.connection.execute(
            "INSERT INTO snapflow_schema_history (connector, table_id, event) VALUES (?, ?, ?)",
            [self.connector, table_id, json.dumps(event.to_dict(), default=str)],
        )
        logger.debug(f"Recorded {event.type} schema change for {table_id}")

    def history(self) -> List[Dict[str, Any]]:
        """Recorded events of this connector, oldest first."""
        rows = self.connection.execute(
            "SELECT event FROM snapflow_schema_history WHERE connector = ? ORDER BY id",
            [self.connector],
        ).fetchall()
        return [json.loads(row[0]) for row in rows]

    def close(self) -> None:
        self.connection.close()
