"""DuckDB snapshot backend.

DuckDB has no write-ahead log to stream from and no LOCK TABLE. The snapshot
transaction sees a consistent MVCC snapshot of the database, so schema and
data are read as of the transaction's start without locking, and the
transaction id serves as the snapshot position.
"""

from typing import Any, Dict, Optional, Sequence, Set

import duckdb

from snapflow.connection import DatabaseConnection
from snapflow.core.cancellation import ChangeEventSourceContext
from snapflow.core.config import SnapshotConfig
from snapflow.core.tables import Column, Table, TableId
from snapflow.logging import get_logger
from snapflow.pipeline.events import SchemaChangeEvent
from snapflow.pipeline.offsets import OffsetContext
from snapflow.snapshot.backend import SnapshotBackend
from snapflow.snapshot.context import SnapshotContext

logger = get_logger(__name__)


def quote_identifier(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


class DuckDBConnection(DatabaseConnection):
    """DuckDB database file opened for a snapshot.

    DuckDB cursors are separate connections with their own transactions, so
    every statement runs directly on the one connection.
    """

    def __init__(self, database: str = ":memory:", read_only: bool = False):
        super().__init__()
        self.database = database
        self.read_only = read_only

    def _open(self) -> Any:
        return duckdb.connect(self.database, read_only=self.read_only)

    def _begin(self, connection: Any) -> None:
        connection.begin()

    def _execute(self, sql: str, params: Optional[Sequence[Any]]) -> Any:
        if params:
            return self.connection().execute(sql, list(params))
        return self.connection().execute(sql)

    def _close_cursor(self, cursor: Any) -> None:
        # The "cursor" is the connection itself
        pass


class DuckDBOffsetContext(OffsetContext):
    """Position of a DuckDB snapshot: database name and transaction id."""

    def __init__(
        self,
        database: Optional[str] = None,
        txid: Optional[int] = None,
        snapshot_running: bool = False,
    ):
        super().__init__(snapshot_running=snapshot_running)
        self.database = database
        self.txid = txid

    def position(self) -> Dict[str, Any]:
        return {"database": self.database, "txid": self.txid}


class DuckDBSnapshotBackend(SnapshotBackend):
    """Snapshots the tables of the current DuckDB database."""

    @classmethod
    def from_config(cls, config: SnapshotConfig) -> "DuckDBSnapshotBackend":
        source = config.source
        connection = DuckDBConnection(
            database=source.get("database", source.get("path", ":memory:")),
            read_only=bool(source.get("read_only", False)),
        )
        return cls(config, connection)

    def load_offset(self, data: Dict[str, Any]) -> DuckDBOffsetContext:
        return DuckDBOffsetContext(
            database=data.get("database"),
            txid=data.get("txid"),
            snapshot_running=bool(data.get("snapshot", False)),
        )

    def prepare(self, context: ChangeEventSourceContext) -> SnapshotContext:
        return SnapshotContext(catalog_name=None)

    def connection_created(self, snapshot_context: SnapshotContext) -> None:
        row = self.connection.query_one("SELECT current_database()")
        snapshot_context.catalog_name = row[0]
        logger.debug(f"Snapshotting DuckDB database '{snapshot_context.catalog_name}'")

    def get_all_table_ids(self, snapshot_context: SnapshotContext) -> Set[TableId]:
        rows = self.connection.query(
            """
            SELECT table_catalog, table_schema, table_name
            FROM information_schema.tables
            WHERE table_type = 'BASE TABLE'
              AND table_catalog = ?
              AND table_schema NOT IN ('information_schema', 'pg_catalog')
            """,
            [snapshot_context.catalog_name],
        )
        return {TableId(catalog, schema, name) for catalog, schema, name in rows}

    def lock_tables_for_schema_snapshot(
        self, context: ChangeEventSourceContext, snapshot_context: SnapshotContext
    ) -> None:
        logger.debug(
            "DuckDB snapshot transaction is isolated; no table locks are taken"
        )

    def determine_snapshot_offset(self, snapshot_context: SnapshotContext) -> None:
        row = self.connection.query_one("SELECT txid_current()")
        snapshot_context.offset = DuckDBOffsetContext(
            database=snapshot_context.catalog_name, txid=row[0]
        )
        logger.info(f"Read snapshot position {snapshot_context.offset.position()}")

    def read_table_structure(
        self, context: ChangeEventSourceContext, snapshot_context: SnapshotContext
    ) -> None:
        for table_id in snapshot_context.captured_tables:
            context.check_running(f"Interrupted while reading structure of table {table_id}")
            snapshot_context.tables.overwrite_table(self._read_table(table_id))

    def _read_table(self, table_id: TableId) -> Table:
        rows = self.connection.query(
            """
            SELECT column_name, ordinal_position, data_type, is_nullable
            FROM information_schema.columns
            WHERE table_catalog = ? AND table_schema = ? AND table_name = ?
            ORDER BY ordinal_position
            """,
            [table_id.catalog, table_id.schema, table_id.table],
        )
        columns = tuple(
            Column(name, int(position), data_type, is_nullable == "YES")
            for name, position, data_type, is_nullable in rows
        )

        pk_row = self.connection.query_one(
            """
            SELECT constraint_column_names
            FROM duckdb_constraints()
            WHERE database_name = ? AND schema_name = ? AND table_name = ?
              AND constraint_type = 'PRIMARY KEY'
            """,
            [table_id.catalog, table_id.schema, table_id.table],
        )
        primary_key = tuple(pk_row[0]) if pk_row else ()

        logger.debug(f"Read {len(columns)} columns of table {table_id}")
        return Table(table_id, columns, primary_key)

    def release_schema_snapshot_locks(self, snapshot_context: SnapshotContext) -> None:
        logger.debug("No table locks to release")

    def get_create_table_event(
        self, snapshot_context: SnapshotContext, table: Table
    ) -> SchemaChangeEvent:
        return SchemaChangeEvent(
            database=snapshot_context.catalog_name,
            schema=table.id.schema,
            table=table,
            offset=snapshot_context.offset.get_offset(),
            ddl=create_table_ddl(table),
        )

    def get_snapshot_select(
        self, snapshot_context: SnapshotContext, table_id: TableId
    ) -> Optional[str]:
        return f"SELECT * FROM {qualified_name(table_id)}"

    def complete(self, snapshot_context: SnapshotContext) -> None:
        snapshot_context.close()


def qualified_name(table_id: TableId) -> str:
    parts = (table_id.catalog, table_id.schema, table_id.table)
    return ".".join(quote_identifier(part) for part in parts if part)


def create_table_ddl(table: Table) -> str:
    definitions = [
        f"{quote_identifier(column.name)} {column.type_name}"
        + ("" if column.nullable else " NOT NULL")
        for column in table.columns
    ]
    if table.primary_key_columns:
        key = ", ".join(quote_identifier(name) for name in table.primary_key_columns)
        definitions.append(f"PRIMARY KEY ({key})")
    return f"CREATE TABLE {qualified_name(table.id)} ({', '.join(definitions)})"
