"""PostgreSQL snapshot backend.

The snapshot runs in a REPEATABLE READ transaction, so every query sees the
database as of the first statement. The WAL LSN read inside that transaction
is where logical decoding continues once the snapshot completes.
"""

import uuid
from typing import Any, Dict, Optional, Set

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.pool import NullPool

from snapflow.connection import DatabaseConnection
from snapflow.core.cancellation import ChangeEventSourceContext
from snapflow.core.config import SnapshotConfig
from snapflow.core.errors import ConfigurationError
from snapflow.core.tables import Column, Table, TableId
from snapflow.logging import get_logger
from snapflow.pipeline.events import SchemaChangeEvent
from snapflow.pipeline.offsets import OffsetContext
from snapflow.snapshot.backend import SnapshotBackend
from snapflow.snapshot.context import SnapshotContext

logger = get_logger(__name__)


def translate_postgres_parameters(config: Dict[str, Any]) -> Dict[str, Any]:
    """Translate industry-standard parameters to psycopg2-compatible names.

    Supports both naming conventions:
    - Industry standard: database, username
    - psycopg2 legacy: dbname, user

    Args:
        config: Original configuration parameters

    Returns:
        Translated configuration with psycopg2-compatible parameter names
    """
    translated = config.copy()

    # Parameter mapping: industry_standard -> psycopg2_name
    param_mapping = {
        "database": "dbname",
        "username": "user",
    }

    for industry_std, psycopg2_name in param_mapping.items():
        if industry_std in config and psycopg2_name not in config:
            translated[psycopg2_name] = config[industry_std]
            logger.debug(
                f"PostgresConnection: Translated parameter '{industry_std}' -> '{psycopg2_name}' "
                f"for psycopg2 compatibility"
            )

    return translated


def quote_identifier(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def qualified_name(table_id: TableId) -> str:
    return f"{quote_identifier(table_id.schema)}.{quote_identifier(table_id.table)}"


class PostgresConnection(DatabaseConnection):
    """psycopg2 connection obtained through a SQLAlchemy engine."""

    REQUIRED_PARAMS = ("user", "host", "dbname")

    def __init__(self, params: Dict[str, Any]):
        super().__init__()
        self.conn_params = translate_postgres_parameters(params)
        missing = [key for key in self.REQUIRED_PARAMS if key not in self.conn_params]
        if missing:
            raise ConfigurationError(
                f"PostgresConnection: missing connection parameters: {', '.join(missing)}"
            )
        self._engine: Optional[Engine] = None

    def _get_connect_args(self) -> Dict[str, Any]:
        connect_args = {
            "application_name": "snapflow",
            "connect_timeout": self.conn_params.get("connect_timeout", 30),
        }
        if "sslmode" in self.conn_params:
            connect_args["sslmode"] = self.conn_params["sslmode"]
        return connect_args

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            user = self.conn_params["user"]
            password = self.conn_params.get("password", "")
            host = self.conn_params["host"]
            port = self.conn_params.get("port", 5432)
            dbname = self.conn_params["dbname"]

            conn_uri = f"postgresql+psycopg2://{user}:{password}@{host}:{port}/{dbname}"

            # One snapshot holds exactly one connection for its whole run
            self._engine = create_engine(
                conn_uri,
                connect_args=self._get_connect_args(),
                poolclass=NullPool,
                echo=False,
            )
            logger.debug(
                f"PostgresConnection: Created engine for postgresql://{user}:***@{host}:{port}/{dbname}"
            )
        return self._engine

    def _open(self) -> Any:
        return self.engine.raw_connection()

    def _begin(self, connection: Any) -> None:
        # psycopg2 opens the transaction implicitly with the first statement
        cursor = connection.cursor()
        try:
            cursor.execute("SET TRANSACTION ISOLATION LEVEL REPEATABLE READ")
        finally:
            cursor.close()

    def _open_stream(self, sql: str, fetch_size: int) -> Any:
        # Named cursors are server-side and fetch lazily
        cursor = self.connection().cursor(name=f"snapflow_{uuid.uuid4().hex[:12]}")
        cursor.itersize = fetch_size
        cursor.execute(sql)
        return cursor

    def close(self) -> None:
        super().close()
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None


class PostgresOffsetContext(OffsetContext):
    """WAL position and transaction id of a PostgreSQL snapshot."""

    def __init__(
        self,
        lsn: Optional[str] = None,
        txid: Optional[int] = None,
        snapshot_running: bool = False,
    ):
        super().__init__(snapshot_running=snapshot_running)
        self.lsn = lsn
        self.txid = txid

    def position(self) -> Dict[str, Any]:
        return {"lsn": self.lsn, "txid": self.txid}


class PostgresSnapshotBackend(SnapshotBackend):
    """Snapshots the user tables of one PostgreSQL database."""

    @classmethod
    def from_config(cls, config: SnapshotConfig) -> "PostgresSnapshotBackend":
        params = {key: value for key, value in config.source.items() if key != "type"}
        return cls(config, PostgresConnection(params))

    def load_offset(self, data: Dict[str, Any]) -> PostgresOffsetContext:
        return PostgresOffsetContext(
            lsn=data.get("lsn"),
            txid=data.get("txid"),
            snapshot_running=bool(data.get("snapshot", False)),
        )

    def prepare(self, context: ChangeEventSourceContext) -> SnapshotContext:
        return SnapshotContext(catalog_name=None)

    def connection_created(self, snapshot_context: SnapshotContext) -> None:
        row = self.connection.query_one("SELECT current_database()")
        snapshot_context.catalog_name = row[0]
        timeout_ms = int(self.config.snapshot_lock_timeout_ms)
        self.connection.execute(f"SET LOCAL lock_timeout = {timeout_ms}")

    def get_all_table_ids(self, snapshot_context: SnapshotContext) -> Set[TableId]:
        rows = self.connection.query(
            """
            SELECT table_schema, table_name
            FROM information_schema.tables
            WHERE table_type = 'BASE TABLE'
              AND table_schema NOT IN ('pg_catalog', 'information_schema')
              AND table_schema NOT LIKE 'pg_toast%'
            """
        )
        return {TableId(None, schema, name) for schema, name in rows}

    def lock_tables_for_schema_snapshot(
        self, context: ChangeEventSourceContext, snapshot_context: SnapshotContext
    ) -> None:
        for table_id in snapshot_context.captured_tables:
            context.check_running(f"Interrupted while locking table {table_id}")
            logger.debug(f"Locking table {table_id}")
            self.connection.execute(
                f"LOCK TABLE {qualified_name(table_id)} IN ACCESS SHARE MODE"
            )

    def determine_snapshot_offset(self, snapshot_context: SnapshotContext) -> None:
        lsn, txid = self.connection.query_one(
            "SELECT pg_current_wal_lsn()::text, txid_current()"
        )
        snapshot_context.offset = PostgresOffsetContext(lsn=lsn, txid=txid)
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
            WHERE table_schema = %s AND table_name = %s
            ORDER BY ordinal_position
            """,
            [table_id.schema, table_id.table],
        )
        columns = tuple(
            Column(name, int(position), data_type, is_nullable == "YES")
            for name, position, data_type, is_nullable in rows
        )

        pk_rows = self.connection.query(
            """
            SELECT kcu.column_name
            FROM information_schema.table_constraints tc
            JOIN information_schema.key_column_usage kcu
              ON tc.constraint_name = kcu.constraint_name
             AND tc.table_schema = kcu.table_schema
             AND tc.table_name = kcu.table_name
            WHERE tc.constraint_type = 'PRIMARY KEY'
              AND tc.table_schema = %s AND tc.table_name = %s
            ORDER BY kcu.ordinal_position
            """,
            [table_id.schema, table_id.table],
        )
        return Table(table_id, columns, tuple(row[0] for row in pk_rows))

    def release_schema_snapshot_locks(self, snapshot_context: SnapshotContext) -> None:
        # LOCK TABLE has no UNLOCK: the locks end with the final rollback.
        # ACCESS SHARE only conflicts with ACCESS EXCLUSIVE (DDL), so writers
        # are not blocked while the data is exported.
        logger.debug("Schema snapshot locks are held until the transaction ends")

    def get_create_table_event(
        self, snapshot_context: SnapshotContext, table: Table
    ) -> SchemaChangeEvent:
        return SchemaChangeEvent(
            database=snapshot_context.catalog_name,
            schema=table.id.schema,
            table=table,
            offset=snapshot_context.offset.get_offset(),
        )

    def get_snapshot_select(
        self, snapshot_context: SnapshotContext, table_id: TableId
    ) -> Optional[str]:
        return f"SELECT * FROM {qualified_name(table_id)}"

    def get_column_value(self, value: Any, column: Optional[Column]) -> Any:
        if isinstance(value, memoryview):
            return value.tobytes()
        return value

    def complete(self, snapshot_context: SnapshotContext) -> None:
        snapshot_context.close()
