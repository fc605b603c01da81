"""Change, heartbeat and schema change events produced by a snapshot."""

import dataclasses
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence

from snapflow.core.clock import Clock
from snapflow.core.tables import Table, TableId
from snapflow.pipeline.offsets import OffsetContext


class Operation:
    # Snapshot rows are reads; streaming produces c/u/d
    READ = "r"


@dataclass(frozen=True)
class ChangeEvent:
    """One row change; snapshot rows are emitted as reads (``op="r"``)."""

    table_id: TableId
    op: str
    after: Dict[str, Any]
    source: Dict[str, Any]
    ts_ms: int
    before: Optional[Dict[str, Any]] = None

    def with_snapshot_marker(self, marker: str) -> "ChangeEvent":
        return dataclasses.replace(self, source={**self.source, "snapshot": marker})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "change",
            "table": str(self.table_id),
            "op": self.op,
            "before": self.before,
            "after": self.after,
            "source": self.source,
            "ts_ms": self.ts_ms,
        }


@dataclass(frozen=True)
class HeartbeatEvent:
    """Carries the current position so consumers can track progress."""

    connector: str
    offset: Dict[str, Any]
    ts_ms: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "heartbeat",
            "connector": self.connector,
            "offset": self.offset,
            "ts_ms": self.ts_ms,
        }


@dataclass(frozen=True)
class SchemaChangeEvent:
    """Structure of a table as captured during a snapshot."""

    database: Optional[str]
    schema: Optional[str]
    table: Table
    offset: Dict[str, Any]
    ddl: Optional[str] = None
    type: str = "CREATE"
    is_from_snapshot: bool = True
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "database": self.database,
            "schema": self.schema,
            "table": str(self.table.id),
            "columns": [
                {
                    "name": column.name,
                    "position": column.position,
                    "type": column.type_name,
                    "nullable": column.nullable,
                }
                for column in self.table.columns
            ],
            "primary_key": list(self.table.primary_key_columns),
            "ddl": self.ddl,
            "offset": self.offset,
            "snapshot": self.is_from_snapshot,
        }


class SnapshotChangeRecordEmitter:
    """Turns one exported row into a read event at the current position."""

    def __init__(
        self,
        connector_name: str,
        offset: OffsetContext,
        table_id: TableId,
        column_names: Sequence[str],
        row: Sequence[Any],
        clock: Clock,
    ):
        self.connector_name = connector_name
        self.offset = offset
        self.table_id = table_id
        self.column_names = column_names
        self.row = row
        self.clock = clock

    def emit(self) -> ChangeEvent:
        source = {"connector": self.connector_name, **self.offset.source_info()}
        return ChangeEvent(
            table_id=self.table_id,
            op=Operation.READ,
            after=dict(zip(self.column_names, self.row)),
            source=source,
            ts_ms=self.clock.current_time_ms(),
        )
