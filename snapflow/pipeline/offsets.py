"""Position tracking for snapshot and streaming phases.

An ``OffsetContext`` records how far replication has progressed. Each backend
supplies a subclass that knows its engine's position format (a WAL LSN, a
transaction id, ...). The snapshot engine only moves it through the snapshot
phases:

    pre_snapshot_start -> event* -> mark_last_snapshot_record -> event
        -> pre_snapshot_completion -> post_snapshot_completion
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Optional

from snapflow.core.tables import TableId


class SnapshotRecord:
    """Values of the ``snapshot`` marker carried by emitted events."""

    TRUE = "true"
    LAST = "last"
    FALSE = "false"


class OffsetContext(ABC):
    """Mutable replication position, owned by one backend."""

    def __init__(self, snapshot_running: bool = False):
        self.snapshot_running = snapshot_running
        self.snapshot_completed = False
        self.last_snapshot_record = False
        self.source_table: Optional[TableId] = None
        self.timestamp: Optional[datetime] = None

    def is_snapshot_running(self) -> bool:
        return self.snapshot_running

    def pre_snapshot_start(self) -> None:
        """Mark the snapshot as running, before the first row is exported."""
        self.snapshot_running = True
        self.snapshot_completed = False
        self.last_snapshot_record = False

    def mark_last_snapshot_record(self) -> None:
        self.last_snapshot_record = True

    def event(self, table_id: TableId, timestamp: datetime) -> None:
        """Record that a row of ``table_id`` is about to be emitted."""
        self.source_table = table_id
        self.timestamp = timestamp

    def pre_snapshot_completion(self) -> None:
        """Hook invoked once all rows were exported (or none were to be)."""

    def post_snapshot_completion(self) -> None:
        self.snapshot_running = False
        self.snapshot_completed = True

    def snapshot_marker(self) -> str:
        if self.last_snapshot_record:
            return SnapshotRecord.LAST
        if self.snapshot_running:
            return SnapshotRecord.TRUE
        return SnapshotRecord.FALSE

    def get_offset(self) -> Dict[str, Any]:
        """Serializable form, suitable for storage and for ``load_offset``."""
        offset = dict(self.position())
        if self.snapshot_running:
            offset["snapshot"] = True
        if self.snapshot_completed:
            offset["snapshot_completed"] = True
        return offset

    def source_info(self) -> Dict[str, Any]:
        info = dict(self.position())
        info["snapshot"] = self.snapshot_marker()
        if self.source_table is not None:
            info["table"] = str(self.source_table)
        if self.timestamp is not None:
            info["ts_ms"] = int(self.timestamp.timestamp() * 1000)
        return info

    @abstractmethod
    def position(self) -> Dict[str, Any]:
        """Engine specific position fields."""

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.get_offset()})"
