"""Snapshot progress notifications and the metrics collected from them."""

import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from snapflow.core.tables import TableId


class SnapshotProgressListener:
    """Receives lifecycle and row count notifications; all no-ops here."""

    def snapshot_started(self) -> None:
        pass

    def monitored_tables_determined(self, table_ids: Sequence[TableId]) -> None:
        pass

    def rows_scanned(self, table_id: TableId, num_rows: int) -> None:
        pass

    def table_snapshot_completed(self, table_id: TableId, num_rows: int) -> None:
        pass

    def snapshot_completed(self) -> None:
        pass

    def snapshot_aborted(self) -> None:
        pass


NO_OP_LISTENER = SnapshotProgressListener()


class SnapshotStatus(Enum):
    """Lifecycle of a snapshot as seen by the metrics."""

    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass
class TableProgress:
    """Row counts of one captured table."""

    table_id: TableId
    rows_scanned: int = 0
    completed: bool = False


@dataclass(eq=False)
class SnapshotMetrics(SnapshotProgressListener):
    """Progress listener that keeps counters for monitoring.

    Updated by the snapshot thread and readable from any other thread.
    """

    status: SnapshotStatus = SnapshotStatus.NOT_STARTED
    start_time: Optional[float] = None
    end_time: Optional[float] = None
    tables: Dict[TableId, TableProgress] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def snapshot_started(self) -> None:
        with self._lock:
            self.status = SnapshotStatus.RUNNING
            self.start_time = time.time()
            self.end_time = None

    def monitored_tables_determined(self, table_ids: Sequence[TableId]) -> None:
        with self._lock:
            self.tables = {table_id: TableProgress(table_id) for table_id in table_ids}

    def rows_scanned(self, table_id: TableId, num_rows: int) -> None:
        with self._lock:
            self._progress(table_id).rows_scanned = num_rows

    def table_snapshot_completed(self, table_id: TableId, num_rows: int) -> None:
        with self._lock:
            progress = self._progress(table_id)
            progress.rows_scanned = num_rows
            progress.completed = True

    def snapshot_completed(self) -> None:
        with self._lock:
            self.status = SnapshotStatus.COMPLETED
            self.end_time = time.time()

    def snapshot_aborted(self) -> None:
        with self._lock:
            self.status = SnapshotStatus.ABORTED
            self.end_time = time.time()

    def _progress(self, table_id: TableId) -> TableProgress:
        if table_id not in self.tables:
            self.tables[table_id] = TableProgress(table_id)
        return self.tables[table_id]

    @property
    def total_rows_scanned(self) -> int:
        with self._lock:
            return sum(progress.rows_scanned for progress in self.tables.values())

    @property
    def remaining_tables(self) -> List[TableId]:
        with self._lock:
            return [
                table_id
                for table_id, progress in self.tables.items()
                if not progress.completed
            ]

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.start_time is None:
            return None
        end = self.end_time if self.end_time is not None else time.time()
        return end - self.start_time

    def summary(self) -> Dict[str, Any]:
        with self._lock:
            tables = {
                str(table_id): progress.rows_scanned
                for table_id, progress in self.tables.items()
            }
            status = self.status.value
        return {
            "status": status,
            "duration_seconds": self.duration_seconds,
            "total_rows": sum(tables.values()),
            "tables": tables,
        }
