"""Generic snapshot engine: orchestration, table export and the backend interface."""

from snapflow.snapshot.backend import SnapshotBackend
from snapflow.snapshot.context import (
    SnapshotContext,
    SnapshotResult,
    SnapshotResultStatus,
    SnapshottingTask,
)
from snapflow.snapshot.exporter import LookaheadCursor, TableExporter
from snapflow.snapshot.source import SnapshotSource

__all__ = [
    "SnapshotBackend",
    "SnapshotContext",
    "SnapshotResult",
    "SnapshotResultStatus",
    "SnapshottingTask",
    "LookaheadCursor",
    "TableExporter",
    "SnapshotSource",
]
