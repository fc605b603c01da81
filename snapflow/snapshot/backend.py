"""Capability interface a database engine implements to be snapshotted.

The snapshot engine owns the connection and its transaction. Implementations
must never commit or roll back that transaction; they may only issue
statements within it.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Set

from snapflow.connection import DatabaseConnection
from snapflow.core.cancellation import ChangeEventSourceContext
from snapflow.core.config import SnapshotConfig, SnapshotMode
from snapflow.core.tables import Column, Table, TableId
from snapflow.logging import get_logger
from snapflow.pipeline.events import SchemaChangeEvent
from snapflow.pipeline.offsets import OffsetContext
from snapflow.snapshot.context import SnapshotContext, SnapshottingTask

logger = get_logger(__name__)


class SnapshotBackend(ABC):
    """Engine specific operations used by the snapshot engine."""

    def __init__(self, config: SnapshotConfig, connection: DatabaseConnection):
        self.config = config
        self.connection = connection

    def get_snapshotting_task(
        self, previous_offset: Optional[OffsetContext]
    ) -> SnapshottingTask:
        """Decide from the snapshot mode and the previous offset what to capture.

        A previous offset whose snapshot never completed counts as no offset.
        """
        mode = self.config.snapshot_mode
        usable_offset = previous_offset is not None and not previous_offset.is_snapshot_running()

        if mode == SnapshotMode.ALWAYS:
            task = SnapshottingTask(True, True)
        elif mode == SnapshotMode.NEVER:
            task = SnapshottingTask(False, False)
        elif usable_offset:
            task = SnapshottingTask(False, False)
        elif mode == SnapshotMode.SCHEMA_ONLY:
            task = SnapshottingTask(True, False)
        else:
            task = SnapshottingTask(True, True)

        logger.info(f"Snapshot mode '{mode.value}' resolved to {task}")
        return task

    @abstractmethod
    def load_offset(self, data: Dict[str, Any]) -> OffsetContext:
        """Rebuild the engine's offset from its stored form."""

    @abstractmethod
    def prepare(self, context: ChangeEventSourceContext) -> SnapshotContext:
        """Create the run state for a new snapshot."""

    def connection_created(self, snapshot_context: SnapshotContext) -> None:
        """Called right after the connection was opened and the transaction begun."""

    @abstractmethod
    def get_all_table_ids(self, snapshot_context: SnapshotContext) -> Set[TableId]:
        """All candidate tables; the table filter is applied by the caller."""

    @abstractmethod
    def lock_tables_for_schema_snapshot(
        self, context: ChangeEventSourceContext, snapshot_context: SnapshotContext
    ) -> None:
        """Prevent concurrent structural changes of the captured tables."""

    @abstractmethod
    def determine_snapshot_offset(self, snapshot_context: SnapshotContext) -> None:
        """Store the current log position in ``snapshot_context.offset``.

        Schema and data are read as of this position, and streaming resumes
        from it once the snapshot completes.
        """

    @abstractmethod
    def read_table_structure(
        self, context: ChangeEventSourceContext, snapshot_context: SnapshotContext
    ) -> None:
        """Read every captured table into ``snapshot_context.tables``."""

    @abstractmethod
    def release_schema_snapshot_locks(self, snapshot_context: SnapshotContext) -> None:
        """Release the locks taken by ``lock_tables_for_schema_snapshot``."""

    @abstractmethod
    def get_create_table_event(
        self, snapshot_context: SnapshotContext, table: Table
    ) -> SchemaChangeEvent:
        """Schema change event describing the creation of ``table``."""

    @abstractmethod
    def get_snapshot_select(
        self, snapshot_context: SnapshotContext, table_id: TableId
    ) -> Optional[str]:
        """SELECT used to scan ``table_id``, or None to skip its data."""

    def get_column_value(self, value: Any, column: Optional[Column]) -> Any:
        """Convert a raw driver value; ``column`` is None for unknown columns."""
        return value

    @abstractmethod
    def complete(self, snapshot_context: SnapshotContext) -> None:
        """Clean up after a run, whatever its outcome."""
