"""Run-scoped state and results of a snapshot."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from snapflow.core.tables import TableId, Tables
from snapflow.pipeline.offsets import OffsetContext


@dataclass
class SnapshotContext:
    """Mutable state populated in the course of one snapshot run.

    Created by the backend at the start of a run and discarded at its end.
    Backends may subclass it to keep engine specific state.
    """

    catalog_name: Optional[str]
    tables: Tables = field(default_factory=Tables)
    captured_tables: List[TableId] = field(default_factory=list)
    offset: Optional[OffsetContext] = None
    last_table: bool = False
    last_record_in_table: bool = False

    def __enter__(self) -> "SnapshotContext":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        """Release engine specific resources; nothing to do by default."""


@dataclass(frozen=True)
class SnapshottingTask:
    """What a run captures; decided once, before anything is opened."""

    snapshot_schema: bool
    snapshot_data: bool

    def should_snapshot(self) -> bool:
        return self.snapshot_schema or self.snapshot_data


class SnapshotResultStatus(Enum):
    COMPLETED = "completed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class SnapshotResult:
    """Outcome of a run that was not aborted."""

    status: SnapshotResultStatus
    offset: Optional[OffsetContext]

    @classmethod
    def completed(cls, offset: OffsetContext) -> "SnapshotResult":
        return cls(SnapshotResultStatus.COMPLETED, offset)

    @classmethod
    def skipped(cls, offset: Optional[OffsetContext]) -> "SnapshotResult":
        return cls(SnapshotResultStatus.SKIPPED, offset)

    def is_completed_or_skipped(self) -> bool:
        return self.status in (SnapshotResultStatus.COMPLETED, SnapshotResultStatus.SKIPPED)
