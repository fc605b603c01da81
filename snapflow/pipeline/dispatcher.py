"""Event dispatcher shared by snapshot and streaming sources."""

from abc import ABC, abstractmethod
from typing import Optional

from snapflow.core.clock import SYSTEM_CLOCK, Clock
from snapflow.core.tables import TableId
from snapflow.logging import get_logger
from snapflow.pipeline.events import (
    ChangeEvent,
    HeartbeatEvent,
    SnapshotChangeRecordEmitter,
)
from snapflow.pipeline.offsets import OffsetContext, SnapshotRecord
from snapflow.pipeline.sinks import EventSink

logger = get_logger(__name__)


class SnapshotReceiver(ABC):
    """Receives the change events of one snapshot run."""

    @abstractmethod
    def change_record(self, table_id: TableId, event: ChangeEvent) -> None:
        """Accept the event for one exported row."""

    @abstractmethod
    def complete_snapshot(self) -> None:
        """Called once after the last table was exported."""


class BufferingSnapshotChangeEventReceiver(SnapshotReceiver):
    """Holds back one event so the final one can be flagged as last.

    The final event of a snapshot is only known once the next one arrives or
    the snapshot completes.
    """

    def __init__(self, sink: EventSink):
        self.sink = sink
        self._buffered: Optional[ChangeEvent] = None

    def change_record(self, table_id: TableId, event: ChangeEvent) -> None:
        if self._buffered is not None:
            self.sink.write(self._buffered)
        self._buffered = event

    def complete_snapshot(self) -> None:
        if self._buffered is not None:
            self.sink.write(self._buffered.with_snapshot_marker(SnapshotRecord.LAST))
            self._buffered = None


class EventDispatcher:
    """Routes events of one connector to its sink."""

    def __init__(self, connector_name: str, sink: EventSink, clock: Clock = SYSTEM_CLOCK):
        self.connector_name = connector_name
        self.sink = sink
        self.clock = clock

    def get_snapshot_change_event_receiver(self) -> SnapshotReceiver:
        return BufferingSnapshotChangeEventReceiver(self.sink)

    def dispatch_snapshot_event(
        self,
        table_id: TableId,
        emitter: SnapshotChangeRecordEmitter,
        receiver: SnapshotReceiver,
    ) -> None:
        receiver.change_record(table_id, emitter.emit())

    def always_dispatch_heartbeat(self, offset: OffsetContext) -> None:
        logger.debug(f"Dispatching heartbeat for offset {offset.get_offset()}")
        self.sink.write(
            HeartbeatEvent(
                connector=self.connector_name,
                offset=offset.get_offset(),
                ts_ms=self.clock.current_time_ms(),
            )
        )
