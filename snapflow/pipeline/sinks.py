"""Destinations for dispatched events."""

import json
import os
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import IO, Any, Dict, List, Optional, Union

import pyarrow as pa
import pyarrow.parquet as pq

from snapflow.core.tables import TableId
from snapflow.logging import get_logger
from snapflow.pipeline.events import ChangeEvent, HeartbeatEvent

logger = get_logger(__name__)

Event = Union[ChangeEvent, HeartbeatEvent]


class EventSink(ABC):
    """Receives events in dispatch order."""

    @abstractmethod
    def write(self, event: Event) -> None:
        """Accept one event."""

    def close(self) -> None:
        """Flush and release resources."""


class ListSink(EventSink):
    """Keeps every event in memory."""

    def __init__(self):
        self.events: List[Event] = []

    def write(self, event: Event) -> None:
        self.events.append(event)

    @property
    def change_events(self) -> List[ChangeEvent]:
        return [event for event in self.events if isinstance(event, ChangeEvent)]

    @property
    def heartbeats(self) -> List[HeartbeatEvent]:
        return [event for event in self.events if isinstance(event, HeartbeatEvent)]


class JsonLinesSink(EventSink):
    """Writes one JSON document per event."""

    def __init__(self, output: Union[str, IO[str]]):
        if isinstance(output, str):
            self._stream = open(output, "w", encoding="utf-8")
            self._owns_stream = True
        else:
            self._stream = output
            self._owns_stream = False
        self.count = 0

    def write(self, event: Event) -> None:
        self._stream.write(json.dumps(event.to_dict(), default=str))
        self._stream.write("\n")
        self.count += 1

    def close(self) -> None:
        self._stream.flush()
        if self._owns_stream:
            self._stream.close()


class ArrowBatchSink(EventSink):
    """Collects the row images of change events into one Arrow table per table.

    Heartbeats carry no rows and are skipped.
    """

    def __init__(self):
        self._rows: Dict[TableId, List[Dict[str, Any]]] = defaultdict(list)

    def write(self, event: Event) -> None:
        if isinstance(event, ChangeEvent) and event.after is not None:
            self._rows[event.table_id].append(event.after)

    def tables(self) -> Dict[TableId, pa.Table]:
        return {
            table_id: pa.Table.from_pylist(rows)
            for table_id, rows in self._rows.items()
        }

    def write_parquet(self, directory: str) -> List[str]:
        """Write each collected table to ``<directory>/<table id>.parquet``."""
        os.makedirs(directory, exist_ok=True)
        paths = []
        for table_id, table in self.tables().items():
            path = os.path.join(directory, f"{table_id}.parquet")
            pq.write_table(table, path)
            logger.info(f"Wrote {table.num_rows} rows of '{table_id}' to {path}")
            paths.append(path)
        return paths

    def row_count(self, table_id: Optional[TableId] = None) -> int:
        if table_id is not None:
            return len(self._rows.get(table_id, []))
        return sum(len(rows) for rows in self._rows.values())
