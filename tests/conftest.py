"""Pytest configuration and shared fakes for snapflow tests."""

from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

import pytest

from snapflow.connection import DatabaseConnection
from snapflow.core.cancellation import ChangeEventSourceContext
from snapflow.core.clock import Clock, Metronome
from snapflow.core.config import SnapshotConfig
from snapflow.core.tables import Column, Table, TableId
from snapflow.pipeline.dispatcher import EventDispatcher
from snapflow.pipeline.events import SchemaChangeEvent
from snapflow.pipeline.listener import SnapshotProgressListener
from snapflow.pipeline.offsets import OffsetContext
from snapflow.pipeline.sinks import ListSink
from snapflow.snapshot.backend import SnapshotBackend
from snapflow.snapshot.context import SnapshotContext, SnapshottingTask
from snapflow.snapshot.source import SnapshotSource
from snapflow.state.schema_history import InMemorySchemaHistory


class FakeClock(Clock):
    """Clock that only moves when told to."""

    def __init__(self, start_ms: int = 1_700_000_000_000):
        self.now_ms = start_ms

    def current_time_ms(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += ms


class FakeCursor:
    def __init__(
        self,
        columns: Sequence[str],
        rows: Sequence[Tuple[Any, ...]],
        on_fetch: Optional[Callable[[int], None]] = None,
    ):
        self.description = [(name,) for name in columns]
        self._rows = list(rows)
        self._fetched = 0
        self._on_fetch = on_fetch
        self.closed = False

    def fetchmany(self, size: int) -> List[Tuple[Any, ...]]:
        batch = self._rows[self._fetched : self._fetched + size]
        self._fetched += len(batch)
        if self._on_fetch is not None:
            for _ in batch:
                self._on_fetch(1)
        return batch

    def close(self) -> None:
        self.closed = True


class FakeDriverConnection:
    """DB-API connection stand-in; deliberately has no ``commit``."""

    def __init__(self, log: List[str]):
        self.log = log

    def rollback(self) -> None:
        self.log.append("rollback")

    def close(self) -> None:
        self.log.append("close")


class FakeConnection(DatabaseConnection):
    """Serves canned results keyed by SQL text."""

    def __init__(self, results: Optional[Dict[str, Tuple[Sequence[str], Sequence[tuple]]]] = None):
        super().__init__()
        self.results = results or {}
        self.log: List[str] = []
        self.streams: List[Tuple[str, int]] = []
        self.cursors: List[FakeCursor] = []
        self.on_fetch: Optional[Callable[[int], None]] = None

    def _open(self) -> Any:
        self.log.append("connect")
        return FakeDriverConnection(self.log)

    def _begin(self, connection: Any) -> None:
        self.log.append("begin")

    def _open_stream(self, sql: str, fetch_size: int) -> Any:
        self.streams.append((sql, fetch_size))
        columns, rows = self.results[sql]
        cursor = FakeCursor(columns, rows, self.on_fetch)
        self.cursors.append(cursor)
        return cursor


class FakeOffsetContext(OffsetContext):
    """Offset recording every phase transition."""

    def __init__(self, position: int = 42, snapshot_running: bool = False):
        super().__init__(snapshot_running=snapshot_running)
        self.pos = position
        self.calls: List[str] = []

    def position(self) -> Dict[str, Any]:
        return {"pos": self.pos}

    def pre_snapshot_start(self) -> None:
        self.calls.append("pre_snapshot_start")
        super().pre_snapshot_start()

    def mark_last_snapshot_record(self) -> None:
        self.calls.append("mark_last_snapshot_record")
        super().mark_last_snapshot_record()

    def event(self, table_id, timestamp) -> None:
        self.calls.append(f"event:{table_id}")
        super().event(table_id, timestamp)

    def pre_snapshot_completion(self) -> None:
        self.calls.append("pre_snapshot_completion")
        super().pre_snapshot_completion()

    def post_snapshot_completion(self) -> None:
        self.calls.append("post_snapshot_completion")
        super().post_snapshot_completion()

    def count(self, call: str) -> int:
        return self.calls.count(call)


def default_select(table_id: TableId) -> str:
    return f"SELECT * FROM {table_id}"


class FakeBackend(SnapshotBackend):
    """In-memory engine: every table is a list of rows behind a canned SELECT."""

    def __init__(
        self,
        config: SnapshotConfig,
        connection: FakeConnection,
        tables: Dict[TableId, Tuple[Sequence[str], Sequence[tuple]]],
        task: Optional[SnapshottingTask] = None,
        no_default_select: Sequence[TableId] = (),
    ):
        super().__init__(config, connection)
        self.tables = tables
        self.task = task
        self.no_default_select = set(no_default_select)
        self.calls: List[str] = []
        self.offset: Optional[FakeOffsetContext] = None
        self.hooks: Dict[str, Callable[..., None]] = {}
        self.coerce: Optional[Callable[[Any, Optional[Column]], Any]] = None
        for table_id, (columns, rows) in tables.items():
            connection.results[default_select(table_id)] = (columns, rows)

    def _record(self, name: str, *args) -> None:
        self.calls.append(name)
        hook = self.hooks.get(name)
        if hook is not None:
            hook(*args)

    def get_snapshotting_task(self, previous_offset):
        self._record("get_snapshotting_task")
        if self.task is not None:
            return self.task
        return super().get_snapshotting_task(previous_offset)

    def load_offset(self, data: Dict[str, Any]) -> FakeOffsetContext:
        return FakeOffsetContext(data.get("pos", 0), bool(data.get("snapshot")))

    def prepare(self, context) -> SnapshotContext:
        self._record("prepare", context)
        return SnapshotContext(catalog_name="db")

    def connection_created(self, snapshot_context) -> None:
        self._record("connection_created", snapshot_context)

    def get_all_table_ids(self, snapshot_context) -> Set[TableId]:
        self._record("get_all_table_ids", snapshot_context)
        return set(self.tables)

    def lock_tables_for_schema_snapshot(self, context, snapshot_context) -> None:
        self._record("lock_tables_for_schema_snapshot", context, snapshot_context)

    def determine_snapshot_offset(self, snapshot_context) -> None:
        self._record("determine_snapshot_offset", snapshot_context)
        self.offset = FakeOffsetContext()
        snapshot_context.offset = self.offset

    def read_table_structure(self, context, snapshot_context) -> None:
        self._record("read_table_structure", context, snapshot_context)
        for table_id in snapshot_context.captured_tables:
            columns, _ = self.tables[table_id]
            snapshot_context.tables.overwrite_table(
                Table(
                    table_id,
                    tuple(Column(name, i + 1, "INTEGER") for i, name in enumerate(columns)),
                )
            )

    def release_schema_snapshot_locks(self, snapshot_context) -> None:
        self._record("release_schema_snapshot_locks", snapshot_context)

    def get_create_table_event(self, snapshot_context, table) -> SchemaChangeEvent:
        self._record("get_create_table_event", snapshot_context, table)
        return SchemaChangeEvent(
            database=snapshot_context.catalog_name,
            schema=table.id.schema,
            table=table,
            offset=snapshot_context.offset.get_offset(),
        )

    def get_snapshot_select(self, snapshot_context, table_id) -> Optional[str]:
        if table_id in self.no_default_select:
            return None
        return default_select(table_id)

    def get_column_value(self, value, column):
        if self.coerce is not None:
            return self.coerce(value, column)
        return value

    def complete(self, snapshot_context) -> None:
        self._record("complete", snapshot_context)


class RecordingListener(SnapshotProgressListener):
    def __init__(self):
        self.calls: List[Tuple[Any, ...]] = []

    def snapshot_started(self) -> None:
        self.calls.append(("snapshot_started",))

    def monitored_tables_determined(self, table_ids) -> None:
        self.calls.append(("monitored_tables_determined", list(table_ids)))

    def rows_scanned(self, table_id, num_rows) -> None:
        self.calls.append(("rows_scanned", table_id, num_rows))

    def table_snapshot_completed(self, table_id, num_rows) -> None:
        self.calls.append(("table_snapshot_completed", table_id, num_rows))

    def snapshot_completed(self) -> None:
        self.calls.append(("snapshot_completed",))

    def snapshot_aborted(self) -> None:
        self.calls.append(("snapshot_aborted",))

    def named(self, name: str) -> List[Tuple[Any, ...]]:
        return [call for call in self.calls if call[0] == name]


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def source_context() -> ChangeEventSourceContext:
    return ChangeEventSourceContext()


@pytest.fixture
def make_source(fake_clock):
    """Factory building a SnapshotSource wired to fakes.

    Returns a namespace exposing the source and every collaborator.
    """

    def _make(
        tables: Dict[TableId, Tuple[Sequence[str], Sequence[tuple]]],
        previous_offset: Optional[OffsetContext] = None,
        task: Optional[SnapshottingTask] = None,
        no_default_select: Sequence[TableId] = (),
        **config_values,
    ) -> SimpleNamespace:
        config = SnapshotConfig(name="test_connector", **config_values)
        connection = FakeConnection()
        backend = FakeBackend(config, connection, tables, task, no_default_select)
        sink = ListSink()
        listener = RecordingListener()
        history = InMemorySchemaHistory()
        sleeps: List[float] = []

        def _sleep(seconds: float) -> None:
            sleeps.append(seconds)
            fake_clock.advance(int(seconds * 1000))

        source = SnapshotSource(
            config,
            previous_offset,
            connection,
            backend,
            EventDispatcher(config.name, sink, fake_clock),
            clock=fake_clock,
            progress_listener=listener,
            schema_history=history,
            metronome=Metronome(100, sleeper=_sleep),
        )
        return SimpleNamespace(
            source=source,
            config=config,
            connection=connection,
            backend=backend,
            sink=sink,
            listener=listener,
            history=history,
            clock=fake_clock,
            sleeps=sleeps,
        )

    return _make


@pytest.fixture
def make_backend():
    """Factory for a FakeBackend over a fresh FakeConnection."""

    def _make(tables=None, no_default_select=(), **config_values) -> FakeBackend:
        config = SnapshotConfig(name=config_values.pop("name", "c"), **config_values)
        return FakeBackend(config, FakeConnection(), tables or {}, no_default_select=no_default_select)

    return _make


@pytest.fixture
def recording_listener() -> RecordingListener:
    return RecordingListener()


@pytest.fixture
def running_snapshot_context():
    """Factory for a SnapshotContext holding ``tables`` with a running snapshot offset."""

    def _make(*tables: Table) -> SnapshotContext:
        snapshot_context = SnapshotContext("db")
        for table in tables:
            snapshot_context.tables.overwrite_table(table)
        snapshot_context.captured_tables = [table.id for table in tables]
        snapshot_context.offset = FakeOffsetContext()
        snapshot_context.offset.pre_snapshot_start()
        return snapshot_context

    return _make
