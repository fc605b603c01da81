"""Tests for TableExporter and the lookahead cursor."""

import pytest

from snapflow.core.errors import TableSnapshotError
from snapflow.core.tables import Column, Table, TableId
from snapflow.pipeline.dispatcher import EventDispatcher
from snapflow.pipeline.sinks import ListSink
from snapflow.snapshot.context import SnapshotContext
from snapflow.snapshot.exporter import LookaheadCursor, TableExporter


class TestLookaheadCursor:
    def test_empty_rows(self):
        cursor = LookaheadCursor(iter([]))

        assert not cursor.has_next()
        with pytest.raises(LookupError):
            cursor.advance()

    def test_single_row_is_last(self):
        cursor = LookaheadCursor([(1,)])

        assert cursor.has_next()
        assert cursor.advance() == (1,)
        assert cursor.is_last()
        assert not cursor.has_next()

    def test_knows_last_row_before_it_is_consumed(self):
        cursor = LookaheadCursor([(1,), (2,), (3,)])
        seen = []

        while cursor.has_next():
            row = cursor.advance()
            seen.append((row, cursor.is_last()))

        assert seen == [((1,), False), ((2,), False), ((3,), True)]
        assert cursor.current == (3,)

    def test_reads_at_most_one_row_ahead(self):
        consumed = []

        def rows():
            for i in range(5):
                consumed.append(i)
                yield (i,)

        cursor = LookaheadCursor(rows())
        assert consumed == [0]
        cursor.advance()
        assert consumed == [0, 1]


class TestTableExporter:
    TABLE_ID = TableId("db", "inventory", "products")
    DEFAULT_SELECT = "SELECT * FROM db.inventory.products"

    @pytest.fixture
    def table(self):
        return Table(
            self.TABLE_ID,
            (Column("id", 1, "INTEGER", False), Column("Name", 2, "VARCHAR")),
            ("id",),
        )

    @pytest.fixture
    def sink(self):
        return ListSink()

    @pytest.fixture
    def make_exporter(self, sink, fake_clock, recording_listener):
        def _make(backend):
            return TableExporter(
                backend.config,
                backend.connection,
                backend,
                EventDispatcher(backend.config.name, sink, fake_clock),
                recording_listener,
                fake_clock,
            )

        return _make

    def _export(self, exporter, source_context, snapshot_context, table):
        receiver = exporter.dispatcher.get_snapshot_change_event_receiver()
        rows = exporter.export(source_context, snapshot_context, receiver, table)
        receiver.complete_snapshot()
        return rows

    def test_override_takes_precedence(self, make_backend, make_exporter):
        backend = make_backend(
            snapshot_select_overrides={"db.inventory.products": "SELECT id FROM p"}
        )
        exporter = make_exporter(backend)

        select = exporter.determine_snapshot_select(SnapshotContext("db"), self.TABLE_ID)

        assert select == "SELECT id FROM p"

    def test_override_without_catalog(self, make_backend, make_exporter):
        backend = make_backend(snapshot_select_overrides={"inventory.products": "SELECT 1"})
        exporter = make_exporter(backend)

        select = exporter.determine_snapshot_select(SnapshotContext("db"), self.TABLE_ID)

        assert select == "SELECT 1"

    def test_falls_back_to_backend_select(self, make_backend, make_exporter):
        exporter = make_exporter(make_backend())

        select = exporter.determine_snapshot_select(SnapshotContext("db"), self.TABLE_ID)

        assert select == self.DEFAULT_SELECT

    def test_columns_are_matched_case_insensitively(
        self, make_backend, make_exporter, sink, table, running_snapshot_context, source_context
    ):
        backend = make_backend()
        backend.connection.results[self.DEFAULT_SELECT] = (
            ["ID", "name", "extra"],
            [(1, "bolt", "?")],
        )
        seen = []

        def coerce(value, column):
            seen.append(column.name if column is not None else None)
            return value

        backend.coerce = coerce
        exporter = make_exporter(backend)

        rows = self._export(exporter, source_context, running_snapshot_context(table), table)

        assert rows == 1
        assert seen == ["id", "Name", None]
        assert sink.change_events[0].after == {"ID": 1, "name": "bolt", "extra": "?"}

    def test_coerced_values_are_emitted(
        self, make_backend, make_exporter, sink, table, running_snapshot_context, source_context
    ):
        backend = make_backend()
        backend.connection.results[self.DEFAULT_SELECT] = (["id", "Name"], [(1, b"raw")])
        backend.coerce = lambda value, column: value.decode() if isinstance(value, bytes) else value
        exporter = make_exporter(backend)

        self._export(exporter, source_context, running_snapshot_context(table), table)

        assert sink.change_events[0].after == {"id": 1, "Name": "raw"}

    def test_table_without_select_is_skipped(
        self, make_backend, make_exporter, recording_listener, table, running_snapshot_context, source_context
    ):
        backend = make_backend(no_default_select=[self.TABLE_ID])
        exporter = make_exporter(backend)

        rows = self._export(exporter, source_context, running_snapshot_context(table), table)

        assert rows == 0
        assert backend.connection.streams == []
        assert recording_listener.calls == []

    def test_marks_last_record_only_for_last_table(
        self, make_backend, make_exporter, table, running_snapshot_context, source_context
    ):
        backend = make_backend()
        backend.connection.results[self.DEFAULT_SELECT] = (["id", "Name"], [(1, "a"), (2, "b")])
        exporter = make_exporter(backend)

        not_last = running_snapshot_context(table)
        self._export(exporter, source_context, not_last, table)

        last = running_snapshot_context(table)
        last.last_table = True
        self._export(exporter, source_context, last, table)

        assert not_last.offset.count("mark_last_snapshot_record") == 0
        assert not_last.last_record_in_table
        assert last.offset.count("mark_last_snapshot_record") == 1

    def test_driver_failure_becomes_table_error(
        self, make_backend, make_exporter, table, running_snapshot_context, source_context
    ):
        backend = make_backend()
        # No canned result for the SELECT: the fake connection raises KeyError
        exporter = make_exporter(backend)

        with pytest.raises(TableSnapshotError) as excinfo:
            self._export(exporter, source_context, running_snapshot_context(table), table)

        assert excinfo.value.table_id == self.TABLE_ID
        assert isinstance(excinfo.value.__cause__, KeyError)
        assert "db.inventory.products" in excinfo.value.message

    def test_completion_reported_with_row_count(
        self, make_backend, make_exporter, recording_listener, table, running_snapshot_context, source_context
    ):
        backend = make_backend()
        backend.connection.results[self.DEFAULT_SELECT] = (["id", "Name"], [(1, "a"), (2, "b")])
        exporter = make_exporter(backend)

        self._export(exporter, source_context, running_snapshot_context(table), table)

        assert recording_listener.named("table_snapshot_completed") == [
            ("table_snapshot_completed", self.TABLE_ID, 2)
        ]
