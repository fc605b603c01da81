"""Row export of a single captured table."""

from typing import Iterable, List, Optional, Sequence

from snapflow.connection import DatabaseConnection, Row
from snapflow.core.cancellation import ChangeEventSourceContext
from snapflow.core.clock import Clock, Timer, format_duration
from snapflow.core.config import SnapshotConfig
from snapflow.core.errors import SnapshotCancelledError, TableSnapshotError
from snapflow.core.tables import Column, Table, TableId
from snapflow.logging import get_logger
from snapflow.pipeline.dispatcher import EventDispatcher, SnapshotReceiver
from snapflow.pipeline.events import SnapshotChangeRecordEmitter
from snapflow.pipeline.listener import SnapshotProgressListener
from snapflow.snapshot.backend import SnapshotBackend
from snapflow.snapshot.context import SnapshotContext

logger = get_logger(__name__)

# Interval for logging progress while scanning a single table
LOG_INTERVAL_MS = 10_000

_END = object()


class LookaheadCursor:
    """Two-slot buffer over a row iterator: the current row and the next one.

    Reading one row ahead tells whether the current row is the last one
    before it is handed out.
    """

    def __init__(self, rows: Iterable[Row]):
        self._rows = iter(rows)
        self.current: Optional[Row] = None
        self._peeked = next(self._rows, _END)

    def has_next(self) -> bool:
        return self._peeked is not _END

    def advance(self) -> Row:
        if self._peeked is _END:
            raise LookupError("No more rows")
        self.current = self._peeked
        self._peeked = next(self._rows, _END)
        return self.current

    def is_last(self) -> bool:
        """True once the current row is the final one."""
        return self._peeked is _END


class TableExporter:
    """Streams the rows of one table through the event dispatcher."""

    def __init__(
        self,
        config: SnapshotConfig,
        connection: DatabaseConnection,
        backend: SnapshotBackend,
        dispatcher: EventDispatcher,
        progress_listener: SnapshotProgressListener,
        clock: Clock,
    ):
        self.config = config
        self.connection = connection
        self.backend = backend
        self.dispatcher = dispatcher
        self.progress_listener = progress_listener
        self.clock = clock
        self._select_overrides = config.select_overrides_by_table

    def export(
        self,
        context: ChangeEventSourceContext,
        snapshot_context: SnapshotContext,
        receiver: SnapshotReceiver,
        table: Table,
    ) -> int:
        """Export all rows of ``table`` and return how many were dispatched.

        Raises:
            SnapshotCancelledError: If the run was stopped while exporting
            TableSnapshotError: If reading or converting a row failed
        """
        export_start = self.clock.current_time_ms()
        logger.info(f"\t Exporting data from table '{table.id}'")

        select = self.determine_snapshot_select(snapshot_context, table.id)
        if select is None:
            logger.warning(
                f"For table '{table.id}' the select statement was not provided, skipping table"
            )
            return 0
        logger.info(f"\t For table '{table.id}' using select statement: '{select}'")

        try:
            rows = self._export_rows(context, snapshot_context, receiver, table, select, export_start)
        except SnapshotCancelledError:
            raise
        except Exception as e:
            raise TableSnapshotError(
                table.id,
                f"Snapshotting of table {table.id} failed: {e}",
                context={"select": select},
            ) from e

        logger.info(
            f"\t Finished exporting {rows} records for table '{table.id}'; total duration "
            f"'{format_duration(self.clock.current_time_ms() - export_start)}'"
        )
        self.progress_listener.table_snapshot_completed(table.id, rows)
        return rows

    def determine_snapshot_select(
        self, snapshot_context: SnapshotContext, table_id: TableId
    ) -> Optional[str]:
        """Configured override for the table, else the backend's default SELECT."""
        select = self._select_overrides.get(table_id)

        # Overrides may be keyed without the catalog
        if select is None:
            select = self._select_overrides.get(table_id.without_catalog())

        if select is not None:
            return select
        return self.backend.get_snapshot_select(snapshot_context, table_id)

    def _export_rows(
        self,
        context: ChangeEventSourceContext,
        snapshot_context: SnapshotContext,
        receiver: SnapshotReceiver,
        table: Table,
        select: str,
        export_start: int,
    ) -> int:
        with self.connection.stream(select, self.config.snapshot_fetch_size) as cursor:
            lookahead = LookaheadCursor(cursor)
            snapshot_context.last_record_in_table = False
            rows = 0

            if not lookahead.has_next():
                # The boundary must be marked even if the last table is empty
                if snapshot_context.last_table:
                    snapshot_context.offset.mark_last_snapshot_record()
                return rows

            column_names = cursor.columns
            columns = self._columns_for_result(table, column_names)
            log_timer = self._table_scan_log_timer()

            while not snapshot_context.last_record_in_table:
                context.check_running(f"Interrupted while snapshotting table {table.id}")

                raw_row = lookahead.advance()
                rows += 1
                row = tuple(
                    self.backend.get_column_value(value, column)
                    for value, column in zip(raw_row, columns)
                )
                snapshot_context.last_record_in_table = lookahead.is_last()

                if log_timer.expired():
                    elapsed = self.clock.current_time_ms() - export_start
                    logger.info(
                        f"\t Exported {rows} records for table '{table.id}' after "
                        f"{format_duration(elapsed)}"
                    )
                    self.progress_listener.rows_scanned(table.id, rows)
                    log_timer = self._table_scan_log_timer()

                if snapshot_context.last_table and snapshot_context.last_record_in_table:
                    snapshot_context.offset.mark_last_snapshot_record()

                self.dispatcher.dispatch_snapshot_event(
                    table.id,
                    self._change_record_emitter(snapshot_context, table.id, column_names, row),
                    receiver,
                )

            return rows

    def _change_record_emitter(
        self,
        snapshot_context: SnapshotContext,
        table_id: TableId,
        column_names: Sequence[str],
        row: Row,
    ) -> SnapshotChangeRecordEmitter:
        snapshot_context.offset.event(table_id, self.clock.current_time())
        return SnapshotChangeRecordEmitter(
            self.config.name,
            snapshot_context.offset,
            table_id,
            column_names,
            row,
            self.clock,
        )

    @staticmethod
    def _columns_for_result(table: Table, column_names: Sequence[str]) -> List[Optional[Column]]:
        return [table.column_with_name(name) for name in column_names]

    def _table_scan_log_timer(self) -> Timer:
        return Timer(self.clock, LOG_INTERVAL_MS)
