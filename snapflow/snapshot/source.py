"""Snapshot orchestration for relational databases.

``SnapshotSource.execute`` takes a consistent initial copy of schema and data.
Before anything is opened it decides what to capture and waits out the
configured delay. It then prepares the run state, opens the connection and
begins a transaction, and proceeds in logged steps:

* determine the captured tables
* lock them (schema snapshots only)
* read the current log position
* read the structure of the captured tables
* record their schema and release the locks (schema snapshots only)
* export the rows of every captured table
* finalize with a heartbeat at the snapshot position

The transaction is held until the end of the run and always rolled back,
which also releases any lock still held after a failure.
"""

from contextlib import contextmanager
from typing import Iterator, List, Optional

from snapflow.connection import DatabaseConnection
from snapflow.core.cancellation import ChangeEventSourceContext
from snapflow.core.clock import SYSTEM_CLOCK, Clock, Metronome, Timer
from snapflow.core.config import SnapshotConfig
from snapflow.core.errors import (
    SnapflowError,
    SnapshotCancelledError,
    SnapshotInitError,
    SnapshotRuntimeError,
    TableSnapshotError,
)
from snapflow.core.filters import order_tables
from snapflow.core.tables import Table, TableId
from snapflow.logging import get_logger
from snapflow.pipeline.dispatcher import EventDispatcher
from snapflow.pipeline.listener import NO_OP_LISTENER, SnapshotProgressListener
from snapflow.pipeline.offsets import OffsetContext
from snapflow.snapshot.backend import SnapshotBackend
from snapflow.snapshot.context import SnapshotContext, SnapshotResult, SnapshottingTask
from snapflow.snapshot.exporter import TableExporter
from snapflow.state.schema_history import SchemaHistory

logger = get_logger(__name__)

# How often a waiting snapshot wakes up to check whether it was stopped
RETURN_CONTROL_INTERVAL_MS = 100


class SnapshotSource:
    """Takes the initial snapshot of a relational database."""

    def __init__(
        self,
        config: SnapshotConfig,
        previous_offset: Optional[OffsetContext],
        connection: DatabaseConnection,
        backend: SnapshotBackend,
        dispatcher: EventDispatcher,
        clock: Clock = SYSTEM_CLOCK,
        progress_listener: SnapshotProgressListener = NO_OP_LISTENER,
        schema_history: Optional[SchemaHistory] = None,
        metronome: Optional[Metronome] = None,
    ):
        self.config = config
        self.previous_offset = previous_offset
        self.connection = connection
        self.backend = backend
        self.dispatcher = dispatcher
        self.clock = clock
        self.progress_listener = progress_listener
        self.schema_history = schema_history
        self.metronome = metronome or Metronome(RETURN_CONTROL_INTERVAL_MS)
        self.exporter = TableExporter(
            config, connection, backend, dispatcher, progress_listener, clock
        )

    def execute(self, context: ChangeEventSourceContext) -> SnapshotResult:
        """Run the snapshot.

        Returns:
            A completed result carrying the snapshot offset, or a skipped
            result carrying the previous offset

        Raises:
            SnapshotCancelledError: If ``context`` was stopped before completion
            SnapshotInitError: If the run state could not be prepared
            TableSnapshotError: If exporting a table failed
            SnapshotRuntimeError: On any other failure
        """
        task = self.backend.get_snapshotting_task(self.previous_offset)

        if not task.should_snapshot():
            logger.debug("Skipping snapshotting")
            return SnapshotResult.skipped(self.previous_offset)

        # Set once the listener was told the snapshot completed; a failure
        # during cleanup after that point must not also report an abort
        completed = False
        try:
            self._delay_snapshot_if_needed(context)
            with self._snapshot_scope(context) as snapshot_context:
                result = self._take_snapshot(context, snapshot_context, task)
                completed = True
            return result
        except SnapshotCancelledError:
            logger.warning("Snapshot was interrupted before completion")
            self.progress_listener.snapshot_aborted()
            raise
        except SnapflowError:
            self._notify_failure(completed)
            raise
        except Exception as e:
            self._notify_failure(completed)
            raise SnapshotRuntimeError(f"Snapshot failed: {e}") from e

    def _notify_failure(self, completed: bool) -> None:
        if completed:
            logger.error("Snapshot completed but cleaning up after it failed")
        else:
            self.progress_listener.snapshot_aborted()

    def _delay_snapshot_if_needed(self, context: ChangeEventSourceContext) -> None:
        delay_ms = self.config.snapshot_delay_ms
        if delay_ms <= 0:
            return

        timer = Timer(self.clock, delay_ms)
        while not timer.expired():
            context.check_running("Interrupted while awaiting initial snapshot delay")
            logger.info(
                f"The connector will wait for {timer.remaining_ms() // 1000}s before proceeding"
            )
            self.metronome.pause()

    @contextmanager
    def _snapshot_scope(
        self, context: ChangeEventSourceContext
    ) -> Iterator[SnapshotContext]:
        """Prepare the run state and guarantee rollback and cleanup on exit."""
        try:
            snapshot_context = self.backend.prepare(context)
        except SnapflowError:
            raise
        except Exception as e:
            logger.error(f"Failed to initialize snapshot context: {e}")
            raise SnapshotInitError(f"Failed to initialize snapshot context: {e}") from e

        try:
            logger.info("Snapshot step 1 - Preparing")
            self.progress_listener.snapshot_started()

            if self.previous_offset is not None and self.previous_offset.is_snapshot_running():
                logger.info(
                    "Previous snapshot was cancelled before completion; a new snapshot will be taken."
                )

            self.connection.connect()
            self.connection.begin()
            self.backend.connection_created(snapshot_context)
            yield snapshot_context
        finally:
            try:
                self.connection.rollback()
            finally:
                logger.info("Snapshot step 8 - Finalizing")
                self.backend.complete(snapshot_context)

    def _take_snapshot(
        self,
        context: ChangeEventSourceContext,
        snapshot_context: SnapshotContext,
        task: SnapshottingTask,
    ) -> SnapshotResult:
        logger.info("Snapshot step 2 - Determining captured tables")
        context.check_running("Interrupted while determining captured tables")
        # A table created between this call and reading the snapshot position
        # is missed by the snapshot; streaming picks it up from there
        self._determine_captured_tables(snapshot_context)
        self.progress_listener.monitored_tables_determined(
            list(snapshot_context.captured_tables)
        )

        logger.info("Snapshot step 3 - Locking captured tables")
        context.check_running("Interrupted while locking captured tables")
        if task.snapshot_schema:
            self.backend.lock_tables_for_schema_snapshot(context, snapshot_context)

        logger.info("Snapshot step 4 - Determining snapshot offset")
        context.check_running("Interrupted while determining snapshot offset")
        self.backend.determine_snapshot_offset(snapshot_context)

        logger.info("Snapshot step 5 - Reading structure of captured tables")
        context.check_running("Interrupted while reading table structure")
        self.backend.read_table_structure(context, snapshot_context)

        if task.snapshot_schema:
            logger.info("Snapshot step 6 - Persisting schema history")
            self._create_schema_change_events_for_tables(context, snapshot_context)

            # If interrupted before this point, the rollback releases the locks
            self.backend.release_schema_snapshot_locks(snapshot_context)
        else:
            logger.info("Snapshot step 6 - Skipping persisting of schema history")

        offset = snapshot_context.offset
        if task.snapshot_data:
            logger.info("Snapshot step 7 - Snapshotting data")
            self._create_data_events(context, snapshot_context)
        else:
            logger.info("Snapshot step 7 - Skipping snapshotting of data")
            offset.pre_snapshot_completion()
            offset.post_snapshot_completion()

        self.dispatcher.always_dispatch_heartbeat(offset)
        self.progress_listener.snapshot_completed()
        return SnapshotResult.completed(offset)

    def _determine_captured_tables(self, snapshot_context: SnapshotContext) -> None:
        table_filter = self.config.table_filter
        captured = set()

        for table_id in self.backend.get_all_table_ids(snapshot_context):
            if table_filter.is_included(table_id):
                logger.debug(f"Adding table {table_id} to the list of captured tables")
                captured.add(table_id)
            else:
                logger.debug(
                    f"Ignoring table {table_id} as it's not included in the filter configuration"
                )

        snapshot_context.captured_tables = order_tables(
            captured, self.config.table_ordering_patterns
        )

    def _create_schema_change_events_for_tables(
        self, context: ChangeEventSourceContext, snapshot_context: SnapshotContext
    ) -> None:
        for table_id in snapshot_context.captured_tables:
            context.check_running(f"Interrupted while capturing schema of table {table_id}")

            logger.debug(f"Capturing structure of table {table_id}")
            table = self._table_for(snapshot_context, table_id)
            event = self.backend.get_create_table_event(snapshot_context, table)

            if self.schema_history is not None:
                self.schema_history.apply_schema_change(event)

    def _create_data_events(
        self, context: ChangeEventSourceContext, snapshot_context: SnapshotContext
    ) -> None:
        receiver = self.dispatcher.get_snapshot_change_event_receiver()
        snapshot_context.offset.pre_snapshot_start()

        captured: List[TableId] = snapshot_context.captured_tables
        for index, table_id in enumerate(captured):
            snapshot_context.last_table = index == len(captured) - 1

            context.check_running(f"Interrupted while snapshotting table {table_id}")

            logger.debug(f"Snapshotting table {table_id}")
            self.exporter.export(
                context,
                snapshot_context,
                receiver,
                self._table_for(snapshot_context, table_id),
            )

        snapshot_context.offset.pre_snapshot_completion()
        receiver.complete_snapshot()
        snapshot_context.offset.post_snapshot_completion()

    @staticmethod
    def _table_for(snapshot_context: SnapshotContext, table_id: TableId) -> Table:
        table = snapshot_context.tables.for_table(table_id)
        if table is None:
            raise TableSnapshotError(table_id, f"No structure was read for table {table_id}")
        return table
