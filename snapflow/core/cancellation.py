"""Cooperative cancellation for snapshot runs."""

import threading

from snapflow.core.errors import SnapshotCancelledError


class ChangeEventSourceContext:
    """Running flag shared between a snapshot run and whoever may stop it.

    The run polls ``is_running()`` at its check points; ``stop()`` may be
    called from any thread, e.g. a signal handler or a scheduler.
    """

    def __init__(self):
        self._stopped = threading.Event()

    def is_running(self) -> bool:
        return not self._stopped.is_set()

    def stop(self) -> None:
        self._stopped.set()

    def check_running(self, message: str) -> None:
        """Raise ``SnapshotCancelledError`` with ``message`` once stopped."""
        if self._stopped.is_set():
            raise SnapshotCancelledError(message)
