"""Exception hierarchy for snapflow.

Every error raised out of a snapshot run is a ``SnapflowError``. Callers tell
an operator-requested stop apart from a defect by catching
``SnapshotCancelledError`` first.
"""

from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:
    from snapflow.core.tables import TableId


class SnapflowError(Exception):
    """Base exception for all snapflow errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__.upper()
        self.context = context or {}
        self.timestamp = datetime.utcnow()


class ConfigurationError(SnapflowError):
    """Invalid or incomplete connector configuration."""


class SnapshotCancelledError(SnapflowError):
    """The run was stopped on request before it completed."""


class SnapshotInitError(SnapflowError):
    """Error while preparing a snapshot, before any table work."""


class SnapshotRuntimeError(SnapflowError):
    """Any other failure during a snapshot run."""


class TableSnapshotError(SnapflowError):
    """Reading or converting the rows of one table failed.

    These are never retried inside the engine; the whole run aborts.
    """

    retriable = False

    def __init__(self, table_id: "TableId", message: str, **kwargs):
        super().__init__(message, **kwargs)
        self.table_id = table_id


class OffsetStorageError(SnapflowError):
    """Error reading or writing committed offsets."""
