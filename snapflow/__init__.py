"""snapflow - initial snapshots for change data capture connectors."""

__version__ = "0.1.0"
__package_name__ = "snapflow"

from snapflow.core.cancellation import ChangeEventSourceContext
from snapflow.core.config import SnapshotConfig, SnapshotMode
from snapflow.core.errors import (
    ConfigurationError,
    SnapflowError,
    SnapshotCancelledError,
    SnapshotInitError,
    SnapshotRuntimeError,
    TableSnapshotError,
)
from snapflow.snapshot.context import SnapshotResult, SnapshotResultStatus
from snapflow.snapshot.source import SnapshotSource

__all__ = [
    "ChangeEventSourceContext",
    "SnapshotConfig",
    "SnapshotMode",
    "SnapshotSource",
    "SnapshotResult",
    "SnapshotResultStatus",
    "SnapflowError",
    "ConfigurationError",
    "SnapshotCancelledError",
    "SnapshotInitError",
    "SnapshotRuntimeError",
    "TableSnapshotError",
]
