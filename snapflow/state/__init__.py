"""snapflow state management module.

Committed offsets and schema history, persisted with DuckDB.
"""

from snapflow.state.backends import DuckDBStateBackend, StateBackend
from snapflow.state.offset_manager import OffsetManager
from snapflow.state.schema_history import (
    DuckDBSchemaHistory,
    InMemorySchemaHistory,
    SchemaHistory,
)

__all__ = [
    "StateBackend",
    "DuckDBStateBackend",
    "OffsetManager",
    "SchemaHistory",
    "InMemorySchemaHistory",
    "DuckDBSchemaHistory",
]
