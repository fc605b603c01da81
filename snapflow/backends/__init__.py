"""Snapshot backends for the supported database engines."""

from snapflow.core.config import SnapshotConfig
from snapflow.core.errors import ConfigurationError
from snapflow.snapshot.backend import SnapshotBackend


def create_backend(config: SnapshotConfig) -> SnapshotBackend:
    """Create the backend named by ``config.source["type"]``.

    Backends are imported lazily so that only the selected engine's driver
    has to be importable.
    """
    source_type = str(config.source.get("type", "")).lower()

    if source_type == "duckdb":
        from snapflow.backends.duckdb_backend import DuckDBSnapshotBackend

        return DuckDBSnapshotBackend.from_config(config)

    if source_type in ("postgres", "postgresql"):
        from snapflow.backends.postgres_backend import PostgresSnapshotBackend

        return PostgresSnapshotBackend.from_config(config)

    raise ConfigurationError(
        f"Unsupported source type '{source_type}'; expected 'duckdb' or 'postgres'"
    )


__all__ = ["create_backend"]
