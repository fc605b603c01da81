"""Connector configuration for snapshot runs.

Configuration comes from a plain dictionary or a YAML file. String values
may reference environment variables as ``${NAME}`` or ``${NAME|default}``.
"""

import os
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Pattern

import yaml

from snapflow.core.errors import ConfigurationError
from snapflow.core.filters import TableFilter, list_of_regex
from snapflow.core.tables import TableId
from snapflow.logging import get_logger

logger = get_logger(__name__)

DEFAULT_FETCH_SIZE = 2000
DEFAULT_LOCK_TIMEOUT_MS = 10_000

_ENV_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?:\|([^}]*))?\}")


class SnapshotMode(Enum):
    """When a snapshot is taken, and what it covers."""

    INITIAL = "initial"
    ALWAYS = "always"
    SCHEMA_ONLY = "schema_only"
    NEVER = "never"


@dataclass
class SnapshotConfig:
    """Settings consumed by the snapshot engine and the bundled backends."""

    name: str
    snapshot_mode: SnapshotMode = SnapshotMode.INITIAL
    snapshot_delay_ms: int = 0
    snapshot_fetch_size: int = DEFAULT_FETCH_SIZE
    snapshot_lock_timeout_ms: int = DEFAULT_LOCK_TIMEOUT_MS
    table_include_list: Optional[List[str]] = None
    table_exclude_list: Optional[List[str]] = None
    snapshot_select_overrides: Dict[str, str] = field(default_factory=dict)
    source: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.name:
            raise ConfigurationError("Connector 'name' is required")
        if self.snapshot_delay_ms < 0:
            raise ConfigurationError("'snapshot_delay_ms' must not be negative")
        if self.snapshot_fetch_size <= 0:
            raise ConfigurationError("'snapshot_fetch_size' must be positive")
        if self.snapshot_lock_timeout_ms < 0:
            raise ConfigurationError("'snapshot_lock_timeout_ms' must not be negative")
        try:
            self._include = list_of_regex(self.table_include_list)
            self._exclude = list_of_regex(self.table_exclude_list)
        except re.error as e:
            raise ConfigurationError(f"Invalid table pattern: {e}") from e
        self._overrides = self._parse_overrides(self.snapshot_select_overrides)

    @staticmethod
    def _parse_overrides(overrides: Dict[str, str]) -> Dict[TableId, str]:
        parsed = {}
        for key, select in overrides.items():
            try:
                parsed[TableId.parse(key)] = select
            except ValueError as e:
                raise ConfigurationError(
                    f"Invalid key in 'snapshot_select_overrides': {e}"
                ) from e
        return parsed

    @property
    def table_filter(self) -> TableFilter:
        return TableFilter(self._include, self._exclude)

    @property
    def table_ordering_patterns(self) -> List[Pattern]:
        """Include patterns, in configured order; they also drive export order."""
        return list(self._include)

    @property
    def select_overrides_by_table(self) -> Dict[TableId, str]:
        return dict(self._overrides)

    @classmethod
    def from_dict(cls, params: Dict[str, Any]) -> "SnapshotConfig":
        """Create a SnapshotConfig from a dictionary.

        Args:
            params: Configuration values, keys as in the dataclass fields

        Returns:
            SnapshotConfig instance

        Raises:
            ConfigurationError: If a value is missing, unknown or has the wrong type
        """
        if not isinstance(params, dict):
            raise ConfigurationError("Connector configuration must be a dictionary")

        params = substitute_env_vars(params)
        known = set(cls.__dataclass_fields__)
        unknown = set(params) - known
        if unknown:
            raise ConfigurationError(
                f"Unknown configuration keys: {', '.join(sorted(unknown))}"
            )

        values = dict(params)
        try:
            if "snapshot_mode" in values:
                values["snapshot_mode"] = SnapshotMode(
                    str(values["snapshot_mode"]).lower()
                )
            for key in (
                "snapshot_delay_ms",
                "snapshot_fetch_size",
                "snapshot_lock_timeout_ms",
            ):
                if key in values:
                    values[key] = int(values[key])
        except ValueError as e:
            raise ConfigurationError(f"Invalid configuration value: {e}") from e

        for key in ("table_include_list", "table_exclude_list"):
            value = values.get(key)
            if isinstance(value, str):
                values[key] = [item.strip() for item in value.split(",") if item.strip()]
            elif value is not None and not isinstance(value, list):
                raise ConfigurationError(f"'{key}' must be a string or a list")

        for key in ("snapshot_select_overrides", "source"):
            if values.get(key) is None:
                values.pop(key, None)
            elif not isinstance(values[key], dict):
                raise ConfigurationError(f"'{key}' must be a dictionary")

        if "name" not in values:
            raise ConfigurationError("Connector 'name' is required")

        return cls(**values)

    @classmethod
    def from_yaml(cls, path: str) -> "SnapshotConfig":
        """Load configuration from a YAML file."""
        if not os.path.exists(path):
            raise ConfigurationError(f"Configuration file not found: {path}")

        with open(path, "r") as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

        logger.debug(f"Loaded configuration from {path}")
        return cls.from_dict(data)


def substitute_env_vars(data: Any) -> Any:
    """Replace ``${NAME}`` / ``${NAME|default}`` in all string values."""
    if isinstance(data, str):
        return _ENV_PATTERN.sub(_env_replacement, data)
    if isinstance(data, dict):
        return {key: substitute_env_vars(value) for key, value in data.items()}
    if isinstance(data, list):
        return [substitute_env_vars(item) for item in data]
    return data


def _env_replacement(match: "re.Match") -> str:
    name, default = match.group(1), match.group(2)
    value = os.environ.get(name)
    if value is not None:
        return value
    if default is not None:
        return default
    raise ConfigurationError(f"Environment variable '{name}' is not set")
