"""Relational structure value types: table ids, columns and table definitions."""

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple


@dataclass(frozen=True)
class TableId:
    """Identifies a table by catalog, schema and table name.

    Catalog and schema are optional since not every engine has both levels.
    Ordering is lexicographic on the string form so that table lists sort
    the same way on every run.
    """

    catalog: Optional[str]
    schema: Optional[str]
    table: str

    @classmethod
    def parse(cls, value: str) -> "TableId":
        """Parse ``catalog.schema.table``, ``schema.table`` or ``table``."""
        parts = [part.strip() for part in value.split(".")]
        if not all(parts) or len(parts) > 3:
            raise ValueError(f"Invalid table identifier: '{value}'")
        if len(parts) == 3:
            return cls(parts[0], parts[1], parts[2])
        if len(parts) == 2:
            return cls(None, parts[0], parts[1])
        return cls(None, None, parts[0])

    def without_catalog(self) -> "TableId":
        return TableId(None, self.schema, self.table)

    def __str__(self) -> str:
        return ".".join(
            part for part in (self.catalog, self.schema, self.table) if part
        )

    def __lt__(self, other: "TableId") -> bool:
        if not isinstance(other, TableId):
            return NotImplemented
        return str(self) < str(other)

    def __le__(self, other: "TableId") -> bool:
        if not isinstance(other, TableId):
            return NotImplemented
        return str(self) <= str(other)

    def __gt__(self, other: "TableId") -> bool:
        if not isinstance(other, TableId):
            return NotImplemented
        return str(self) > str(other)

    def __ge__(self, other: "TableId") -> bool:
        if not isinstance(other, TableId):
            return NotImplemented
        return str(self) >= str(other)


@dataclass(frozen=True)
class Column:
    """A column of a table; position is 1-based."""

    name: str
    position: int
    type_name: str
    nullable: bool = True


@dataclass(frozen=True)
class Table:
    """Immutable definition of a captured table."""

    id: TableId
    columns: Tuple[Column, ...] = ()
    primary_key_columns: Tuple[str, ...] = ()

    def column_with_name(self, name: str) -> Optional[Column]:
        """Find a column by name, ignoring case."""
        lowered = name.lower()
        for column in self.columns:
            if column.name.lower() == lowered:
                return column
        return None

    def column_names(self) -> List[str]:
        return [column.name for column in self.columns]


@dataclass
class Tables:
    """Registry of table definitions read during a snapshot."""

    _tables: Dict[TableId, Table] = field(default_factory=dict)

    def overwrite_table(self, table: Table) -> None:
        self._tables[table.id] = table

    def for_table(self, table_id: TableId) -> Optional[Table]:
        return self._tables.get(table_id)

    def table_ids(self) -> List[TableId]:
        return list(self._tables)

    def __contains__(self, table_id: object) -> bool:
        return table_id in self._tables

    def __iter__(self) -> Iterator[Table]:
        return iter(self._tables.values())

    def __len__(self) -> int:
        return len(self._tables)
