"""Table selection and ordering from include/exclude regular expressions."""

import re
from typing import Iterable, List, Optional, Pattern, Sequence, Set, Union

from snapflow.core.tables import TableId


def list_of_regex(value: Union[None, str, Iterable[str]]) -> List[Pattern]:
    """Compile a comma separated string (or list) of case-insensitive regexes."""
    if value is None:
        return []
    if isinstance(value, str):
        items = value.split(",")
    else:
        items = list(value)
    return [re.compile(item.strip(), re.IGNORECASE) for item in items if item.strip()]


class TableFilter:
    """Decides which tables are captured.

    A table is included when it fully matches one of the include patterns (or
    there are none) and matches none of the exclude patterns. Patterns are
    applied to the string form of the table id.
    """

    def __init__(
        self,
        include: Optional[Sequence[Pattern]] = None,
        exclude: Optional[Sequence[Pattern]] = None,
    ):
        self.include = list(include or [])
        self.exclude = list(exclude or [])

    def is_included(self, table_id: TableId) -> bool:
        name = str(table_id)
        if self.include and not any(p.fullmatch(name) for p in self.include):
            return False
        return not any(p.fullmatch(name) for p in self.exclude)


def order_tables(
    table_ids: Iterable[TableId], patterns: Sequence[Pattern]
) -> List[TableId]:
    """Order tables by pattern groups, sorting each group.

    Every table goes into the group of the first pattern found anywhere in
    its string form, and groups follow pattern order. Unlike inclusion this
    is a partial match, so ``db.public.c`` also groups ``db.public.c_hist``.
    Tables that match no pattern come last, sorted. Without patterns the
    whole set is sorted.
    """
    remaining = sorted(set(table_ids))
    if not patterns:
        return remaining

    ordered: List[TableId] = []
    placed: Set[TableId] = set()
    for pattern in patterns:
        for tid in remaining:
            if tid not in placed and pattern.search(str(tid)):
                ordered.append(tid)
                placed.add(tid)
    ordered.extend(tid for tid in remaining if tid not in placed)
    return ordered
