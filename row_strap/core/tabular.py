"""Tabular protocol.

A row source is any forward-only iterable of rows. A row exposes its ordered
column names and lets callers read a column by position or by name. Plain
Python containers and DB-API cursors are adapted here; everything else can
implement the Row protocol directly.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, Sequence
from typing import Any, Protocol, runtime_checkable

from row_strap.core.exceptions import ColumnNotFoundError, StrapError


@runtime_checkable
class Row(Protocol):
    """One row of a table."""

    @property
    def column_names(self) -> list[str]:
        """Ordered column names of this row."""
        ...

    def get(self, column: int | str, expected_type: Any = None) -> Any:
        """Read a column by zero-based position or by name."""
        ...


class DictRow:
    """Row backed by ordered column names and values.

    Repeated column names are kept; reading such a name by name returns the
    first occurrence, reading by position returns any of them.
    """

    __slots__ = ("_names", "_values", "_positions")

    def __init__(self, values: Mapping[str, Any]) -> None:
        self._init(list(values), list(values.values()))

    @classmethod
    def from_columns(cls, names: Sequence[Any], values: Sequence[Any]) -> DictRow:
        """Build a row from parallel column name and value sequences."""
        if len(names) != len(values):
            raise StrapError(f"Row has {len(values)} values for {len(names)} columns")
        row = cls.__new__(cls)
        row._init(names, values)
        return row

    def _init(self, names: Sequence[Any], values: Sequence[Any]) -> None:
        self._names = [str(name) for name in names]
        self._values = list(values)
        self._positions: dict[str, int] = {}
        for position, name in enumerate(self._names):
            self._positions.setdefault(name, position)

    @property
    def column_names(self) -> list[str]:
        return self._names

    def get(self, column: int | str, expected_type: Any = None) -> Any:
        if isinstance(column, int):
            if not 0 <= column < len(self._values):
                raise ColumnNotFoundError(str(column), self._names)
            return self._values[column]
        try:
            return self._values[self._positions[column]]
        except KeyError:
            raise ColumnNotFoundError(column, self._names) from None

    def as_dict(self) -> dict[str, Any]:
        """Column name -> value; the first of any repeated names wins."""
        return {name: self._values[position] for name, position in self._positions.items()}

    def __repr__(self) -> str:
        return f"DictRow({list(zip(self._names, self._values))!r})"


def _columns_to_rows(columns: Mapping[str, Any]) -> Iterator[Row]:
    """Iterate a column-oriented table (name -> list of values) row by row."""
    names = list(columns)
    lengths = {len(columns[name]) for name in names}
    if len(lengths) > 1:
        raise StrapError(f"Columns have differing lengths: {sorted(lengths)}")
    for values in zip(*(columns[name] for name in names)):
        yield DictRow.from_columns(names, values)


def _wrap_row(row: Any) -> Row:
    if isinstance(row, Mapping):
        return DictRow(row)
    if isinstance(row, Row):
        return row
    raise StrapError(f"Unsupported row type: {type(row).__name__}")


def rows_from(source: Any) -> Iterator[Row]:
    """Normalize a row source into an iterator of Row objects.

    Accepted sources:
    1. A mapping of column name -> equal-length sequence of values
    2. An iterable of mappings (one dict per row)
    3. An iterable of Row implementations
    """
    if isinstance(source, Mapping):
        return _columns_to_rows(source)
    if not isinstance(source, Iterable):
        raise StrapError(f"Unsupported row source: {type(source).__name__}")
    return (_wrap_row(row) for row in source)


def rows_from_cursor(cursor: Any) -> Iterator[Row]:
    """Adapt an executed DB-API cursor into a row source.

    Handles both tuple-like rows and dict-like rows from different drivers.
    Rows are fetched lazily, one at a time.
    """
    if cursor.description is None:
        return
    columns = [desc[0] for desc in cursor.description]
    for row in cursor:
        if isinstance(row, Mapping):
            yield DictRow(dict(row))
        else:
            yield DictRow.from_columns(columns, row)
