"""Deconstructor engine: objects -> rows.

The column schema is discovered once, from the first object, as a list of
access paths. Rows are then a pure view over the retained objects: row ``i``
is resolved on demand by locating its object and its position inside that
object's rows, so the result has a known length and can be iterated any
number of times.

Row counts:
    object with scalar/record/mapping fields only   -> 1 row
    object with sequence fields (any depth)         -> longest sequence rows
"""

from __future__ import annotations

import bisect
import logging
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from itertools import accumulate
from typing import Any, overload

from row_strap.core.enums import ShapeKind, StepKind
from row_strap.core.exceptions import (
    AggregateFieldConflictError,
    ColumnNotFoundError,
    DeconstructionError,
)
from row_strap.core.naming import column_name
from row_strap.reflection.reflector import Reflector, default_reflector
from row_strap.reflection.shapes import (
    FieldSpec,
    MappingShape,
    RecordShape,
    SequenceShape,
    TypeShape,
)

logger = logging.getLogger(__name__)

Prefixes = tuple[str, ...]


@dataclass(frozen=True)
class PathStep:
    """One hop from a value to a nested value."""

    kind: StepKind
    key: Any = None  # attribute name or mapping key; unused for INDEX


@dataclass(frozen=True)
class Column:
    """A discovered output column."""

    name: str
    type: Any
    path: tuple[PathStep, ...]

    @property
    def repeats(self) -> bool:
        """True if the value is the same on every row of an object."""
        return all(step.kind is not StepKind.INDEX for step in self.path)


def _resolve(obj: Any, path: tuple[PathStep, ...], index: int) -> Any:
    """Follow ``path`` from ``obj``; sequences are indexed by the row index.

    A missing value anywhere on the path, or a sequence shorter than the
    object's row count, resolves to None.
    """
    value = obj
    for step in path:
        if value is None:
            return None
        if step.kind is StepKind.FIELD:
            value = getattr(value, step.key)
        elif step.kind is StepKind.KEY:
            value = value.get(step.key)
        else:
            if not isinstance(value, Sequence):
                value = list(value)
            if index >= len(value):
                return None
            value = value[index]
    return value


class DeconstructedRow:
    """One output row; values are read from the object on access."""

    __slots__ = ("_obj", "_index", "_columns", "_lookup")

    def __init__(
        self, obj: Any, index: int, columns: tuple[Column, ...], lookup: dict[str, int]
    ) -> None:
        self._obj = obj
        self._index = index
        self._columns = columns
        self._lookup = lookup

    @property
    def column_names(self) -> list[str]:
        return [column.name for column in self._columns]

    def get(self, column: int | str, expected_type: Any = None) -> Any:
        if isinstance(column, str):
            try:
                column = self._lookup[column]
            except KeyError:
                raise ColumnNotFoundError(column, self.column_names) from None
        try:
            target = self._columns[column]
        except IndexError:
            raise ColumnNotFoundError(str(column), self.column_names) from None
        return _resolve(self._obj, target.path, self._index)

    def __getitem__(self, column: int | str) -> Any:
        return self.get(column)

    def __len__(self) -> int:
        return len(self._columns)

    def as_dict(self) -> dict[str, Any]:
        return {
            column.name: _resolve(self._obj, column.path, self._index) for column in self._columns
        }

    def __repr__(self) -> str:
        return f"DeconstructedRow({self.as_dict()!r})"


class DeconstructedRows(Sequence):
    """Lazy, restartable row view over a list of objects."""

    def __init__(self, objects: list[Any], columns: list[Column], row_counts: list[int]) -> None:
        self._objects = objects
        self._columns = tuple(columns)
        self._lookup = {column.name: i for i, column in enumerate(columns)}
        self._row_counts = row_counts
        self._ends = list(accumulate(row_counts))

    @property
    def columns(self) -> tuple[Column, ...]:
        """Discovered schema, in column order."""
        return self._columns

    @property
    def column_names(self) -> list[str]:
        return [column.name for column in self._columns]

    @property
    def row_counts(self) -> list[int]:
        """Number of rows produced by each object."""
        return list(self._row_counts)

    def __len__(self) -> int:
        return self._ends[-1] if self._ends else 0

    @overload
    def __getitem__(self, index: int) -> DeconstructedRow: ...

    @overload
    def __getitem__(self, index: slice) -> list[DeconstructedRow]: ...

    def __getitem__(self, index: int | slice) -> DeconstructedRow | list[DeconstructedRow]:
        if isinstance(index, slice):
            return [self[i] for i in range(*index.indices(len(self)))]
        if index < 0:
            index += len(self)
        if not 0 <= index < len(self):
            raise IndexError("row index out of range")
        position = bisect.bisect_right(self._ends, index)
        start = self._ends[position] - self._row_counts[position]
        return self._row(position, index - start)

    def __iter__(self) -> Iterator[DeconstructedRow]:
        for position, count in enumerate(self._row_counts):
            for within in range(count):
                yield self._row(position, within)

    def _row(self, position: int, within: int) -> DeconstructedRow:
        return DeconstructedRow(self._objects[position], within, self._columns, self._lookup)

    def as_dicts(self) -> list[dict[str, Any]]:
        return [row.as_dict() for row in self]

    def __repr__(self) -> str:
        return f"DeconstructedRows(columns={self.column_names!r}, rows={len(self)})"


class Deconstructor:
    """Turns objects into rows using the same flattening rules as Constructor."""

    def __init__(self, reflector: Reflector | None = None) -> None:
        self._reflector = reflector or default_reflector

    def deconstruct(self, values: Any) -> DeconstructedRows:
        objects = _as_object_list(values)
        if not objects:
            return DeconstructedRows([], [], [])

        shape = self._reflector.shape_of(type(objects[0]))
        columns: list[Column] = []
        if isinstance(shape, RecordShape):
            self._discover_record(shape, objects[0], (), (), columns)
        elif isinstance(shape, MappingShape):
            self._discover_mapping(shape, objects[0], (), (), columns)
        else:
            raise DeconstructionError(
                f"Cannot deconstruct {shape.kind.value} {type(objects[0]).__name__}; "
                "expected a record or mapping object"
            )
        logger.debug("Discovered %d column(s): %s", len(columns), [c.name for c in columns])

        row_counts = [max(1, self._length(shape, obj)) for obj in objects]
        return DeconstructedRows(objects, columns, row_counts)

    # --- schema discovery ---

    def _discover_record(
        self,
        shape: RecordShape,
        value: Any,
        prefixes: Prefixes,
        path: tuple[PathStep, ...],
        columns: list[Column],
    ) -> None:
        for spec in shape.fields:
            child = getattr(value, spec.name) if value is not None else None
            step = PathStep(StepKind.FIELD, spec.name)
            self._discover_field(spec, child, prefixes, path + (step,), columns)

    def _discover_field(
        self,
        spec: FieldSpec,
        value: Any,
        prefixes: Prefixes,
        path: tuple[PathStep, ...],
        columns: list[Column],
    ) -> None:
        field_shape = self._reflector.shape_of(spec.type)

        if isinstance(field_shape, RecordShape):
            self._discover_record(field_shape, value, prefixes + (spec.prefix,), path, columns)
        elif isinstance(field_shape, MappingShape):
            self._discover_mapping(field_shape, value, prefixes + (spec.prefix,), path, columns)
        elif isinstance(field_shape, SequenceShape):
            element_shape = self._reflector.shape_of(field_shape.element_type)
            first = next(iter(value), None) if value else None
            element_path = path + (PathStep(StepKind.INDEX),)
            if isinstance(element_shape, RecordShape):
                self._discover_record(
                    element_shape, first, prefixes + (spec.prefix,), element_path, columns
                )
            elif element_shape.kind.is_aggregate:
                raise AggregateFieldConflictError(field_shape.type, "Sequence")
            else:
                column_type = _value_type(element_shape.type, first)
                columns.append(Column(column_name(prefixes, spec.name), column_type, element_path))
        else:
            column_type = _value_type(field_shape.type, value)
            columns.append(Column(column_name(prefixes, spec.name), column_type, path))

    def _discover_mapping(
        self,
        shape: MappingShape,
        value: Any,
        prefixes: Prefixes,
        path: tuple[PathStep, ...],
        columns: list[Column],
    ) -> None:
        if self._reflector.is_aggregate(shape.value_type):
            raise AggregateFieldConflictError(shape.type, "Mapping")
        if value is None:
            return
        for key, item in value.items():
            column_type = _value_type(self._reflector.shape_of(shape.value_type).type, item)
            step = PathStep(StepKind.KEY, key)
            columns.append(Column(column_name(prefixes, str(key)), column_type, path + (step,)))

    # --- row counts ---

    def _length(self, shape: TypeShape, value: Any) -> int:
        """Rows needed for ``value``: the longest sequence below it."""
        if value is None:
            return 1
        if shape.kind is ShapeKind.RECORD:
            return max(
                [1]
                + [
                    self._length(self._reflector.shape_of(spec.type), getattr(value, spec.name))
                    for spec in shape.fields
                ]
            )
        if shape.kind is ShapeKind.SEQUENCE:
            length = len(value)
            element_shape = self._reflector.shape_of(shape.element_type)
            if element_shape.kind is ShapeKind.RECORD:
                length = max([length] + [self._length(element_shape, item) for item in value])
            return length
        return 1


def _value_type(declared: Any, value: Any) -> Any:
    if declared is Any and value is not None:
        return type(value)
    return declared


def _as_object_list(values: Any) -> list[Any]:
    """A list or plain tuple is a sequence of objects; anything else is one object."""
    if isinstance(values, (list, tuple)) and not hasattr(values, "_fields"):
        return list(values)
    return [values]


def deconstruct(values: Any, *, reflector: Reflector | None = None) -> DeconstructedRows:
    """Deconstruct one object, or a list of objects, into a lazy row sequence."""
    return Deconstructor(reflector).deconstruct(values)
