"""Constructor engine: rows -> objects.

Single forward pass over the row source. An object whose type declares an
identity field absorbs every following row with the same identity value;
each absorbed row appends one element to every sequence field of the object,
at any nesting depth. Rows of one object must be contiguous in the source.
"""

from __future__ import annotations

import logging
import warnings
from collections.abc import Iterator
from typing import Any, Generic, TypeVar

from row_strap.core.config import StrapConfig
from row_strap.core.exceptions import (
    AggregateFieldConflictError,
    ConstructionError,
    EmptySourceError,
    TrailingRowsWarning,
)
from row_strap.core.naming import column_name
from row_strap.core.tabular import Row, rows_from
from row_strap.reflection.reflector import Reflector, default_reflector
from row_strap.reflection.shapes import (
    FieldSpec,
    MappingShape,
    RecordShape,
    ScalarShape,
    SequenceShape,
    TypeShape,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

Prefixes = tuple[str, ...]


class _Cursor:
    """Column offset shared by one traversal of a single row."""

    __slots__ = ("offset",)

    def __init__(self) -> None:
        self.offset = 0

    def advance(self, count: int = 1) -> None:
        self.offset += count


def _appended(shape: SequenceShape, container: Any, element: Any, options: dict[str, Any]) -> Any:
    """Add ``element`` to a sequence field; immutable containers are rebuilt."""
    if hasattr(container, "append"):
        container.append(element)
        return container
    if hasattr(container, "add"):
        container.add(element)
        return container
    return shape.build([*container, element], **options)


def _replace_field(obj: Any, name: str, value: Any) -> Any:
    """Set ``name`` on ``obj``, frozen records included; returns the record holding it."""
    if isinstance(obj, tuple) and hasattr(obj, "_replace"):
        return obj._replace(**{name: value})
    object.__setattr__(obj, name, value)
    return obj


def _prefixed_columns(row: Row, prefixes: Prefixes) -> list[str]:
    prefix = column_name(prefixes, "")
    return [name for name in row.column_names if name.startswith(prefix)]


def _read_column(row: Row, name: str, offset: int, expected_type: Any) -> Any:
    """Read column ``name``, expected at position ``offset``.

    Repeated names resolve to the one at ``offset``. A row without the name is
    read by position.
    """
    names = row.column_names
    if offset < len(names) and names[offset] == name:
        return row.get(offset, expected_type)
    if name in names or offset >= len(names):
        return row.get(name, expected_type)
    return row.get(offset, expected_type)


class Constructor(Generic[T]):
    """Builds objects of one target type from a row source.

    Args:
        target: Type to construct.
        reflector: Reflection contract; the module default when omitted.
        config: Per-call options. ``config.options`` is passed as keyword
                arguments to every construction hook.
    """

    def __init__(
        self,
        target: Any,
        reflector: Reflector | None = None,
        config: StrapConfig | None = None,
    ) -> None:
        self._target = target
        self._reflector = reflector or default_reflector
        self._config = config or StrapConfig()
        self._options = self._config.options
        self._shape = self._reflector.shape_of(target)

    def construct_one(self, source: Any) -> T:
        """Build exactly one object from the start of ``source``.

        Raises:
            EmptySourceError: If the source yields no rows.
        """
        rows = rows_from(source)
        row = next(rows, None)
        if row is None:
            raise EmptySourceError(self._target)

        obj, following = self._construct_group(rows, row)
        if following is not None and not self._config.silence_warnings:
            warnings.warn(
                f"Additional source rows left after reading {_name(self._target)}",
                TrailingRowsWarning,
                stacklevel=3,
            )
        return obj

    def construct_many(self, source: Any) -> list[T]:
        """Build objects until ``source`` is exhausted. Empty source -> []."""
        rows = rows_from(source)
        row = next(rows, None)
        results: list[T] = []
        while row is not None:
            obj, row = self._construct_group(rows, row)
            results.append(obj)
        logger.debug("Constructed %d %s object(s)", len(results), _name(self._target))
        return results

    def _construct_group(self, rows: Iterator[Row], row: Row) -> tuple[Any, Row | None]:
        """Build one object from ``row`` plus the rows sharing its identity.

        Returns the object and the first row that does not belong to it.
        """
        shape = self._shape
        obj = self._build_whole_row(shape, row)
        following = next(rows, None)

        identity = shape.identity if isinstance(shape, RecordShape) else None
        if identity is None:
            return obj, following

        identity_value = row.get(identity)
        group_size = 1
        while following is not None and following.get(identity) == identity_value:
            obj = self._merge_record(shape, obj, following, (), _Cursor())
            group_size += 1
            following = next(rows, None)

        logger.debug(
            "Built %s %s=%r from %d row(s)",
            _name(self._target),
            identity,
            identity_value,
            group_size,
        )
        return obj, following

    # --- initial build ---

    def _build_whole_row(self, shape: TypeShape, row: Row) -> Any:
        if isinstance(shape, RecordShape):
            cursor = _Cursor()
            obj = self._build_record(shape, row, (), cursor)
            logger.debug("Read %d column(s) for %s", cursor.offset, _name(shape.type))
            return obj
        if isinstance(shape, MappingShape):
            return self._build_row_mapping(shape, row)
        if isinstance(shape, SequenceShape):
            return self._build_row_sequence(shape, row)
        if shape.type is Any:
            return {name: row.get(index) for index, name in enumerate(row.column_names)}
        return shape.construct(row.get(0, shape.type), **self._options)

    def _build_record(
        self, shape: RecordShape, row: Row, prefixes: Prefixes, cursor: _Cursor
    ) -> Any:
        if shape.mutable:
            obj = shape.build(**self._options)
            for spec in shape.fields:
                setattr(obj, spec.name, self._build_field(spec, row, prefixes, cursor))
            return obj

        values = {
            spec.name: self._build_field(spec, row, prefixes, cursor) for spec in shape.fields
        }
        return shape.build(values, **self._options)

    def _build_field(self, spec: FieldSpec, row: Row, prefixes: Prefixes, cursor: _Cursor) -> Any:
        field_shape = self._reflector.shape_of(spec.type)

        if isinstance(field_shape, RecordShape):
            record_prefixes = prefixes + (spec.prefix,)
            if spec.optional and self._skip_null_record(row, record_prefixes, cursor):
                return None
            return self._build_record(field_shape, row, record_prefixes, cursor)
        if isinstance(field_shape, MappingShape):
            return self._build_field_mapping(field_shape, row, prefixes + (spec.prefix,), cursor)
        if isinstance(field_shape, SequenceShape):
            element = self._build_element(field_shape, spec, row, prefixes, cursor)
            return field_shape.build([element], **self._options)
        return self._read_scalar(field_shape, row, column_name(prefixes, spec.name), cursor)

    def _skip_null_record(self, row: Row, prefixes: Prefixes, cursor: _Cursor) -> bool:
        """Step over an optional record whose columns are all NULL."""
        names = _prefixed_columns(row, prefixes)
        if not column_name(prefixes, "") or not names:
            return False
        if any(row.get(name) is not None for name in names):
            return False
        cursor.advance(len(names))
        return True

    def _build_element(
        self,
        shape: SequenceShape,
        spec: FieldSpec,
        row: Row,
        prefixes: Prefixes,
        cursor: _Cursor,
    ) -> Any:
        """Read one element of a sequence field from the current row."""
        element_shape = self._reflector.shape_of(shape.element_type)
        if isinstance(element_shape, RecordShape):
            return self._build_record(element_shape, row, prefixes + (spec.prefix,), cursor)
        if element_shape.kind.is_aggregate:
            raise AggregateFieldConflictError(shape.type, "Sequence")
        return self._read_scalar(element_shape, row, column_name(prefixes, spec.name), cursor)

    def _build_field_mapping(
        self, shape: MappingShape, row: Row, prefixes: Prefixes, cursor: _Cursor
    ) -> Any:
        """Collect every column under the field's prefix as key/value pairs."""
        value_shape = self._scalar_value_shape(shape)
        prefix = column_name(prefixes, "")
        values = {}
        for name in row.column_names:
            if name.startswith(prefix):
                key = self._mapping_key(shape, name[len(prefix) :])
                raw = row.get(name, value_shape.type)
                values[key] = value_shape.construct(raw, **self._options)
        cursor.advance(len(values))
        return shape.build(values, **self._options)

    def _build_row_mapping(self, shape: MappingShape, row: Row) -> Any:
        value_shape = self._scalar_value_shape(shape)
        values = {}
        for index, name in enumerate(row.column_names):
            key = self._mapping_key(shape, name)
            values[key] = value_shape.construct(row.get(index, value_shape.type), **self._options)
        return shape.build(values, **self._options)

    def _build_row_sequence(self, shape: SequenceShape, row: Row) -> Any:
        names = row.column_names
        if shape.element_types is not None and len(shape.element_types) != len(names):
            raise ConstructionError(
                f"{_name(shape.type)} expects {len(shape.element_types)} columns, "
                f"row has {len(names)}"
            )
        values = []
        for index in range(len(names)):
            element_shape = self._reflector.shape_of(shape.element_type_at(index))
            if element_shape.kind.is_aggregate:
                raise AggregateFieldConflictError(shape.type, "Sequence")
            values.append(
                element_shape.construct(row.get(index, element_shape.type), **self._options)
            )
        return shape.build(values, **self._options)

    def _scalar_value_shape(self, shape: MappingShape) -> ScalarShape:
        value_shape = self._reflector.shape_of(shape.value_type)
        if value_shape.kind.is_aggregate:
            raise AggregateFieldConflictError(shape.type, "Mapping")
        return value_shape

    def _mapping_key(self, shape: MappingShape, name: str) -> Any:
        key_shape = self._reflector.shape_of(shape.key_type)
        if key_shape.type is Any or key_shape.type is str:
            return name
        return key_shape.construct(name, **self._options)

    def _read_scalar(self, shape: ScalarShape, row: Row, name: str, cursor: _Cursor) -> Any:
        raw = _read_column(row, name, cursor.offset, shape.type)
        cursor.advance()
        return shape.construct(raw, **self._options)

    # --- merge of further rows in the same identity group ---

    def _merge_record(
        self, shape: RecordShape, obj: Any, row: Row, prefixes: Prefixes, cursor: _Cursor
    ) -> Any:
        """Fold one more row into ``obj``; returns ``obj`` or its replacement."""
        for spec in shape.fields:
            current = getattr(obj, spec.name)
            merged = self._merge_field(spec, current, row, prefixes, cursor)
            if merged is not current:
                obj = _replace_field(obj, spec.name, merged)
        return obj

    def _merge_field(
        self, spec: FieldSpec, current: Any, row: Row, prefixes: Prefixes, cursor: _Cursor
    ) -> Any:
        field_shape = self._reflector.shape_of(spec.type)

        if isinstance(field_shape, SequenceShape):
            element = self._build_element(field_shape, spec, row, prefixes, cursor)
            return _appended(field_shape, current, element, self._options)
        if isinstance(field_shape, RecordShape):
            record_prefixes = prefixes + (spec.prefix,)
            if current is None:
                cursor.advance(len(_prefixed_columns(row, record_prefixes)))
                return current
            return self._merge_record(field_shape, current, row, record_prefixes, cursor)
        if isinstance(field_shape, MappingShape):
            cursor.advance(len(current) if current else 0)
        else:
            cursor.advance()
        return current


def _name(target: Any) -> str:
    return getattr(target, "__name__", None) or repr(target)


def construct_one(
    target: type[T] | Any,
    source: Any,
    *,
    config: StrapConfig | None = None,
    reflector: Reflector | None = None,
    silence_warnings: bool | None = None,
    **options: Any,
) -> T:
    """Construct a single ``target`` from ``source``.

    Raises EmptySourceError for an empty source and warns with
    TrailingRowsWarning when rows are left over, unless warnings are silenced
    (``silence_warnings=True`` or ``config.silence_warnings``).
    """
    config = (config or StrapConfig()).with_options(**options)
    if silence_warnings is not None:
        config = config.model_copy(update={"silence_warnings": silence_warnings})
    return Constructor(target, reflector, config).construct_one(source)


def construct_many(
    target: type[T] | Any,
    source: Any,
    *,
    config: StrapConfig | None = None,
    reflector: Reflector | None = None,
    **options: Any,
) -> list[T]:
    """Construct every ``target`` found in ``source``; [] for an empty source."""
    config = (config or StrapConfig()).with_options(**options)
    return Constructor(target, reflector, config).construct_many(source)
