"""Type shape descriptors.

Frozen dataclasses describing how a type is laid out in a row. Produced by a
Reflector, cached per type, never mutated by the engines.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Union

from row_strap.core.enums import ShapeKind


@dataclass(frozen=True)
class FieldSpec:
    """One declared field of a record type."""

    name: str
    type: Any
    prefix: str  # column prefix used when this field is an aggregate
    is_identity: bool = False
    optional: bool = False  # declared as ``X | None``


@dataclass(frozen=True)
class RecordShape:
    """Record with ordered named fields.

    Immutable records are created by ``build(values)`` once every field value
    is known. Mutable records are allocated with ``type()`` and populated with
    ``setattr`` in field order.
    """

    type: Any
    fields: tuple[FieldSpec, ...]
    build: Callable[..., Any]
    identity: str | None = None
    mutable: bool = False
    kind: ShapeKind = field(default=ShapeKind.RECORD, init=False)

    def field_named(self, name: str) -> FieldSpec:
        for spec in self.fields:
            if spec.name == name:
                return spec
        raise KeyError(name)


@dataclass(frozen=True)
class MappingShape:
    """Mapping whose keys come from column names."""

    type: Any
    key_type: Any
    value_type: Any
    build: Callable[..., Any]
    kind: ShapeKind = field(default=ShapeKind.MAPPING, init=False)


@dataclass(frozen=True)
class SequenceShape:
    """Sequence container. ``element_types`` is set for fixed-arity tuples."""

    type: Any
    element_type: Any
    build: Callable[..., Any]
    element_types: tuple[Any, ...] | None = None
    kind: ShapeKind = field(default=ShapeKind.SEQUENCE, init=False)

    def element_type_at(self, index: int) -> Any:
        if self.element_types is not None:
            return self.element_types[index]
        return self.element_type


@dataclass(frozen=True)
class ScalarShape:
    """Leaf value read from exactly one column.

    ``coerce`` is the numeric coercion hook; it runs before ``build``.
    """

    type: Any
    build: Callable[..., Any]
    coerce: Callable[[Any], Any] | None = None
    kind: ShapeKind = field(default=ShapeKind.SCALAR, init=False)

    def construct(self, raw: Any, **options: Any) -> Any:
        if raw is None:
            return None
        if self.coerce is not None:
            raw = self.coerce(raw)
        return self.build(raw, **options)


TypeShape = Union[RecordShape, MappingShape, SequenceShape, ScalarShape]
