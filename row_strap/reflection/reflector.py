"""Reflection contract.

A Reflector answers ``shape_of(T)`` for any type the engines meet, resolving
each type once and caching the result. Out of the box it understands:

- scalars: str, bytes, bool, int, float, Decimal, Fraction, complex, date,
  datetime, time, UUID, Enum subclasses, ``Literal[...]``, ``typing.Any``
- records: Pydantic models, dataclasses, NamedTuples, annotated plain classes
- mappings: dict, ``dict[K, V]``, ``Mapping[K, V]`` and other mapping classes
- sequences: list, set, ``list[E]``, ``tuple[E, ...]``, ``tuple[A, B]`` and
  other sequence classes

Scalar values are validated with a pydantic ``TypeAdapter`` built once per
shape. Identity fields, field prefixes, mutability, excluded fields and custom
construction hooks are declared with ``register``.
"""

from __future__ import annotations

import collections.abc
import dataclasses
import datetime
import enum
import types
import typing
import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from decimal import Decimal
from fractions import Fraction
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, TypeAdapter
from pydantic.errors import PydanticUserError

from row_strap.core.enums import ShapeKind
from row_strap.core.exceptions import ReflectionError
from row_strap.core.naming import DEFAULT_SEPARATOR, default_prefix
from row_strap.reflection.shapes import (
    FieldSpec,
    MappingShape,
    RecordShape,
    ScalarShape,
    SequenceShape,
    TypeShape,
)

_SCALAR_TYPES = (
    bool,
    int,
    float,
    complex,
    Fraction,
    Decimal,
    str,
    bytes,
    uuid.UUID,
    datetime.datetime,
    datetime.date,
    datetime.time,
)

# Drivers hand back binary floats; go through repr so 0.1 stays Decimal("0.1").
_NUMERIC_COERCIONS: dict[type, Callable[[Any], Any]] = {
    Decimal: lambda raw: Decimal(str(raw)) if isinstance(raw, float) else raw,
}

_SCALAR_CONFIG = ConfigDict(coerce_numbers_to_str=True)


@dataclass(frozen=True)
class Registration:
    """User declarations for one type."""

    kind: ShapeKind | None = None
    identity: str | None = None
    prefixes: dict[str, str] = dataclasses.field(default_factory=dict)
    mutable: bool | None = None
    excludes: frozenset[str] = frozenset()
    build: Callable[..., Any] | None = None
    coerce: Callable[[Any], Any] | None = None
    key_type: Any = str
    value_type: Any = Any
    element_type: Any = Any


def _passthrough(raw: Any, **_: Any) -> Any:
    return raw


def _scalar_builder(tp: Any) -> Callable[..., Any]:
    """Default scalar hook: validate ``raw`` against ``tp`` in pydantic lax mode.

    Lossy conversions, e.g. 3.7 for an ``int``, raise ``ValidationError``.
    Types pydantic has no schema for are called with the raw value instead.
    """
    try:
        adapter = TypeAdapter(tp, config=_SCALAR_CONFIG)
    except PydanticUserError:
        return lambda raw, **_: raw if isinstance(raw, tp) else tp(raw)

    def build(raw: Any, **_: Any) -> Any:
        return adapter.validate_python(raw)

    return build


def _mapping_builder(origin: Any) -> Callable[..., Any]:
    if origin is dict or (isinstance(origin, type) and origin.__module__ == "collections.abc"):
        return _passthrough
    return lambda values, **_: origin(values)


def _sequence_builder(origin: Any) -> Callable[..., Any]:
    if origin is list or (isinstance(origin, type) and origin.__module__ == "collections.abc"):
        return _passthrough
    return lambda values, **_: origin(values)


def _record_builder(cls: type) -> Callable[..., Any]:
    if _is_pydantic_model(cls):
        return lambda values, **_: cls.model_validate(values)
    return lambda values, **_: cls(**values)


def _allocator(cls: type) -> Callable[..., Any]:
    return lambda **_: cls()


def _unwrap_optional(tp: Any) -> Any:
    """Reduce ``X | None`` to ``X``; other unions read as ``Any``."""
    origin = typing.get_origin(tp)
    if origin is typing.Union or origin is types.UnionType:
        args = [arg for arg in typing.get_args(tp) if arg is not type(None)]
        if len(args) == 1:
            return args[0]
        return Any
    return tp


def _is_optional(tp: Any) -> bool:
    origin = typing.get_origin(tp)
    if origin is typing.Union or origin is types.UnionType:
        return type(None) in typing.get_args(tp)
    return False


def _is_named_tuple(cls: type) -> bool:
    return issubclass(cls, tuple) and hasattr(cls, "_fields")


def _is_pydantic_model(cls: type) -> bool:
    """Check if a class is a Pydantic BaseModel."""
    return isinstance(cls, type) and issubclass(cls, BaseModel)


def _declared_fields(cls: type) -> list[tuple[str, Any]]:
    """Ordered (name, type) pairs a record class declares."""
    if _is_pydantic_model(cls):
        return [(name, info.annotation) for name, info in cls.model_fields.items()]

    try:
        hints = typing.get_type_hints(cls)
    except (NameError, TypeError) as e:
        raise ReflectionError(f"Cannot resolve field types of {cls.__name__}: {e}") from e

    if dataclasses.is_dataclass(cls):
        return [(f.name, hints.get(f.name, Any)) for f in dataclasses.fields(cls) if f.init]

    if _is_named_tuple(cls):
        return [(name, hints.get(name, Any)) for name in cls._fields]

    return [
        (name, tp)
        for name, tp in hints.items()
        if not name.startswith("_") and typing.get_origin(tp) is not ClassVar and tp is not ClassVar
    ]


class Reflector:
    """Resolves and caches the shape of types.

    Args:
        separator: Appended to a field name to form its default column prefix.
    """

    def __init__(self, separator: str = DEFAULT_SEPARATOR) -> None:
        self._separator = separator
        self._registrations: dict[Any, Registration] = {}
        self._shapes: dict[Any, TypeShape] = {}

    @property
    def separator(self) -> str:
        return self._separator

    def register(
        self,
        cls: Any = None,
        *,
        kind: ShapeKind | None = None,
        identity: str | None = None,
        prefixes: dict[str, str] | None = None,
        mutable: bool | None = None,
        excludes: Iterable[str] = (),
        build: Callable[..., Any] | None = None,
        coerce: Callable[[Any], Any] | None = None,
        key_type: Any = str,
        value_type: Any = Any,
        element_type: Any = Any,
    ) -> Any:
        """Declare how a type maps onto rows.

        Usable directly, ``reflector.register(TestResult, identity="id")``, or
        as a class decorator, ``@reflector.register(identity="id")``.

        Args:
            kind: Force a shape category, e.g. SEQUENCE for a custom container.
            identity: Field whose value groups contiguous rows into one object.
            prefixes: Per-field column prefix overrides for aggregate fields.
            mutable: Allocate with a no-argument call then set fields.
            excludes: Fields that are neither read from nor written to rows.
            build: Construction hook replacing the default one for the shape.
            coerce: Numeric coercion hook for scalar registrations.
            key_type / value_type: Mapping registrations only.
            element_type: Sequence registrations only.
        """
        registration = Registration(
            kind=kind,
            identity=identity,
            prefixes=dict(prefixes or {}),
            mutable=mutable,
            excludes=frozenset(excludes),
            build=build,
            coerce=coerce,
            key_type=key_type,
            value_type=value_type,
            element_type=element_type,
        )

        def decorate(target: Any) -> Any:
            self._registrations[target] = registration
            self._shapes.clear()
            return target

        if cls is None:
            return decorate
        return decorate(cls)

    def shape_of(self, tp: Any) -> TypeShape:
        """Return the shape of ``tp``, reflecting it on first use."""
        try:
            return self._shapes[tp]
        except KeyError:
            pass
        except TypeError:
            return self._reflect(tp)
        shape = self._reflect(tp)
        self._shapes[tp] = shape
        return shape

    def is_aggregate(self, tp: Any) -> bool:
        return self.shape_of(tp).kind.is_aggregate

    def _reflect(self, tp: Any) -> TypeShape:
        tp = _unwrap_optional(tp)
        if tp is Any or tp is object:
            return ScalarShape(type=Any, build=_passthrough)

        registration = self._registrations.get(tp)
        if registration is not None and registration.kind not in (None, ShapeKind.RECORD):
            return self._reflect_registered(tp, registration)

        origin = typing.get_origin(tp)
        if origin is not None:
            return self._reflect_generic(tp, origin, typing.get_args(tp))

        if not isinstance(tp, type):
            raise ReflectionError(f"Cannot reflect non-type {tp!r}")

        scalar = self._reflect_scalar(tp)
        if scalar is not None:
            return scalar

        if issubclass(tp, (dict, collections.abc.Mapping)) and not _is_pydantic_model(tp):
            return MappingShape(type=tp, key_type=str, value_type=Any, build=_mapping_builder(tp))

        if issubclass(tp, (list, set, frozenset)) or (
            issubclass(tp, tuple) and not _is_named_tuple(tp)
        ):
            return SequenceShape(type=tp, element_type=Any, build=_sequence_builder(tp))

        return self._reflect_record(tp, registration or Registration())

    def _reflect_scalar(self, tp: type) -> ScalarShape | None:
        if not issubclass(tp, _SCALAR_TYPES + (enum.Enum,)):
            return None
        coerce = next(
            (hook for numeric, hook in _NUMERIC_COERCIONS.items() if issubclass(tp, numeric)),
            None,
        )
        return ScalarShape(type=tp, build=_scalar_builder(tp), coerce=coerce)

    def _reflect_generic(self, tp: Any, origin: Any, args: tuple[Any, ...]) -> TypeShape:
        if origin is typing.Literal:
            return ScalarShape(type=tp, build=_scalar_builder(tp))
        if origin is typing.Annotated:
            return self._reflect(args[0])

        if issubclass(origin, collections.abc.Mapping):
            key_type, value_type = args if len(args) == 2 else (str, Any)
            return MappingShape(
                type=tp,
                key_type=key_type,
                value_type=value_type,
                build=_mapping_builder(origin),
            )

        if origin is tuple:
            if len(args) == 2 and args[1] is Ellipsis:
                return SequenceShape(type=tp, element_type=args[0], build=_sequence_builder(tuple))
            return SequenceShape(
                type=tp,
                element_type=Any,
                element_types=tuple(args),
                build=_sequence_builder(tuple),
            )

        if issubclass(origin, collections.abc.Iterable) and not issubclass(origin, (str, bytes)):
            element_type = args[0] if args else Any
            return SequenceShape(
                type=tp, element_type=element_type, build=_sequence_builder(origin)
            )

        raise ReflectionError(f"Cannot reflect generic type {tp!r}")

    def _reflect_registered(self, tp: Any, registration: Registration) -> TypeShape:
        if registration.kind is ShapeKind.SCALAR:
            return ScalarShape(
                type=tp,
                build=registration.build or _scalar_builder(tp),
                coerce=registration.coerce,
            )
        if registration.kind is ShapeKind.MAPPING:
            return MappingShape(
                type=tp,
                key_type=registration.key_type,
                value_type=registration.value_type,
                build=registration.build or _mapping_builder(tp),
            )
        return SequenceShape(
            type=tp,
            element_type=registration.element_type,
            build=registration.build or _sequence_builder(tp),
        )

    def _reflect_record(self, cls: type, registration: Registration) -> RecordShape:
        declared = [
            (name, tp) for name, tp in _declared_fields(cls) if name not in registration.excludes
        ]
        if not declared:
            raise ReflectionError(f"Cannot reflect {cls.__name__}: no fields declared")

        names = {name for name, _ in declared}
        if registration.identity is not None and registration.identity not in names:
            raise ReflectionError(
                f"Identity field '{registration.identity}' is not a field of {cls.__name__}"
            )
        unknown = set(registration.prefixes) - names
        if unknown:
            raise ReflectionError(
                f"Prefix overrides for unknown fields of {cls.__name__}: {sorted(unknown)}"
            )

        fields = tuple(
            FieldSpec(
                name=name,
                type=tp,
                prefix=registration.prefixes.get(name, default_prefix(name, self._separator)),
                is_identity=name == registration.identity,
                optional=_is_optional(tp),
            )
            for name, tp in declared
        )

        mutable = registration.mutable
        if mutable is None:
            mutable = not (
                dataclasses.is_dataclass(cls) or _is_named_tuple(cls) or _is_pydantic_model(cls)
            )

        if registration.build is not None:
            build = registration.build
        elif mutable:
            build = _allocator(cls)
        else:
            build = _record_builder(cls)

        return RecordShape(
            type=cls,
            fields=fields,
            build=build,
            identity=registration.identity,
            mutable=mutable,
        )


default_reflector = Reflector()


def register(cls: Any = None, **kwargs: Any) -> Any:
    """Register a type on the default reflector. See ``Reflector.register``."""
    return default_reflector.register(cls, **kwargs)


def shape_of(tp: Any) -> TypeShape:
    """Shape of ``tp`` according to the default reflector."""
    return default_reflector.shape_of(tp)
