"""Unit tests for the reflection layer."""

from __future__ import annotations

import datetime
import enum
from decimal import Decimal
from typing import Any, Literal, Optional

import pytest
from pydantic import ValidationError

from row_strap.core.enums import ShapeKind
from row_strap.core.exceptions import ReflectionError
from row_strap.reflection.reflector import Reflector
from row_strap.reflection.shapes import (
    MappingShape,
    RecordShape,
    ScalarShape,
    SequenceShape,
)
from tests.models import Coordinate, Experiment, Point, Reading, Sensor, Shipment, TestResult


class Color(enum.Enum):
    RED = "red"
    BLUE = "blue"


class TestRecordReflection:
    def test_dataclass_fields_in_declared_order(self) -> None:
        shape = Reflector().shape_of(Experiment)
        assert isinstance(shape, RecordShape)
        assert [f.name for f in shape.fields] == ["id", "name", "testresults"]
        assert [f.type for f in shape.fields] == [int, str, TestResult]
        assert shape.identity is None
        assert shape.mutable is False

    def test_default_prefix(self) -> None:
        shape = Reflector().shape_of(Experiment)
        assert shape.field_named("testresults").prefix == "testresults_"

    def test_registered_identity_and_prefix(self) -> None:
        reflector = Reflector()
        reflector.register(Experiment, identity="id", prefixes={"testresults": "t."})
        shape = reflector.shape_of(Experiment)
        assert shape.identity == "id"
        assert shape.field_named("id").is_identity
        assert shape.field_named("testresults").prefix == "t."

    def test_unknown_identity_field(self) -> None:
        reflector = Reflector()
        reflector.register(Point, identity="id")
        with pytest.raises(ReflectionError, match="Identity field 'id'"):
            reflector.shape_of(Point)

    def test_unknown_prefix_field(self) -> None:
        reflector = Reflector()
        reflector.register(Point, prefixes={"z": "z_"})
        with pytest.raises(ReflectionError, match="unknown fields"):
            reflector.shape_of(Point)

    def test_excluded_fields(self) -> None:
        reflector = Reflector()
        reflector.register(Experiment, excludes=["name"])
        shape = reflector.shape_of(Experiment)
        assert [f.name for f in shape.fields] == ["id", "testresults"]

    def test_optional_fields_are_marked(self) -> None:
        shape = Reflector().shape_of(Shipment)
        assert shape.field_named("address").optional
        assert not shape.field_named("id").optional

    def test_pydantic_model(self) -> None:
        shape = Reflector().shape_of(Reading)
        assert isinstance(shape, RecordShape)
        assert [f.name for f in shape.fields] == ["sensor", "celsius"]
        assert shape.mutable is False

    def test_named_tuple(self) -> None:
        shape = Reflector().shape_of(Coordinate)
        assert isinstance(shape, RecordShape)
        assert [f.name for f in shape.fields] == ["lat", "lon"]

    def test_plain_class_is_mutable(self) -> None:
        shape = Reflector().shape_of(Sensor)
        assert isinstance(shape, RecordShape)
        assert shape.mutable is True
        assert isinstance(shape.build(), Sensor)

    def test_register_as_decorator(self) -> None:
        reflector = Reflector()

        @reflector.register(identity="key")
        class Entry:
            key: str
            hits: list[int]

        assert reflector.shape_of(Entry).identity == "key"

    def test_class_without_fields(self) -> None:
        class Empty:
            pass

        with pytest.raises(ReflectionError):
            Reflector().shape_of(Empty)


class TestContainerReflection:
    def test_list(self) -> None:
        shape = Reflector().shape_of(list[float])
        assert isinstance(shape, SequenceShape)
        assert shape.element_type is float

    def test_variadic_tuple(self) -> None:
        shape = Reflector().shape_of(tuple[int, ...])
        assert isinstance(shape, SequenceShape)
        assert shape.element_type is int
        assert shape.build([1, 2]) == (1, 2)

    def test_fixed_tuple(self) -> None:
        shape = Reflector().shape_of(tuple[int, str])
        assert shape.element_types == (int, str)
        assert shape.element_type_at(1) is str

    def test_dict(self) -> None:
        shape = Reflector().shape_of(dict[str, int])
        assert isinstance(shape, MappingShape)
        assert (shape.key_type, shape.value_type) == (str, int)

    def test_bare_dict_defaults(self) -> None:
        shape = Reflector().shape_of(dict)
        assert isinstance(shape, MappingShape)
        assert (shape.key_type, shape.value_type) == (str, Any)

    def test_optional_unwraps(self) -> None:
        reflector = Reflector()
        assert reflector.shape_of(Optional[list[int]]).kind is ShapeKind.SEQUENCE
        assert reflector.shape_of(int | None).kind is ShapeKind.SCALAR

    def test_registered_custom_mapping(self) -> None:
        class Attributes(dict):
            pass

        reflector = Reflector()
        reflector.register(Attributes, kind=ShapeKind.MAPPING, value_type=int)
        shape = reflector.shape_of(Attributes)
        assert isinstance(shape, MappingShape)
        assert isinstance(shape.build({"a": 1}), Attributes)


class TestScalarReflection:
    def test_numeric_coercion(self) -> None:
        reflector = Reflector()
        assert reflector.shape_of(int).construct("7") == 7
        assert reflector.shape_of(float).construct("2.5") == 2.5
        assert reflector.shape_of(Decimal).construct(0.1) == Decimal("0.1")

    def test_lossy_int_conversion_raises(self) -> None:
        shape = Reflector().shape_of(int)
        assert shape.construct(4.0) == 4
        with pytest.raises(ValidationError):
            shape.construct(3.7)

    def test_scalar_subclass(self) -> None:
        class Kelvin(float):
            pass

        assert Reflector().shape_of(Kelvin).construct("3.5") == 3.5

    def test_literal(self) -> None:
        shape = Reflector().shape_of(Literal["a", "b"])
        assert shape.construct("a") == "a"
        with pytest.raises(ValidationError):
            shape.construct("c")

    def test_none_passes_through(self) -> None:
        assert Reflector().shape_of(int).construct(None) is None

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("true", True), ("F", False), ("yes", True), (0, False), (1, True)],
    )
    def test_bool(self, raw: Any, expected: bool) -> None:
        assert Reflector().shape_of(bool).construct(raw) is expected

    def test_bool_rejects_unknown_string(self) -> None:
        with pytest.raises(ValidationError):
            Reflector().shape_of(bool).construct("maybe")

    def test_enum(self) -> None:
        assert Reflector().shape_of(Color).construct("red") is Color.RED

    def test_datetime_from_iso_string(self) -> None:
        shape = Reflector().shape_of(datetime.date)
        assert shape.construct("2024-03-01") == datetime.date(2024, 3, 1)

    def test_any_is_passthrough(self) -> None:
        shape = Reflector().shape_of(Any)
        assert isinstance(shape, ScalarShape)
        marker = object()
        assert shape.construct(marker) is marker


class TestShapeCache:
    def test_shapes_are_cached(self) -> None:
        reflector = Reflector()
        assert reflector.shape_of(Experiment) is reflector.shape_of(Experiment)

    def test_registration_invalidates_cache(self) -> None:
        reflector = Reflector()
        before = reflector.shape_of(TestResult)
        reflector.register(TestResult, identity="id")
        after = reflector.shape_of(TestResult)
        assert before.identity is None
        assert after.identity == "id"

    def test_shapes_are_frozen(self) -> None:
        shape = Reflector().shape_of(Point)
        with pytest.raises(AttributeError):
            shape.identity = "x"  # type: ignore[misc]
