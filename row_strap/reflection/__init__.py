"""Reflection layer - report the row shape of Python types."""

from __future__ import annotations

from row_strap.reflection.reflector import Reflector, default_reflector, register, shape_of
from row_strap.reflection.shapes import (
    FieldSpec,
    MappingShape,
    RecordShape,
    ScalarShape,
    SequenceShape,
    TypeShape,
)

__all__ = [
    "Reflector",
    "default_reflector",
    "register",
    "shape_of",
    "FieldSpec",
    "RecordShape",
    "MappingShape",
    "SequenceShape",
    "ScalarShape",
    "TypeShape",
]
