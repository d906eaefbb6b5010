"""row_strap - map rows to typed object graphs and back."""

from __future__ import annotations

from row_strap.core.config import StrapConfig
from row_strap.core.enums import ShapeKind
from row_strap.core.exceptions import (
    AggregateFieldConflictError,
    ColumnNotFoundError,
    ConstructionError,
    DeconstructionError,
    EmptySourceError,
    ReflectionError,
    StrapError,
    TrailingRowsWarning,
)
from row_strap.core.naming import column_name, default_prefix
from row_strap.core.tabular import DictRow, Row, rows_from, rows_from_cursor
from row_strap.mapping.constructor import Constructor, construct_many, construct_one
from row_strap.mapping.deconstructor import DeconstructedRows, Deconstructor, deconstruct
from row_strap.reflection.reflector import Reflector, default_reflector, register, shape_of

__all__ = [
    # Construction
    "construct_one",
    "construct_many",
    "Constructor",
    # Deconstruction
    "deconstruct",
    "Deconstructor",
    "DeconstructedRows",
    # Reflection
    "Reflector",
    "default_reflector",
    "register",
    "shape_of",
    "ShapeKind",
    # Naming
    "column_name",
    "default_prefix",
    # Tabular
    "Row",
    "DictRow",
    "rows_from",
    "rows_from_cursor",
    # Config
    "StrapConfig",
    # Exceptions
    "StrapError",
    "ConstructionError",
    "EmptySourceError",
    "ColumnNotFoundError",
    "ReflectionError",
    "AggregateFieldConflictError",
    "DeconstructionError",
    "TrailingRowsWarning",
]
