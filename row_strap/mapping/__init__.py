"""Mapping layer - build objects from rows and flatten objects into rows."""

from __future__ import annotations

from row_strap.core.naming import column_name, default_prefix
from row_strap.mapping.constructor import Constructor, construct_many, construct_one
from row_strap.mapping.deconstructor import (
    Column,
    DeconstructedRow,
    DeconstructedRows,
    Deconstructor,
    PathStep,
    deconstruct,
)

__all__ = [
    "Constructor",
    "construct_one",
    "construct_many",
    "Deconstructor",
    "deconstruct",
    "DeconstructedRows",
    "DeconstructedRow",
    "Column",
    "PathStep",
    "column_name",
    "default_prefix",
]
