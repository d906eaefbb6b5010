"""Shape categories reported by the reflection layer."""

from __future__ import annotations

from enum import Enum


class ShapeKind(Enum):
    """Closed set of type shapes the engines dispatch on."""

    RECORD = "record"
    MAPPING = "mapping"
    SEQUENCE = "sequence"
    SCALAR = "scalar"

    @property
    def is_aggregate(self) -> bool:
        return self is not ShapeKind.SCALAR


class StepKind(Enum):
    """How one step of a column access path reaches into a value."""

    FIELD = "field"
    KEY = "key"
    INDEX = "index"
