"""row_strap exception hierarchy.

Errors raised by user-supplied construction hooks (``ValueError``,
``TypeError``, pydantic ``ValidationError``) are never wrapped; they reach the
caller unchanged.
"""

from __future__ import annotations

from typing import Any


class StrapError(Exception):
    """Base exception for all row_strap errors."""


# --- Construction ---


class ConstructionError(StrapError):
    """Base for errors raised while building objects from rows."""


class EmptySourceError(ConstructionError):
    """Raised when construct_one is given a source with no rows."""

    def __init__(self, target: Any) -> None:
        self.target = target
        super().__init__(f"Cannot construct {_type_name(target)} from empty source")


class ColumnNotFoundError(ConstructionError, KeyError):
    """Raised when a row has no column with the expected name."""

    def __init__(self, column: str, available: list[str]) -> None:
        self.column = column
        self.available = available
        super().__init__(f"Column '{column}' not found in row; available columns: {available}")

    def __str__(self) -> str:
        return str(self.args[0])


# --- Reflection ---


class ReflectionError(StrapError):
    """Raised when a type cannot be reflected into a shape."""


class AggregateFieldConflictError(ReflectionError):
    """Raised when a mapping value type or sequence element type is an aggregate.

    A whole-row mapping or sequence already owns every column of the row, so
    there is no way to decide which columns an aggregate value would own.
    """

    def __init__(self, target: Any, kind: str) -> None:
        self.target = target
        self.kind = kind
        super().__init__(
            f"{kind} {_type_name(target)} not allowed as aggregate field "
            "(its value/element type is itself an aggregate)"
        )


# --- Deconstruction ---


class DeconstructionError(StrapError):
    """Raised when objects cannot be deconstructed into rows."""


# --- Warnings ---


class TrailingRowsWarning(UserWarning):
    """Emitted when construct_one leaves unread rows in the source."""


def _type_name(target: Any) -> str:
    return getattr(target, "__name__", None) or repr(target)
