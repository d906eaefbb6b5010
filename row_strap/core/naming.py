"""Flattened column naming.

Both engines name columns through these functions so that construction and
deconstruction agree on the layout of nested aggregates:

    Experiment.name                      -> "name"
    Experiment.testresults.values        -> "testresults_values"
    Experiment.testresults.run.started   -> "testresults_run_started"
"""

from __future__ import annotations

from collections.abc import Iterable

DEFAULT_SEPARATOR = "_"


def default_prefix(field_name: str, separator: str = DEFAULT_SEPARATOR) -> str:
    """Column prefix for an aggregate field that declares no override."""
    return field_name + separator


def column_name(prefixes: Iterable[str], leaf: str) -> str:
    """Concatenate ancestor field prefixes with a leaf column name."""
    return "".join(prefixes) + leaf
