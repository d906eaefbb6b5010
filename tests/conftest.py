"""Shared test fixtures."""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator

import pytest

from row_strap.reflection.reflector import Reflector
from tests.models import Edge, Experiment, Frozen, Order, Reading, TestResult, Track


@pytest.fixture
def reflector() -> Reflector:
    """Fresh reflector with the shared test models registered."""
    reflector = Reflector()
    reflector.register(TestResult, identity="id")
    reflector.register(Experiment, identity="id")
    reflector.register(Order, identity="id")
    reflector.register(Reading, identity="sensor")
    reflector.register(Frozen, identity="id")
    reflector.register(Track, identity="id")
    reflector.register(Edge, prefixes={"source": "", "target": ""})
    return reflector


@pytest.fixture
def sqlite_connection() -> Iterator[sqlite3.Connection]:
    """SQLite in-memory connection."""
    connection = sqlite3.connect(":memory:")
    try:
        yield connection
    finally:
        connection.close()
