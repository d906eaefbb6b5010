"""Integration test: objects -> rows -> SQLite table -> rows -> objects.

Exercises deconstruction into a real tabular sink and construction from a
DB-API cursor against an in-memory SQLite database.
"""

from __future__ import annotations

import sqlite3

import pytest

from row_strap.core.tabular import rows_from_cursor
from row_strap.mapping.constructor import construct_many, construct_one
from row_strap.mapping.deconstructor import DeconstructedRows, deconstruct
from row_strap.reflection.reflector import Reflector
from tests.models import Counted, Edge, Experiment, Line, Node, Order, TestResult

# --- Helpers ---


def _create_table(connection: sqlite3.Connection, table: str, rows: DeconstructedRows) -> None:
    columns = ", ".join(f'"{name}"' for name in rows.column_names)
    placeholders = ", ".join(f":{name}" for name in rows.column_names)
    connection.execute(f"CREATE TABLE {table} ({columns})")
    connection.executemany(
        f"INSERT INTO {table} ({columns}) VALUES ({placeholders})",
        (row.as_dict() for row in rows),
    )


# --- Fixtures ---


@pytest.fixture
def experiments() -> list[Experiment]:
    return [
        Experiment(1, "exp1", TestResult(10, [3.14, 3.15, 3.16])),
        Experiment(2, "exp2", TestResult(20, [40.1, 0.01])),
    ]


# --- Tests ---


class TestSqliteRoundTrip:
    def test_experiments(
        self,
        sqlite_connection: sqlite3.Connection,
        reflector: Reflector,
        experiments: list[Experiment],
    ) -> None:
        rows = deconstruct(experiments, reflector=reflector)
        _create_table(sqlite_connection, "experiments", rows)

        count = sqlite_connection.execute("SELECT COUNT(*) FROM experiments").fetchone()[0]
        assert count == 5

        cursor = sqlite_connection.execute("SELECT * FROM experiments ORDER BY rowid")
        assert construct_many(Experiment, rows_from_cursor(cursor), reflector=reflector) == (
            experiments
        )

    def test_single_experiment_with_row_factory(
        self,
        sqlite_connection: sqlite3.Connection,
        reflector: Reflector,
        experiments: list[Experiment],
    ) -> None:
        rows = deconstruct(experiments[0], reflector=reflector)
        _create_table(sqlite_connection, "experiments", rows)
        sqlite_connection.row_factory = sqlite3.Row

        cursor = sqlite_connection.execute("SELECT * FROM experiments ORDER BY rowid")
        assert construct_one(Experiment, rows_from_cursor(cursor), reflector=reflector) == (
            experiments[0]
        )

    def test_orders_with_line_items(
        self, sqlite_connection: sqlite3.Connection, reflector: Reflector
    ) -> None:
        orders = [
            Order(1, "acme", [Line("A-1", 2), Line("B-7", 1), Line("C-3", 4)]),
            Order(2, "globex", [Line("D-9", 10)]),
            Order(3, "initech", [Line("E-2", 3), Line("F-5", 6)]),
        ]
        _create_table(sqlite_connection, "orders", deconstruct(orders, reflector=reflector))

        cursor = sqlite_connection.execute(
            "SELECT id, customer, lines_sku, lines_qty FROM orders WHERE id >= 2 ORDER BY rowid"
        )
        assert construct_many(Order, rows_from_cursor(cursor), reflector=reflector) == orders[1:]

    def test_projection_drives_shape(
        self, sqlite_connection: sqlite3.Connection, reflector: Reflector
    ) -> None:
        results = [TestResult(1, [1.0, 2.0]), TestResult(2, [3.0])]
        _create_table(sqlite_connection, "results", deconstruct(results, reflector=reflector))

        cursor = sqlite_connection.execute(
            "SELECT id, SUM(\"values\") AS \"values\" FROM results GROUP BY id ORDER BY id"
        )
        assert construct_many(TestResult, rows_from_cursor(cursor), reflector=reflector) == [
            TestResult(1, [3.0]),
            TestResult(2, [3.0]),
        ]

    def test_unnamed_columns(self, sqlite_connection: sqlite3.Connection) -> None:
        cursor = sqlite_connection.execute("SELECT 1, 2")
        assert construct_one(Counted, rows_from_cursor(cursor), reflector=Reflector()) == (
            Counted(1, 2)
        )

    def test_self_join_with_repeated_names(
        self, sqlite_connection: sqlite3.Connection, reflector: Reflector
    ) -> None:
        sqlite_connection.execute("CREATE TABLE nodes (id INTEGER, parent INTEGER)")
        sqlite_connection.executemany("INSERT INTO nodes VALUES (?, ?)", [(1, None), (2, 1)])

        cursor = sqlite_connection.execute(
            "SELECT p.id, c.id FROM nodes c JOIN nodes p ON c.parent = p.id"
        )
        assert construct_many(Edge, rows_from_cursor(cursor), reflector=reflector) == [
            Edge(Node(1), Node(2))
        ]
