"""duckdb: driver, end to end against a database file in tmp_path."""

from __future__ import annotations

import csv
import io

import duckdb
import pytest

from tabletransit.args import DestinationArguments, SharedArguments, SourceArguments
from tabletransit.domain.enums import TransferPath
from tabletransit.domain.models import IfExists
from tabletransit.domain.schema import Column, DataType, StructField, Table
from tabletransit.drivers.csv import CsvLocator
from tabletransit.drivers.duckdb import (
    DuckDbLocator,
    DuckTableName,
    create_table_sql,
    duckdb_type,
    parse_duckdb_type,
)
from tabletransit.errors import DriverError, LocatorParseError, UnsupportedArgumentError
from tabletransit.pipeline.transfer import copy

ORDERS = Table(
    name="orders",
    columns=[
        Column(name="id", data_type=DataType.scalar("int64"), is_nullable=False),
        Column(name="customer", data_type=DataType.scalar("text")),
        Column(name="items", data_type=DataType.array_of(DataType.scalar("int64"))),
    ],
)


@pytest.fixture
def database(tmp_path) -> str:
    return str(tmp_path / "warehouse.duckdb")


def write_csv(path, text: str) -> CsvLocator:
    path.write_text(text, encoding="utf-8")
    return CsvLocator(str(path))


def rows_of(database: str, sql: str) -> list[tuple]:
    con = duckdb.connect(database)
    try:
        return con.execute(sql).fetchall()
    finally:
        con.close()


def test_parse_locator():
    locator = DuckDbLocator.parse("duckdb:data/warehouse.duckdb#sales.orders")

    assert locator.path == "data/warehouse.duckdb"
    assert locator.table_name == DuckTableName("sales", "orders")
    assert str(DuckDbLocator.parse("duckdb:w.duckdb#orders")) == "duckdb:w.duckdb#orders"
    with pytest.raises(LocatorParseError, match="missing table name"):
        DuckDbLocator.parse("duckdb:w.duckdb")


@pytest.mark.parametrize(
    "data_type,expected",
    [
        (DataType.scalar("decimal"), "DECIMAL(38, 9)"),
        (DataType.scalar("timestamp_with_time_zone"), "TIMESTAMP WITH TIME ZONE"),
        (DataType.array_of(DataType.scalar("text")), "VARCHAR[]"),
        (
            DataType.struct_of([StructField(name="lat lon", data_type=DataType.scalar("float64"))]),
            'STRUCT("lat lon" DOUBLE)',
        ),
    ],
)
def test_duckdb_type(data_type, expected):
    assert duckdb_type(data_type) == expected


def test_parse_duckdb_type():
    assert parse_duckdb_type("DECIMAL(18,3)") == DataType.scalar("decimal")
    assert parse_duckdb_type("BIGINT[]") == DataType.array_of(DataType.scalar("int64"))
    assert parse_duckdb_type('STRUCT("a, b" INTEGER, c VARCHAR[])') == DataType.struct_of([
        StructField(name="a, b", data_type=DataType.scalar("int32")),
        StructField(name="c", data_type=DataType.array_of(DataType.scalar("text"))),
    ])


def test_create_table_sql():
    assert create_table_sql(DuckTableName("main", "orders"), ORDERS) == (
        'CREATE TABLE "main"."orders" ("id" BIGINT NOT NULL, "customer" VARCHAR, "items" BIGINT[])'
    )


async def test_schema_round_trip(ctx, database):
    table = Table(
        name="events",
        columns=[
            Column(name="id", data_type=DataType.scalar("int64"), is_nullable=False),
            Column(name="ok", data_type=DataType.scalar("bool")),
            Column(name="amount", data_type=DataType.scalar("decimal")),
            Column(name="at", data_type=DataType.scalar("timestamp_with_time_zone")),
            Column(name="tags", data_type=DataType.array_of(DataType.scalar("text"))),
            Column(
                name="meta",
                data_type=DataType.struct_of([StructField(name="k", data_type=DataType.scalar("int32"))]),
            ),
        ],
    )
    locator = DuckDbLocator(database, DuckTableName("main", "events"))

    assert await locator.schema(ctx) is None

    await locator.write_schema(ctx, table, IfExists.error())

    assert await locator.schema(ctx) == table
    with pytest.raises(DriverError, match="already exists"):
        await locator.write_schema(ctx, table, IfExists.error())
    with pytest.raises(UnsupportedArgumentError):
        await locator.write_schema(ctx, table, IfExists.append())


async def test_load_from_csv_then_export(ctx, database, tmp_path):
    source = write_csv(tmp_path / "orders.csv", 'id,customer,items\n1,alice,"[1,2]"\n2,bob,\n3,,[]\n')
    dest = DuckDbLocator(database, DuckTableName("main", "orders"))
    shared = SharedArguments(schema=ORDERS)

    plan = await copy(
        ctx, source, dest, shared, SourceArguments(), DestinationArguments(if_exists=IfExists.overwrite())
    )

    assert plan.path == TransferPath.REMOTE
    assert rows_of(database, "SELECT id, customer, items FROM orders ORDER BY id") == [
        (1, "alice", [1, 2]),
        (2, "bob", None),
        (3, None, []),
    ]

    out = CsvLocator(str(tmp_path / "export.csv"))
    plan = await copy(
        ctx, dest, out, shared, SourceArguments(where_clause="id < 3"),
        DestinationArguments(if_exists=IfExists.overwrite()),
    )

    assert plan.path == TransferPath.STREAMING
    exported = list(csv.reader(io.StringIO((tmp_path / "export.csv").read_text(encoding="utf-8"))))
    assert exported == [["id", "customer", "items"], ["1", "alice", "[1,2]"], ["2", "bob", ""]]


async def test_streaming_upsert_between_tables(ctx, database, tmp_path):
    shared = SharedArguments(schema=ORDERS)
    staging = DuckDbLocator(database, DuckTableName("main", "staging"))
    target = DuckDbLocator(database, DuckTableName("main", "orders"))
    overwrite = DestinationArguments(if_exists=IfExists.overwrite())

    await copy(ctx, write_csv(tmp_path / "a.csv", "id,customer,items\n1,alice,\n2,bob,\n"),
               target, shared, SourceArguments(), overwrite)
    await copy(ctx, write_csv(tmp_path / "b.csv", "id,customer,items\n2,robert,[7]\n3,carol,\n"),
               staging, shared, SourceArguments(), overwrite)

    plan = await copy(
        ctx, staging, target, shared, SourceArguments(),
        DestinationArguments(if_exists=IfExists.upsert_on(["id"])),
    )

    assert plan.path == TransferPath.STREAMING
    assert rows_of(database, "SELECT id, customer, items FROM orders ORDER BY id") == [
        (1, "alice", None),
        (2, "robert", [7]),
        (3, "carol", None),
    ]


async def test_error_mode_refuses_existing_table(ctx, database, tmp_path):
    target = DuckDbLocator(database, DuckTableName("main", "orders"))
    await target.write_schema(ctx, ORDERS, IfExists.error())
    source = write_csv(tmp_path / "a.csv", "id,customer,items\n1,alice,\n")

    with pytest.raises(DriverError, match="already exists"):
        await copy(ctx, source, target, SharedArguments(schema=ORDERS), SourceArguments(), DestinationArguments())
