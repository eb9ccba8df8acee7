"""Schema-only drivers that read and write local files."""

from __future__ import annotations

import json

import pytest

from tabletransit.domain.models import IfExists
from tabletransit.domain.schema import Column, DataType, Table
from tabletransit.drivers import parse_locator
from tabletransit.errors import DriverError, LocatorParseError, SchemaError, UnsupportedArgumentError

EVENTS = Table(name="events", columns=[
    Column(name="id", data_type=DataType.scalar("int64"), is_nullable=False),
    Column(name="tags", data_type=DataType.array_of(DataType.scalar("text"))),
    Column(name="at", data_type=DataType.scalar("timestamp_with_time_zone")),
])


async def test_portable_schema_round_trip(ctx, tmp_path):
    locator = parse_locator(f"portable-schema:{tmp_path}/events.json")

    await locator.write_schema(ctx, EVENTS, IfExists.error())

    assert await locator.schema(ctx) == EVENTS
    assert json.loads((tmp_path / "events.json").read_text(encoding="utf-8"))["name"] == "events"
    with pytest.raises(DriverError, match="already exists"):
        await locator.write_schema(ctx, EVENTS, IfExists.error())
    await locator.write_schema(ctx, EVENTS, IfExists.overwrite())


async def test_bigquery_schema_file_round_trip(ctx, tmp_path):
    locator = parse_locator(f"bigquery-schema:{tmp_path}/events.json")

    await locator.write_schema(ctx, EVENTS, IfExists.overwrite())

    written = json.loads((tmp_path / "events.json").read_text(encoding="utf-8"))
    assert [d["type"] for d in written] == ["INT64", "STRING", "TIMESTAMP"]
    assert written[1]["mode"] == "REPEATED"
    assert await locator.schema(ctx) == EVENTS


async def test_bigquery_schema_file_must_be_json(ctx, tmp_path):
    (tmp_path / "bad.json").write_text("not json", encoding="utf-8")

    with pytest.raises(SchemaError, match="not valid JSON"):
        await parse_locator(f"bigquery-schema:{tmp_path}/bad.json").schema(ctx)


async def test_postgres_sql_output(ctx, tmp_path):
    locator = parse_locator(f"postgres-sql:{tmp_path}/events.sql")

    await locator.write_schema(ctx, EVENTS, IfExists.error())

    assert (tmp_path / "events.sql").read_text(encoding="utf-8") == (
        'CREATE TABLE "public"."events" (\n'
        '    "id" bigint NOT NULL,\n'
        '    "tags" text[],\n'
        '    "at" timestamp with time zone\n'
        ");\n"
    )
    with pytest.raises(DriverError, match="already exists"):
        await locator.write_schema(ctx, EVENTS, IfExists.error())
    with pytest.raises(UnsupportedArgumentError):
        await locator.write_schema(ctx, EVENTS, IfExists.append())


def test_schema_files_need_a_path():
    for url in ["portable-schema:", "bigquery-schema:schemas/", "postgres-sql:"]:
        with pytest.raises(LocatorParseError, match="expected a file path"):
            parse_locator(url)
