"""csv: and file: drivers against the local filesystem."""

from __future__ import annotations

import pytest

from tabletransit.args import DestinationArguments, SharedArguments, SourceArguments
from tabletransit.domain.enums import TransferPath
from tabletransit.domain.models import IfExists
from tabletransit.domain.schema import DataTypeKind
from tabletransit.drivers import parse_locator
from tabletransit.drivers.csv import CsvLocator
from tabletransit.drivers.file import FileLocator
from tabletransit.errors import DriverError, LocatorParseError
from tabletransit.pipeline.transfer import copy, resolve_schema

ORDERS_CSV = 'id,customer\n1,alice\n2,"bob\nsmith"\n'


@pytest.fixture
def orders_csv(tmp_path):
    path = tmp_path / "orders.csv"
    path.write_text(ORDERS_CSV, encoding="utf-8")
    return path


def overwrite() -> DestinationArguments:
    return DestinationArguments(if_exists=IfExists.overwrite())


def test_csv_locator_forms():
    assert CsvLocator.parse("csv:-").is_stdio
    assert CsvLocator.parse("csv:exports/").is_directory
    assert not CsvLocator.parse("csv:orders.csv").is_directory
    with pytest.raises(LocatorParseError, match="missing path"):
        CsvLocator.parse("csv:")


def test_file_locator_requires_directory():
    assert FileLocator.parse("file:///tmp/scratch/").path == "/tmp/scratch/"
    assert FileLocator.parse("file:scratch/").temporary_child("abc 1") == FileLocator("scratch/abc_1/")
    with pytest.raises(LocatorParseError, match="ending in '/'"):
        FileLocator.parse("file:/tmp/scratch")


async def test_csv_schema_is_nullable_text(ctx, orders_csv, tmp_path):
    table = await CsvLocator(str(orders_csv)).schema(ctx)

    assert table.name == "orders"
    assert table.column_names() == ["id", "customer"]
    assert all(c.is_nullable and c.data_type.kind == DataTypeKind.TEXT for c in table.columns)

    assert await CsvLocator("-").schema(ctx) is None
    with pytest.raises(DriverError, match="file not found"):
        await CsvLocator(str(tmp_path / "missing.csv")).schema(ctx)


async def test_csv_file_to_directory(ctx, orders_csv, tmp_path):
    source = CsvLocator(str(orders_csv))
    dest = CsvLocator(f"{tmp_path}/out/")
    shared = SharedArguments(schema=await resolve_schema(ctx, source), chunk_size=5)

    plan = await copy(ctx, source, dest, shared, SourceArguments(), overwrite())

    assert plan.path == TransferPath.STREAMING
    assert (tmp_path / "out" / "orders.csv").read_text(encoding="utf-8") == ORDERS_CSV


async def test_directory_to_single_file_keeps_one_header(ctx, tmp_path):
    parts = tmp_path / "parts"
    parts.mkdir()
    (parts / "a.csv").write_text('"id",name\n1,a\n', encoding="utf-8")
    (parts / "b.csv").write_text('"id",name\n2,b\n3,c\n', encoding="utf-8")
    (parts / "notes.txt").write_text("ignored", encoding="utf-8")
    source = parse_locator(f"csv:{parts}/")
    dest = parse_locator(f"csv:{tmp_path}/all.csv")
    shared = SharedArguments(schema=await resolve_schema(ctx, source))

    assert shared.schema.name == "parts"

    await copy(ctx, source, dest, shared, SourceArguments(), overwrite(), max_streams=2)

    assert (tmp_path / "all.csv").read_text(encoding="utf-8") == '"id",name\n1,a\n2,b\n3,c\n'


async def test_csv_error_mode_refuses_existing_file(ctx, orders_csv, tmp_path):
    existing = tmp_path / "existing.csv"
    existing.write_text("keep me\n", encoding="utf-8")
    source = CsvLocator(str(orders_csv))
    shared = SharedArguments(schema=await resolve_schema(ctx, source))

    with pytest.raises(DriverError, match="already exists"):
        await copy(ctx, source, CsvLocator(str(existing)), shared, SourceArguments(), DestinationArguments())

    assert existing.read_text(encoding="utf-8") == "keep me\n"


async def test_file_directory_round_trip(ctx, orders_csv, tmp_path):
    scratch = FileLocator(f"{tmp_path}/scratch/")
    (tmp_path / "scratch").mkdir()
    (tmp_path / "scratch" / "stale.csv").write_text("old\n", encoding="utf-8")
    shared = SharedArguments(schema=await resolve_schema(ctx, CsvLocator(str(orders_csv))))

    await copy(ctx, CsvLocator(str(orders_csv)), scratch, shared, SourceArguments(), overwrite())

    assert sorted(p.name for p in (tmp_path / "scratch").iterdir()) == ["orders.csv"]

    await copy(ctx, scratch, CsvLocator(f"{tmp_path}/back.csv"), shared, SourceArguments(), overwrite())

    assert (tmp_path / "back.csv").read_text(encoding="utf-8") == ORDERS_CSV


async def test_file_source_needs_existing_directory(ctx, tmp_path, orders):
    source = FileLocator(f"{tmp_path}/nope/")

    with pytest.raises(DriverError):
        await copy(
            ctx, source, CsvLocator(f"{tmp_path}/out.csv"), SharedArguments(schema=orders),
            SourceArguments(), overwrite(),
        )
