"""Shared pytest fixtures and in-memory drivers for engine tests."""

from __future__ import annotations

from typing import AsyncIterator, Optional

import pytest

from tabletransit import config_loader
from tabletransit.args import DestinationArguments, SharedArguments, SourceArguments
from tabletransit.context import Context
from tabletransit.domain.enums import (
    DestinationArgumentsFeatures,
    IfExistsFeatures,
    LocatorFeatures,
    SourceArgumentsFeatures,
)
from tabletransit.domain.models import Features, IfExists
from tabletransit.domain.schema import Column, DataType, Table
from tabletransit.drivers import registry
from tabletransit.errors import LocatorParseError
from tabletransit.locator import Locator
from tabletransit.pipeline.streams import CsvStream

ORDERS = Table(
    name="orders",
    columns=[
        Column(name="id", data_type=DataType.scalar("int64"), is_nullable=False),
        Column(name="customer", data_type=DataType.scalar("text")),
    ],
)

# Every call a fake driver receives, in order
EVENTS: list[tuple] = []


class _FakeLocator(Locator):
    """Common parsing for the fake drivers: ``scheme:name``."""

    def __init__(self, name: str):
        self.name = name

    @classmethod
    def parse(cls, url: str) -> Locator:
        if not url.startswith(cls.scheme):
            raise LocatorParseError(url, f"expected a {cls.scheme} URL")
        return cls(url[len(cls.scheme):])

    def as_url(self) -> str:
        return f"{self.scheme}{self.name}"

    @property
    def stored(self) -> dict[str, dict[str, bytes]]:
        return type(self).tables

    async def _streams(self) -> AsyncIterator[CsvStream]:
        for name, data in self.stored.get(self.name, {}).items():
            yield CsvStream(name, _chunks(data))

    async def _completions(self, data: AsyncIterator[CsvStream]):
        target = self.stored.setdefault(self.name, {})
        async for stream in data:
            yield self._store(stream, target)

    async def _store(self, stream: CsvStream, target: dict[str, bytes]) -> None:
        target[stream.name] = b"".join([chunk async for chunk in stream])


class MemoryLocator(_FakeLocator):
    """Rows held in memory as CSV bytes, one entry per stream."""

    scheme = "memory:"
    tables: dict[str, dict[str, bytes]] = {}

    @classmethod
    def features(cls) -> Features:
        return Features(
            locator=LocatorFeatures.SCHEMA | LocatorFeatures.LOCAL_DATA | LocatorFeatures.WRITE_LOCAL_DATA,
            dest_if_exists=IfExistsFeatures.OVERWRITE | IfExistsFeatures.APPEND | IfExistsFeatures.UPSERT,
        )

    async def schema(self, ctx: Context) -> Optional[Table]:
        return ORDERS if self.name in self.tables else None

    async def local_data(self, ctx, shared_args, source_args) -> Optional[AsyncIterator[CsvStream]]:
        shared_args.verify(self.features())
        source_args.verify(self.features())
        EVENTS.append(("local_data", str(self), source_args))
        return self._streams()

    async def write_local_data(self, ctx, data, shared_args, dest_args):
        shared_args.verify(self.features())
        dest = dest_args.verify(self.features())
        EVENTS.append(("write_local_data", str(self), dest_args))
        if dest.if_exists == IfExists.overwrite():
            self.tables[self.name] = {}
        return self._completions(data)


class WarehouseLocator(_FakeLocator):
    """A server-side table: only remote transfers, with --from-args and --where."""

    scheme = "warehouse:"

    @classmethod
    def features(cls) -> Features:
        return Features(
            locator=LocatorFeatures.SCHEMA | LocatorFeatures.WRITE_REMOTE_DATA,
            source_args=SourceArgumentsFeatures.DRIVER_ARGS | SourceArgumentsFeatures.WHERE_CLAUSE,
            dest_args=DestinationArgumentsFeatures.DRIVER_ARGS,
            dest_if_exists=IfExistsFeatures.OVERWRITE | IfExistsFeatures.ERROR | IfExistsFeatures.UPSERT,
        )

    async def schema(self, ctx: Context) -> Optional[Table]:
        return ORDERS

    def supports_write_remote_data(self, source: Locator) -> bool:
        return isinstance(source, BucketLocator)

    async def write_remote_data(self, ctx, source, shared_args, source_args, dest_args) -> None:
        shared_args.verify(self.features())
        source_args.verify(source.features())
        dest_args.verify(self.features())
        EVENTS.append(("write_remote_data", str(source), str(self), source_args, dest_args))


class BucketLocator(_FakeLocator):
    """An object store directory usable as temporary storage."""

    scheme = "bucket:"
    tables: dict[str, dict[str, bytes]] = {}

    @classmethod
    def features(cls) -> Features:
        return Features(
            locator=(
                LocatorFeatures.LOCAL_DATA
                | LocatorFeatures.WRITE_LOCAL_DATA
                | LocatorFeatures.WRITE_REMOTE_DATA
            ),
            dest_if_exists=IfExistsFeatures.OVERWRITE,
        )

    def temporary_child(self, tag: str) -> Locator:
        return BucketLocator(f"{self.name}{tag}/")

    def supports_write_remote_data(self, source: Locator) -> bool:
        return isinstance(source, WarehouseLocator)

    async def write_remote_data(self, ctx, source, shared_args, source_args, dest_args) -> None:
        dest_args.verify(self.features())
        EVENTS.append(("write_remote_data", str(source), str(self), source_args, dest_args))

    async def local_data(self, ctx, shared_args, source_args):
        source_args.verify(self.features())
        EVENTS.append(("local_data", str(self), source_args))
        return self._streams()

    async def write_local_data(self, ctx, data, shared_args, dest_args):
        dest_args.verify(self.features())
        EVENTS.append(("write_local_data", str(self), dest_args))
        self.tables[self.name] = {}
        return self._completions(data)


async def _chunks(data: bytes, size: int = 7) -> AsyncIterator[bytes]:
    for i in range(0, len(data), size):
        yield data[i:i + size]


FAKE_DRIVERS = (MemoryLocator, WarehouseLocator, BucketLocator)


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    """Keep tests away from the user's config, env and scratch space."""
    for name in (
        "TABLETRANSIT_CONFIG",
        "TABLETRANSIT_TEMPORARY",
        "TABLETRANSIT_MAX_STREAMS",
        "TABLETRANSIT_CHUNK_SIZE",
        "GOOGLE_APPLICATION_CREDENTIALS",
        "DUCKDB_TEMP_DIR",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("TABLETRANSIT_SCRATCH_DIR", str(tmp_path / "scratch"))
    monkeypatch.setattr(config_loader, "DEFAULT_CONFIG_PATH", tmp_path / "missing-config.yml")


@pytest.fixture
def fake_drivers(monkeypatch):
    """Register the in-memory drivers and reset their state."""
    for cls in FAKE_DRIVERS:
        monkeypatch.setitem(registry._DRIVERS, cls.scheme, cls)
    MemoryLocator.tables = {}
    BucketLocator.tables = {}
    EVENTS.clear()
    yield EVENTS
    EVENTS.clear()


@pytest.fixture
def ctx() -> Context:
    return Context(transfer_id="t1")


@pytest.fixture
def orders() -> Table:
    return ORDERS


@pytest.fixture
def shared_args(orders) -> SharedArguments:
    return SharedArguments(schema=orders)


@pytest.fixture
def source_args() -> SourceArguments:
    return SourceArguments()


@pytest.fixture
def dest_args() -> DestinationArguments:
    return DestinationArguments(if_exists=IfExists.overwrite())
