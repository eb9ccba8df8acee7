"""
CSV driver: ``csv:path/to/file.csv``, ``csv:path/to/dir/`` or ``csv:-``.

A path ending in ``/`` is a directory holding one ``.csv`` file per stream;
``-`` reads standard input or writes standard output.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import AsyncIterator, Awaitable, Optional

from ..args import DestinationArguments, SharedArguments, SourceArguments
from ..context import Context
from ..domain.enums import IfExistsFeatures, IfExistsMode, LocatorFeatures
from ..domain.models import Features
from ..domain.schema import Table
from ..errors import DriverError, LocatorParseError
from ..locator import Locator
from ..pipeline.streams import CsvStream
from . import local
from .registry import register


@register
class CsvLocator(Locator):
    """A CSV file, a directory of CSV files, or stdio."""

    scheme = "csv:"

    def __init__(self, path: str):
        self.path = path

    @classmethod
    def parse(cls, url: str) -> CsvLocator:
        if not url.startswith(cls.scheme):
            raise LocatorParseError(url, f"expected a {cls.scheme} URL")
        path = url[len(cls.scheme):]
        if not path:
            raise LocatorParseError(url, "missing path")
        return cls(path)

    @classmethod
    def features(cls) -> Features:
        return Features(
            locator=(
                LocatorFeatures.SCHEMA
                | LocatorFeatures.LOCAL_DATA
                | LocatorFeatures.WRITE_LOCAL_DATA
                | LocatorFeatures.WRITE_REMOTE_DATA
            ),
            dest_if_exists=IfExistsFeatures.OVERWRITE | IfExistsFeatures.ERROR,
        )

    def as_url(self) -> str:
        return f"{self.scheme}{self.path}"

    @property
    def is_stdio(self) -> bool:
        return self.path == local.STDIO

    @property
    def is_directory(self) -> bool:
        return self.path.endswith("/")

    @property
    def local_path(self) -> Path:
        return Path(self.path)

    def csv_paths(self) -> list[Path]:
        """Local files this locator reads, in stream order."""
        if self.is_directory:
            return local.csv_files_in(self.local_path)
        if not self.local_path.is_file():
            raise DriverError("csv", f"file not found: {self.path}")
        return [self.local_path]

    async def schema(self, ctx: Context) -> Optional[Table]:
        """Every column of the header line, as nullable text."""
        if self.is_stdio:
            return None
        paths = await asyncio.to_thread(self.csv_paths)
        if not paths:
            raise DriverError("csv", f"no CSV files found in {self.path}")
        table = await local.schema_from_csv_file(paths[0])
        if self.is_directory:
            table = table.with_name(self.local_path.name or None)
        return table

    async def local_data(
        self, ctx: Context, shared_args: SharedArguments, source_args: SourceArguments
    ) -> Optional[AsyncIterator[CsvStream]]:
        shared = shared_args.verify(self.features())
        source_args.verify(self.features())
        if self.is_stdio:
            return local.stdin_streams(shared.chunk_size)
        paths = await asyncio.to_thread(self.csv_paths)
        return local.file_streams(ctx, paths, shared.chunk_size)

    async def write_local_data(
        self,
        ctx: Context,
        data: AsyncIterator[CsvStream],
        shared_args: SharedArguments,
        dest_args: DestinationArguments,
    ) -> AsyncIterator[Awaitable[None]]:
        shared_args.verify(self.features())
        dest = dest_args.verify(self.features())

        if self.is_directory:
            directory = self.local_path
            if dest.if_exists.mode == IfExistsMode.ERROR and directory.exists() and local.csv_files_in(directory):
                raise DriverError("csv", f"{self.path} already contains CSV files")
            await asyncio.to_thread(directory.mkdir, parents=True, exist_ok=True)
            if dest.if_exists.mode == IfExistsMode.OVERWRITE:
                await asyncio.to_thread(local.remove_csv_files, directory)
            return self._write_directory(ctx, data, directory)

        if self.is_stdio:
            return self._write_single(ctx, data, local.ConcatenatingWriter(None))

        path = self.local_path
        if dest.if_exists.mode == IfExistsMode.ERROR and path.exists():
            raise DriverError("csv", f"{self.path} already exists")
        await asyncio.to_thread(path.parent.mkdir, parents=True, exist_ok=True)
        return self._write_single(ctx, data, local.ConcatenatingWriter(path))

    async def _write_directory(
        self, ctx: Context, data: AsyncIterator[CsvStream], directory: Path
    ) -> AsyncIterator[Awaitable[None]]:
        async for stream in data:
            yield local.write_stream_to_directory(ctx, stream, directory)

    async def _write_single(
        self, ctx: Context, data: AsyncIterator[CsvStream], writer: local.ConcatenatingWriter
    ) -> AsyncIterator[Awaitable[None]]:
        index = 0
        async for stream in data:
            yield writer.write(ctx, index, stream)
            index += 1
