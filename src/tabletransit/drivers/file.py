"""Local directory driver: ``file:/path/to/dir/`` holding one CSV file per stream."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import AsyncIterator, Awaitable, Optional

from ..args import DestinationArguments, SharedArguments, SourceArguments
from ..context import Context
from ..domain.enums import IfExistsFeatures, LocatorFeatures
from ..domain.models import Features
from ..errors import LocatorParseError
from ..locator import Locator
from ..pipeline.streams import CsvStream
from ..utils import clean_filename
from . import local
from .registry import register


@register
class FileLocator(Locator):
    """A local directory of CSV files. Usable as temporary storage."""

    scheme = "file:"

    def __init__(self, path: str):
        self.path = path

    @classmethod
    def parse(cls, url: str) -> FileLocator:
        if not url.startswith(cls.scheme):
            raise LocatorParseError(url, f"expected a {cls.scheme} URL")
        path = url[len(cls.scheme):]
        if path.startswith("//"):
            path = path[2:]
        if not path:
            raise LocatorParseError(url, "missing directory path")
        if not path.endswith("/"):
            raise LocatorParseError(url, "file: locators must be directories ending in '/'")
        return cls(path)

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

    def as_url(self) -> str:
        return f"{self.scheme}{self.path}"

    @property
    def local_path(self) -> Path:
        return Path(self.path)

    def temporary_child(self, tag: str) -> FileLocator:
        return FileLocator(f"{self.path}{clean_filename(tag)}/")

    def csv_paths(self) -> list[Path]:
        return local.csv_files_in(self.local_path)

    async def local_data(
        self, ctx: Context, shared_args: SharedArguments, source_args: SourceArguments
    ) -> Optional[AsyncIterator[CsvStream]]:
        shared = shared_args.verify(self.features())
        source_args.verify(self.features())
        paths = await asyncio.to_thread(self.csv_paths)
        ctx.log.debug(f"Found {len(paths)} CSV files in {self.path}")
        return local.file_streams(ctx, paths, shared.chunk_size)

    async def write_local_data(
        self,
        ctx: Context,
        data: AsyncIterator[CsvStream],
        shared_args: SharedArguments,
        dest_args: DestinationArguments,
    ) -> AsyncIterator[Awaitable[None]]:
        shared_args.verify(self.features())
        dest_args.verify(self.features())
        directory = self.local_path
        await asyncio.to_thread(directory.mkdir, parents=True, exist_ok=True)
        await asyncio.to_thread(local.remove_csv_files, directory)
        return self._write_streams(ctx, data, directory)

    async def _write_streams(
        self, ctx: Context, data: AsyncIterator[CsvStream], directory: Path
    ) -> AsyncIterator[Awaitable[None]]:
        async for stream in data:
            yield local.write_stream_to_directory(ctx, stream, directory)
