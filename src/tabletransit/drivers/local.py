"""
Shared helpers for drivers backed by the local filesystem.

Both ``csv:`` and ``file:`` read and write one ``<stream>.csv`` per CSV
stream when pointed at a directory; ``csv:`` can also point at a single file
or at standard input/output.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path
from typing import AsyncIterator, Optional

from ..context import Context
from ..domain.schema import Column, DataType, DataTypeKind, Table
from ..errors import DriverError
from ..pipeline.streams import (
    CHUNK_SIZE,
    CsvStream,
    iterate_file,
    read_csv_header,
    strip_csv_header,
    write_stream_to,
    write_stream_to_file,
)
from ..utils import clean_filename

logger = logging.getLogger(__name__)

STDIO = "-"


def csv_files_in(directory: Path) -> list[Path]:
    """CSV files directly inside ``directory``, sorted by name."""
    if not directory.is_dir():
        raise DriverError("file", f"directory not found: {directory}")
    return sorted(p for p in directory.iterdir() if p.is_file() and p.suffix.lower() == ".csv")


def stream_path(directory: Path, stream_name: str) -> Path:
    return directory / f"{clean_filename(stream_name)}.csv"


def text_table_from_header(name: Optional[str], header: list[str]) -> Table:
    """A schema with one nullable text column per CSV header field."""
    if not header:
        raise DriverError("csv", f"no CSV header found in {name or 'input'}")
    return Table(
        name=name,
        columns=[Column(name=h, data_type=DataType.scalar(DataTypeKind.TEXT), is_nullable=True) for h in header],
    )


async def schema_from_csv_file(path: Path) -> Table:
    header = await asyncio.to_thread(read_csv_header, path)
    return text_table_from_header(path.stem, header)


async def file_streams(ctx: Context, paths: list[Path], chunk_size: int = CHUNK_SIZE) -> AsyncIterator[CsvStream]:
    """One CsvStream per local file, opened only when the consumer asks for it."""
    for path in paths:
        ctx.check_cancelled()
        ctx.log.debug(f"Reading {path}")
        yield CsvStream(path.stem, iterate_file(path, chunk_size))


async def iterate_stdin(chunk_size: int = CHUNK_SIZE) -> AsyncIterator[bytes]:
    stdin = sys.stdin.buffer
    while True:
        chunk = await asyncio.to_thread(stdin.read, chunk_size)
        if not chunk:
            break
        yield chunk


async def stdin_streams(chunk_size: int = CHUNK_SIZE) -> AsyncIterator[CsvStream]:
    yield CsvStream("data", iterate_stdin(chunk_size))


def remove_csv_files(directory: Path) -> int:
    """Delete existing ``*.csv`` files before overwriting a directory."""
    removed = 0
    if directory.is_dir():
        for path in csv_files_in(directory):
            path.unlink()
            removed += 1
    if removed:
        logger.debug(f"Removed {removed} existing CSV files from {directory}")
    return removed


async def write_stream_to_directory(ctx: Context, stream: CsvStream, directory: Path) -> None:
    path = stream_path(directory, stream.name)
    ctx.log.debug(f"Writing stream {stream.name} to {path}")
    written = await write_stream_to_file(ctx, stream, path)
    ctx.log.debug(f"Wrote {written} bytes to {path}")


class ConcatenatingWriter:
    """
    Write several CSV streams to a single file or stdout, keeping only the
    first stream's header. Streams are written one at a time in arrival order.
    """

    def __init__(self, path: Optional[Path]):
        self.path = path
        self._lock = asyncio.Lock()
        self._turn = 0
        self._turn_changed = asyncio.Condition(self._lock)

    async def write(self, ctx: Context, index: int, stream: CsvStream) -> None:
        async with self._turn_changed:
            await self._turn_changed.wait_for(lambda: self._turn == index)
            try:
                chunks = aiter_of(stream) if index == 0 else strip_csv_header(aiter_of(stream))
                if self.path is None:
                    await write_stream_to(ctx, chunks, sys.stdout.buffer)
                    await asyncio.to_thread(sys.stdout.buffer.flush)
                else:
                    await write_stream_to_file(ctx, chunks, self.path, append=index > 0)
                ctx.log.debug(f"Wrote stream {stream.name} to {self.path or 'stdout'}")
            finally:
                self._turn += 1
                self._turn_changed.notify_all()


def aiter_of(stream: CsvStream) -> AsyncIterator[bytes]:
    return stream.__aiter__()
