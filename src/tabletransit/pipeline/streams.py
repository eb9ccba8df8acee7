"""
CSV stream abstractions.

A CsvStream is a named, single-shot, lazily produced byte stream holding one
CSV header line followed by data rows (UTF-8, RFC 4180 quoting, ``\\n`` line
endings). A transfer moves an async iterator of CsvStreams from a source to a
destination. Everything here is pull-based: a producer only runs when its
consumer asks for the next chunk, so nothing is buffered beyond one chunk.
"""

from __future__ import annotations

import asyncio
import csv
import io
import logging
from collections import deque
from pathlib import Path
from typing import Any, AsyncIterator, Awaitable, Iterable, Optional

from ..context import Context

CHUNK_SIZE = 64 * 1024

logger = logging.getLogger(__name__)

_DONE = object()


class CsvStream:
    """A named CSV byte stream. It can be iterated exactly once."""

    def __init__(self, name: str, data: AsyncIterator[bytes]):
        self.name = name
        self._data = data
        self._taken = False

    def __aiter__(self) -> AsyncIterator[bytes]:
        if self._taken:
            raise RuntimeError(f"CSV stream {self.name!r} has already been consumed")
        self._taken = True
        return self._data.__aiter__()

    async def aclose(self) -> None:
        """Release the producer without reading the rest of the stream."""
        close = getattr(self._data, "aclose", None)
        if close is not None:
            await close()

    def __repr__(self) -> str:
        return f"CsvStream(name={self.name!r})"


async def iterate_file(
    path: Path, chunk_size: int = CHUNK_SIZE, delete_after: bool = False
) -> AsyncIterator[bytes]:
    """Yield a local file's bytes chunk by chunk, reading in a worker thread."""
    f = await asyncio.to_thread(open, path, "rb")
    try:
        while True:
            chunk = await asyncio.to_thread(f.read, chunk_size)
            if not chunk:
                break
            yield chunk
    finally:
        f.close()
        if delete_after:
            Path(path).unlink(missing_ok=True)


async def iterate_blocking(iterable: Iterable[Any]) -> AsyncIterator[Any]:
    """
    Bridge a blocking iterator into an async one.

    Each ``next()`` runs in a worker thread and only when the consumer asks,
    so at most one item is in flight.
    """
    iterator = await asyncio.to_thread(iter, iterable)
    try:
        while True:
            item = await asyncio.to_thread(next, iterator, _DONE)
            if item is _DONE:
                break
            yield item
    finally:
        close = getattr(iterator, "close", None)
        if close is not None:
            await asyncio.to_thread(close)


async def write_stream_to_file(
    ctx: Context, chunks: AsyncIterator[bytes], path: Path, append: bool = False
) -> int:
    """
    Write a byte stream to a local file.

    Returns:
        Number of bytes written
    """
    f = await asyncio.to_thread(open, path, "ab" if append else "wb")
    written = 0
    try:
        async for chunk in chunks:
            ctx.check_cancelled()
            await asyncio.to_thread(f.write, chunk)
            written += len(chunk)
    finally:
        await asyncio.to_thread(f.close)
    return written


async def write_stream_to(ctx: Context, chunks: AsyncIterator[bytes], writer: Any) -> int:
    """Write a byte stream to a blocking file-like object (e.g. a blob writer)."""
    written = 0
    async for chunk in chunks:
        ctx.check_cancelled()
        await asyncio.to_thread(writer.write, chunk)
        written += len(chunk)
    return written


async def strip_csv_header(chunks: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
    """Drop the first CSV record, which may contain quoted newlines."""
    in_quotes = False
    header_done = False
    async for chunk in chunks:
        if header_done:
            yield chunk
            continue
        for i, byte in enumerate(chunk):
            if byte == 0x22:  # '"'
                in_quotes = not in_quotes
            elif byte == 0x0A and not in_quotes:  # '\n'
                header_done = True
                rest = chunk[i + 1:]
                if rest:
                    yield rest
                break


async def consume_completions(
    ctx: Context,
    completions: AsyncIterator[Awaitable[None]],
    max_pending: int = 1,
) -> int:
    """
    Await a destination's per-stream completions in order.

    Up to ``max_pending`` completions run concurrently. The first failure is
    raised; the rest of the in-flight work is cancelled and any further
    failures are only logged.

    Returns:
        Number of streams completed
    """
    pending: deque[asyncio.Future] = deque()
    completed = 0

    async def settle(limit: int) -> None:
        nonlocal completed
        while len(pending) > limit:
            for task in pending:
                if task.done() and not task.cancelled() and task.exception() is not None:
                    raise task.exception()
            while pending and pending[0].done():
                pending.popleft().result()
                completed += 1
            if len(pending) > limit:
                # Only unfinished work: a completion done out of order would wake wait() at once
                running = {task for task in pending if not task.done()}
                await asyncio.wait(running, return_when=asyncio.FIRST_COMPLETED)

    try:
        async for completion in completions:
            ctx.check_cancelled()
            pending.append(asyncio.ensure_future(completion))
            await settle(max(max_pending, 1) - 1)
        await settle(0)
    except BaseException as first:
        for task in pending:
            task.cancel()
        results = await asyncio.gather(*pending, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception) and result is not first:
                ctx.log.warning(f"Additional stream failure after first error: {result}")
        raise
    finally:
        close = getattr(completions, "aclose", None)
        if close is not None:
            await close()
    return completed


async def aclose_quietly(stream: Optional[Any]) -> None:
    """Close an async generator if it has not finished, logging close errors."""
    close = getattr(stream, "aclose", None)
    if close is None:
        return
    try:
        await close()
    except Exception as e:
        logger.debug(f"Error closing stream: {e}")


def encode_csv_row(values: Iterable[Any]) -> bytes:
    """Encode one row in the interchange dialect (RFC 4180 quoting, ``\\n`` endings)."""
    buffer = io.StringIO()
    csv.writer(buffer, lineterminator="\n").writerow(["" if v is None else v for v in values])
    return buffer.getvalue().encode("utf-8")


async def csv_bytes_from_rows(
    header: list[str], rows: Iterable[Iterable[Any]], rows_per_chunk: int = 1000
) -> AsyncIterator[bytes]:
    """Encode a header and rows as CSV chunks. ``None`` becomes an empty field."""
    yield encode_csv_row(header)
    batch: list[bytes] = []
    for row in rows:
        batch.append(encode_csv_row(row))
        if len(batch) >= rows_per_chunk:
            yield b"".join(batch)
            batch = []
    if batch:
        yield b"".join(batch)


def parse_csv_header(data: bytes) -> list[str]:
    """Column names from the first record of a CSV payload."""
    reader = csv.reader(io.StringIO(data.decode("utf-8-sig")))
    return next(reader, [])


def read_csv_header(path: Path) -> list[str]:
    """Column names from the header line of a local CSV file."""
    with open(path, newline="", encoding="utf-8-sig") as f:
        return next(csv.reader(f), [])
