"""
Google Cloud Storage driver: ``gs://bucket/path/``.

A locator is a "directory" and must end in ``/``; each CSV stream is one
``<stream>.csv`` object under it. BigQuery tables can be extracted here
without passing rows through this process.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Awaitable, Iterator, Optional

from google.api_core.exceptions import GoogleAPIError
from google.cloud import storage

from ..args import DestinationArguments, SharedArguments, SourceArguments
from ..config import Config
from ..context import Context
from ..domain.enums import IfExistsFeatures, LocatorFeatures
from ..domain.models import Features
from ..errors import DriverError, LocatorParseError
from ..locator import Locator
from ..pipeline.streams import CHUNK_SIZE, CsvStream, iterate_blocking, write_stream_to
from ..utils import clean_filename
from .registry import register

logger = logging.getLogger(__name__)


def parse_gs_url(url: str) -> tuple[str, str]:
    """
    Split ``gs://bucket/prefix/`` into bucket and prefix.

    Raises:
        LocatorParseError: If the URL does not start with gs:// or end with '/'
    """
    if not url.startswith("gs://"):
        raise LocatorParseError(url, "must begin with gs://")
    if not url.endswith("/"):
        raise LocatorParseError(url, "must end with a '/'")
    bucket, _, prefix = url[len("gs://"):].partition("/")
    if not bucket:
        raise LocatorParseError(url, "missing bucket name")
    return bucket, prefix


def make_client() -> storage.Client:
    return storage.Client(project=Config().gcp.project)


def read_blob_chunks(blob: storage.Blob, chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
    with blob.open("rb", chunk_size=chunk_size) as f:
        while True:
            chunk = f.read(chunk_size)
            if not chunk:
                break
            yield chunk


@register
class GsLocator(Locator):
    """A directory of CSV objects in a Cloud Storage bucket."""

    scheme = "gs:"

    def __init__(self, url: str):
        self.bucket_name, self.prefix = parse_gs_url(url)
        self.url = url

    @classmethod
    def parse(cls, url: str) -> GsLocator:
        return cls(url)

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
        return self.url

    def temporary_child(self, tag: str) -> GsLocator:
        return GsLocator(f"{self.url}{clean_filename(tag)}/")

    def _list_csv_blobs(self, client: storage.Client) -> list[storage.Blob]:
        blobs = client.list_blobs(self.bucket_name, prefix=self.prefix)
        return sorted((b for b in blobs if b.name.endswith(".csv")), key=lambda b: b.name)

    async def _delete_existing(self, ctx: Context, client: storage.Client) -> None:
        def delete_all() -> int:
            blobs = list(client.list_blobs(self.bucket_name, prefix=self.prefix))
            for blob in blobs:
                blob.delete()
            return len(blobs)

        try:
            deleted = await asyncio.to_thread(delete_all)
        except GoogleAPIError as e:
            raise DriverError("gs", f"cannot clear {self.url}: {e}") from e
        if deleted:
            ctx.log.info(f"Deleted {deleted} existing objects under {self.url}")

    async def local_data(
        self, ctx: Context, shared_args: SharedArguments, source_args: SourceArguments
    ) -> Optional[AsyncIterator[CsvStream]]:
        shared = shared_args.verify(self.features())
        source_args.verify(self.features())
        client = make_client()
        try:
            blobs = await asyncio.to_thread(self._list_csv_blobs, client)
        except GoogleAPIError as e:
            raise DriverError("gs", f"cannot list {self.url}: {e}") from e
        ctx.log.debug(f"Found {len(blobs)} CSV objects under {self.url}")
        return self._blob_streams(ctx, blobs, shared.chunk_size)

    async def _blob_streams(
        self, ctx: Context, blobs: list[storage.Blob], chunk_size: int
    ) -> AsyncIterator[CsvStream]:
        for blob in blobs:
            ctx.check_cancelled()
            name = blob.name[len(self.prefix):].removesuffix(".csv")
            yield CsvStream(clean_filename(name), iterate_blocking(read_blob_chunks(blob, chunk_size)))

    async def write_local_data(
        self,
        ctx: Context,
        data: AsyncIterator[CsvStream],
        shared_args: SharedArguments,
        dest_args: DestinationArguments,
    ) -> AsyncIterator[Awaitable[None]]:
        shared_args.verify(self.features())
        dest_args.verify(self.features())
        client = make_client()
        await self._delete_existing(ctx, client)
        return self._write_streams(ctx, client, data)

    async def _write_streams(
        self, ctx: Context, client: storage.Client, data: AsyncIterator[CsvStream]
    ) -> AsyncIterator[Awaitable[None]]:
        bucket = client.bucket(self.bucket_name)
        async for stream in data:
            yield self._upload(ctx, bucket, stream)

    async def _upload(self, ctx: Context, bucket: storage.Bucket, stream: CsvStream) -> None:
        blob = bucket.blob(f"{self.prefix}{clean_filename(stream.name)}.csv")
        ctx.log.info(f"Uploading stream {stream.name} to gs://{self.bucket_name}/{blob.name}")
        try:
            writer = await asyncio.to_thread(blob.open, "wb", content_type="text/csv")
            written = await write_stream_to(ctx, stream, writer)
            # Only a clean close finalizes the upload; a failed stream leaves no object.
            await asyncio.to_thread(writer.close)
        except GoogleAPIError as e:
            raise DriverError("gs", f"upload of {blob.name} failed: {e}") from e
        ctx.log.debug(f"Uploaded {written} bytes to gs://{self.bucket_name}/{blob.name}")

    def supports_write_remote_data(self, source: Locator) -> bool:
        from .bigquery import BigQueryLocator
        return isinstance(source, BigQueryLocator)

    async def write_remote_data(
        self,
        ctx: Context,
        source: Locator,
        shared_args: SharedArguments,
        source_args: SourceArguments,
        dest_args: DestinationArguments,
    ) -> None:
        """Extract a BigQuery table into this directory."""
        shared = shared_args.verify(self.features())
        dest_args.verify(self.features())
        await self._delete_existing(ctx, make_client())
        await source.export_to_gs(ctx, self.url, shared, source_args)
