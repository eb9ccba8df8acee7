"""
Locator - the driver capability contract.

A Locator is a typed, URL-addressed handle to a source or destination. Each
driver subclasses Locator, declares its URL ``scheme`` and its static
``features()``, and overrides the operations it supports. Operations that
touch a backend are coroutines; they receive *unverified* argument bundles
and verify them against the driver's own features before doing any work.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import AsyncIterator, Awaitable, Optional

from .args import DestinationArguments, SharedArguments, SourceArguments
from .context import Context
from .domain.models import Features, IfExists
from .domain.schema import Table
from .errors import UnsupportedArgumentError
from .pipeline.streams import CsvStream

logger = logging.getLogger(__name__)


class Locator(ABC):
    """Base class for every driver's locator."""

    #: URL scheme including the trailing colon, e.g. ``"gs:"``.
    scheme: str = ""

    @classmethod
    @abstractmethod
    def parse(cls, url: str) -> Locator:
        """Construct a locator from a URL, enforcing the driver's constraints."""

    @classmethod
    @abstractmethod
    def features(cls) -> Features:
        """Static capabilities of this driver."""

    @abstractmethod
    def as_url(self) -> str:
        """Canonical URL for this locator."""

    def __str__(self) -> str:
        return self.as_url()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.as_url()!r})"

    def __eq__(self, other: object) -> bool:
        return type(self) is type(other) and self.as_url() == other.as_url()

    def __hash__(self) -> int:
        return hash((type(self), self.as_url()))

    def temporary_child(self, tag: str) -> Locator:
        """Scratch location for one staged transfer. Directory-like drivers override."""
        return self

    async def schema(self, ctx: Context) -> Optional[Table]:
        """Portable schema stored at this location, if the driver can read one."""
        return None

    async def write_schema(self, ctx: Context, table: Table, if_exists: IfExists) -> None:
        """Create a table or schema file at this location."""
        raise UnsupportedArgumentError(
            "schema", f"{self.scheme} does not support writing schemas"
        )

    async def local_data(
        self, ctx: Context, shared_args: SharedArguments, source_args: SourceArguments
    ) -> Optional[AsyncIterator[CsvStream]]:
        """Stream this location's rows to the local process, or None if unsupported."""
        return None

    async def write_local_data(
        self,
        ctx: Context,
        data: AsyncIterator[CsvStream],
        shared_args: SharedArguments,
        dest_args: DestinationArguments,
    ) -> AsyncIterator[Awaitable[None]]:
        """
        Consume local CSV streams.

        Returns an async iterator yielding one awaitable completion per input
        stream, in input order.
        """
        raise UnsupportedArgumentError(
            "destination", f"{self.scheme} cannot be used as a data destination"
        )

    def supports_write_remote_data(self, source: Locator) -> bool:
        """Can this destination pull directly from ``source``?"""
        return False

    async def write_remote_data(
        self,
        ctx: Context,
        source: Locator,
        shared_args: SharedArguments,
        source_args: SourceArguments,
        dest_args: DestinationArguments,
    ) -> None:
        """Transfer from ``source`` without passing rows through this process."""
        raise UnsupportedArgumentError(
            "destination", f"{self.scheme} cannot copy directly from {source.scheme}"
        )
