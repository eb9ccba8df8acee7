"""
Argument bundles and the verification handshake.

Options arrive from the user as *unverified* bundles. Before a driver may act
on them they are checked against that driver's static Features and turned
into *verified* bundles, which are a separate set of classes. Driver helpers
that move data only accept the verified classes, so an option can never be
silently ignored by a backend that does not support it.

Re-verifying a verified bundle against the same features returns an equal
bundle.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from .domain.enums import DestinationArgumentsFeatures, SourceArgumentsFeatures
from .domain.models import DriverArguments, Features, IfExists, TemporaryStorage
from .domain.schema import Table
from .errors import UnsupportedArgumentError

DEFAULT_CHUNK_SIZE = 64 * 1024


def _check_source(features: Features, driver_args: DriverArguments, where_clause: Optional[str]) -> None:
    if not driver_args.is_empty() and not (features.source_args & SourceArgumentsFeatures.DRIVER_ARGS):
        raise UnsupportedArgumentError("--from-args", "this data source does not support --from-args")
    if where_clause is not None and not (features.source_args & SourceArgumentsFeatures.WHERE_CLAUSE):
        raise UnsupportedArgumentError("--where", "this data source does not support --where")


def _check_destination(features: Features, driver_args: DriverArguments, if_exists: IfExists) -> None:
    if not driver_args.is_empty() and not (features.dest_args & DestinationArgumentsFeatures.DRIVER_ARGS):
        raise UnsupportedArgumentError("--to-args", "this data destination does not support --to-args")
    if_exists.verify(features.dest_if_exists)


@dataclass(frozen=True)
class SharedArguments:
    """Arguments used by both source and destination (unverified)."""
    schema: Table
    temporary_storage: TemporaryStorage = field(default_factory=TemporaryStorage)
    chunk_size: int = DEFAULT_CHUNK_SIZE

    def verify(self, features: Features) -> VerifiedSharedArguments:
        # No shared field is gated on a capability yet.
        return VerifiedSharedArguments(
            schema=self.schema, temporary_storage=self.temporary_storage, chunk_size=self.chunk_size
        )


@dataclass(frozen=True)
class VerifiedSharedArguments:
    """Shared arguments checked against a driver's features."""
    schema: Table
    temporary_storage: TemporaryStorage
    chunk_size: int = DEFAULT_CHUNK_SIZE

    def verify(self, features: Features) -> VerifiedSharedArguments:
        return VerifiedSharedArguments(
            schema=self.schema, temporary_storage=self.temporary_storage, chunk_size=self.chunk_size
        )


@dataclass(frozen=True)
class SourceArguments:
    """Data source arguments (unverified)."""
    driver_args: DriverArguments = field(default_factory=DriverArguments)
    where_clause: Optional[str] = None

    @classmethod
    def for_temporary(cls) -> SourceArguments:
        """Arguments for reading back from temporary storage."""
        return cls()

    def verify(self, features: Features) -> VerifiedSourceArguments:
        _check_source(features, self.driver_args, self.where_clause)
        return VerifiedSourceArguments(driver_args=self.driver_args, where_clause=self.where_clause)


@dataclass(frozen=True)
class VerifiedSourceArguments:
    """Source arguments checked against a driver's features."""
    driver_args: DriverArguments
    where_clause: Optional[str]

    def verify(self, features: Features) -> VerifiedSourceArguments:
        _check_source(features, self.driver_args, self.where_clause)
        return VerifiedSourceArguments(driver_args=self.driver_args, where_clause=self.where_clause)


@dataclass(frozen=True)
class DestinationArguments:
    """Data destination arguments (unverified)."""
    driver_args: DriverArguments = field(default_factory=DriverArguments)
    if_exists: IfExists = field(default_factory=IfExists.error)

    @classmethod
    def for_temporary(cls) -> DestinationArguments:
        """Arguments for writing to temporary storage: no driver args, overwrite."""
        return cls(if_exists=IfExists.overwrite())

    def verify(self, features: Features) -> VerifiedDestinationArguments:
        _check_destination(features, self.driver_args, self.if_exists)
        return VerifiedDestinationArguments(driver_args=self.driver_args, if_exists=self.if_exists)


@dataclass(frozen=True)
class VerifiedDestinationArguments:
    """Destination arguments checked against a driver's features."""
    driver_args: DriverArguments
    if_exists: IfExists

    def verify(self, features: Features) -> VerifiedDestinationArguments:
        _check_destination(features, self.driver_args, self.if_exists)
        return VerifiedDestinationArguments(driver_args=self.driver_args, if_exists=self.if_exists)
