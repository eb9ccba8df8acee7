"""
Transfer engine: choose a path between two locators and run it.

Paths are tried in a fixed order:

1. remote: the destination pulls directly from the source
2. streaming: CSV streams flow through this process
3. staged: source -> temporary storage -> destination, each leg using 1 or 2

Every argument bundle is verified against the features of each driver that
will see it before any data moves.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from ..args import DestinationArguments, SharedArguments, SourceArguments
from ..context import Context
from ..domain.enums import LocatorFeatures, TransferPath
from ..domain.models import TemporaryStorage
from ..domain.schema import Table
from ..drivers.registry import parse_locator
from ..errors import (
    DriverError,
    IncompatibleTransferError,
    LocatorParseError,
    SchemaError,
)
from ..locator import Locator
from .streams import aclose_quietly, consume_completions

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransferPlan:
    """The path chosen for one transfer."""
    path: TransferPath
    source: Locator
    dest: Locator
    temporary: Optional[Locator] = None
    first_leg: Optional[TransferPath] = None
    second_leg: Optional[TransferPath] = None

    def describe(self) -> str:
        if self.path == TransferPath.STAGED:
            return (
                f"staged {self.source} -> {self.temporary} ({self.first_leg.value}) "
                f"-> {self.dest} ({self.second_leg.value})"
            )
        return f"{self.path.value} {self.source} -> {self.dest}"


def direct_path(source: Locator, dest: Locator) -> Optional[TransferPath]:
    """
    Pick a single-leg path between two locators.

    Returns:
        TransferPath.REMOTE, TransferPath.STREAMING, or None if neither applies
    """
    source_features = source.features().locator
    dest_features = dest.features().locator
    if (
        LocatorFeatures.WRITE_REMOTE_DATA in source_features
        and LocatorFeatures.WRITE_REMOTE_DATA in dest_features
        and dest.supports_write_remote_data(source)
    ):
        return TransferPath.REMOTE
    if LocatorFeatures.LOCAL_DATA in source_features and LocatorFeatures.WRITE_LOCAL_DATA in dest_features:
        return TransferPath.STREAMING
    return None


def plan_transfer(source: Locator, dest: Locator, temporary_storage: TemporaryStorage) -> TransferPlan:
    """
    Decide how rows will travel from ``source`` to ``dest``.

    Temporary storage entries are tried in declaration order. Entries that do
    not parse as a locator on their own (for example a BigQuery dataset kept
    for driver-internal temp tables) are skipped.

    Raises:
        IncompatibleTransferError: If no path exists
    """
    path = direct_path(source, dest)
    if path is not None:
        return TransferPlan(path=path, source=source, dest=dest)

    for url in temporary_storage:
        try:
            temp = parse_locator(url)
        except LocatorParseError as e:
            logger.debug(f"Skipping temporary storage {url}: {e}")
            continue
        first_leg = direct_path(source, temp)
        second_leg = direct_path(temp, dest)
        if first_leg is not None and second_leg is not None:
            return TransferPlan(
                path=TransferPath.STAGED,
                source=source,
                dest=dest,
                temporary=temp,
                first_leg=first_leg,
                second_leg=second_leg,
            )
        logger.debug(f"Temporary storage {url} cannot stage {source} -> {dest}")

    raise IncompatibleTransferError(str(source), str(dest))


async def resolve_schema(ctx: Context, source: Locator, schema_locator: Optional[Locator] = None) -> Table:
    """
    Find the portable schema for a transfer.

    An explicit ``--schema`` locator wins; otherwise the source is asked.

    Raises:
        SchemaError: If no schema can be found
    """
    origin = schema_locator or source
    table = await origin.schema(ctx)
    if table is None:
        if schema_locator is not None:
            raise SchemaError(f"cannot read a schema from {schema_locator}")
        raise SchemaError(f"{source} cannot provide a schema; pass --schema")
    ctx.log.debug(f"Using schema from {origin} with {len(table.columns)} columns")
    return table


async def _run_leg(
    ctx: Context,
    path: TransferPath,
    source: Locator,
    dest: Locator,
    shared_args: SharedArguments,
    source_args: SourceArguments,
    dest_args: DestinationArguments,
    max_streams: int,
) -> None:
    shared_source = shared_args.verify(source.features())
    shared_dest = shared_args.verify(dest.features())
    verified_source = source_args.verify(source.features())
    verified_dest = dest_args.verify(dest.features())

    if path == TransferPath.REMOTE:
        ctx.log.info(f"Remote transfer {source} -> {dest}")
        await dest.write_remote_data(ctx, source, shared_dest, verified_source, verified_dest)
        return

    ctx.log.info(f"Streaming transfer {source} -> {dest}")
    streams = await source.local_data(ctx, shared_source, verified_source)
    if streams is None:
        raise DriverError(source.scheme, f"{source} did not produce local data")
    try:
        completions = await dest.write_local_data(ctx, streams, shared_dest, verified_dest)
        count = await consume_completions(ctx, completions, max_pending=max_streams)
    finally:
        await aclose_quietly(streams)
    ctx.log.info(f"Wrote {count} stream(s) to {dest}")


async def copy(
    ctx: Context,
    source: Locator,
    dest: Locator,
    shared_args: SharedArguments,
    source_args: SourceArguments,
    dest_args: DestinationArguments,
    max_streams: int = 1,
) -> TransferPlan:
    """
    Copy a table from ``source`` to ``dest``.

    Args:
        ctx: Transfer context (cancellation and logging)
        source: Where rows come from
        dest: Where rows go
        shared_args: Schema and temporary storage
        source_args: Source options (unverified)
        dest_args: Destination options (unverified)
        max_streams: Completions awaited concurrently on the streaming path

    Returns:
        The plan that was executed

    Raises:
        TransferError: Any failure, with backend errors chained as causes
    """
    dest_args.if_exists.check_columns(shared_args.schema)

    plan = plan_transfer(source, dest, shared_args.temporary_storage)
    ctx.log.info(f"Transfer plan: {plan.describe()}")

    if plan.path != TransferPath.STAGED:
        await _run_leg(ctx, plan.path, source, dest, shared_args, source_args, dest_args, max_streams)
        return plan

    # Catch option errors on both real endpoints before the first leg moves data.
    source_args.verify(source.features())
    dest_args.verify(dest.features())

    scratch = plan.temporary.temporary_child(ctx.transfer_id)
    ctx.log.info(f"Staging through {scratch}")
    await _run_leg(
        ctx.child(leg="source->temp"), plan.first_leg, source, scratch,
        shared_args, source_args, DestinationArguments.for_temporary(), max_streams,
    )
    ctx.check_cancelled()
    await _run_leg(
        ctx.child(leg="temp->dest"), plan.second_leg, scratch, dest,
        shared_args, SourceArguments.for_temporary(), dest_args, max_streams,
    )
    return plan
