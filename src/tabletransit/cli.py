"""
tabletransit command-line interface.

Commands:
    cp            Copy a table between two locators
    schema conv   Convert a table schema between schema-capable locators
    features      Show what each driver supports
    version       Display version information

Exit codes: 0 success, 1 user error, 2 driver or transfer failure, 130 cancelled.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import traceback
from collections.abc import Awaitable, Callable
from typing import Annotated, NoReturn, Optional, TypeVar

import typer

from .args import DestinationArguments, SharedArguments, SourceArguments
from .cleanup import prepare_scratch, remove_process_scratch
from .config import ConfigurationError
from .config_loader import load_transfer_options
from .context import Context
from .domain.enums import LocatorFeatures
from .domain.models import DriverArguments, IfExists
from .drivers import all_drivers, parse_locator, scheme_of
from .errors import TransferError, UnsupportedArgumentError, format_error_chain
from .pipeline.transfer import copy, resolve_schema
from .utils import setup_logging

T = TypeVar("T")

app = typer.Typer(help="Move tables between warehouses, object stores, databases and files")
schema_app = typer.Typer(help="Schema conversion commands")
app.add_typer(schema_app, name="schema")

logger = logging.getLogger(__name__)


def run_with_signals(work: Callable[[Context], Awaitable[T]]) -> T:
    """
    Run ``work`` on a fresh event loop with SIGINT/SIGTERM wired to cancellation.

    Args:
        work: Coroutine function receiving the command's Context

    Returns:
        Whatever ``work`` returns

    Raises:
        TransferCancelled: If a signal arrived before ``work`` finished
    """
    async def main() -> T:
        ctx = Context()
        loop = asyncio.get_running_loop()
        installed = []
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, ctx.cancel)
                installed.append(sig)
            except (NotImplementedError, RuntimeError, ValueError):
                # Not supported on this platform or outside the main thread
                logger.debug(f"Could not install handler for {sig.name}")
        try:
            return await ctx.run(work(ctx))
        finally:
            for sig in installed:
                loop.remove_signal_handler(sig)

    return asyncio.run(main())


def fail(error: Exception, verbose: bool) -> NoReturn:
    """Report an error with its causes and exit with its exit code."""
    typer.echo(format_error_chain(error), err=True)
    if verbose:
        logging.debug(f"Full traceback: {traceback.format_exc()}")
    raise typer.Exit(getattr(error, "exit_code", 2))


@app.command("cp")
def cp(
    source: Annotated[str, typer.Argument(help="Source locator, e.g. csv:./orders.csv or bigquery:proj:ds.table")],
    dest: Annotated[str, typer.Argument(help="Destination locator, e.g. gs://bucket/out/")],
    if_exists: Annotated[str, typer.Option(
        "--if-exists", help="overwrite, append, error or upsert-on:KEY1,KEY2"
    )] = "error",
    schema: Annotated[Optional[str], typer.Option(
        "--schema", help="Locator to read the table schema from (e.g. portable-schema:orders.json)"
    )] = None,
    temporary: Annotated[Optional[list[str]], typer.Option(
        "--temporary", help="Temporary storage for staged transfers (repeatable)"
    )] = None,
    from_args: Annotated[Optional[list[str]], typer.Option(
        "--from-args", help="Driver-specific source option KEY=VALUE (repeatable)"
    )] = None,
    to_args: Annotated[Optional[list[str]], typer.Option(
        "--to-args", help="Driver-specific destination option KEY=VALUE (repeatable)"
    )] = None,
    where: Annotated[Optional[str], typer.Option(
        "--where", help="SQL WHERE clause applied by the source"
    )] = None,
    max_streams: Annotated[Optional[int], typer.Option(
        "--max-streams", min=1, help="Streams a destination may process concurrently"
    )] = None,
    config: Annotated[Optional[str], typer.Option(
        "--config", "-c", help="YAML file with default transfer options"
    )] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable detailed logging output")] = False,
    log_to_file: Annotated[bool, typer.Option("--log-to-file", help="Create timestamped log files")] = False,
    skip_cleanup: Annotated[bool, typer.Option("--skip-cleanup", help="Skip temp file cleanup for debugging")] = False,
):
    """
    Copy a table from SOURCE to DEST.

    The fastest available path is used: a direct server-side copy, local
    CSV streaming, or staging through --temporary storage.

    Examples:
        tabletransit cp csv:./orders.csv duckdb:warehouse.duckdb#orders --if-exists overwrite
        tabletransit cp bigquery:my-proj:sales.orders gs://my-bucket/exports/orders/
        tabletransit cp postgres://app@db/shop#public.orders bigquery:my-proj:sales.orders \\
            --temporary gs://my-bucket/scratch/ --if-exists upsert-on:id
    """
    setup_logging(verbose, "cp", log_to_file)
    prepare_scratch(skip_cleanup=skip_cleanup)

    try:
        source_locator = parse_locator(source)
        dest_locator = parse_locator(dest)
        schema_locator = parse_locator(schema) if schema else None
        source_args = SourceArguments(
            driver_args=DriverArguments.from_cli(from_args, "--from-args"),
            where_clause=where,
        )
        dest_args = DestinationArguments(
            driver_args=DriverArguments.from_cli(to_args, "--to-args"),
            if_exists=IfExists.parse(if_exists),
        )
        # Reject unsupported options before touching either backend
        source_args.verify(source_locator.features())
        dest_args.verify(dest_locator.features())
        options = load_transfer_options(config_path=config, temporary=temporary, max_streams=max_streams)

        async def transfer(ctx: Context):
            table = await resolve_schema(ctx, source_locator, schema_locator)
            shared_args = SharedArguments(
                schema=table,
                temporary_storage=options.temporary_storage(),
                chunk_size=options.chunk_size,
            )
            return await copy(
                ctx, source_locator, dest_locator, shared_args, source_args, dest_args,
                max_streams=options.max_streams,
            )

        plan = run_with_signals(transfer)
        logging.info(f"Copied {source_locator} to {dest_locator} via {plan.path.value} path")
    except (TransferError, ConfigurationError) as e:
        fail(e, verbose)
    finally:
        if not skip_cleanup:
            remove_process_scratch()


@schema_app.command("conv")
def schema_conv(
    source: Annotated[str, typer.Argument(help="Locator to read the schema from")],
    dest: Annotated[str, typer.Argument(help="Locator to write the schema to")],
    if_exists: Annotated[str, typer.Option(
        "--if-exists", help="What to do if DEST already exists: overwrite or error"
    )] = "error",
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable detailed logging output")] = False,
):
    """
    Convert a table schema from SOURCE to DEST.

    Examples:
        tabletransit schema conv bigquery-schema:orders.json postgres-sql:orders.sql
        tabletransit schema conv duckdb:warehouse.duckdb#orders portable-schema:orders.json --if-exists overwrite
    """
    setup_logging(verbose, "schema-conv")

    try:
        source_locator = parse_locator(source)
        dest_locator = parse_locator(dest)
        policy = IfExists.parse(if_exists)
        if not source_locator.features().locator & LocatorFeatures.SCHEMA:
            raise UnsupportedArgumentError("SOURCE", f"{source_locator.scheme} cannot read schemas")
        if not dest_locator.features().locator & LocatorFeatures.WRITE_SCHEMA:
            raise UnsupportedArgumentError("DEST", f"{dest_locator.scheme} cannot write schemas")

        async def convert(ctx: Context) -> None:
            table = await resolve_schema(ctx, source_locator)
            await dest_locator.write_schema(ctx, table, policy)

        run_with_signals(convert)
    except (TransferError, ConfigurationError) as e:
        fail(e, verbose)


@app.command("features")
def features(
    scheme: Annotated[Optional[str], typer.Argument(help="Only show this scheme, e.g. bigquery: or gs://")] = None,
):
    """
    Show the operations and options each driver supports.

    Examples:
        tabletransit features
        tabletransit features duckdb:
    """
    drivers = all_drivers()
    if scheme:
        try:
            key = scheme_of(scheme)
        except TransferError as e:
            fail(e, verbose=False)
        if key not in drivers:
            typer.echo(f"ERROR: Unknown scheme '{scheme}'", err=True)
            typer.echo(f"\nAvailable schemes: {', '.join(drivers)}", err=True)
            raise typer.Exit(1)
        drivers = {key: drivers[key]}

    for name, driver in drivers.items():
        typer.echo(name)
        for line in driver.features().describe():
            typer.echo(f"  {line}")


@app.command("version")
def version():
    """Display version information."""
    from . import __version__
    typer.echo(f"tabletransit version: {__version__}")


if __name__ == "__main__":
    app()
