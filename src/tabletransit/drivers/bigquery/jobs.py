"""
BigQuery client helpers.

The google-cloud-bigquery client is blocking, so every call runs in a worker
thread. Job failures are wrapped in DriverError with the backend error chained.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
from typing import Any, Optional

from google.api_core.exceptions import GoogleAPIError, NotFound
from google.cloud import bigquery

from ...config import Config
from ...context import Context
from ...domain.enums import IfExistsMode
from ...errors import DriverError
from .names import TableName
from .table import BqTable

logger = logging.getLogger(__name__)

TEMP_TABLE_EXPIRATION = datetime.timedelta(hours=24)

WRITE_DISPOSITIONS = {
    IfExistsMode.OVERWRITE: bigquery.WriteDisposition.WRITE_TRUNCATE,
    IfExistsMode.APPEND: bigquery.WriteDisposition.WRITE_APPEND,
    IfExistsMode.ERROR: bigquery.WriteDisposition.WRITE_EMPTY,
}


def make_client(project: Optional[str] = None) -> bigquery.Client:
    """Create a client for running jobs, using configured project and location."""
    config = Config()
    return bigquery.Client(project=project or config.gcp.project, location=config.gcp.location)


def schema_fields(table: BqTable) -> list[bigquery.SchemaField]:
    return [bigquery.SchemaField.from_api_repr(d) for d in table.to_json_schema()]


async def wait_for_job(ctx: Context, job: Any, description: str) -> Any:
    """Wait for a job to finish, cancelling it if the transfer is cancelled."""
    ctx.log.info(f"Waiting for BigQuery {description} job {job.job_id}")
    try:
        return await asyncio.to_thread(job.result)
    except asyncio.CancelledError:
        ctx.log.warning(f"Cancelling BigQuery job {job.job_id}")
        await asyncio.to_thread(job.cancel)
        raise
    except GoogleAPIError as e:
        raise DriverError("bigquery", f"{description} job {job.job_id} failed: {e}") from e


async def get_table(client: bigquery.Client, name: TableName) -> Optional[bigquery.Table]:
    try:
        return await asyncio.to_thread(client.get_table, name.dotted())
    except NotFound:
        return None
    except GoogleAPIError as e:
        raise DriverError("bigquery", f"cannot read table {name}: {e}") from e


async def read_schema(client: bigquery.Client, name: TableName) -> Optional[BqTable]:
    table = await get_table(client, name)
    if table is None:
        return None
    return BqTable.from_json_schema(name, [f.to_api_repr() for f in table.schema])


async def delete_table(client: bigquery.Client, name: TableName) -> None:
    try:
        await asyncio.to_thread(client.delete_table, name.dotted(), not_found_ok=True)
    except GoogleAPIError as e:
        raise DriverError("bigquery", f"cannot delete table {name}: {e}") from e


async def create_table(
    client: bigquery.Client, table: BqTable, expires: Optional[datetime.timedelta] = None
) -> None:
    bq_table = bigquery.Table(table.name.dotted(), schema=schema_fields(table))
    if expires is not None:
        bq_table.expires = datetime.datetime.now(datetime.timezone.utc) + expires
    try:
        await asyncio.to_thread(client.create_table, bq_table)
    except GoogleAPIError as e:
        raise DriverError("bigquery", f"cannot create table {table.name}: {e}") from e


async def prepare_table(client: bigquery.Client, table: BqTable, mode: IfExistsMode) -> bool:
    """
    Make sure ``table`` exists with the right schema before rows arrive.

    Returns:
        True if the table already existed and was kept

    Raises:
        DriverError: If the table exists and ``mode`` is ERROR
    """
    existing = await get_table(client, table.name)
    if existing is not None:
        if mode == IfExistsMode.ERROR:
            raise DriverError("bigquery", f"table {table.name} already exists")
        if mode == IfExistsMode.OVERWRITE:
            await delete_table(client, table.name)
        else:
            return True
    await create_table(client, table)
    return False


async def run_query(
    ctx: Context,
    client: bigquery.Client,
    sql: str,
    labels: Optional[dict[str, str]] = None,
    destination: Optional[TableName] = None,
    write_disposition: Optional[str] = None,
) -> None:
    ctx.log.debug(f"Running BigQuery SQL:\n{sql}")
    job_config = bigquery.QueryJobConfig(labels=labels or {})
    if destination is not None:
        job_config.destination = destination.dotted()
        job_config.write_disposition = write_disposition or bigquery.WriteDisposition.WRITE_TRUNCATE
    try:
        job = await asyncio.to_thread(client.query, sql, job_config=job_config)
    except GoogleAPIError as e:
        raise DriverError("bigquery", f"cannot start query: {e}") from e
    await wait_for_job(ctx, job, "query")


async def load_csv_from_gs(
    ctx: Context,
    client: bigquery.Client,
    uri: str,
    table: BqTable,
    write_disposition: str,
    labels: Optional[dict[str, str]] = None,
) -> None:
    job_config = bigquery.LoadJobConfig(
        source_format=bigquery.SourceFormat.CSV,
        skip_leading_rows=1,
        allow_quoted_newlines=True,
        schema=schema_fields(table),
        write_disposition=write_disposition,
        labels=labels or {},
    )
    ctx.log.info(f"Loading {uri} into {table.name}")
    try:
        job = await asyncio.to_thread(
            client.load_table_from_uri, uri, table.name.dotted(), job_config=job_config
        )
    except GoogleAPIError as e:
        raise DriverError("bigquery", f"cannot start load into {table.name}: {e}") from e
    await wait_for_job(ctx, job, "load")


async def extract_to_gs(
    ctx: Context,
    client: bigquery.Client,
    name: TableName,
    uri: str,
    labels: Optional[dict[str, str]] = None,
) -> None:
    job_config = bigquery.ExtractJobConfig(
        destination_format=bigquery.DestinationFormat.CSV,
        print_header=True,
        labels=labels or {},
    )
    ctx.log.info(f"Extracting {name} to {uri}")
    try:
        job = await asyncio.to_thread(client.extract_table, name.dotted(), uri, job_config=job_config)
    except GoogleAPIError as e:
        raise DriverError("bigquery", f"cannot start extract from {name}: {e}") from e
    await wait_for_job(ctx, job, "extract")
