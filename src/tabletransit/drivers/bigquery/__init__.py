"""
BigQuery driver: ``bigquery:project:dataset.table``.

Rows never pass through this process. Loads come from ``gs://`` via load
jobs; when the table has ARRAY or STRUCT columns the CSV is loaded into a
landing table first and converted with generated import SQL. Extracts go to
``gs://`` via extract jobs, driven from the gs driver.

Driver arguments (``--from-args`` / ``--to-args``):

    job_project_id=PROJECT     project that runs and pays for jobs
    job_labels.KEY=VALUE       labels attached to every job
"""

from __future__ import annotations

import io
import logging
from typing import Optional

from pydantic import BaseModel, Field

from ...args import DestinationArguments, SharedArguments, SourceArguments
from ...context import Context
from ...domain.enums import (
    DestinationArgumentsFeatures,
    IfExistsFeatures,
    IfExistsMode,
    LocatorFeatures,
    SourceArgumentsFeatures,
    Usage,
)
from ...domain.models import Features, IfExists, TemporaryStorage
from ...domain.schema import Table
from ...errors import LocatorParseError
from ...locator import Locator
from ..registry import register
from . import jobs
from .column import BqColumn, BqDataType, can_import_from_csv
from .names import DatasetName, TableName, quote_ident
from .table import BqTable, table_can_import_from_csv

logger = logging.getLogger(__name__)

__all__ = [
    "BigQueryLocator", "BigQueryDriverArgs", "BqTable", "BqColumn", "BqDataType",
    "TableName", "DatasetName", "quote_ident", "can_import_from_csv", "table_can_import_from_csv",
]


class BigQueryDriverArgs(BaseModel):
    """Options accepted in ``--from-args`` and ``--to-args``."""
    job_project_id: Optional[str] = Field(None, description="Project used to run jobs")
    job_labels: dict[str, str] = Field(default_factory=dict, description="Labels for every job")

    class Config:
        extra = "forbid"
        frozen = True


def temporary_dataset(temporary_storage: TemporaryStorage) -> Optional[DatasetName]:
    """The first ``bigquery:project:dataset`` entry in temporary storage, if any."""
    url = temporary_storage.find_scheme(BigQueryLocator.scheme)
    if url is None:
        return None
    rest = url[len(BigQueryLocator.scheme):]
    if "." in rest.rpartition(":")[2]:
        return TableName.parse(rest).dataset_name
    return DatasetName.parse(rest)


@register
class BigQueryLocator(Locator):
    """A BigQuery table."""

    scheme = "bigquery:"

    def __init__(self, table_name: TableName):
        self.table_name = table_name

    @classmethod
    def parse(cls, url: str) -> BigQueryLocator:
        if not url.startswith(cls.scheme):
            raise LocatorParseError(url, f"expected a {cls.scheme} URL")
        return cls(TableName.parse(url[len(cls.scheme):]))

    @classmethod
    def features(cls) -> Features:
        return Features(
            locator=LocatorFeatures.SCHEMA | LocatorFeatures.WRITE_SCHEMA | LocatorFeatures.WRITE_REMOTE_DATA,
            write_schema_if_exists=IfExistsFeatures.OVERWRITE | IfExistsFeatures.ERROR,
            source_args=SourceArgumentsFeatures.DRIVER_ARGS | SourceArgumentsFeatures.WHERE_CLAUSE,
            dest_args=DestinationArgumentsFeatures.DRIVER_ARGS,
            dest_if_exists=(
                IfExistsFeatures.OVERWRITE
                | IfExistsFeatures.APPEND
                | IfExistsFeatures.ERROR
                | IfExistsFeatures.UPSERT
            ),
        )

    def as_url(self) -> str:
        return f"{self.scheme}{self.table_name}"

    async def schema(self, ctx: Context) -> Optional[Table]:
        client = jobs.make_client()
        bq_table = await jobs.read_schema(client, self.table_name)
        if bq_table is None:
            return None
        return bq_table.to_portable()

    async def write_schema(self, ctx: Context, table: Table, if_exists: IfExists) -> None:
        if_exists.verify(self.features().write_schema_if_exists, target="schema destination")
        bq_table = BqTable.for_table_name_and_columns(self.table_name, table.columns, Usage.FINAL_TABLE)
        client = jobs.make_client()
        await jobs.prepare_table(client, bq_table, if_exists.mode)
        ctx.log.info(f"Created BigQuery table {self.table_name}")

    def supports_write_remote_data(self, source: Locator) -> bool:
        from ..gs import GsLocator
        return isinstance(source, GsLocator)

    async def write_remote_data(
        self,
        ctx: Context,
        source: Locator,
        shared_args: SharedArguments,
        source_args: SourceArguments,
        dest_args: DestinationArguments,
    ) -> None:
        """Load CSV files from a ``gs://`` directory into this table."""
        shared = shared_args.verify(self.features())
        source_args.verify(source.features())
        dest = dest_args.verify(self.features())
        driver_args = dest.driver_args.deserialize(BigQueryDriverArgs, "--to-args")
        client = jobs.make_client(driver_args.job_project_id)
        labels = driver_args.job_labels
        mode = dest.if_exists.mode

        final = BqTable.for_table_name_and_columns(self.table_name, shared.schema.columns, Usage.FINAL_TABLE)
        uri = f"{source.as_url()}*.csv"

        if final.can_import_from_csv() and mode != IfExistsMode.UPSERT:
            await jobs.load_csv_from_gs(ctx, client, uri, final, jobs.WRITE_DISPOSITIONS[mode], labels)
            return

        temp_name = self.table_name.temporary_table_name(temporary_dataset(shared.temporary_storage))
        temp = BqTable.for_table_name_and_columns(temp_name, shared.schema.columns, Usage.TEMP_TABLE)
        try:
            await jobs.create_table(client, temp, expires=jobs.TEMP_TABLE_EXPIRATION)
            await jobs.load_csv_from_gs(
                ctx, client, uri, temp, jobs.bigquery.WriteDisposition.WRITE_TRUNCATE, labels
            )
            await jobs.prepare_table(client, final, IfExistsMode.APPEND if mode == IfExistsMode.UPSERT else mode)
            sql = io.StringIO()
            if mode == IfExistsMode.UPSERT:
                final.write_merge_sql(sql, temp, dest.if_exists.keys)
                await jobs.run_query(ctx, client, sql.getvalue(), labels)
            else:
                final.write_import_sql(sql, temp)
                await jobs.run_query(
                    ctx, client, sql.getvalue(), labels,
                    destination=self.table_name,
                    write_disposition=jobs.bigquery.WriteDisposition.WRITE_APPEND,
                )
        finally:
            await jobs.delete_table(client, temp_name)

    async def export_to_gs(
        self,
        ctx: Context,
        dest_url: str,
        shared_args: SharedArguments,
        source_args: SourceArguments,
    ) -> None:
        """Extract this table as CSV files under a ``gs://`` directory."""
        shared = shared_args.verify(self.features())
        source = source_args.verify(self.features())
        driver_args = source.driver_args.deserialize(BigQueryDriverArgs, "--from-args")
        client = jobs.make_client(driver_args.job_project_id)
        labels = driver_args.job_labels
        uri = f"{dest_url}*.csv"

        table = BqTable.for_table_name_and_columns(self.table_name, shared.schema.columns, Usage.FINAL_TABLE)
        needs_query = source.where_clause is not None or any(
            c.export_select_expr() != quote_ident(c.name) for c in table.columns
        )
        if not needs_query:
            await jobs.extract_to_gs(ctx, client, self.table_name, uri, labels)
            return

        temp_name = self.table_name.temporary_table_name(temporary_dataset(shared.temporary_storage))
        sql = io.StringIO()
        table.write_export_sql(sql, source.where_clause)
        try:
            await jobs.run_query(ctx, client, sql.getvalue(), labels, destination=temp_name)
            await jobs.extract_to_gs(ctx, client, temp_name, uri, labels)
        finally:
            await jobs.delete_table(client, temp_name)
