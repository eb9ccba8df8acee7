"""BigQuery JSON schema files: ``bigquery-schema:path/to/schema.json``."""

from __future__ import annotations

import asyncio
import io
import json
from pathlib import Path
from typing import Optional

from ...context import Context
from ...domain.enums import IfExistsFeatures, IfExistsMode, LocatorFeatures, Usage
from ...domain.models import Features, IfExists
from ...domain.schema import Table
from ...errors import DriverError, LocatorParseError, SchemaError
from ...locator import Locator
from ..registry import register
from .names import TableName
from .table import BqTable


def _file_table_name(path: Path) -> TableName:
    # Schema files carry no project or dataset.
    return TableName("local", "schema_file", path.stem)


@register
class BigQuerySchemaLocator(Locator):
    """A BigQuery JSON schema file, as used by ``bq load --schema``."""

    scheme = "bigquery-schema:"

    def __init__(self, path: str):
        self.path = path

    @classmethod
    def parse(cls, url: str) -> BigQuerySchemaLocator:
        if not url.startswith(cls.scheme):
            raise LocatorParseError(url, f"expected a {cls.scheme} URL")
        path = url[len(cls.scheme):]
        if not path or path.endswith("/"):
            raise LocatorParseError(url, "expected a file path")
        return cls(path)

    @classmethod
    def features(cls) -> Features:
        return Features(
            locator=LocatorFeatures.SCHEMA | LocatorFeatures.WRITE_SCHEMA,
            write_schema_if_exists=IfExistsFeatures.OVERWRITE | IfExistsFeatures.ERROR,
        )

    def as_url(self) -> str:
        return f"{self.scheme}{self.path}"

    async def schema(self, ctx: Context) -> Optional[Table]:
        path = Path(self.path)
        try:
            text = await asyncio.to_thread(path.read_text, encoding="utf-8")
        except OSError as e:
            raise DriverError("bigquery-schema", f"cannot read {path}: {e}") from e
        try:
            descriptors = json.loads(text)
        except json.JSONDecodeError as e:
            raise SchemaError(f"{path} is not valid JSON: {e}") from e
        return BqTable.from_json_schema(_file_table_name(path), descriptors).to_portable()

    async def write_schema(self, ctx: Context, table: Table, if_exists: IfExists) -> None:
        if_exists.verify(self.features().write_schema_if_exists, target="schema destination")
        path = Path(self.path)
        if if_exists.mode == IfExistsMode.ERROR and path.exists():
            raise DriverError("bigquery-schema", f"{path} already exists")
        bq_table = BqTable.for_table_name_and_columns(_file_table_name(path), table.columns, Usage.FINAL_TABLE)
        out = io.StringIO()
        bq_table.write_json_schema(out)
        await asyncio.to_thread(path.write_text, out.getvalue(), encoding="utf-8")
        ctx.log.info(f"Wrote BigQuery schema to {path}")
