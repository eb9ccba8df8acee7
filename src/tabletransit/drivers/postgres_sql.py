"""PostgreSQL DDL output: ``postgres-sql:path/to/table.sql`` (write only)."""

from __future__ import annotations

import asyncio
from pathlib import Path

from ..context import Context
from ..domain.enums import IfExistsFeatures, IfExistsMode, LocatorFeatures
from ..domain.models import Features, IfExists
from ..domain.schema import Table
from ..errors import DriverError, LocatorParseError
from ..locator import Locator
from .postgres import PgTableName, create_table_sql
from .registry import register


@register
class PostgresSqlLocator(Locator):
    """A ``CREATE TABLE`` script for PostgreSQL."""

    scheme = "postgres-sql:"

    def __init__(self, path: str):
        self.path = path

    @classmethod
    def parse(cls, url: str) -> PostgresSqlLocator:
        if not url.startswith(cls.scheme):
            raise LocatorParseError(url, f"expected a {cls.scheme} URL")
        path = url[len(cls.scheme):]
        if not path or path.endswith("/"):
            raise LocatorParseError(url, "expected a file path")
        return cls(path)

    @classmethod
    def features(cls) -> Features:
        return Features(
            locator=LocatorFeatures.WRITE_SCHEMA,
            write_schema_if_exists=IfExistsFeatures.OVERWRITE | IfExistsFeatures.ERROR,
        )

    def as_url(self) -> str:
        return f"{self.scheme}{self.path}"

    async def write_schema(self, ctx: Context, table: Table, if_exists: IfExists) -> None:
        if_exists.verify(self.features().write_schema_if_exists, target="schema destination")
        path = Path(self.path)
        if if_exists.mode == IfExistsMode.ERROR and path.exists():
            raise DriverError("postgres-sql", f"{path} already exists")
        name = PgTableName.parse(table.name or path.stem)
        await asyncio.to_thread(path.write_text, create_table_sql(name, table), encoding="utf-8")
        ctx.log.info(f"Wrote CREATE TABLE for {name} to {path}")
