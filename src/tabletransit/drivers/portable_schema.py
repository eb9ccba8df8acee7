"""Portable schema files: ``portable-schema:path/to/schema.json``."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

from ..context import Context
from ..domain.enums import IfExistsFeatures, IfExistsMode, LocatorFeatures
from ..domain.models import Features, IfExists
from ..domain.schema import Table
from ..errors import DriverError, LocatorParseError
from ..locator import Locator
from .registry import register


@register
class PortableSchemaLocator(Locator):
    """A JSON file holding a portable table schema."""

    scheme = "portable-schema:"

    def __init__(self, path: str):
        self.path = path

    @classmethod
    def parse(cls, url: str) -> PortableSchemaLocator:
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
            raise DriverError("portable-schema", f"cannot read {path}: {e}") from e
        return Table.from_json(text)

    async def write_schema(self, ctx: Context, table: Table, if_exists: IfExists) -> None:
        if_exists.verify(self.features().write_schema_if_exists, target="schema destination")
        path = Path(self.path)
        if if_exists.mode == IfExistsMode.ERROR and path.exists():
            raise DriverError("portable-schema", f"{path} already exists")
        await asyncio.to_thread(path.write_text, table.to_json(), encoding="utf-8")
        ctx.log.info(f"Wrote portable schema to {path}")
