"""BigQuery table names and identifier quoting."""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass

from ...errors import LocatorParseError

_PROJECT_RE = re.compile(r"^[a-z0-9][a-z0-9\-.:]*$")
_DATASET_RE = re.compile(r"^[A-Za-z0-9_]+$")


def quote_ident(name: str) -> str:
    """Backtick-quote an identifier, escaping backslashes and backticks."""
    escaped = name.replace("\\", "\\\\").replace("`", "\\`")
    return f"`{escaped}`"


def quote_string(value: str) -> str:
    """Quote a BigQuery string literal."""
    escaped = value.replace("\\", "\\\\").replace("'", "\\'").replace("\n", "\\n")
    return f"'{escaped}'"


@dataclass(frozen=True)
class DatasetName:
    """``project:dataset``"""
    project: str
    dataset: str

    @classmethod
    def parse(cls, text: str) -> DatasetName:
        project, sep, dataset = text.rpartition(":")
        if not sep or not _PROJECT_RE.match(project) or not _DATASET_RE.match(dataset):
            raise LocatorParseError(f"bigquery:{text}", "expected bigquery:project:dataset")
        return cls(project, dataset)

    def table(self, table: str) -> TableName:
        return TableName(self.project, self.dataset, table)

    def __str__(self) -> str:
        return f"{self.project}:{self.dataset}"


@dataclass(frozen=True)
class TableName:
    """``project:dataset.table``"""
    project: str
    dataset: str
    table: str

    @classmethod
    def parse(cls, text: str) -> TableName:
        """
        Parse ``project:dataset.table``.

        Raises:
            LocatorParseError: If any part is missing or malformed
        """
        project_dataset, dot, table = text.rpartition(".")
        if not dot or not table:
            raise LocatorParseError(f"bigquery:{text}", "expected bigquery:project:dataset.table")
        try:
            dataset_name = DatasetName.parse(project_dataset)
        except LocatorParseError:
            raise LocatorParseError(f"bigquery:{text}", "expected bigquery:project:dataset.table") from None
        if not _DATASET_RE.match(table):
            raise LocatorParseError(f"bigquery:{text}", f"invalid table name {table!r}")
        return cls(dataset_name.project, dataset_name.dataset, table)

    @property
    def dataset_name(self) -> DatasetName:
        return DatasetName(self.project, self.dataset)

    def dotted(self) -> str:
        """``project.dataset.table``, as used in SQL and by the client library."""
        return f"{self.project}.{self.dataset}.{self.table}"

    def quoted(self) -> str:
        return quote_ident(self.dotted())

    def temporary_table_name(self, temp_dataset: DatasetName | None = None) -> TableName:
        """A unique scratch table name, in ``temp_dataset`` if given, else next to this table."""
        dataset = temp_dataset or self.dataset_name
        return dataset.table(f"{self.table}_temp_{uuid.uuid4().hex[:12]}")

    def __str__(self) -> str:
        return f"{self.project}:{self.dataset}.{self.table}"
