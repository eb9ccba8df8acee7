"""
BigQuery table mapping: JSON schema files and the SQL used to move rows
between CSV landing tables and final tables.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import IO, Any, Optional

from ...domain.enums import Usage
from ...domain.schema import Column, Table
from ...errors import SchemaError
from .column import BqColumn, can_import_from_csv
from .names import TableName, quote_ident


def table_can_import_from_csv(table: Table) -> bool:
    """True when every column can be loaded from CSV without conversion."""
    return all(can_import_from_csv(c.data_type) for c in table.columns)


@dataclass(frozen=True)
class BqTable:
    """A BigQuery table: its name, columns and intended usage."""
    name: TableName
    columns: tuple[BqColumn, ...]
    usage: Usage = Usage.FINAL_TABLE

    @classmethod
    def for_table_name_and_columns(cls, name: TableName, columns: list[Column], usage: Usage) -> BqTable:
        """
        Map portable columns to a BigQuery table.

        The name is passed separately from the columns; the portable table's
        own name is never used for BigQuery.

        Raises:
            SchemaError: If a column type has no BigQuery representation
        """
        return cls(name, tuple(BqColumn.for_column(c, usage) for c in columns), usage)

    @classmethod
    def from_json_schema(cls, name: TableName, descriptors: list[dict[str, Any]]) -> BqTable:
        if not isinstance(descriptors, list):
            raise SchemaError("BigQuery schema must be a JSON array of column descriptors")
        return cls(name, tuple(BqColumn.from_json_descriptor(d) for d in descriptors))

    def can_import_from_csv(self) -> bool:
        return not any(c.needs_import_udf for c in self.columns)

    def column_names(self) -> list[str]:
        return [c.name for c in self.columns]

    def to_portable(self) -> Table:
        return Table(name=self.name.table, columns=[c.to_portable() for c in self.columns])

    def to_json_schema(self) -> list[dict[str, Any]]:
        return [c.to_json_descriptor() for c in self.columns]

    def write_json_schema(self, f: IO[str]) -> None:
        """Write the BigQuery JSON schema (two-space indented array)."""
        json.dump(self.to_json_schema(), f, indent=2)
        f.write("\n")

    def _check_import_source(self, temp_table: BqTable) -> None:
        if self.usage != Usage.FINAL_TABLE:
            raise SchemaError(f"import SQL can only target a final table, not {self.name}")
        if temp_table.column_names() != self.column_names():
            raise SchemaError(
                f"temp table {temp_table.name} columns {temp_table.column_names()} "
                f"do not match {self.name} columns {self.column_names()}"
            )

    def _write_import_udfs(self, f: IO[str]) -> None:
        for i, column in enumerate(self.columns):
            f.write(column.write_import_udf(i))

    def _import_select(self, temp_table: BqTable) -> str:
        exprs = ", ".join(c.import_select_expr(i) for i, c in enumerate(self.columns))
        return f"SELECT {exprs} FROM {temp_table.name.quoted()}"

    def write_import_sql(self, f: IO[str], temp_table: BqTable) -> None:
        """
        Write SQL selecting rows from a CSV landing table with final column types.

        Emits one ``CREATE TEMP FUNCTION`` per column that needs conversion,
        then a single ``SELECT ... FROM`` the landing table.

        Raises:
            SchemaError: If this is not a final table, or the landing table's
                columns do not match this table's in name and order
        """
        self._check_import_source(temp_table)
        self._write_import_udfs(f)
        f.write(self._import_select(temp_table))
        f.write("\n")

    def write_merge_sql(self, f: IO[str], temp_table: BqTable, keys: tuple[str, ...]) -> None:
        """Write a ``MERGE`` upserting rows from a landing table on ``keys``."""
        self._check_import_source(temp_table)
        missing = [k for k in keys if k not in self.column_names()]
        if missing:
            raise SchemaError(f"upsert-on key columns not found in {self.name}: {', '.join(missing)}")

        self._write_import_udfs(f)
        on = " AND ".join(f"target.{quote_ident(k)} = source.{quote_ident(k)}" for k in keys)
        updates = [
            f"{quote_ident(c.name)} = source.{quote_ident(c.name)}"
            for c in self.columns if c.name not in keys
        ]
        names = ", ".join(quote_ident(c.name) for c in self.columns)
        values = ", ".join(f"source.{quote_ident(c.name)}" for c in self.columns)

        f.write(f"MERGE INTO {self.name.quoted()} AS target\n")
        f.write(f"USING ({self._import_select(temp_table)}) AS source\n")
        f.write(f"ON {on}\n")
        if updates:
            f.write(f"WHEN MATCHED THEN UPDATE SET {', '.join(updates)}\n")
        f.write(f"WHEN NOT MATCHED THEN INSERT ({names}) VALUES ({values})\n")

    def write_export_sql(self, f: IO[str], where_clause: Optional[str] = None) -> None:
        """Write a ``SELECT`` flattening this table into CSV-friendly columns."""
        exprs = ", ".join(c.export_select_expr() for c in self.columns)
        f.write(f"SELECT {exprs} FROM {self.name.quoted()}")
        if where_clause:
            f.write(f" WHERE {where_clause}")
        f.write("\n")
