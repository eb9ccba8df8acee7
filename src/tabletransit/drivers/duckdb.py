"""
DuckDB driver: ``duckdb:path/to/database.duckdb#[schema.]table``.

DuckDB is embedded, so every call runs in a worker thread. Exports are
written with ``COPY ... TO`` into the process scratch directory and streamed
from there; imports are spooled to scratch and loaded with ``read_csv``.
``csv:`` and ``file:`` sources are loaded straight from disk without
passing through a stream.

Type mapping (portable -> DuckDB):

    bool BOOLEAN, date DATE, decimal DECIMAL(38, 9), float32 FLOAT,
    float64 DOUBLE, geo_json VARCHAR (GeoJSON text), int16 SMALLINT,
    int32 INTEGER, int64 BIGINT, json JSON, text VARCHAR,
    timestamp_with_time_zone TIMESTAMP WITH TIME ZONE,
    timestamp_without_time_zone TIMESTAMP, uuid UUID,
    array(T) T[], struct(...) STRUCT(...)
"""

from __future__ import annotations

import asyncio
import logging
import re
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Awaitable, Optional

import duckdb

from ..args import DestinationArguments, SharedArguments, SourceArguments
from ..cleanup import process_scratch_dir
from ..config import Config
from ..context import Context
from ..domain.enums import (
    IfExistsFeatures,
    IfExistsMode,
    LocatorFeatures,
    SourceArgumentsFeatures,
)
from ..domain.models import Features, IfExists
from ..domain.schema import Column, DataType, DataTypeKind, StructField, Table
from ..errors import DriverError, LocatorParseError, SchemaError
from ..locator import Locator
from ..pipeline.streams import CsvStream, iterate_file, write_stream_to_file
from .registry import register

logger = logging.getLogger(__name__)

_SCALAR_TO_DUCKDB = {
    DataTypeKind.BOOL: "BOOLEAN",
    DataTypeKind.DATE: "DATE",
    DataTypeKind.DECIMAL: "DECIMAL(38, 9)",
    DataTypeKind.FLOAT32: "FLOAT",
    DataTypeKind.FLOAT64: "DOUBLE",
    DataTypeKind.GEO_JSON: "VARCHAR",
    DataTypeKind.INT16: "SMALLINT",
    DataTypeKind.INT32: "INTEGER",
    DataTypeKind.INT64: "BIGINT",
    DataTypeKind.JSON: "JSON",
    DataTypeKind.TEXT: "VARCHAR",
    DataTypeKind.TIMESTAMP_WITH_TIME_ZONE: "TIMESTAMP WITH TIME ZONE",
    DataTypeKind.TIMESTAMP_WITHOUT_TIME_ZONE: "TIMESTAMP",
    DataTypeKind.UUID: "UUID",
}

_DUCKDB_TO_SCALAR = {
    "BOOLEAN": DataTypeKind.BOOL,
    "BOOL": DataTypeKind.BOOL,
    "DATE": DataTypeKind.DATE,
    "DECIMAL": DataTypeKind.DECIMAL,
    "NUMERIC": DataTypeKind.DECIMAL,
    "FLOAT": DataTypeKind.FLOAT32,
    "REAL": DataTypeKind.FLOAT32,
    "DOUBLE": DataTypeKind.FLOAT64,
    "TINYINT": DataTypeKind.INT16,
    "SMALLINT": DataTypeKind.INT16,
    "INTEGER": DataTypeKind.INT32,
    "BIGINT": DataTypeKind.INT64,
    "JSON": DataTypeKind.JSON,
    "VARCHAR": DataTypeKind.TEXT,
    "TIMESTAMP WITH TIME ZONE": DataTypeKind.TIMESTAMP_WITH_TIME_ZONE,
    "TIMESTAMPTZ": DataTypeKind.TIMESTAMP_WITH_TIME_ZONE,
    "TIMESTAMP": DataTypeKind.TIMESTAMP_WITHOUT_TIME_ZONE,
    "UUID": DataTypeKind.UUID,
}


def quote_ident(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def sql_string(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def duckdb_type(data_type: DataType) -> str:
    """DuckDB column type for a portable type."""
    if data_type.is_array:
        return f"{duckdb_type(data_type.element)}[]"
    if data_type.is_struct:
        fields = ", ".join(f"{quote_ident(f.name)} {duckdb_type(f.data_type)}" for f in data_type.struct_fields)
        return f"STRUCT({fields})"
    return _SCALAR_TO_DUCKDB[data_type.kind]


def _split_top_level(text: str) -> list[str]:
    parts, depth, in_quotes, current = [], 0, False, []
    for char in text:
        if char == '"':
            in_quotes = not in_quotes
        elif not in_quotes and char == "(":
            depth += 1
        elif not in_quotes and char == ")":
            depth -= 1
        elif not in_quotes and depth == 0 and char == ",":
            parts.append("".join(current).strip())
            current = []
            continue
        current.append(char)
    if current:
        parts.append("".join(current).strip())
    return parts


def _split_struct_field(text: str) -> tuple[str, str]:
    if text.startswith('"'):
        end = 1
        while True:
            end = text.index('"', end)
            if text[end:end + 2] == '""':
                end += 2
                continue
            break
        return text[1:end].replace('""', '"'), text[end + 1:].strip()
    name, _, type_text = text.partition(" ")
    return name, type_text.strip()


def parse_duckdb_type(text: str) -> DataType:
    """
    Portable type for a DuckDB type string such as ``STRUCT(a INTEGER)[]``.

    Raises:
        SchemaError: If the type has no portable equivalent
    """
    text = text.strip()
    if text.endswith("[]"):
        return DataType.array_of(parse_duckdb_type(text[:-2]))
    if text.upper().startswith("STRUCT(") and text.endswith(")"):
        fields = []
        for part in _split_top_level(text[len("STRUCT("):-1]):
            name, type_text = _split_struct_field(part)
            fields.append(StructField(name=name, data_type=parse_duckdb_type(type_text)))
        return DataType.struct_of(fields)
    base = re.sub(r"\(.*\)$", "", text.upper()).strip()
    try:
        return DataType.scalar(_DUCKDB_TO_SCALAR[base])
    except KeyError:
        raise SchemaError(f"unsupported DuckDB type {text!r}") from None


def import_expr(column: Column, source: str) -> str:
    """Convert a VARCHAR column read from CSV to the column's type."""
    data_type = column.data_type
    target = duckdb_type(data_type)
    if data_type.is_array or data_type.is_struct:
        return f"CAST(CAST({source} AS JSON) AS {target})"
    if target == "VARCHAR":
        return source
    return f"CAST({source} AS {target})"


def export_select_expr(column: Column) -> str:
    quoted = quote_ident(column.name)
    data_type = column.data_type
    if data_type.is_array or data_type.is_struct:
        return f"CAST(to_json({quoted}) AS VARCHAR) AS {quoted}"
    if data_type.kind == DataTypeKind.JSON:
        return f"CAST({quoted} AS VARCHAR) AS {quoted}"
    return quoted


def create_table_sql(name: DuckTableName, table: Table) -> str:
    columns = ", ".join(
        f"{quote_ident(c.name)} {duckdb_type(c.data_type)}" + ("" if c.is_nullable else " NOT NULL")
        for c in table.columns
    )
    return f"CREATE TABLE {name.quoted()} ({columns})"


def read_csv_sql(path: Path, table: Table) -> str:
    return (
        f"read_csv({sql_string(str(path))}, header = true, auto_detect = false, columns = {{"
        + ", ".join(f"{sql_string(c.name)}: 'VARCHAR'" for c in table.columns)
        + "})"
    )


def setup_duckdb(path: str, config: Optional[Config] = None) -> duckdb.DuckDBPyConnection:
    """Open a DuckDB database with configured memory, threads and a PID-isolated spill directory."""
    config = config or Config()
    con = duckdb.connect(path)

    duckdb_settings = config.get_duckdb_settings()
    temp_dir = Path(duckdb_settings.get('temp_directory') or process_scratch_dir() / 'duckdb')
    temp_dir.mkdir(parents=True, exist_ok=True)
    temp_dir_str = str(temp_dir).replace('\\', '/')

    con.execute(f"SET memory_limit='{duckdb_settings['memory_limit']}';")
    con.execute(f"SET threads={duckdb_settings['threads']};")
    con.execute(f"SET temp_directory='{temp_dir_str}';")
    # CSV row order must survive import and export.
    con.execute("SET preserve_insertion_order=true;")

    logger.debug(
        f"DuckDB opened {path}: {duckdb_settings['threads']} threads, "
        f"{duckdb_settings['memory_limit']} memory, temp: {temp_dir}"
    )
    return con


@dataclass(frozen=True)
class DuckTableName:
    schema: str
    table: str

    @classmethod
    def parse(cls, text: str) -> DuckTableName:
        schema, dot, table = text.rpartition(".")
        if not table:
            raise ValueError(f"invalid table name {text!r}")
        return cls(schema if dot else "main", table)

    def quoted(self) -> str:
        return f"{quote_ident(self.schema)}.{quote_ident(self.table)}"

    def __str__(self) -> str:
        return self.table if self.schema == "main" else f"{self.schema}.{self.table}"


@register
class DuckDbLocator(Locator):
    """A table in a DuckDB database file."""

    scheme = "duckdb:"

    def __init__(self, path: str, table_name: DuckTableName):
        self.path = path
        self.table_name = table_name

    @classmethod
    def parse(cls, url: str) -> DuckDbLocator:
        if not url.startswith(cls.scheme):
            raise LocatorParseError(url, f"expected a {cls.scheme} URL")
        path, sep, fragment = url[len(cls.scheme):].partition("#")
        if not path:
            raise LocatorParseError(url, "missing database path")
        if not sep or not fragment:
            raise LocatorParseError(url, "missing table name (expected duckdb:path#table)")
        try:
            return cls(path, DuckTableName.parse(fragment))
        except ValueError as e:
            raise LocatorParseError(url, str(e)) from e

    @classmethod
    def features(cls) -> Features:
        return Features(
            locator=(
                LocatorFeatures.SCHEMA
                | LocatorFeatures.WRITE_SCHEMA
                | LocatorFeatures.LOCAL_DATA
                | LocatorFeatures.WRITE_LOCAL_DATA
                | LocatorFeatures.WRITE_REMOTE_DATA
            ),
            write_schema_if_exists=IfExistsFeatures.OVERWRITE | IfExistsFeatures.ERROR,
            source_args=SourceArgumentsFeatures.WHERE_CLAUSE,
            dest_if_exists=(
                IfExistsFeatures.OVERWRITE
                | IfExistsFeatures.APPEND
                | IfExistsFeatures.ERROR
                | IfExistsFeatures.UPSERT
            ),
        )

    def as_url(self) -> str:
        return f"{self.scheme}{self.path}#{self.table_name}"

    def _table_exists(self, con: duckdb.DuckDBPyConnection) -> bool:
        row = con.execute(
            "SELECT count(*) FROM information_schema.tables WHERE table_schema = ? AND table_name = ?",
            [self.table_name.schema, self.table_name.table],
        ).fetchone()
        return row[0] > 0

    def _read_schema(self) -> Optional[Table]:
        if not Path(self.path).exists():
            return None
        con = setup_duckdb(self.path)
        try:
            if not self._table_exists(con):
                return None
            rows = con.execute(
                """
                SELECT column_name, data_type, is_nullable
                FROM information_schema.columns
                WHERE table_schema = ? AND table_name = ?
                ORDER BY ordinal_position
                """,
                [self.table_name.schema, self.table_name.table],
            ).fetchall()
        finally:
            con.close()
        return Table(
            name=self.table_name.table,
            columns=[
                Column(name=name, data_type=parse_duckdb_type(type_text), is_nullable=nullable == "YES")
                for name, type_text, nullable in rows
            ],
        )

    async def schema(self, ctx: Context) -> Optional[Table]:
        try:
            return await asyncio.to_thread(self._read_schema)
        except duckdb.Error as e:
            raise DriverError("duckdb", f"cannot read schema of {self}: {e}") from e

    def _prepare_table(self, con: duckdb.DuckDBPyConnection, table: Table, mode: IfExistsMode) -> None:
        exists = self._table_exists(con)
        if exists and mode == IfExistsMode.ERROR:
            raise DriverError("duckdb", f"table {self.table_name} already exists in {self.path}")
        if exists and mode == IfExistsMode.OVERWRITE:
            con.execute(f"DROP TABLE {self.table_name.quoted()}")
            exists = False
        if not exists:
            con.execute(f"CREATE SCHEMA IF NOT EXISTS {quote_ident(self.table_name.schema)}")
            con.execute(create_table_sql(self.table_name, table))

    def _create(self, table: Table, mode: IfExistsMode) -> None:
        con = setup_duckdb(self.path)
        try:
            self._prepare_table(con, table, mode)
        finally:
            con.close()

    async def write_schema(self, ctx: Context, table: Table, if_exists: IfExists) -> None:
        if_exists.verify(self.features().write_schema_if_exists, target="schema destination")
        try:
            await asyncio.to_thread(self._create, table, if_exists.mode)
        except duckdb.Error as e:
            raise DriverError("duckdb", f"cannot create {self}: {e}") from e
        ctx.log.info(f"Created DuckDB table {self.table_name} in {self.path}")

    def _export(self, table: Table, where_clause: Optional[str], out_path: Path) -> None:
        exprs = ", ".join(export_select_expr(c) for c in table.columns)
        query = f"SELECT {exprs} FROM {self.table_name.quoted()}"
        if where_clause:
            query += f" WHERE {where_clause}"
        con = setup_duckdb(self.path)
        try:
            con.execute(f"COPY ({query}) TO {sql_string(str(out_path))} (FORMAT csv, HEADER true)")
        finally:
            con.close()

    async def local_data(
        self, ctx: Context, shared_args: SharedArguments, source_args: SourceArguments
    ) -> Optional[AsyncIterator[CsvStream]]:
        shared = shared_args.verify(self.features())
        source = source_args.verify(self.features())
        return self._export_streams(ctx, shared.schema, source.where_clause, shared.chunk_size)

    async def _export_streams(
        self, ctx: Context, table: Table, where_clause: Optional[str], chunk_size: int
    ) -> AsyncIterator[CsvStream]:
        out_path = process_scratch_dir() / f"export_{uuid.uuid4().hex}.csv"
        try:
            await asyncio.to_thread(self._export, table, where_clause, out_path)
        except duckdb.Error as e:
            out_path.unlink(missing_ok=True)
            raise DriverError("duckdb", f"export from {self} failed: {e}") from e
        ctx.log.debug(f"Exported {self.table_name} to {out_path}")
        yield CsvStream(self.table_name.table, iterate_file(out_path, chunk_size, delete_after=True))

    def _load_file(
        self, con: duckdb.DuckDBPyConnection, path: Path, table: Table, if_exists: IfExists
    ) -> None:
        source = read_csv_sql(path, table)
        names = ", ".join(quote_ident(c.name) for c in table.columns)
        exprs = ", ".join(import_expr(c, quote_ident(c.name)) for c in table.columns)
        con.execute("BEGIN TRANSACTION")
        try:
            if if_exists.mode == IfExistsMode.UPSERT:
                target = self.table_name.quoted()
                key_exprs = ", ".join(
                    f"{import_expr(table.column(k), quote_ident(k))} AS {quote_ident(k)}" for k in if_exists.keys
                )
                matches = " AND ".join(
                    f"{target}.{quote_ident(k)} = incoming.{quote_ident(k)}" for k in if_exists.keys
                )
                con.execute(
                    f"DELETE FROM {target} USING (SELECT {key_exprs} FROM {source}) AS incoming WHERE {matches}"
                )
            con.execute(f"INSERT INTO {self.table_name.quoted()} ({names}) SELECT {exprs} FROM {source}")
            con.execute("COMMIT")
        except BaseException:
            con.execute("ROLLBACK")
            raise

    async def write_local_data(
        self,
        ctx: Context,
        data: AsyncIterator[CsvStream],
        shared_args: SharedArguments,
        dest_args: DestinationArguments,
    ) -> AsyncIterator[Awaitable[None]]:
        shared = shared_args.verify(self.features())
        dest = dest_args.verify(self.features())
        mode = dest.if_exists.mode
        try:
            con = await asyncio.to_thread(setup_duckdb, self.path)
            await asyncio.to_thread(
                self._prepare_table, con, shared.schema,
                IfExistsMode.APPEND if mode == IfExistsMode.UPSERT else mode,
            )
        except duckdb.Error as e:
            raise DriverError("duckdb", f"cannot prepare {self}: {e}") from e
        return self._write_streams(ctx, con, data, shared.schema, dest.if_exists)

    async def _write_streams(
        self,
        ctx: Context,
        con: duckdb.DuckDBPyConnection,
        data: AsyncIterator[CsvStream],
        table: Table,
        if_exists: IfExists,
    ) -> AsyncIterator[Awaitable[None]]:
        lock = asyncio.Lock()
        try:
            async for stream in data:
                yield self._import_stream(ctx, con, lock, stream, table, if_exists)
        finally:
            con.close()

    async def _import_stream(
        self,
        ctx: Context,
        con: duckdb.DuckDBPyConnection,
        lock: asyncio.Lock,
        stream: CsvStream,
        table: Table,
        if_exists: IfExists,
    ) -> None:
        spool = process_scratch_dir() / f"import_{uuid.uuid4().hex}.csv"
        try:
            written = await write_stream_to_file(ctx, stream, spool)
            ctx.log.debug(f"Spooled {written} bytes of {stream.name} to {spool}")
            async with lock:
                await asyncio.to_thread(self._load_file, con, spool, table, if_exists)
        except duckdb.Error as e:
            raise DriverError("duckdb", f"import of {stream.name} into {self} failed: {e}") from e
        finally:
            spool.unlink(missing_ok=True)
        ctx.log.info(f"Loaded stream {stream.name} into {self.table_name}")

    def supports_write_remote_data(self, source: Locator) -> bool:
        from .csv import CsvLocator
        from .file import FileLocator
        if isinstance(source, CsvLocator):
            return not source.is_stdio
        return isinstance(source, FileLocator)

    def _load_files(self, paths: list[Path], table: Table, if_exists: IfExists) -> None:
        mode = if_exists.mode
        con = setup_duckdb(self.path)
        try:
            self._prepare_table(con, table, IfExistsMode.APPEND if mode == IfExistsMode.UPSERT else mode)
            for path in paths:
                logger.debug(f"Loading {path} into {self.table_name}")
                self._load_file(con, path, table, if_exists)
        finally:
            con.close()

    async def write_remote_data(
        self,
        ctx: Context,
        source: Locator,
        shared_args: SharedArguments,
        source_args: SourceArguments,
        dest_args: DestinationArguments,
    ) -> None:
        """Load local CSV files with ``read_csv`` instead of streaming them."""
        shared = shared_args.verify(self.features())
        source_args.verify(source.features())
        dest = dest_args.verify(self.features())
        paths = await asyncio.to_thread(source.csv_paths)
        ctx.log.info(f"Loading {len(paths)} CSV files from {source} into {self.table_name}")
        try:
            await asyncio.to_thread(self._load_files, paths, shared.schema, dest.if_exists)
        except duckdb.Error as e:
            raise DriverError("duckdb", f"load into {self} failed: {e}") from e
