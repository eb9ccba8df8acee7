"""
BigQuery column types and their mapping to and from portable types.

Mapping (portable -> BigQuery):

    bool                         BOOL
    date                         DATE
    decimal                      NUMERIC
    float32, float64             FLOAT64
    geo_json                     GEOGRAPHY
    int16, int32, int64          INT64
    json, text, uuid             STRING       (json leaves inside arrays and structs stay JSON text)
    timestamp_with_time_zone     TIMESTAMP
    timestamp_without_time_zone  DATETIME
    array(T)                     ARRAY<T>     (JSON schema mode REPEATED)
    struct(...)                  STRUCT<...>  (JSON schema type RECORD)

BigQuery has no arrays of arrays. Arrays and structs cannot be loaded from
CSV, so a temp table used for a CSV load holds them as JSON text in STRING
columns and the import SQL converts them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from ...domain.enums import Usage
from ...domain.schema import DEFAULT_SRID, Column, DataType, DataTypeKind, StructField
from ...errors import SchemaError
from .names import quote_ident, quote_string


class BqScalarType(str, Enum):
    """Non-compound BigQuery types."""
    BOOL = "BOOL"
    DATE = "DATE"
    DATETIME = "DATETIME"
    FLOAT64 = "FLOAT64"
    GEOGRAPHY = "GEOGRAPHY"
    INT64 = "INT64"
    NUMERIC = "NUMERIC"
    STRING = "STRING"
    TIMESTAMP = "TIMESTAMP"


_PORTABLE_TO_BQ = {
    DataTypeKind.BOOL: BqScalarType.BOOL,
    DataTypeKind.DATE: BqScalarType.DATE,
    DataTypeKind.DECIMAL: BqScalarType.NUMERIC,
    DataTypeKind.FLOAT32: BqScalarType.FLOAT64,
    DataTypeKind.FLOAT64: BqScalarType.FLOAT64,
    DataTypeKind.GEO_JSON: BqScalarType.GEOGRAPHY,
    DataTypeKind.INT16: BqScalarType.INT64,
    DataTypeKind.INT32: BqScalarType.INT64,
    DataTypeKind.INT64: BqScalarType.INT64,
    DataTypeKind.JSON: BqScalarType.STRING,
    DataTypeKind.TEXT: BqScalarType.STRING,
    DataTypeKind.TIMESTAMP_WITH_TIME_ZONE: BqScalarType.TIMESTAMP,
    DataTypeKind.TIMESTAMP_WITHOUT_TIME_ZONE: BqScalarType.DATETIME,
    DataTypeKind.UUID: BqScalarType.STRING,
}

_BQ_TO_PORTABLE = {
    BqScalarType.BOOL: DataTypeKind.BOOL,
    BqScalarType.DATE: DataTypeKind.DATE,
    BqScalarType.DATETIME: DataTypeKind.TIMESTAMP_WITHOUT_TIME_ZONE,
    BqScalarType.FLOAT64: DataTypeKind.FLOAT64,
    BqScalarType.INT64: DataTypeKind.INT64,
    BqScalarType.NUMERIC: DataTypeKind.DECIMAL,
    BqScalarType.STRING: DataTypeKind.TEXT,
    BqScalarType.TIMESTAMP: DataTypeKind.TIMESTAMP_WITH_TIME_ZONE,
}

# Legacy spellings found in JSON schema files and the REST API.
_BQ_ALIASES = {
    "BOOLEAN": "BOOL",
    "FLOAT": "FLOAT64",
    "INTEGER": "INT64",
    "BIGNUMERIC": "NUMERIC",
    "RECORD": "STRUCT",
}


def can_import_from_csv(data_type: DataType) -> bool:
    """BigQuery cannot load ARRAY or STRUCT values from CSV."""
    return not (data_type.is_array or data_type.is_struct)


@dataclass(frozen=True)
class BqStructField:
    name: str
    data_type: BqDataType
    is_nullable: bool = True


@dataclass(frozen=True)
class BqDataType:
    """A BigQuery type: a scalar, ``ARRAY<element>`` or ``STRUCT<fields>``."""
    scalar: Optional[BqScalarType] = None
    element: Optional[BqDataType] = None
    fields: tuple[BqStructField, ...] = field(default_factory=tuple)
    is_json: bool = False

    @property
    def is_array(self) -> bool:
        return self.element is not None

    @property
    def is_struct(self) -> bool:
        return bool(self.fields)

    @classmethod
    def for_data_type(cls, data_type: DataType, usage: Usage) -> BqDataType:
        """
        Map a portable type to BigQuery.

        Raises:
            SchemaError: If the type has no BigQuery representation
        """
        if usage == Usage.TEMP_TABLE and not can_import_from_csv(data_type):
            return cls(scalar=BqScalarType.STRING)
        if data_type.is_array:
            if data_type.element.is_array:
                raise SchemaError(f"BigQuery does not support nested arrays: {data_type}")
            return cls(element=cls.for_data_type(data_type.element, Usage.FINAL_TABLE))
        if data_type.is_struct:
            return cls(fields=tuple(
                BqStructField(f.name, cls.for_data_type(f.data_type, Usage.FINAL_TABLE), f.is_nullable)
                for f in data_type.struct_fields
            ))
        try:
            return cls(scalar=_PORTABLE_TO_BQ[data_type.kind], is_json=data_type.kind == DataTypeKind.JSON)
        except KeyError:
            raise SchemaError(f"cannot represent {data_type} in BigQuery") from None

    def to_portable(self) -> DataType:
        if self.is_array:
            return DataType.array_of(self.element.to_portable())
        if self.is_struct:
            return DataType.struct_of([
                StructField(name=f.name, data_type=f.data_type.to_portable(), is_nullable=f.is_nullable)
                for f in self.fields
            ])
        if self.scalar == BqScalarType.GEOGRAPHY:
            return DataType.geo_json(DEFAULT_SRID)
        return DataType.scalar(_BQ_TO_PORTABLE[self.scalar])

    def to_sql(self) -> str:
        """Type as written in BigQuery SQL, e.g. ``ARRAY<STRUCT<`a` INT64>>``."""
        if self.is_array:
            return f"ARRAY<{self.element.to_sql()}>"
        if self.is_struct:
            inner = ", ".join(f"{quote_ident(f.name)} {f.data_type.to_sql()}" for f in self.fields)
            return f"STRUCT<{inner}>"
        return self.scalar.value

    def json_type(self) -> str:
        """Type name used in JSON schema files (arrays use their element's type)."""
        if self.is_array:
            return self.element.json_type()
        if self.is_struct:
            return "RECORD"
        return self.scalar.value

    def json_fields(self) -> Optional[list[dict[str, Any]]]:
        target = self.element if self.is_array else self
        if not target.is_struct:
            return None
        return [
            _json_descriptor(f.name, f.data_type, f.is_nullable, None)
            for f in target.fields
        ]

    @classmethod
    def from_json_descriptor(cls, descriptor: dict[str, Any]) -> BqDataType:
        """
        Parse the type of one JSON schema descriptor.

        Raises:
            SchemaError: On types without a portable equivalent (BYTES, TIME, ...)
        """
        type_name = str(descriptor.get("type", "")).upper()
        type_name = _BQ_ALIASES.get(type_name, type_name)
        if type_name == "STRUCT":
            sub = descriptor.get("fields") or []
            if not sub:
                raise SchemaError(f"RECORD column {descriptor.get('name')!r} has no fields")
            base = cls(fields=tuple(
                BqStructField(
                    f["name"],
                    cls.from_json_descriptor(f),
                    str(f.get("mode", "NULLABLE")).upper() != "REQUIRED",
                )
                for f in sub
            ))
        else:
            try:
                base = cls(scalar=BqScalarType(type_name))
            except ValueError:
                raise SchemaError(f"unsupported BigQuery type {descriptor.get('type')!r}") from None
        if str(descriptor.get("mode", "NULLABLE")).upper() == "REPEATED":
            return cls(element=base)
        return base

    def import_expr(self, json_text: str, depth: int = 0) -> str:
        """
        SQL converting ``json_text`` (an expression holding JSON text) to this type.

        Used inside the import UDFs for columns that were loaded as STRING.
        """
        if self.is_array:
            alias = f"element_{depth}"
            inner = self.element.import_expr(alias, depth + 1)
            return f"ARRAY(SELECT {inner} FROM UNNEST(JSON_QUERY_ARRAY({json_text})) AS {alias})"
        if self.is_struct:
            parts = []
            for f in self.fields:
                path = quote_string('$."' + f.name.replace('"', '\\"') + '"')
                value = f.data_type.import_expr(f"JSON_QUERY({json_text}, {path})", depth)
                parts.append(f"{value} AS {quote_ident(f.name)}")
            return f"STRUCT({', '.join(parts)})"
        if self.scalar == BqScalarType.GEOGRAPHY:
            return f"ST_GEOGFROMGEOJSON({json_text})"
        if self.is_json:
            # JSON_VALUE returns NULL for objects and arrays
            return json_text
        if self.scalar == BqScalarType.STRING:
            return f"JSON_VALUE({json_text})"
        return f"CAST(JSON_VALUE({json_text}) AS {self.scalar.value})"


def _json_descriptor(
    name: str, data_type: BqDataType, is_nullable: bool, description: Optional[str]
) -> dict[str, Any]:
    if data_type.is_array:
        mode = "REPEATED"
    else:
        mode = "NULLABLE" if is_nullable else "REQUIRED"
    descriptor: dict[str, Any] = {"name": name, "type": data_type.json_type(), "mode": mode}
    if description:
        descriptor["description"] = description
    fields = data_type.json_fields()
    if fields is not None:
        descriptor["fields"] = fields
    return descriptor


@dataclass(frozen=True)
class BqColumn:
    """One column of a BigQuery table."""
    name: str
    data_type: BqDataType
    is_nullable: bool = True
    description: Optional[str] = None
    needs_import_udf: bool = False

    @classmethod
    def for_column(cls, column: Column, usage: Usage) -> BqColumn:
        return cls(
            name=column.name,
            data_type=BqDataType.for_data_type(column.data_type, usage),
            is_nullable=column.is_nullable,
            description=column.comment,
            needs_import_udf=usage == Usage.FINAL_TABLE and not can_import_from_csv(column.data_type),
        )

    @classmethod
    def from_json_descriptor(cls, descriptor: dict[str, Any]) -> BqColumn:
        if "name" not in descriptor:
            raise SchemaError(f"BigQuery schema entry has no name: {descriptor}")
        data_type = BqDataType.from_json_descriptor(descriptor)
        return cls(
            name=descriptor["name"],
            data_type=data_type,
            is_nullable=str(descriptor.get("mode", "NULLABLE")).upper() != "REQUIRED",
            description=descriptor.get("description"),
        )

    def to_json_descriptor(self) -> dict[str, Any]:
        return _json_descriptor(self.name, self.data_type, self.is_nullable, self.description)

    def to_portable(self) -> Column:
        # REPEATED columns cannot hold NULL arrays, but their elements can be missing.
        return Column(
            name=self.name,
            data_type=self.data_type.to_portable(),
            is_nullable=self.is_nullable,
            comment=self.description,
        )

    def import_udf_name(self, index: int) -> str:
        return f"ImportJson_{index}"

    def write_import_udf(self, index: int) -> str:
        """``CREATE TEMP FUNCTION`` statement, or an empty string if none is needed."""
        if not self.needs_import_udf:
            return ""
        return (
            f"CREATE TEMP FUNCTION {self.import_udf_name(index)}(input STRING) "
            f"RETURNS {self.data_type.to_sql()} AS (\n"
            f"  {self.data_type.import_expr('input')}\n"
            f");\n"
        )

    def import_select_expr(self, index: int) -> str:
        quoted = quote_ident(self.name)
        if self.needs_import_udf:
            return f"{self.import_udf_name(index)}({quoted}) AS {quoted}"
        return quoted

    def export_select_expr(self) -> str:
        """Projection used when extracting to CSV."""
        quoted = quote_ident(self.name)
        if self.data_type.is_array or self.data_type.is_struct:
            return f"TO_JSON_STRING({quoted}) AS {quoted}"
        if self.data_type.scalar == BqScalarType.GEOGRAPHY:
            return f"ST_ASGEOJSON({quoted}) AS {quoted}"
        return quoted
