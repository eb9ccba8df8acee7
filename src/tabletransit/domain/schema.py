"""
Portable Schema Model

Database-independent description of a table: an ordered list of columns, each
with a logical data type drawn from a closed set. Drivers map this model to
and from their native type systems.

The portable JSON form is:

    {
      "name": "events",
      "columns": [
        {"name": "id", "is_nullable": false, "data_type": "int64", "comment": null},
        {"name": "tags", "is_nullable": true, "data_type": {"array": "text"}},
        {"name": "where", "is_nullable": true, "data_type": {"geo_json": 4326}},
        {"name": "meta", "is_nullable": true,
         "data_type": {"struct": [{"name": "k", "is_nullable": true, "data_type": "text"}]}}
      ]
    }
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from ..errors import SchemaError

DEFAULT_SRID = 4326


class DataTypeKind(str, Enum):
    """Closed set of portable logical types."""
    BOOL = "bool"
    DATE = "date"
    DECIMAL = "decimal"
    FLOAT32 = "float32"
    FLOAT64 = "float64"
    GEO_JSON = "geo_json"
    INT16 = "int16"
    INT32 = "int32"
    INT64 = "int64"
    JSON = "json"
    TEXT = "text"
    TIMESTAMP_WITH_TIME_ZONE = "timestamp_with_time_zone"
    TIMESTAMP_WITHOUT_TIME_ZONE = "timestamp_without_time_zone"
    UUID = "uuid"
    ARRAY = "array"
    STRUCT = "struct"


class DataType(BaseModel):
    """
    A portable logical type.

    Scalar types only set ``kind``. ``array`` carries its ``element`` type,
    ``struct`` its ``struct_fields`` and ``geo_json`` its ``srid``. Values are
    trees, so nesting is always finite.
    """
    kind: DataTypeKind
    element: Optional[DataType] = None
    struct_fields: Optional[list[StructField]] = None
    srid: Optional[int] = None

    class Config:
        frozen = True

    @model_validator(mode="before")
    @classmethod
    def _from_portable(cls, value: Any) -> Any:
        """Accept the portable JSON spellings ("int64", {"array": ...}, ...)."""
        if isinstance(value, str):
            return {"kind": value}
        if isinstance(value, dict) and len(value) == 1:
            key, inner = next(iter(value.items()))
            if key == "array":
                return {"kind": "array", "element": inner}
            if key == "struct":
                return {"kind": "struct", "struct_fields": inner}
            if key == "geo_json":
                return {"kind": "geo_json", "srid": inner}
        return value

    @model_validator(mode="after")
    def _check_shape(self) -> DataType:
        if self.kind == DataTypeKind.ARRAY and self.element is None:
            raise ValueError("array type requires an element type")
        if self.kind != DataTypeKind.ARRAY and self.element is not None:
            raise ValueError(f"{self.kind.value} type cannot have an element type")
        if self.kind == DataTypeKind.STRUCT:
            if not self.struct_fields:
                raise ValueError("struct type requires at least one field")
            names = [f.name for f in self.struct_fields]
            if len(set(names)) != len(names):
                raise ValueError(f"duplicate struct field names in {names}")
        elif self.struct_fields is not None:
            raise ValueError(f"{self.kind.value} type cannot have struct fields")
        if self.kind == DataTypeKind.GEO_JSON and self.srid is None:
            raise ValueError("geo_json type requires an srid")
        return self

    @classmethod
    def scalar(cls, kind: DataTypeKind | str) -> DataType:
        return cls(kind=DataTypeKind(kind))

    @classmethod
    def array_of(cls, element: DataType) -> DataType:
        return cls(kind=DataTypeKind.ARRAY, element=element)

    @classmethod
    def struct_of(cls, fields: list[StructField]) -> DataType:
        return cls(kind=DataTypeKind.STRUCT, struct_fields=fields)

    @classmethod
    def geo_json(cls, srid: int = DEFAULT_SRID) -> DataType:
        return cls(kind=DataTypeKind.GEO_JSON, srid=srid)

    @property
    def is_array(self) -> bool:
        return self.kind == DataTypeKind.ARRAY

    @property
    def is_struct(self) -> bool:
        return self.kind == DataTypeKind.STRUCT

    def to_portable(self) -> Any:
        """Return the portable JSON value for this type."""
        if self.kind == DataTypeKind.ARRAY:
            return {"array": self.element.to_portable()}
        if self.kind == DataTypeKind.STRUCT:
            return {"struct": [f.to_portable() for f in self.struct_fields]}
        if self.kind == DataTypeKind.GEO_JSON:
            return {"geo_json": self.srid}
        return self.kind.value

    def __str__(self) -> str:
        return json.dumps(self.to_portable())


class StructField(BaseModel):
    """A named field inside a struct type."""
    name: str = Field(..., description="Field name")
    data_type: DataType = Field(..., description="Field type")
    is_nullable: bool = Field(default=True, description="Whether the field may be null")

    class Config:
        frozen = True

    def to_portable(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "is_nullable": self.is_nullable,
            "data_type": self.data_type.to_portable(),
        }


DataType.model_rebuild()


class Column(BaseModel):
    """A table column. Position in ``Table.columns`` is its CSV position."""
    name: str = Field(..., description="Column name")
    data_type: DataType = Field(..., description="Portable logical type")
    is_nullable: bool = Field(default=True, description="Whether the column may contain nulls")
    comment: Optional[str] = Field(None, description="Free-form column description")

    class Config:
        frozen = True

    @field_validator("name")
    @classmethod
    def _non_empty_name(cls, value: str) -> str:
        if not value:
            raise ValueError("column name cannot be empty")
        return value

    def to_portable(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "is_nullable": self.is_nullable,
            "data_type": self.data_type.to_portable(),
            "comment": self.comment,
        }


class Table(BaseModel):
    """Portable table schema: optional name plus ordered, uniquely named columns."""
    name: Optional[str] = Field(None, description="Table name, if known")
    columns: list[Column] = Field(default_factory=list, description="Columns in CSV order")

    class Config:
        frozen = True

    @field_validator("columns")
    @classmethod
    def _unique_column_names(cls, columns: list[Column]) -> list[Column]:
        seen: set[str] = set()
        for column in columns:
            if column.name in seen:
                raise ValueError(f"duplicate column name {column.name!r}")
            seen.add(column.name)
        return columns

    @classmethod
    def from_portable(cls, value: Any) -> Table:
        """
        Build a Table from its portable JSON value.

        Raises:
            SchemaError: If the value is not a valid portable schema
        """
        try:
            return cls.model_validate(value)
        except ValidationError as e:
            raise SchemaError(f"invalid portable schema: {e}") from e

    @classmethod
    def from_json(cls, text: str) -> Table:
        try:
            value = json.loads(text)
        except json.JSONDecodeError as e:
            raise SchemaError(f"portable schema is not valid JSON: {e}") from e
        return cls.from_portable(value)

    def to_portable(self) -> dict[str, Any]:
        return {"name": self.name, "columns": [c.to_portable() for c in self.columns]}

    def to_json(self) -> str:
        return json.dumps(self.to_portable(), indent=2) + "\n"

    def column_names(self) -> list[str]:
        return [c.name for c in self.columns]

    def column(self, name: str) -> Column:
        for column in self.columns:
            if column.name == name:
                return column
        raise SchemaError(f"table has no column named {name!r}")

    def with_name(self, name: Optional[str]) -> Table:
        return Table(name=name, columns=list(self.columns))
