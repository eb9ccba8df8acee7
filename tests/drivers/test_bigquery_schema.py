"""BigQuery column/table mapping and generated SQL."""

from __future__ import annotations

import io

import pytest

from tabletransit.domain.enums import Usage
from tabletransit.domain.schema import Column, DataType, StructField, Table
from tabletransit.drivers.bigquery.column import BqColumn, BqDataType, BqScalarType
from tabletransit.drivers.bigquery.names import DatasetName, TableName, quote_ident
from tabletransit.drivers.bigquery.table import BqTable, table_can_import_from_csv
from tabletransit.errors import LocatorParseError, SchemaError

FINAL = TableName.parse("my-project:sales.orders")
TEMP = TableName.parse("my-project:scratch.orders_temp_abc")


def int64s() -> DataType:
    return DataType.array_of(DataType.scalar("int64"))


def mapped(columns, usage=Usage.FINAL_TABLE, name=FINAL) -> BqTable:
    return BqTable.for_table_name_and_columns(name, columns, usage)


def sql_of(write, *args) -> str:
    f = io.StringIO()
    write(f, *args)
    return f.getvalue()


def test_table_name_parsing():
    assert FINAL.dotted() == "my-project.sales.orders"
    assert FINAL.quoted() == "`my-project.sales.orders`"
    assert str(FINAL) == "my-project:sales.orders"
    assert TableName.parse("p:d.t").project == "p"
    assert DatasetName.parse("my-project:scratch").table("x") == TableName("my-project", "scratch", "x")

    for bad in ["sales.orders", "my-project:orders", "my-project:sales.", "My Project:sales.orders"]:
        with pytest.raises(LocatorParseError):
            TableName.parse(bad)


def test_temporary_table_name():
    temp = FINAL.temporary_table_name()
    elsewhere = FINAL.temporary_table_name(DatasetName.parse("my-project:scratch"))

    assert temp.dataset == "sales"
    assert temp.table.startswith("orders_temp_")
    assert elsewhere.dataset == "scratch"
    assert temp != FINAL.temporary_table_name()


def test_quote_ident_escapes():
    assert quote_ident("order") == "`order`"
    assert quote_ident("we`ird\\name") == "`we\\`ird\\\\name`"


def test_portable_mapping():
    table = mapped([
        Column(name="id", data_type=DataType.scalar("int32"), is_nullable=False),
        Column(name="price", data_type=DataType.scalar("decimal")),
        Column(name="seen_at", data_type=DataType.scalar("timestamp_without_time_zone")),
        Column(name="where", data_type=DataType.geo_json()),
        Column(name="tags", data_type=DataType.array_of(DataType.scalar("text"))),
    ])

    assert [c.data_type.to_sql() for c in table.columns] == [
        "INT64", "NUMERIC", "DATETIME", "GEOGRAPHY", "ARRAY<STRING>",
    ]


def test_temp_table_holds_compound_values_as_text():
    column = Column(name="nums", data_type=int64s())

    assert BqColumn.for_column(column, Usage.TEMP_TABLE).data_type == BqDataType(scalar=BqScalarType.STRING)
    assert BqColumn.for_column(column, Usage.FINAL_TABLE).needs_import_udf


def test_nested_arrays_are_rejected():
    column = Column(name="grid", data_type=DataType.array_of(int64s()))

    with pytest.raises(SchemaError, match="nested arrays"):
        BqColumn.for_column(column, Usage.FINAL_TABLE)


def test_json_schema_descriptors():
    table = mapped([
        Column(name="id", data_type=DataType.scalar("int64"), is_nullable=False, comment="primary key"),
        Column(name="nums", data_type=int64s()),
        Column(
            name="meta",
            data_type=DataType.struct_of([StructField(name="k", data_type=DataType.scalar("text"))]),
        ),
    ])

    assert table.to_json_schema() == [
        {"name": "id", "type": "INT64", "mode": "REQUIRED", "description": "primary key"},
        {"name": "nums", "type": "INT64", "mode": "REPEATED"},
        {
            "name": "meta",
            "type": "RECORD",
            "mode": "NULLABLE",
            "fields": [{"name": "k", "type": "STRING", "mode": "NULLABLE"}],
        },
    ]


def test_json_schema_accepts_legacy_type_names():
    table = BqTable.from_json_schema(FINAL, [
        {"name": "n", "type": "INTEGER"},
        {"name": "ok", "type": "BOOLEAN", "mode": "REQUIRED"},
        {"name": "x", "type": "FLOAT", "mode": "REPEATED"},
    ])

    portable = table.to_portable()
    assert portable.name == "orders"
    assert [c.data_type for c in portable.columns] == [
        DataType.scalar("int64"), DataType.scalar("bool"), DataType.array_of(DataType.scalar("float64")),
    ]
    assert portable.column("ok").is_nullable is False


def test_unsupported_json_schema_type():
    with pytest.raises(SchemaError, match="unsupported BigQuery type"):
        BqTable.from_json_schema(FINAL, [{"name": "b", "type": "BYTES"}])


def test_json_schema_round_trip_for_lossless_types():
    portable = Table(name="orders", columns=[
        Column(name="id", data_type=DataType.scalar("int64"), is_nullable=False),
        Column(name="total", data_type=DataType.scalar("decimal")),
        Column(name="placed", data_type=DataType.scalar("timestamp_with_time_zone")),
        Column(name="where", data_type=DataType.geo_json()),
        Column(name="tags", data_type=DataType.array_of(DataType.scalar("text"))),
    ])

    schema = mapped(portable.columns).to_json_schema()

    assert BqTable.from_json_schema(FINAL, schema).to_portable() == portable


def test_import_sql_quotes_reserved_words():
    columns = [
        Column(name="order", data_type=DataType.scalar("int64")),
        Column(name="name", data_type=DataType.scalar("text")),
    ]
    final = mapped(columns)
    temp = mapped(columns, Usage.TEMP_TABLE, TEMP)

    sql = sql_of(final.write_import_sql, temp)

    assert sql == "SELECT `order`, `name` FROM `my-project.scratch.orders_temp_abc`\n"


def test_array_column_uses_exactly_one_udf():
    columns = [
        Column(name="id", data_type=DataType.scalar("int64")),
        Column(name="nums", data_type=int64s()),
    ]
    final = mapped(columns)
    temp = mapped(columns, Usage.TEMP_TABLE, TEMP)

    assert not table_can_import_from_csv(Table(columns=columns))
    assert not final.can_import_from_csv()
    assert temp.can_import_from_csv()

    sql = sql_of(final.write_import_sql, temp)

    assert sql.count("CREATE TEMP FUNCTION") == 1
    assert sql.count("ImportJson_1(") == 2
    assert "RETURNS ARRAY<INT64>" in sql
    assert "CAST(JSON_VALUE(element_0) AS INT64)" in sql
    assert "UNNEST(JSON_QUERY_ARRAY(input))" in sql
    assert sql.rstrip().endswith("SELECT `id`, ImportJson_1(`nums`) AS `nums` FROM `my-project.scratch.orders_temp_abc`")


def test_struct_import_expression():
    data_type = BqDataType.for_data_type(
        DataType.struct_of([
            StructField(name="lat", data_type=DataType.scalar("float64")),
            StructField(name="label", data_type=DataType.scalar("text")),
        ]),
        Usage.FINAL_TABLE,
    )

    assert data_type.import_expr("input") == (
        "STRUCT(CAST(JSON_VALUE(JSON_QUERY(input, '$.\"lat\"')) AS FLOAT64) AS `lat`, "
        "JSON_VALUE(JSON_QUERY(input, '$.\"label\"')) AS `label`)"
    )


def test_nested_json_is_imported_as_json_text():
    columns = [
        Column(name="docs", data_type=DataType.array_of(DataType.scalar("json"))),
        Column(
            name="s",
            data_type=DataType.struct_of([
                StructField(name="meta", data_type=DataType.scalar("json")),
                StructField(name="label", data_type=DataType.scalar("text")),
            ]),
        ),
    ]
    final = mapped(columns)
    temp = mapped(columns, Usage.TEMP_TABLE, TEMP)

    sql = sql_of(final.write_import_sql, temp)

    assert "ARRAY(SELECT element_0 FROM UNNEST(JSON_QUERY_ARRAY(input)) AS element_0)" in sql
    assert (
        "STRUCT(JSON_QUERY(input, '$.\"meta\"') AS `meta`, "
        "JSON_VALUE(JSON_QUERY(input, '$.\"label\"')) AS `label`)"
    ) in sql
    assert "JSON_VALUE(element_0)" not in sql
    assert "RETURNS ARRAY<STRING>" in sql


def test_import_sql_requires_matching_columns():
    final = mapped([Column(name="a", data_type=DataType.scalar("text"))])
    temp = mapped([Column(name="b", data_type=DataType.scalar("text"))], Usage.TEMP_TABLE, TEMP)

    with pytest.raises(SchemaError, match="do not match"):
        sql_of(final.write_import_sql, temp)
    with pytest.raises(SchemaError, match="final table"):
        sql_of(temp.write_import_sql, temp)


def test_merge_sql():
    columns = [
        Column(name="id", data_type=DataType.scalar("int64")),
        Column(name="qty", data_type=DataType.scalar("int64")),
    ]
    final = mapped(columns)
    temp = mapped(columns, Usage.TEMP_TABLE, TEMP)

    sql = sql_of(final.write_merge_sql, temp, ("id",))

    assert sql == (
        "MERGE INTO `my-project.sales.orders` AS target\n"
        "USING (SELECT `id`, `qty` FROM `my-project.scratch.orders_temp_abc`) AS source\n"
        "ON target.`id` = source.`id`\n"
        "WHEN MATCHED THEN UPDATE SET `qty` = source.`qty`\n"
        "WHEN NOT MATCHED THEN INSERT (`id`, `qty`) VALUES (source.`id`, source.`qty`)\n"
    )
    with pytest.raises(SchemaError, match="sku"):
        sql_of(final.write_merge_sql, temp, ("sku",))


def test_export_sql_flattens_compound_columns():
    table = mapped([
        Column(name="id", data_type=DataType.scalar("int64")),
        Column(name="nums", data_type=int64s()),
        Column(name="where", data_type=DataType.geo_json()),
    ])

    assert sql_of(table.write_export_sql, "id > 10") == (
        "SELECT `id`, TO_JSON_STRING(`nums`) AS `nums`, ST_ASGEOJSON(`where`) AS `where` "
        "FROM `my-project.sales.orders` WHERE id > 10\n"
    )
