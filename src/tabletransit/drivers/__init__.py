"""
Drivers and the scheme registry.

Importing this package registers every built-in driver:

    csv:               local CSV file, directory or stdio
    file:              local directory of CSV files
    gs:                Google Cloud Storage directory
    bigquery:          BigQuery table
    bigquery-schema:   BigQuery JSON schema file
    postgres:          PostgreSQL table
    postgres-sql:      PostgreSQL CREATE TABLE script
    duckdb:            DuckDB table
    portable-schema:   portable JSON schema file
"""

from . import bigquery, csv, duckdb, file, gs, portable_schema, postgres, postgres_sql  # noqa: F401
from .bigquery import schema_file  # noqa: F401
from .registry import all_drivers, driver_for, parse_locator, register, scheme_of

__all__ = ["all_drivers", "driver_for", "parse_locator", "register", "scheme_of"]
