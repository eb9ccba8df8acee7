"""Scheme registry and locator parsing."""

from __future__ import annotations

import pytest

from tabletransit.drivers import all_drivers, parse_locator, register, scheme_of
from tabletransit.drivers.bigquery import BigQueryLocator
from tabletransit.drivers.csv import CsvLocator
from tabletransit.drivers.gs import GsLocator
from tabletransit.errors import LocatorParseError


def test_builtin_drivers_registered():
    assert list(all_drivers()) == sorted(
        [
            "bigquery-schema:",
            "bigquery:",
            "csv:",
            "duckdb:",
            "file:",
            "gs:",
            "portable-schema:",
            "postgres-sql:",
            "postgres:",
        ]
    )


@pytest.mark.parametrize(
    "url,cls",
    [
        ("csv:./orders.csv", CsvLocator),
        ("gs://bucket/exports/", GsLocator),
        ("bigquery:my-project:sales.orders", BigQueryLocator),
    ],
)
def test_parse_dispatches_on_scheme(url, cls):
    locator = parse_locator(url)

    assert isinstance(locator, cls)
    assert str(locator) == url


def test_scheme_of():
    assert scheme_of("gs://bucket/") == "gs:"
    assert scheme_of("postgres-sql:out.sql") == "postgres-sql:"
    with pytest.raises(LocatorParseError, match="missing scheme"):
        scheme_of("orders.csv")


def test_unknown_scheme():
    with pytest.raises(LocatorParseError, match="unsupported scheme s3:"):
        parse_locator("s3://bucket/")


def test_duplicate_scheme_rejected():
    class AnotherCsv(CsvLocator):
        pass

    with pytest.raises(ValueError, match="already registered"):
        register(AnotherCsv)
