"""Tests for the in-memory data source and the environment model."""
import pytest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from datalens.datasource import Environment, MockDataSource
from datalens.telemetry import TelemetryService


@pytest.fixture
def datasource():
    return MockDataSource(TelemetryService())


@pytest.mark.parametrize(
    "value, expected",
    [
        ("dev", Environment.DEV),
        ("Development", Environment.DEV),
        ("UAT", Environment.UAT),
        ("staging", Environment.UAT),
        ("test", Environment.UAT),
        (" prod ", Environment.PROD),
        ("production", Environment.PROD),
    ],
)
def test_environment_from_string(value, expected):
    assert Environment.from_string(value) is expected


@pytest.mark.parametrize("value", [None, "", "  ", "qa"])
def test_environment_from_string_rejects_invalid(value):
    with pytest.raises(ValueError):
        Environment.from_string(value)


def test_select_star(datasource):
    result = datasource.execute_query("SELECT * FROM SCHEMA_A.USERS", Environment.DEV, "SCHEMA_A")
    assert result.success is True
    assert result.columnNames == ["ID", "USERNAME", "EMAIL", "STATUS", "CREATED_AT"]
    assert result.rowCount == 5


def test_select_columns_and_limit(datasource):
    result = datasource.execute_query(
        "select USERNAME, email from users limit 2", Environment.DEV, "SCHEMA_A"
    )
    assert result.columnNames == ["USERNAME", "EMAIL"]
    assert result.rows == [["john_doe", "john@example.com"], ["jane_smith", "jane@example.com"]]


def test_rownum_limits(datasource):
    le = datasource.execute_query("SELECT * FROM ORDERS WHERE ROWNUM <= 3", Environment.DEV, "SCHEMA_A")
    lt = datasource.execute_query("SELECT * FROM ORDERS WHERE ROWNUM < 3", Environment.DEV, "SCHEMA_A")
    assert le.rowCount == 3
    assert lt.rowCount == 2


def test_non_select_is_rejected(datasource):
    result = datasource.execute_query("DELETE FROM USERS", Environment.DEV, "SCHEMA_A")
    assert result.success is False
    assert result.error == "Only SELECT queries are allowed"


def test_unknown_table(datasource):
    result = datasource.execute_query("SELECT * FROM SCHEMA_A.NOPE", Environment.DEV, "SCHEMA_A")
    assert result.success is False
    assert "Table not found: NOPE" in result.error


def test_query_duration_is_recorded():
    telemetry = TelemetryService()
    ds = MockDataSource(telemetry)
    ds.execute_query("SELECT * FROM PRODUCTS", Environment.UAT, "SCHEMA_A")
    assert telemetry.snapshot()["performance"]["maxQueryDurationMs"] >= 0


def test_connect_switches_environment(datasource):
    assert datasource.get_current_environment() is Environment.DEV
    status = datasource.connect_to_environment(Environment.PROD)
    assert status.connected is True
    assert datasource.get_current_environment() is Environment.PROD


def test_schema_and_table_listing(datasource):
    tables = datasource.list_tables("SCHEMA_B")
    assert {t.tableName for t in tables} == {"USERS", "ORDERS", "PRODUCTS"}
    assert all(t.schemaName == "SCHEMA_B" for t in tables)

    schema = datasource.get_table_schema("orders", "SCHEMA_A")
    assert schema.primaryKeys == ["ORDER_ID"]
    assert [c.name for c in schema.columns][:2] == ["ORDER_ID", "USER_ID"]
    assert datasource.get_table_schema("missing", "SCHEMA_A") is None
