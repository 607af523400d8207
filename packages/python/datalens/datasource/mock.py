"""
In-memory stand-in for the reporting database: three small tables and a
regex-level SELECT interpreter (table, column list, LIMIT / ROWNUM).
"""
from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Protocol

from ..telemetry import TelemetryService, get_telemetry
from .models import ColumnInfo, ConnectionStatus, Environment, QueryResult, TableInfo, TableSchema

logger = logging.getLogger(__name__)

_FROM_RE = re.compile(r"FROM\s+(?:\w+\.)?(\w+)", re.IGNORECASE)
_SELECT_RE = re.compile(r"SELECT\s+(.+?)\s+FROM", re.IGNORECASE | re.DOTALL)
_LIMIT_RE = re.compile(r"(?:LIMIT\s+|ROWNUM\s*(<=?)\s*)(\d+)", re.IGNORECASE)


class DataSourceProvider(Protocol):
    def execute_query(self, sql: str, env: Environment, schema: str) -> QueryResult: ...
    def test_connection(self, env: Environment) -> ConnectionStatus: ...
    def connect_to_environment(self, env: Environment) -> ConnectionStatus: ...
    def get_current_environment(self) -> Environment: ...
    def list_tables(self, schema: str) -> list[TableInfo]: ...
    def get_table_schema(self, table_name: str, schema: str) -> TableSchema | None: ...


@dataclass(frozen=True)
class _MockTable:
    columns: list[str]
    rows: list[list[Any]]
    column_infos: list[ColumnInfo]
    primary_keys: list[str]


def _col(name: str, data_type: str, size: int, nullable: bool = False, default: str | None = None) -> ColumnInfo:
    return ColumnInfo(name=name, dataType=data_type, size=size, nullable=nullable, defaultValue=default)


def _mock_tables() -> dict[str, _MockTable]:
    return {
        "USERS": _MockTable(
            columns=["ID", "USERNAME", "EMAIL", "STATUS", "CREATED_AT"],
            rows=[
                [1, "john_doe", "john@example.com", "ACTIVE", "2024-01-15"],
                [2, "jane_smith", "jane@example.com", "ACTIVE", "2024-02-20"],
                [3, "bob_wilson", "bob@example.com", "INACTIVE", "2024-03-10"],
                [4, "alice_jones", "alice@example.com", "ACTIVE", "2024-04-05"],
                [5, "charlie_brown", "charlie@example.com", "PENDING", "2024-05-12"],
            ],
            column_infos=[
                _col("ID", "NUMBER", 10),
                _col("USERNAME", "VARCHAR2", 50),
                _col("EMAIL", "VARCHAR2", 100),
                _col("STATUS", "VARCHAR2", 20, default="'PENDING'"),
                _col("CREATED_AT", "DATE", 7, nullable=True, default="SYSDATE"),
            ],
            primary_keys=["ID"],
        ),
        "ORDERS": _MockTable(
            columns=["ORDER_ID", "USER_ID", "PRODUCT_ID", "QUANTITY", "TOTAL_AMOUNT", "ORDER_DATE"],
            rows=[
                [1001, 1, 101, 2, 59.98, "2024-06-01"],
                [1002, 2, 102, 1, 149.99, "2024-06-02"],
                [1003, 1, 103, 3, 89.97, "2024-06-03"],
                [1004, 4, 101, 1, 29.99, "2024-06-04"],
                [1005, 3, 104, 2, 199.98, "2024-06-05"],
                [1006, 2, 105, 1, 499.99, "2024-06-06"],
                [1007, 5, 102, 2, 299.98, "2024-06-07"],
            ],
            column_infos=[
                _col("ORDER_ID", "NUMBER", 10),
                _col("USER_ID", "NUMBER", 10),
                _col("PRODUCT_ID", "NUMBER", 10),
                _col("QUANTITY", "NUMBER", 5, default="1"),
                _col("TOTAL_AMOUNT", "NUMBER", 10),
                _col("ORDER_DATE", "DATE", 7, default="SYSDATE"),
            ],
            primary_keys=["ORDER_ID"],
        ),
        "PRODUCTS": _MockTable(
            columns=["PRODUCT_ID", "NAME", "CATEGORY", "PRICE", "STOCK_QUANTITY"],
            rows=[
                [101, "Wireless Mouse", "Electronics", 29.99, 150],
                [102, "Mechanical Keyboard", "Electronics", 149.99, 75],
                [103, "USB-C Hub", "Electronics", 29.99, 200],
                [104, "Monitor Stand", "Accessories", 99.99, 50],
                [105, "Webcam 4K", "Electronics", 499.99, 30],
            ],
            column_infos=[
                _col("PRODUCT_ID", "NUMBER", 10),
                _col("NAME", "VARCHAR2", 100),
                _col("CATEGORY", "VARCHAR2", 50),
                _col("PRICE", "NUMBER", 10),
                _col("STOCK_QUANTITY", "NUMBER", 10, default="0"),
            ],
            primary_keys=["PRODUCT_ID"],
        ),
    }


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class MockDataSource:
    def __init__(self, telemetry: TelemetryService | None = None):
        self._telemetry = telemetry or get_telemetry()
        self._current = Environment.DEV
        self._tables = _mock_tables()
        logger.info(f"Mock data initialized with {len(self._tables)} tables")

    def execute_query(self, sql: str, env: Environment, schema: str) -> QueryResult:
        start = time.monotonic()
        if not sql.strip().upper().startswith("SELECT"):
            return QueryResult.failed("Only SELECT queries are allowed", _elapsed_ms(start))
        try:
            columns, rows = self._run_select(sql)
        except ValueError as e:
            logger.error(f"Mock query execution failed: {e}")
            return QueryResult.failed(str(e), _elapsed_ms(start))
        elapsed = _elapsed_ms(start)
        self._telemetry.record_query_duration(env.value, elapsed)
        return QueryResult(
            columnNames=columns,
            rows=rows,
            rowCount=len(rows),
            executionTimeMs=elapsed,
            success=True,
        )

    def _run_select(self, sql: str) -> tuple[list[str], list[list[Any]]]:
        match = _FROM_RE.search(sql)
        if not match:
            raise ValueError("Could not parse table name from query")
        table_name = match.group(1).upper()
        table = self._tables.get(table_name)
        if table is None:
            raise ValueError(f"Table not found: {table_name}")

        columns = list(table.columns)
        rows = [list(r) for r in table.rows]

        select = _SELECT_RE.search(sql)
        if select and select.group(1).strip() != "*":
            wanted = [c.strip().upper() for c in select.group(1).split(",")]
            picked = [(c, table.columns.index(c)) for c in wanted if c in table.columns]
            if picked:
                columns = [c for c, _ in picked]
                rows = [[row[i] for _, i in picked] for row in rows]

        limit = _LIMIT_RE.search(sql)
        if limit:
            n = int(limit.group(2))
            if limit.group(1) == "<":
                n -= 1
            rows = rows[: max(0, n)]
        return columns, rows

    def test_connection(self, env: Environment) -> ConnectionStatus:
        return ConnectionStatus(
            environment=env,
            connected=True,
            message=f"[MOCK] Connection successful to {env.value}",
            connectionTimeMs=50,
        )

    def connect_to_environment(self, env: Environment) -> ConnectionStatus:
        self._current = env
        logger.info(f"[MOCK] Connected to {env.value} environment")
        return ConnectionStatus(
            environment=env,
            connected=True,
            message=f"[MOCK] Successfully connected to {env.value}",
            connectionTimeMs=100,
        )

    def get_current_environment(self) -> Environment:
        return self._current

    def list_tables(self, schema: str) -> list[TableInfo]:
        return [
            TableInfo(schemaName=schema, tableName=name, rowCount=len(table.rows))
            for name, table in self._tables.items()
        ]

    def get_table_schema(self, table_name: str, schema: str) -> TableSchema | None:
        table = self._tables.get(table_name.upper())
        if table is None:
            return None
        return TableSchema(
            schemaName=schema,
            tableName=table_name,
            columns=list(table.column_infos),
            primaryKeys=list(table.primary_keys),
        )
