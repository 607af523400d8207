from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class Environment(str, Enum):
    DEV = "DEV"
    UAT = "UAT"
    PROD = "PROD"

    @classmethod
    def from_string(cls, value: str | None) -> "Environment":
        if value is None or not value.strip():
            raise ValueError("Environment cannot be null or empty")
        key = value.strip().upper()
        if key in ("DEV", "DEVELOPMENT"):
            return cls.DEV
        if key in ("UAT", "TEST", "STAGING"):
            return cls.UAT
        if key in ("PROD", "PRODUCTION"):
            return cls.PROD
        raise ValueError(f"Unknown environment: {value}")


class QueryResult(BaseModel):
    columnNames: list[str] | None = None
    rows: list[list[Any]] | None = None
    rowCount: int = 0
    executionTimeMs: int = 0
    error: str | None = None
    success: bool = False

    @classmethod
    def failed(cls, message: str, execution_time_ms: int) -> "QueryResult":
        return cls(error=message, executionTimeMs=execution_time_ms, success=False)


class ConnectionStatus(BaseModel):
    environment: Environment
    connected: bool
    message: str
    connectionTimeMs: int = 0


class ColumnInfo(BaseModel):
    name: str
    dataType: str
    size: int
    nullable: bool
    defaultValue: str | None = None


class TableSchema(BaseModel):
    schemaName: str
    tableName: str
    columns: list[ColumnInfo] = Field(default_factory=list)
    primaryKeys: list[str] = Field(default_factory=list)


class TableInfo(BaseModel):
    schemaName: str
    tableName: str
    tableType: str = "TABLE"
    rowCount: int = 0
