"""Database tools: read-only queries and environment switching against the configured data source."""
from __future__ import annotations

import logging
from typing import Any

from ...datasource import Environment
from ..tool_registry import ToolContext, ToolSpec

logger = logging.getLogger(__name__)


def _current_env(context: ToolContext) -> str:
    return context.datasource.get_current_environment().value


async def execute_query(context: ToolContext, params: dict[str, Any]) -> dict[str, Any]:
    sql = params.get("sql") or ""
    logger.info(f"Executing query: {sql}")
    context.telemetry.record_chat_request(_current_env(context), "execute_query")
    ds = context.datasource
    return ds.execute_query(sql, ds.get_current_environment(), context.default_schema).model_dump()


async def connect_to_environment(context: ToolContext, params: dict[str, Any]) -> dict[str, Any]:
    env = str(params.get("env") or "")
    logger.info(f"Connecting to environment: {env}")
    context.telemetry.record_chat_request(env.upper() or "UNKNOWN", "connect_to_environment")
    try:
        environment = Environment.from_string(env)
    except ValueError:
        return {
            "connected": False,
            "error": f"Invalid environment: {env}. Valid options: dev, uat, prod",
        }
    return context.datasource.connect_to_environment(environment).model_dump(mode="json")


async def get_current_status(context: ToolContext, params: dict[str, Any]) -> dict[str, Any]:
    context.telemetry.record_chat_request(_current_env(context), "get_current_status")
    env = context.datasource.get_current_environment()
    status = context.datasource.test_connection(env)
    return {
        "currentEnvironment": env.value,
        "connected": status.connected,
        "message": status.message,
        "connectionTimeMs": status.connectionTimeMs,
    }


async def get_table_schema(context: ToolContext, params: dict[str, Any]) -> dict[str, Any]:
    table_name = params.get("table_name") or ""
    schema = params.get("schema") or context.default_schema
    logger.info(f"Getting schema for table: {schema}.{table_name}")
    context.telemetry.record_chat_request(_current_env(context), "get_table_schema")
    table = context.datasource.get_table_schema(table_name, schema)
    if table is None:
        return {"error": f"Table not found: {schema}.{table_name}"}
    return table.model_dump()


async def list_tables(context: ToolContext, params: dict[str, Any]) -> dict[str, Any]:
    schema = params.get("schema") or context.default_schema
    context.telemetry.record_chat_request(_current_env(context), "list_tables")
    tables = context.datasource.list_tables(schema)
    return {
        "schema": schema,
        "tableCount": len(tables),
        "tables": [t.model_dump() for t in tables],
    }


TOOLS: list[ToolSpec] = [
    ToolSpec(
        name="execute_query",
        description=(
            "Execute a SQL SELECT query against the database. Only SELECT queries are allowed. "
            "Always include the schema prefix: SCHEMA_NAME.TABLE_NAME. Use ROWNUM <= N or "
            "FETCH FIRST N ROWS ONLY to limit results. Returns columnNames, rows, rowCount and executionTimeMs."
        ),
        parameters={
            "type": "object",
            "properties": {"sql": {"type": "string", "description": "The SQL SELECT query to execute"}},
            "required": ["sql"],
            "additionalProperties": False,
        },
        handler=execute_query,
        integration="database",
    ),
    ToolSpec(
        name="connect_to_environment",
        description="Connect to a database environment: dev, uat or prod (case-insensitive).",
        parameters={
            "type": "object",
            "properties": {"env": {"type": "string", "description": "dev, uat, or prod"}},
            "required": ["env"],
            "additionalProperties": False,
        },
        handler=connect_to_environment,
        integration="database",
    ),
    ToolSpec(
        name="get_current_status",
        description="Get the currently connected database environment and connection health.",
        parameters={"type": "object", "properties": {}, "additionalProperties": False},
        handler=get_current_status,
        integration="database",
    ),
    ToolSpec(
        name="get_table_schema",
        description="Describe a table: column names, data types, sizes, nullable flags and primary keys.",
        parameters={
            "type": "object",
            "properties": {
                "table_name": {"type": "string", "description": "The table to describe"},
                "schema": {"type": "string", "description": "Schema containing the table (optional)"},
            },
            "required": ["table_name"],
            "additionalProperties": False,
        },
        handler=get_table_schema,
        integration="database",
    ),
    ToolSpec(
        name="list_tables",
        description="List the tables in a schema with their types and approximate row counts.",
        parameters={
            "type": "object",
            "properties": {"schema": {"type": "string", "description": "Schema to list (optional)"}},
            "additionalProperties": False,
        },
        handler=list_tables,
        integration="database",
    ),
]
