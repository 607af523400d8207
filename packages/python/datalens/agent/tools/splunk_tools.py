"""Splunk tools: connection check, environment index lookup, SPL search and metadata listing."""
from __future__ import annotations

import logging
from typing import Any

from ...splunk import format_query_response
from ..tool_registry import ToolContext, ToolSpec

logger = logging.getLogger(__name__)


async def splunk_check_connection(context: ToolContext, params: dict[str, Any]) -> dict[str, Any]:
    logger.info("Checking Splunk connection")
    try:
        return await context.splunk.check_connection()
    except Exception as e:
        logger.error(f"Splunk connection check failed: {e}")
        return {"connected": False, "error": str(e)}


async def splunk_get_index_for_environment(context: ToolContext, params: dict[str, Any]) -> dict[str, Any]:
    env = str(params.get("env") or "")
    index_map = context.splunk.environment_index_map
    index = index_map.get(env.strip().lower())
    if index is None:
        return {"error": f"Unknown environment: {env}. Valid: {sorted(index_map)}"}
    return {"environment": env, "index": index}


async def splunk_execute_query(context: ToolContext, params: dict[str, Any]) -> dict[str, Any]:
    query = params.get("query") or ""
    if not query.strip():
        return {"error": "query is required"}
    max_results = context.splunk.config.max_results
    requested = params.get("max_results")
    if isinstance(requested, int) and requested > 0:
        max_results = min(requested, max_results)
    context.telemetry.record_chat_request("SPLUNK", "splunk_execute_query")
    results = await context.splunk.execute_query(
        query,
        earliest_time=params.get("earliest_time"),
        latest_time=params.get("latest_time"),
        max_results=max_results,
    )
    # A result set that fills the cap exactly is reported as truncated.
    return format_query_response(results, max_results, truncated=len(results) >= max_results)


async def splunk_get_available_indexes(context: ToolContext, params: dict[str, Any]) -> dict[str, Any]:
    return {"indexes": await context.splunk.get_available_indexes()}


async def splunk_get_sourcetypes(context: ToolContext, params: dict[str, Any]) -> dict[str, Any]:
    sourcetypes = await context.splunk.get_sourcetypes(params.get("index") or None)
    return {"sourcetypes": sourcetypes, "count": len(sourcetypes)}


TOOLS: list[ToolSpec] = [
    ToolSpec(
        name="splunk_check_connection",
        description=(
            "Check the connection to Splunk and return server information (server name, version, OS). "
            "Use this to verify Splunk is accessible before running queries."
        ),
        parameters={"type": "object", "properties": {}, "additionalProperties": False},
        handler=splunk_check_connection,
        integration="splunk",
    ),
    ToolSpec(
        name="splunk_get_index_for_environment",
        description=(
            "Get the Splunk index name for an environment (uat or prod). "
            "Use this before querying to target the correct index."
        ),
        parameters={
            "type": "object",
            "properties": {"env": {"type": "string", "description": "The environment name: uat or prod"}},
            "required": ["env"],
            "additionalProperties": False,
        },
        handler=splunk_get_index_for_environment,
        integration="splunk",
    ),
    ToolSpec(
        name="splunk_execute_query",
        description=(
            "Execute a Splunk SPL query and return results with an analysis summary. For queries like "
            "'index=myindex error' the 'search' command is added automatically. Large result sets include "
            "severity distribution, timeline, top hosts/sources/sourcetypes and top messages. "
            "Truncated results include guidance to narrow the query."
        ),
        parameters={
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "The SPL query to execute"},
                "earliest_time": {"type": "string", "description": "Earliest time, e.g. -1h, -7d (optional, default -30d)"},
                "latest_time": {"type": "string", "description": "Latest time, e.g. now, -1h (optional, default now)"},
                "max_results": {"type": "integer", "description": "Maximum results to return (optional)"},
            },
            "required": ["query"],
            "additionalProperties": False,
        },
        handler=splunk_execute_query,
        integration="splunk",
    ),
    ToolSpec(
        name="splunk_get_available_indexes",
        description="List Splunk indexes with total event count, current size in MB and disabled status.",
        parameters={"type": "object", "properties": {}, "additionalProperties": False},
        handler=splunk_get_available_indexes,
        integration="splunk",
    ),
    ToolSpec(
        name="splunk_get_sourcetypes",
        description="List sourcetypes seen in the last 24 hours, optionally filtered by index.",
        parameters={
            "type": "object",
            "properties": {"index": {"type": "string", "description": "Index to filter by (optional)"}},
            "additionalProperties": False,
        },
        handler=splunk_get_sourcetypes,
        integration="splunk",
    ),
]
