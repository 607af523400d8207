"""Tests for agent tool registry: definitions, availability and dispatch error contract."""
import json
import pytest
from unittest.mock import AsyncMock, MagicMock

# Import from packages/python context
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).resolve().parents[2]))
from datalens.agent.tool_registry import (
    ToolContext,
    ToolRegistry,
    ToolSpec,
    build_default_registry,
    execute_tool,
)
from datalens.common.config import SplunkConfig
from datalens.common.errors import JobTimeoutError
from datalens.datasource import MockDataSource
from datalens.telemetry import TelemetryService

DATABASE_TOOLS = {"execute_query", "connect_to_environment", "get_current_status", "get_table_schema", "list_tables"}


@pytest.fixture
def telemetry():
    return TelemetryService()


@pytest.fixture
def context(telemetry):
    return ToolContext(datasource=MockDataSource(telemetry), telemetry=telemetry)


@pytest.fixture
def splunk():
    client = MagicMock()
    client.config = SplunkConfig(enabled=True, max_results=5)
    client.environment_index_map = {"uat": "index_app_fxs_uat", "prod": "index_app_fxs"}
    client.execute_query = AsyncMock(return_value=[])
    client.check_connection = AsyncMock(return_value={"connected": True})
    client.get_sourcetypes = AsyncMock(return_value=[{"sourcetype": "app_log"}])
    return client


async def call(registry, name, args="{}"):
    return json.loads(await execute_tool(registry, name, args))


def test_only_enabled_integrations_are_advertised(context):
    registry = build_default_registry(context)
    names = {t["function"]["name"] for t in registry.definitions}
    assert names == DATABASE_TOOLS


def test_tool_definitions_have_required_fields(context, splunk):
    context.splunk = splunk
    context.bitbucket = MagicMock()
    context.outlook = MagicMock()
    registry = build_default_registry(context)
    assert len(registry.definitions) == 15
    for t in registry.definitions:
        assert t["type"] == "function"
        fn = t["function"]
        assert fn["name"] and fn["description"]
        assert fn["parameters"]["type"] == "object"


def test_duplicate_tool_name_is_rejected(context):
    async def handler(ctx, params):
        return {}

    spec = ToolSpec(name="x", description="x", parameters={"type": "object"}, handler=handler, integration="database")
    registry = ToolRegistry(context, [spec])
    with pytest.raises(ValueError):
        registry.register(spec)


@pytest.mark.asyncio
async def test_unknown_tool_returns_error(context):
    registry = build_default_registry(context)
    assert await call(registry, "nonexistent_tool") == {"error": "Unknown tool: nonexistent_tool"}


@pytest.mark.asyncio
async def test_disabled_integration_returns_not_available(context):
    registry = build_default_registry(context)
    result = await call(registry, "splunk_execute_query", '{"query": "index=main"}')
    assert result == {"error": "Splunk tools not available. Enable the splunk integration."}
    result = await call(registry, "outlook_get_email_chain", "{}")
    assert result == {"error": "Outlook tools not available. Enable the outlook integration."}


@pytest.mark.asyncio
async def test_invalid_arguments(context):
    registry = build_default_registry(context)
    result = await call(registry, "execute_query", "{not json")
    assert result["error"].startswith("Invalid JSON arguments")
    result = await call(registry, "execute_query", "[1, 2]")
    assert result == {"error": "Invalid arguments: expected a JSON object"}


@pytest.mark.asyncio
async def test_handler_failure_becomes_error_payload(context, telemetry):
    async def broken(ctx, params):
        raise RuntimeError("driver exploded")

    registry = ToolRegistry(context, [
        ToolSpec(name="broken", description="b", parameters={"type": "object"}, handler=broken, integration="database"),
    ])
    result = await call(registry, "broken")
    assert result == {"error": "Tool execution failed: driver exploded"}
    assert telemetry.snapshot()["errors"]["byType"] == {"RuntimeError:broken": 1}


@pytest.mark.asyncio
async def test_execute_query_and_environment_tools(context, telemetry):
    registry = build_default_registry(context)

    result = await call(registry, "execute_query", {"sql": "SELECT NAME FROM PRODUCTS WHERE ROWNUM <= 2"})
    assert result["success"] is True
    assert result["rows"] == [["Wireless Mouse"], ["Mechanical Keyboard"]]

    result = await call(registry, "connect_to_environment", '{"env": "production"}')
    assert result["connected"] is True
    assert result["environment"] == "PROD"

    status = await call(registry, "get_current_status")
    assert status["currentEnvironment"] == "PROD"

    result = await call(registry, "connect_to_environment", '{"env": "qa"}')
    assert result == {"connected": False, "error": "Invalid environment: qa. Valid options: dev, uat, prod"}

    assert telemetry.requests_by_tool()["execute_query"] == 1
    assert telemetry.requests_by_environment()["DEV"] == 1


@pytest.mark.asyncio
async def test_schema_tools_default_to_configured_schema(context):
    context.default_schema = "SCHEMA_X"
    registry = build_default_registry(context)
    tables = await call(registry, "list_tables")
    assert tables["schema"] == "SCHEMA_X"
    assert tables["tableCount"] == 3
    schema = await call(registry, "get_table_schema", '{"table_name": "USERS"}')
    assert schema["schemaName"] == "SCHEMA_X"
    missing = await call(registry, "get_table_schema", '{"table_name": "NOPE"}')
    assert missing == {"error": "Table not found: SCHEMA_X.NOPE"}


@pytest.mark.asyncio
async def test_splunk_query_exactly_at_cap_is_truncated(context, splunk):
    context.splunk = splunk
    registry = build_default_registry(context)

    splunk.execute_query.return_value = [{"_raw": f"e{i}"} for i in range(5)]
    result = await call(registry, "splunk_execute_query", '{"query": "index=main"}')
    assert result["totalResults"] == 5
    assert result["truncated"] is True
    assert "truncation_guidance" in result

    splunk.execute_query.return_value = [{"_raw": f"e{i}"} for i in range(4)]
    result = await call(registry, "splunk_execute_query", '{"query": "index=main"}')
    assert result["truncated"] is False

    splunk.execute_query.return_value = [{"_raw": "e0"}, {"_raw": "e1"}]
    result = await call(registry, "splunk_execute_query", '{"query": "index=main", "max_results": 2}')
    assert result["truncated"] is True
    assert splunk.execute_query.await_args.kwargs["max_results"] == 2


@pytest.mark.asyncio
async def test_splunk_timeout_surfaces_as_tool_error(context, splunk):
    context.splunk = splunk
    splunk.execute_query.side_effect = JobTimeoutError("Splunk query timed out after 300s")
    registry = build_default_registry(context)
    result = await call(registry, "splunk_execute_query", '{"query": "index=main"}')
    assert result == {"error": "Tool execution failed: Splunk query timed out after 300s"}


@pytest.mark.asyncio
async def test_splunk_index_and_connection_tools(context, splunk):
    context.splunk = splunk
    registry = build_default_registry(context)
    assert await call(registry, "splunk_get_index_for_environment", '{"env": "UAT"}') == {
        "environment": "UAT",
        "index": "index_app_fxs_uat",
    }
    unknown = await call(registry, "splunk_get_index_for_environment", '{"env": "dev"}')
    assert unknown["error"].startswith("Unknown environment: dev")

    splunk.check_connection.side_effect = RuntimeError("connection refused")
    assert await call(registry, "splunk_check_connection") == {"connected": False, "error": "connection refused"}

    sourcetypes = await call(registry, "splunk_get_sourcetypes", '{"index": "main"}')
    assert sourcetypes == {"sourcetypes": [{"sourcetype": "app_log"}], "count": 1}
    splunk.get_sourcetypes.assert_awaited_with("main")


@pytest.mark.asyncio
async def test_bitbucket_read_file(context):
    bitbucket = MagicMock()
    bitbucket.get_file_content = AsyncMock(return_value="print('hi')")
    context.bitbucket = bitbucket
    registry = build_default_registry(context)
    result = await call(registry, "bitbucket_read_file", '{"repo_slug": "svc", "file_path": "main.py"}')
    assert result == {"repository": "svc", "filePath": "main.py", "content": "print('hi')"}
    bitbucket.get_file_content.assert_awaited_once_with("svc", "main.py", None)


@pytest.mark.asyncio
async def test_outlook_no_results_returns_guidance(context):
    outlook = MagicMock()
    outlook.search_emails = AsyncMock(return_value={
        "status": "success",
        "search_text": "INC-999",
        "summary": {"total_emails": 0},
        "conversations": [],
    })
    context.outlook = outlook
    registry = build_default_registry(context)
    result = await call(registry, "outlook_get_email_chain", '{"search_text": "INC-999"}')
    assert result["total_emails"] == 0
    assert "INC-999" in result["guidance"]
    outlook.search_emails.assert_awaited_once_with("INC-999", True, True)
