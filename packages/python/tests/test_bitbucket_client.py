"""Tests for the Bitbucket client with a mocked HTTP transport."""
import json

import httpx
import pytest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from datalens.bitbucket import BitbucketClient
from datalens.common.config import BitbucketConfig, RetryConfig
from datalens.common.errors import UpstreamHTTPError

NO_WAIT = RetryConfig(attempts=3, wait_initial=0.0, wait_max=0.0)

CONFIG = BitbucketConfig(
    enabled=True,
    base_url="https://bitbucket.test",
    token="tok-123",
    default_project="RAID",
)


def make_client(handler):
    return BitbucketClient(CONFIG, retry=NO_WAIT, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_check_connection_sends_bearer_token():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"version": "8.9.0", "displayName": "Bitbucket", "buildNumber": "8009000"})

    client = make_client(handler)
    result = await client.check_connection()
    assert result == {"connected": True, "version": "8.9.0", "displayName": "Bitbucket", "buildNumber": "8009000"}
    assert seen[0].headers["Authorization"] == "Bearer tok-123"
    assert seen[0].url.path == "/rest/api/1.0/application-properties"
    await client.aclose()


@pytest.mark.asyncio
async def test_search_code_scopes_to_project_and_flattens_hits():
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"code": {"values": [
            {
                "repository": {"slug": "raid-service", "project": {"key": "RAID"}},
                "file": {"path": "src/main/java/RaidServiceImpl.java"},
                "hitContexts": [[{"line": 10, "text": "class <em>RaidServiceImpl</em>"}]],
            },
            {
                "repository": {"slug": "raid-ui", "project": {"key": "RAID"}},
                "file": {"path": "README.md"},
                "hitContexts": [{"lines": [{"line": 1, "text": "RaidServiceImpl"}]}],
            },
        ]}})

    client = make_client(handler)
    result = await client.search_code("RaidServiceImpl")

    assert bodies[0]["query"] == "RaidServiceImpl project:RAID"
    assert bodies[0]["entities"]["code"]["limit"] == 25
    assert result["count"] == 2
    assert result["results"][0] == {
        "repository": "raid-service",
        "project": "RAID",
        "filePath": "src/main/java/RaidServiceImpl.java",
        "matchingLines": [{"line": 10, "text": "class <em>RaidServiceImpl</em>"}],
    }
    assert result["results"][1]["matchingLines"] == [{"line": 1, "text": "RaidServiceImpl"}]
    await client.aclose()


@pytest.mark.asyncio
async def test_search_code_limit_is_clamped():
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"code": {"values": []}})

    client = make_client(handler)
    await client.search_code("x", limit=5000)
    await client.search_code("x", limit=0)
    assert bodies[0]["entities"]["code"]["limit"] == 999
    assert bodies[1]["entities"]["code"]["limit"] == 25
    await client.aclose()


@pytest.mark.asyncio
async def test_get_file_content_reads_raw_at_branch():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, text="public class RaidServiceImpl {}")

    client = make_client(handler)
    content = await client.get_file_content("raid-service", "/src/Main.java", branch="develop")
    assert content == "public class RaidServiceImpl {}"
    assert seen[0].url.path == "/rest/api/1.0/projects/RAID/repos/raid-service/raw/src/Main.java"
    assert seen[0].url.params["at"] == "develop"
    await client.aclose()


@pytest.mark.asyncio
async def test_not_found_is_not_retried():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(404, text="No such file")

    client = make_client(handler)
    with pytest.raises(UpstreamHTTPError) as exc_info:
        await client.get_file_content("raid-service", "missing.txt")
    assert exc_info.value.status_code == 404
    assert len(calls) == 1
    await client.aclose()


@pytest.mark.asyncio
async def test_connect_error_is_retried():
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) < 3:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json={"version": "8.9.0"})

    client = make_client(handler)
    result = await client.check_connection()
    assert result["version"] == "8.9.0"
    assert len(calls) == 3
    await client.aclose()
