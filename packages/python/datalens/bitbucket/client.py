"""
Bitbucket Data Center REST client: code search across the default project and
raw file reads. Authenticates with a static bearer token; every call runs under
the shared HTTP retry policy.
"""
from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from ..common.config import BitbucketConfig, RetryConfig
from ..common.http import raise_for_status, send_with_retry

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_LIMIT = 25
MAX_SEARCH_LIMIT = 999


def _hit_lines(hit_contexts: Any) -> list[dict[str, Any]]:
    # Contexts come back either as {"lines": [...]} objects or as bare lists of lines.
    out = []
    for ctx in hit_contexts or []:
        lines = ctx.get("lines") if isinstance(ctx, dict) else ctx
        for line in lines or []:
            out.append({"line": line.get("line"), "text": line.get("text")})
    return out


class BitbucketClient:
    def __init__(
        self,
        config: BitbucketConfig,
        retry: RetryConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config
        self._retry = retry or RetryConfig()
        self._client = httpx.AsyncClient(
            base_url=config.base_url,
            headers={"Authorization": f"Bearer {config.token}", "Accept": "application/json"},
            timeout=httpx.Timeout(config.read_timeout_secs, connect=config.connect_timeout_secs),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        async def send() -> httpx.Response:
            return raise_for_status(await self._client.request(method, path, **kwargs))

        return await send_with_retry(send, self._retry, f"Bitbucket {method} {path}")

    async def check_connection(self) -> dict[str, Any]:
        data = (await self._request("GET", "/rest/api/1.0/application-properties")).json()
        return {
            "connected": True,
            "version": data.get("version"),
            "displayName": data.get("displayName"),
            "buildNumber": data.get("buildNumber"),
        }

    async def search_code(self, query: str, limit: int | None = None) -> dict[str, Any]:
        effective = min(limit, MAX_SEARCH_LIMIT) if limit and limit > 0 else DEFAULT_SEARCH_LIMIT
        full_query = query
        if self.config.default_project:
            full_query = f"{query} project:{self.config.default_project}"
        logger.info(f"Searching Bitbucket code: query='{full_query}', limit={effective}")
        body = {"query": full_query, "entities": {"code": {"start": 0, "limit": effective}}}
        data = (await self._request("POST", "/rest/search/latest/search", json=body)).json()

        results = []
        for value in (data.get("code") or {}).get("values") or []:
            repo = value.get("repository") or {}
            lines = _hit_lines(value.get("hitContexts"))
            results.append({
                "repository": repo.get("slug"),
                "project": (repo.get("project") or {}).get("key"),
                "filePath": (value.get("file") or {}).get("path"),
                "matchingLines": lines,
            })
        return {"count": len(results), "query": full_query, "results": results}

    async def get_file_content(self, repo_slug: str, file_path: str, branch: str | None = None) -> str:
        path = (
            f"/rest/api/1.0/projects/{quote(self.config.default_project)}"
            f"/repos/{quote(repo_slug)}/raw/{quote(file_path.lstrip('/'))}"
        )
        params = {"at": branch} if branch else None
        logger.info(f"Reading file from Bitbucket: repo={repo_slug}, path={file_path}, branch={branch}")
        return (await self._request("GET", path, params=params)).text
