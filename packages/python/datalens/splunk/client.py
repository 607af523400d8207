"""
Splunk REST client.

Authenticates with username/password for a session key that is cached for
session_lifetime_secs and shared by all callers. A 401 clears the cached key
(only if nobody refreshed it already) and the request is replayed once with a
fresh key. Every call runs under the shared HTTP retry policy.

Searches are asynchronous jobs: submit, poll until isDone, then page results.
"""
from __future__ import annotations

import asyncio
import logging
import re
import time
from typing import Any, Awaitable, Callable

import httpx

from ..common.config import RetryConfig, SplunkConfig
from ..common.errors import AuthenticationError, IntegrationError, JobTimeoutError
from ..common.http import raise_for_status, send_with_retry

logger = logging.getLogger(__name__)

_SESSION_KEY_RE = re.compile(r"<sessionKey>\s*(.*?)\s*</sessionKey>", re.DOTALL)


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true")
    return bool(value)


def normalize_query(query: str) -> str:
    """Splunk's job API needs a leading search command (or a generating | command)."""
    q = query.strip()
    if q.startswith("|") or q.lower().startswith("search "):
        return q
    return f"search {q}"


class SplunkClient:
    def __init__(
        self,
        config: SplunkConfig,
        retry: RetryConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config
        self._retry = retry or RetryConfig()
        self._clock = clock
        self._sleep = sleep
        self._client = httpx.AsyncClient(
            base_url=config.base_url,
            verify=config.verify_ssl,
            timeout=config.timeout_secs,
            transport=transport,
        )
        self._token: str | None = None
        self._token_expires_at = 0.0
        self._token_lock = asyncio.Lock()
        self.login_count = 0

    async def aclose(self) -> None:
        await self._client.aclose()

    @property
    def environment_index_map(self) -> dict[str, str]:
        return dict(self.config.environment_indexes)

    # -- session token -------------------------------------------------------

    async def _login(self) -> str:
        logger.info(f"Authenticating to Splunk at {self.config.base_url}")
        resp = await self._client.post(
            "/services/auth/login",
            data={"username": self.config.username, "password": self.config.password},
        )
        if resp.status_code >= 500:
            raise_for_status(resp)
        if resp.status_code != 200:
            raise AuthenticationError(f"Splunk login failed: HTTP {resp.status_code}", resp.status_code)
        match = _SESSION_KEY_RE.search(resp.text)
        if not match or not match.group(1):
            raise AuthenticationError("Splunk login response did not contain a sessionKey", resp.status_code)
        self.login_count += 1
        return match.group(1)

    async def _get_token(self) -> str:
        async with self._token_lock:
            if self._token and self._clock() < self._token_expires_at:
                return self._token
            self._token = await self._login()
            self._token_expires_at = self._clock() + self.config.session_lifetime_secs
            return self._token

    def _invalidate_token(self, stale: str) -> None:
        # Another caller may have refreshed already; only drop the key we were rejected with.
        if self._token == stale:
            self._token = None
            self._token_expires_at = 0.0

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        async def send() -> httpx.Response:
            token = await self._get_token()
            resp = await self._client.request(
                method, path, headers={"Authorization": f"Splunk {token}"}, **kwargs
            )
            if resp.status_code == 401:
                logger.warning(f"Splunk rejected session key for {method} {path}, refreshing")
                self._invalidate_token(token)
                token = await self._get_token()
                resp = await self._client.request(
                    method, path, headers={"Authorization": f"Splunk {token}"}, **kwargs
                )
                if resp.status_code == 401:
                    raise AuthenticationError(f"Splunk rejected a refreshed session key for {path}")
            return raise_for_status(resp)

        return await send_with_retry(send, self._retry, f"Splunk {method} {path}")

    async def _get_json(self, path: str, params: dict[str, Any] | None = None) -> dict:
        resp = await self._request("GET", path, params=params)
        return resp.json()

    # -- operations ----------------------------------------------------------

    async def check_connection(self) -> dict[str, Any]:
        data = await self._get_json("/services/server/info", {"output_mode": "json"})
        content = ((data.get("entry") or [{}])[0]).get("content", {})
        return {
            "connected": True,
            "server_name": content.get("serverName"),
            "version": content.get("version"),
            "os_name": content.get("os_name"),
            "base_url": self.config.base_url,
        }

    async def execute_query(
        self,
        query: str,
        earliest_time: str | None = None,
        latest_time: str | None = None,
        max_results: int | None = None,
    ) -> list[dict[str, Any]]:
        """
        Run a search job and return at most max_results events (capped by config).

        Args:
            query: SPL query; "search " is prepended when missing
            earliest_time: Splunk time modifier, defaults to -30d
            latest_time: Splunk time modifier, defaults to now
            max_results: Caller cap; None or non-positive means the configured maximum

        Returns:
            list[dict]: Result rows in Splunk's order

        Raises:
            JobTimeoutError: If the job is not done within max_execution_secs
        """
        cap = self.config.max_results
        if max_results and max_results > 0:
            cap = min(max_results, cap)
        spl = normalize_query(query)
        sid = await self._submit_job(spl, earliest_time or "-30d", latest_time or "now", cap)
        logger.info(f"Splunk job {sid} submitted: {spl}")
        await self._wait_for_job(sid)
        results = await self._fetch_results(sid, cap)
        logger.info(f"Splunk job {sid} returned {len(results)} results")
        return results

    async def _submit_job(self, spl: str, earliest: str, latest: str, cap: int) -> str:
        resp = await self._request(
            "POST",
            "/services/search/jobs",
            data={
                "search": spl,
                "earliest_time": earliest,
                "latest_time": latest,
                "max_count": str(cap),
                "output_mode": "json",
            },
        )
        sid = resp.json().get("sid")
        if not sid:
            raise IntegrationError("Splunk did not return a search job id")
        return sid

    async def _wait_for_job(self, sid: str) -> None:
        max_wait = self.config.max_execution_secs
        deadline = self._clock() + max_wait
        while True:
            status = await self._get_json(f"/services/search/jobs/{sid}", {"output_mode": "json"})
            content = ((status.get("entry") or [{}])[0]).get("content", {})
            if _as_bool(content.get("isDone")):
                return
            if _as_bool(content.get("isFailed")):
                raise IntegrationError(f"Splunk job {sid} failed: {content.get('messages')}")
            if self._clock() >= deadline:
                raise JobTimeoutError(f"Splunk query timed out after {int(max_wait)}s")
            await self._sleep(self.config.poll_interval_secs)

    async def _fetch_results(self, sid: str, cap: int) -> list[dict[str, Any]]:
        results: list[dict[str, Any]] = []
        offset = 0
        while len(results) < cap:
            count = min(self.config.page_size, cap - len(results))
            page = await self._get_json(
                f"/services/search/jobs/{sid}/results",
                {"output_mode": "json", "count": count, "offset": offset},
            )
            rows = page.get("results") or []
            if not rows:
                break
            results.extend(rows)
            offset += len(rows)
            if len(rows) < count:
                break
        return results[:cap]

    async def get_available_indexes(self) -> list[dict[str, Any]]:
        data = await self._get_json("/services/data/indexes", {"output_mode": "json", "count": 0})
        indexes = []
        for entry in data.get("entry") or []:
            content = entry.get("content", {})
            indexes.append({
                "name": entry.get("name"),
                "totalEventCount": content.get("totalEventCount"),
                "currentDBSizeMB": content.get("currentDBSizeMB"),
                "disabled": _as_bool(content.get("disabled")),
            })
        return indexes

    async def get_sourcetypes(self, index: str | None = None) -> list[dict[str, Any]]:
        query = "| metadata type=sourcetypes"
        if index:
            query += f" index={index}"
        return await self.execute_query(query, "-24h", "now", 1000)
