"""
Async client for the chat API. send_message() streams one turn and yields
decoded protocol events; the rebuilt assistant message is on .last_message.
"""
from __future__ import annotations

import logging
from typing import Any, AsyncIterator

import httpx

from ..common.http import raise_for_status
from ..protocol import ChatMessageState, StreamDecoder, StreamEvent

logger = logging.getLogger(__name__)


class DataLensClient:
    def __init__(
        self,
        base_url: str = "http://localhost:8080",
        timeout: float = 300.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)
        self.last_message: ChatMessageState | None = None
        self.session_id: str | None = None

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "DataLensClient":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    async def send_message(self, message: str, session_id: str | None = None) -> AsyncIterator[StreamEvent]:
        """
        Stream one chat turn. Closing the iterator early (stop generation)
        closes the HTTP stream, which cancels the turn on the server.
        """
        decoder = StreamDecoder()
        self.last_message = decoder.message
        body = {"message": message, "sessionId": session_id or self.session_id}
        async with self._client.stream("POST", "/api/v1/chat/stream", json=body) as response:
            if response.status_code >= 400:
                await response.aread()
                raise_for_status(response)
            self.session_id = response.headers.get("x-session-id", self.session_id)
            async for line in response.aiter_lines():
                for event in decoder.feed(line + "\n"):
                    yield event
            for event in decoder.close():
                yield event
        decoder.message.streaming = False

    async def chat(self, message: str, session_id: str | None = None) -> dict[str, Any]:
        """Non-streaming turn: returns {sessionId, response}."""
        body = {"message": message, "sessionId": session_id or self.session_id}
        response = raise_for_status(await self._client.post("/api/v1/chat/sync", json=body))
        data = response.json()
        self.session_id = data.get("sessionId", self.session_id)
        return data

    async def clear_session(self, session_id: str | None = None) -> None:
        sid = session_id or self.session_id
        if sid is None:
            return
        raise_for_status(await self._client.delete(f"/api/v1/chat/sessions/{sid}"))
