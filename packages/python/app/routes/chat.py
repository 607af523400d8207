# chat.py - Chat endpoints (streaming, sync, session reset) and health.

import asyncio
import logging
import uuid

from fastapi import APIRouter, Body, Depends, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from datalens.agent import AgentTurnError, run_agent_chat, run_agent_turn
from datalens.protocol import encode_error

from app.services import Services, get_services

logger = logging.getLogger(__name__)

chat_router = APIRouter(prefix="/api/v1", tags=["chat"])

SERVICE_NAME = "DataLens"
SERVICE_VERSION = "1.0.0"


class ChatRequest(BaseModel):
    message: str = Field(..., description="The user message")
    sessionId: str | None = Field(default=None, description="Conversation id; generated when absent or blank")


class ChatResponse(BaseModel):
    sessionId: str
    response: str


def _resolve_session_id(session_id: str | None) -> str:
    if session_id is None or not session_id.strip():
        return str(uuid.uuid4())
    return session_id


def _validate(request: ChatRequest) -> None:
    if not request.message.strip():
        raise HTTPException(status_code=400, detail="message must not be empty")


@chat_router.post("/chat/stream")
async def post_chat_stream(
    request: ChatRequest = Body(...),
    services: Services = Depends(get_services),
):
    """
    Run one chat turn and stream its protocol records as SSE events
    (one "data: <record>" event per record). The stream ends after the
    finish or error record. A client disconnect cancels the turn.
    """
    _validate(request)
    session_id = _resolve_session_id(request.sessionId)
    logger.info(f"Chat stream for session {session_id}")
    queue: asyncio.Queue[str | None] = asyncio.Queue()

    async def stream_handler(record: str) -> None:
        await queue.put(record)

    async def run_turn() -> None:
        try:
            await run_agent_turn(services.loop, session_id, request.message, stream_handler)
        except Exception as e:
            logger.exception("Agent turn failed during streaming")
            await queue.put(encode_error(str(e)))
        finally:
            await queue.put(None)

    async def generate_sse():
        task = asyncio.create_task(run_turn())
        try:
            while True:
                record = await queue.get()
                if record is None:
                    break
                yield f"data: {record.rstrip(chr(10))}\n\n"
        finally:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    return StreamingResponse(
        generate_sse(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
            "X-Session-Id": session_id,
        },
    )


@chat_router.post("/chat/sync", response_model=ChatResponse)
async def post_chat_sync(
    request: ChatRequest = Body(...),
    services: Services = Depends(get_services),
):
    """Run one chat turn and return only the final text."""
    _validate(request)
    session_id = _resolve_session_id(request.sessionId)
    try:
        response = await run_agent_chat(services.loop, session_id, request.message)
    except AgentTurnError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return ChatResponse(sessionId=session_id, response=response)


@chat_router.delete("/chat/sessions/{session_id}")
async def delete_session(
    session_id: str,
    services: Services = Depends(get_services),
):
    """Forget one conversation."""
    services.memory.clear(session_id)
    return {"ok": True, "sessionId": session_id}


@chat_router.get("/health")
async def health():
    return {"status": "UP", "service": SERVICE_NAME, "version": SERVICE_VERSION}
