"""
Core agent loop: LLM call -> tool_calls -> execute -> loop, until the model
answers with plain text or the iteration cap is reached.

Every event of a turn is handed to a stream handler as an encoded protocol
record. History produced by the turn lives in a TurnBuffer and is committed to
session memory after each tool round and after the final text; a failed turn
commits nothing further.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable

from ..common.config import AgentConfig
from ..llm import LLMCapability
from ..memory import ChatMemory
from ..protocol import (
    FinishReason,
    StreamDecoder,
    chunk_text,
    encode_error,
    encode_finish,
    encode_text,
    encode_tool_call,
    encode_tool_result,
)
from ..telemetry import TelemetryService, get_telemetry
from .models import Message, Role, ToolCall, ToolResult
from .tool_registry import ToolRegistry, execute_tool

logger = logging.getLogger(__name__)

MAX_ITERATIONS_MESSAGE = (
    "I apologize, but I've reached the maximum number of tool calls. "
    "Please try rephrasing your request."
)

StreamHandler = Callable[[str], Awaitable[None]]


class LoopState(str, Enum):
    AWAITING_MODEL = "AWAITING_MODEL"
    EXECUTING_TOOLS = "EXECUTING_TOOLS"
    FINISHED = "FINISHED"
    ERRORED = "ERRORED"
    ITERATION_LIMIT_REACHED = "ITERATION_LIMIT_REACHED"


class AgentTurnError(Exception):
    """Raised by run_agent_chat when the turn ended with an error record."""


@dataclass
class AgentLoop:
    """Collaborators shared by every turn."""
    llm: LLMCapability
    registry: ToolRegistry
    memory: ChatMemory
    system_prompt: str
    config: AgentConfig = field(default_factory=AgentConfig)
    telemetry: TelemetryService = field(default_factory=get_telemetry)


class TurnBuffer:
    """Session history loaded at turn start plus this turn's uncommitted messages."""

    def __init__(self, memory: ChatMemory, session_id: str, history: Iterable[Message]):
        self._memory = memory
        self._session_id = session_id
        self._committed: list[Message] = list(history)
        self._pending: list[Message] = []

    @property
    def messages(self) -> list[Message]:
        return self._committed + self._pending

    @property
    def pending(self) -> list[Message]:
        return list(self._pending)

    def add(self, *messages: Message) -> None:
        self._pending.extend(messages)

    def commit(self) -> None:
        if not self._pending:
            return
        self._memory.append(self._session_id, self._pending)
        self._committed.extend(self._pending)
        self._pending = []


def _message_to_dicts(m: Message) -> list[dict[str, Any]]:
    if m.role == Role.USER:
        return [{"role": "user", "content": m.content or ""}]
    if m.role == Role.ASSISTANT:
        d: dict[str, Any] = {"role": "assistant", "content": m.content}
        if m.tool_calls:
            d["tool_calls"] = [
                {
                    "id": tc.id,
                    "type": "function",
                    "function": {"name": tc.name, "arguments": tc.arguments},
                }
                for tc in m.tool_calls
            ]
        return [d]
    return [
        {"role": "tool", "tool_call_id": r.tool_call_id, "content": r.content}
        for r in m.tool_results
    ]


def to_llm_messages(messages: Iterable[Message]) -> list[dict]:
    """
    Convert stored messages to the OpenAI chat format. Every assistant message
    with tool_calls must be immediately followed by its tool results. If not
    (e.g. history trimmed mid-round), drop the tool_calls so the API receives a
    valid sequence. Tool results without their assistant message are dropped.
    """
    flat: list[dict] = []
    for m in messages:
        flat.extend(_message_to_dicts(m))

    out: list[dict] = []
    i = 0
    while i < len(flat):
        m = flat[i]
        role = m["role"]
        if role == "tool":
            i += 1
            continue
        if role != "assistant" or not m.get("tool_calls"):
            if role == "assistant":
                out.append({"role": "assistant", "content": m.get("content") or ""})
            else:
                out.append(m)
            i += 1
            continue
        want_ids = {tc["id"] for tc in m["tool_calls"]}
        got_ids: set[str] = set()
        j = i + 1
        while j < len(flat) and flat[j]["role"] == "tool":
            got_ids.add(flat[j]["tool_call_id"])
            j += 1
        if got_ids >= want_ids:
            out.extend(flat[i:j])
        else:
            out.append({"role": "assistant", "content": m.get("content") or ""})
        i = j
    return out


async def run_agent_turn(
    loop: AgentLoop,
    session_id: str,
    user_message: str,
    stream_handler: StreamHandler,
) -> LoopState:
    """
    Process one inbound user message and emit its records in order:
    per tool call one 9 then one a record, then chunked 0 records and a d record;
    or 0 + d(MAX_ITERATIONS) at the iteration cap; or a single e record on failure.
    Returns the terminal state. Cancellation propagates to the caller.
    """
    config = loop.config
    state = LoopState.AWAITING_MODEL
    try:
        history = loop.memory.get(session_id, config.history_window)
        turn = TurnBuffer(loop.memory, session_id, history)
        turn.add(Message.user(user_message))

        iteration = 0
        while iteration < config.max_tool_iterations:
            iteration += 1
            state = LoopState.AWAITING_MODEL
            reply = await loop.llm.complete(
                loop.system_prompt,
                to_llm_messages(turn.messages),
                loop.registry.definitions,
            )
            loop.telemetry.record_token_usage(reply.prompt_tokens, reply.completion_tokens)

            if not reply.tool_calls:
                text = reply.text or ""
                for chunk in chunk_text(text, config.stream_chunk_size):
                    await stream_handler(encode_text(chunk))
                turn.add(Message.assistant(text))
                turn.commit()
                await stream_handler(encode_finish(FinishReason.STOP))
                return LoopState.FINISHED

            state = LoopState.EXECUTING_TOOLS
            calls = [ToolCall(id=tc.id, name=tc.name, arguments=tc.arguments) for tc in reply.tool_calls]
            logger.info(f"Iteration {iteration}: executing {len(calls)} tool call(s) for session {session_id}")
            results: list[ToolResult] = []
            for call in calls:
                await stream_handler(encode_tool_call(call.id, call.name, call.arguments))
                # A started tool call runs to completion even if the turn is cancelled.
                content = await asyncio.shield(execute_tool(loop.registry, call.name, call.arguments))
                results.append(ToolResult(tool_call_id=call.id, tool_name=call.name, content=content))
                await stream_handler(encode_tool_result(call.id, call.name, content))
            turn.add(Message.assistant(reply.text, calls), Message.results(results))
            turn.commit()

        logger.warning(f"Max tool iterations ({config.max_tool_iterations}) reached for session {session_id}")
        await stream_handler(encode_text(MAX_ITERATIONS_MESSAGE))
        await stream_handler(encode_finish(FinishReason.MAX_ITERATIONS))
        return LoopState.ITERATION_LIMIT_REACHED
    except asyncio.CancelledError:
        logger.info(f"Turn cancelled for session {session_id} in state {state.value}")
        raise
    except Exception as e:
        logger.exception(f"Agent turn failed for session {session_id}")
        loop.telemetry.record_error(type(e).__name__, "agent_loop")
        await stream_handler(encode_error(str(e)))
        return LoopState.ERRORED


async def run_agent_chat(loop: AgentLoop, session_id: str, user_message: str) -> str:
    """
    Non-streaming variant: run the turn and return the final text only.
    Raises AgentTurnError if the turn ended with an error record.
    """
    decoder = StreamDecoder()

    async def collect(record: str) -> None:
        decoder.feed(record)

    await run_agent_turn(loop, session_id, user_message, collect)
    decoder.close()
    if decoder.message.error is not None:
        raise AgentTurnError(decoder.message.error)
    return decoder.message.content
