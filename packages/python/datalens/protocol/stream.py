"""
Line-oriented chat stream protocol.

Each record is "<code>:<json>\\n":
    0  text chunk          JSON string appended to the visible message
    9  tool call started   {"toolCallId", "toolName", "args"}
    a  tool call result    {"toolCallId", "toolName", "result"}
    d  turn finished       {"finishReason": "STOP" | "MAX_ITERATIONS"}
    e  error               {"error"}

The encoder side is used by the agent loop; StreamDecoder is the client side.
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

TEXT = "0"
TOOL_CALL = "9"
TOOL_RESULT = "a"
FINISH = "d"
ERROR = "e"

PROTOCOL_CODES = frozenset({TEXT, TOOL_CALL, TOOL_RESULT, FINISH, ERROR})
_PREFIX_RE = re.compile(r"^ ?([0-9ade]):")


class FinishReason(str, Enum):
    STOP = "STOP"
    MAX_ITERATIONS = "MAX_ITERATIONS"


def _json_dumps_compact(payload: Any) -> str:
    # One record per line: json.dumps escapes embedded newlines inside strings.
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False, default=str)


def embed_json(value: Any) -> Any:
    """
    Tool arguments and results arrive as strings. A string that parses as JSON is
    embedded as that JSON value; anything else is embedded as a plain string.
    """
    if not isinstance(value, str):
        return value
    try:
        return json.loads(value)
    except ValueError:
        return value


def encode_record(code: str, payload: Any) -> str:
    if code not in PROTOCOL_CODES:
        raise ValueError(f"Unknown stream record code: {code!r}")
    return f"{code}:{_json_dumps_compact(payload)}\n"


def encode_text(text: str) -> str:
    return encode_record(TEXT, text)


def encode_tool_call(tool_call_id: str, tool_name: str, args: Any) -> str:
    return encode_record(
        TOOL_CALL, {"toolCallId": tool_call_id, "toolName": tool_name, "args": embed_json(args)}
    )


def encode_tool_result(tool_call_id: str, tool_name: str, result: Any) -> str:
    return encode_record(
        TOOL_RESULT, {"toolCallId": tool_call_id, "toolName": tool_name, "result": embed_json(result)}
    )


def encode_finish(reason: FinishReason | str) -> str:
    return encode_record(FINISH, {"finishReason": FinishReason(reason).value})


def encode_error(message: str) -> str:
    return encode_record(ERROR, {"error": message})


def chunk_text(text: str, size: int) -> list[str]:
    if size <= 0:
        raise ValueError("chunk size must be positive")
    return [text[i:i + size] for i in range(0, len(text), size)]


# -- decoding -----------------------------------------------------------------


@dataclass
class StreamEvent:
    """One decoded record. type is text, raw_text, tool_call, tool_result, finish or error."""
    type: str
    text: str | None = None
    tool_call_id: str | None = None
    tool_name: str | None = None
    args: Any = None
    result: Any = None
    finish_reason: str | None = None
    error: str | None = None


@dataclass
class ToolCallState:
    id: str
    name: str
    args: Any = None
    status: str = "pending"
    result: str | None = None


@dataclass
class ChatMessageState:
    content: str = ""
    tool_calls: list[ToolCallState] = field(default_factory=list)
    finish_reason: str | None = None
    error: str | None = None
    streaming: bool = True

    def find_tool_call(self, tool_call_id: str) -> ToolCallState | None:
        for tc in self.tool_calls:
            if tc.id == tool_call_id:
                return tc
        return None


class StreamDecoder:
    """
    Rebuilds an assistant message from stream records. Never raises on bad input:
    unknown prefixes and undecodable payloads are appended to content as raw text.
    """

    def __init__(self):
        self.message = ChatMessageState()
        self._buffer = ""

    def feed(self, chunk: str) -> list[StreamEvent]:
        """Feed arbitrary text; complete lines are decoded, a trailing partial line is kept."""
        self._buffer += chunk
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        events = []
        for line in lines:
            event = self.feed_line(line)
            if event is not None:
                events.append(event)
        return events

    def close(self) -> list[StreamEvent]:
        rest, self._buffer = self._buffer, ""
        if not rest:
            return []
        event = self.feed_line(rest)
        return [event] if event is not None else []

    def feed_line(self, line: str) -> StreamEvent | None:
        data = line.rstrip("\r")
        if data.startswith("data:"):
            data = data[5:]
            # Transport framing may add one space before the record.
            if data.startswith(" ") and _PREFIX_RE.match(data):
                data = data[1:]
            if data.strip() in ("[DONE]", ""):
                return None
        elif not data.strip():
            return None

        if len(data) < 2 or data[1] != ":" or data[0] not in PROTOCOL_CODES:
            return self._raw_text(data)
        code, raw_payload = data[0], data[2:]
        try:
            payload = json.loads(raw_payload)
        except ValueError:
            logger.debug(f"Undecodable payload for record {code!r}, keeping as text")
            return self._raw_text(data)

        if code == TEXT:
            text = payload if isinstance(payload, str) else _json_dumps_compact(payload)
            self.message.content += text
            return StreamEvent(type="text", text=text)
        if not isinstance(payload, dict):
            return self._raw_text(data)
        if code == TOOL_CALL:
            return self._on_tool_call(payload)
        if code == TOOL_RESULT:
            return self._on_tool_result(payload)
        if code == FINISH:
            self.message.finish_reason = payload.get("finishReason")
            self.message.streaming = False
            return StreamEvent(type="finish", finish_reason=self.message.finish_reason)
        error = str(payload.get("error", "Unknown error"))
        self.message.content += f"\n\nError: {error}"
        self.message.error = error
        self.message.streaming = False
        return StreamEvent(type="error", error=error)

    def _raw_text(self, data: str) -> StreamEvent:
        self.message.content += data
        return StreamEvent(type="raw_text", text=data)

    def _on_tool_call(self, payload: dict) -> StreamEvent:
        tc = ToolCallState(
            id=str(payload.get("toolCallId", "")),
            name=str(payload.get("toolName", "")),
            args=payload.get("args"),
        )
        self.message.tool_calls.append(tc)
        return StreamEvent(type="tool_call", tool_call_id=tc.id, tool_name=tc.name, args=tc.args)

    def _on_tool_result(self, payload: dict) -> StreamEvent | None:
        tc = self.message.find_tool_call(str(payload.get("toolCallId", "")))
        if tc is None:
            return None
        result = payload.get("result")
        tc.result = result if isinstance(result, str) else json.dumps(result, indent=2)
        tc.status = "error" if isinstance(result, dict) and result.get("error") else "complete"
        return StreamEvent(type="tool_result", tool_call_id=tc.id, tool_name=tc.name, result=result)
