"""
Conversation messages kept in session memory.

A tool round is stored as two messages: the assistant message carrying its
tool calls, then one tool_result message holding every result of that round.
"""
from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    TOOL_RESULT = "tool_result"


class ToolCall(BaseModel):
    id: str
    name: str
    arguments: str = "{}"


class ToolResult(BaseModel):
    tool_call_id: str
    tool_name: str
    content: str


class Message(BaseModel):
    role: Role
    content: str | None = None
    tool_calls: list[ToolCall] = Field(default_factory=list)
    tool_results: list[ToolResult] = Field(default_factory=list)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(cls, content: str | None, tool_calls: list[ToolCall] | None = None) -> "Message":
        return cls(role=Role.ASSISTANT, content=content, tool_calls=tool_calls or [])

    @classmethod
    def results(cls, tool_results: list[ToolResult]) -> "Message":
        return cls(role=Role.TOOL_RESULT, tool_results=tool_results)
