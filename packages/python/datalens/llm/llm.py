"""
LLM access for the agent loop via litellm.

agent_completion makes one chat completion call (optionally with tools) under a
stamina retry for transient provider errors. LiteLLMCapability adapts it to the
loop's complete(system, messages, tools) -> ModelReply interface.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Union

import litellm
import stamina

logger = logging.getLogger(__name__)


@dataclass
class ToolCallRequest:
    id: str
    name: str
    arguments: str = "{}"


@dataclass
class ModelReply:
    text: str | None = None
    tool_calls: list[ToolCallRequest] = field(default_factory=list)
    prompt_tokens: int = 0
    completion_tokens: int = 0


class LLMCapability(Protocol):
    async def complete(
        self,
        system: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
    ) -> ModelReply: ...


def is_o_series_model(model_name: str) -> bool:
    name = model_name.lower().split("/")[-1]
    return len(name) > 1 and name[0] == "o" and name[1].isdigit()


def get_temperature(model: str) -> float:
    # o-series and gemini models only accept their default temperature
    if is_o_series_model(model) or model.lower().startswith("gemini/"):
        return 1.0
    return 0.1


def is_retryable_error(exception) -> bool:
    """
    Check if an exception is retryable based on error patterns.

    Args:
        exception: The exception to check

    Returns:
        bool: True if the exception is retryable, False otherwise
    """
    if not isinstance(exception, Exception):
        return False

    error_message = str(exception).lower()

    retryable_patterns = [
        "503",
        "model is overloaded",
        "unavailable",
        "rate limit",
        "timeout",
        "connection error",
        "internal server error",
        "service unavailable",
        "temporarily unavailable",
    ]

    for pattern in retryable_patterns:
        if pattern in error_message:
            return True

    return False


@stamina.retry(on=is_retryable_error)
async def _litellm_acompletion_with_retry(
    model: str,
    messages: list,
    api_key: Optional[str] = None,
    tools: Optional[List[Dict]] = None,
    tool_choice: Optional[Union[str, Dict]] = None,
):
    params: dict[str, Any] = {
        "model": model,
        "messages": messages,
        "temperature": get_temperature(model),
    }
    if api_key:
        params["api_key"] = api_key
    if tools:
        params["tools"] = tools
        params["tool_choice"] = tool_choice if tool_choice is not None else "auto"
    return await litellm.acompletion(**params)


async def agent_completion(
    model: str,
    messages: list,
    api_key: Optional[str] = None,
    tools: Optional[List[Dict]] = None,
    tool_choice: Optional[Union[str, Dict]] = None,
):
    """
    Public wrapper for agent use. Makes one LLM completion call with optional tools.
    """
    return await _litellm_acompletion_with_retry(
        model=model,
        messages=messages,
        api_key=api_key,
        tools=tools,
        tool_choice=tool_choice,
    )


def _tool_call_to_request(tc: Any) -> ToolCallRequest:
    """Convert a litellm tool_call object (or dict) to a ToolCallRequest."""
    if isinstance(tc, dict):
        fn = tc.get("function") or {}
        tid, name, args = tc.get("id"), fn.get("name", ""), fn.get("arguments")
    else:
        tid, name, args = getattr(tc, "id", None), tc.function.name, tc.function.arguments
    return ToolCallRequest(id=tid or f"call_{uuid.uuid4().hex[:24]}", name=name or "", arguments=args or "{}")


class LiteLLMCapability:
    def __init__(self, model: str, api_key: str | None = None):
        self.model = model
        self.api_key = api_key

    async def complete(
        self,
        system: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
    ) -> ModelReply:
        response = await agent_completion(
            model=self.model,
            messages=[{"role": "system", "content": system}, *messages],
            api_key=self.api_key,
            tools=tools or None,
            tool_choice="auto",
        )
        message = response.choices[0].message
        usage = getattr(response, "usage", None)
        return ModelReply(
            text=getattr(message, "content", None),
            tool_calls=[_tool_call_to_request(tc) for tc in getattr(message, "tool_calls", None) or []],
            prompt_tokens=getattr(usage, "prompt_tokens", None) or 0,
            completion_tokens=getattr(usage, "completion_tokens", None) or 0,
        )
