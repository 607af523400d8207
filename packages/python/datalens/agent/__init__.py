# Data agent: tool registry, loop, system prompt, message models.
# Used by app/routes/chat.py (streaming and sync chat).

from .models import Message, Role, ToolCall, ToolResult
from .tool_registry import (
    ToolContext,
    ToolRegistry,
    ToolSpec,
    build_default_registry,
    execute_tool,
    not_available_message,
)
from .agent_loop import (
    MAX_ITERATIONS_MESSAGE,
    AgentLoop,
    AgentTurnError,
    LoopState,
    TurnBuffer,
    run_agent_chat,
    run_agent_turn,
    to_llm_messages,
)
from .system_prompt import build_system_message

__all__ = [
    "Message",
    "Role",
    "ToolCall",
    "ToolResult",
    "ToolContext",
    "ToolRegistry",
    "ToolSpec",
    "build_default_registry",
    "execute_tool",
    "not_available_message",
    "MAX_ITERATIONS_MESSAGE",
    "AgentLoop",
    "AgentTurnError",
    "LoopState",
    "TurnBuffer",
    "run_agent_chat",
    "run_agent_turn",
    "to_llm_messages",
    "build_system_message",
]
