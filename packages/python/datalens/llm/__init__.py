from .llm import (
    LLMCapability,
    LiteLLMCapability,
    ModelReply,
    ToolCallRequest,
    agent_completion,
    get_temperature,
    is_retryable_error,
)
