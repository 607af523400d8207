# Chat stream wire protocol: record encoders for the server, StreamDecoder for clients.

from .stream import (
    TEXT,
    TOOL_CALL,
    TOOL_RESULT,
    FINISH,
    ERROR,
    FinishReason,
    ChatMessageState,
    StreamDecoder,
    StreamEvent,
    ToolCallState,
    chunk_text,
    embed_json,
    encode_error,
    encode_finish,
    encode_record,
    encode_text,
    encode_tool_call,
    encode_tool_result,
)
