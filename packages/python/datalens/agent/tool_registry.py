"""
OpenAI-compatible tool definitions and dispatch for the chat agent.

The registry is built once at startup from the enabled integrations. Tools of a
disabled integration are not advertised to the model, but calling one by name
still yields a "not available" payload. dispatch() never raises: every outcome
is a JSON string for the model.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable

from pydantic import BaseModel

from ..datasource import DataSourceProvider
from ..telemetry import TelemetryService, get_telemetry

logger = logging.getLogger(__name__)


@dataclass
class ToolContext:
    """Collaborators available to tool handlers. Disabled integrations are None."""
    datasource: DataSourceProvider
    default_schema: str = "SCHEMA_A"
    splunk: Any = None
    bitbucket: Any = None
    outlook: Any = None
    telemetry: TelemetryService = field(default_factory=get_telemetry)


ToolHandler = Callable[[ToolContext, dict[str, Any]], Awaitable[Any]]


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    parameters: dict[str, Any]
    handler: ToolHandler
    integration: str

    def definition(self) -> dict[str, Any]:
        # OpenAI function-calling format
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


def _json_serial_default(obj: Any) -> Any:
    """Convert non-JSON-serializable values for tool result payloads."""
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json")
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    raise TypeError(f"Object of type {type(obj).__name__!r} is not JSON serializable")


def not_available_message(integration: str) -> str:
    return f"{integration.capitalize()} tools not available. Enable the {integration} integration."


class ToolRegistry:
    def __init__(self, context: ToolContext, specs: Iterable[ToolSpec] = ()):
        self.context = context
        self._tools: dict[str, ToolSpec] = {}
        self._unavailable: dict[str, str] = {}
        for spec in specs:
            self.register(spec)

    def register(self, spec: ToolSpec) -> None:
        if spec.name in self._tools:
            raise ValueError(f"Duplicate tool name: {spec.name}")
        self._tools[spec.name] = spec
        self._unavailable.pop(spec.name, None)

    def register_unavailable(self, specs: Iterable[ToolSpec]) -> None:
        for spec in specs:
            if spec.name not in self._tools:
                self._unavailable[spec.name] = not_available_message(spec.integration)

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    @property
    def definitions(self) -> list[dict[str, Any]]:
        return [spec.definition() for spec in self._tools.values()]

    def get(self, name: str) -> ToolSpec | None:
        return self._tools.get(name)

    async def dispatch(self, name: str, arguments: str | dict | None) -> str:
        """
        Execute a tool by name. arguments is the JSON string from the LLM (or a dict).
        Returns the JSON string of the result, or of {"error": ...} on any failure.
        """
        spec = self._tools.get(name)
        if spec is None:
            if name in self._unavailable:
                return json.dumps({"error": self._unavailable[name]})
            return json.dumps({"error": f"Unknown tool: {name}"})
        if isinstance(arguments, str):
            try:
                params = json.loads(arguments) if arguments.strip() else {}
            except json.JSONDecodeError as e:
                return json.dumps({"error": f"Invalid JSON arguments: {e}"})
        else:
            params = arguments or {}
        if not isinstance(params, dict):
            return json.dumps({"error": "Invalid arguments: expected a JSON object"})
        try:
            result = await spec.handler(self.context, params)
            return json.dumps(result, default=_json_serial_default)
        except Exception as e:
            logger.exception("Tool %s failed", name)
            self.context.telemetry.record_error(type(e).__name__, name)
            return json.dumps({"error": f"Tool execution failed: {e}"})


def build_default_registry(context: ToolContext) -> ToolRegistry:
    from .tools import bitbucket_tools, database_tools, outlook_tools, splunk_tools

    registry = ToolRegistry(context, database_tools.TOOLS)
    optional = (
        (context.splunk, splunk_tools.TOOLS),
        (context.bitbucket, bitbucket_tools.TOOLS),
        (context.outlook, outlook_tools.TOOLS),
    )
    for client, specs in optional:
        if client is not None:
            for spec in specs:
                registry.register(spec)
        else:
            registry.register_unavailable(specs)
    logger.info(f"Tool registry ready with {len(registry.names)} tools")
    return registry


async def execute_tool(registry: ToolRegistry, name: str, arguments: str | dict | None) -> str:
    """
    Execute a tool by name. arguments: JSON string (from LLM) or dict.
    Returns the JSON string of the result for the LLM.
    """
    return await registry.dispatch(name, arguments)
