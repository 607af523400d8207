"""
Process-local usage counters: tool requests per environment, database query
timings, errors and LLM token usage. Read by the metrics dashboard route.
"""
from __future__ import annotations

import logging
import threading
from collections import Counter
from typing import Any

logger = logging.getLogger(__name__)


class TelemetryService:
    def __init__(self):
        self._lock = threading.Lock()
        self._requests: Counter[tuple[str, str]] = Counter()
        self._errors: Counter[tuple[str, str]] = Counter()
        self._query_count = 0
        self._query_total_ms = 0.0
        self._query_max_ms = 0.0
        self._prompt_tokens = 0
        self._completion_tokens = 0

    def record_chat_request(self, environment: str, tool: str | None) -> None:
        with self._lock:
            self._requests[(environment, tool or "none")] += 1

    def record_query_duration(self, environment: str, duration_ms: float) -> None:
        with self._lock:
            self._query_count += 1
            self._query_total_ms += duration_ms
            self._query_max_ms = max(self._query_max_ms, duration_ms)
        logger.debug(f"Query on {environment} took {duration_ms:.0f}ms")

    def record_error(self, error_type: str, source: str) -> None:
        with self._lock:
            self._errors[(error_type, source)] += 1

    def record_token_usage(self, prompt_tokens: int, completion_tokens: int) -> None:
        with self._lock:
            self._prompt_tokens += prompt_tokens or 0
            self._completion_tokens += completion_tokens or 0

    def requests_by_environment(self) -> dict[str, int]:
        with self._lock:
            out: dict[str, int] = {}
            for (env, _tool), n in self._requests.items():
                out[env] = out.get(env, 0) + n
            return out

    def requests_by_tool(self) -> dict[str, int]:
        with self._lock:
            out: dict[str, int] = {}
            for (_env, tool), n in self._requests.items():
                out[tool] = out.get(tool, 0) + n
            return out

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            avg = self._query_total_ms / self._query_count if self._query_count else 0.0
            return {
                "requests": {"total": sum(self._requests.values())},
                "performance": {"avgQueryDurationMs": avg, "maxQueryDurationMs": self._query_max_ms},
                "llm": {"promptTokens": self._prompt_tokens, "completionTokens": self._completion_tokens},
                "errors": {
                    "total": sum(self._errors.values()),
                    "byType": {f"{t}:{s}": n for (t, s), n in self._errors.items()},
                },
            }


_telemetry = TelemetryService()


def get_telemetry() -> TelemetryService:
    return _telemetry
