"""
Shapes raw Splunk result rows into the payload returned to the model:
cleaned rows, truncation flag and guidance, and an analysis summary for
result sets large enough to be worth summarizing.
"""
from __future__ import annotations

from collections import Counter
from typing import Any

PRIORITY_FIELDS = ("_time", "host", "source", "sourcetype", "message", "_raw")
SUMMARY_MIN_RESULTS = 10
TOP_VALUES_LIMIT = 10
TOP_MESSAGES_LIMIT = 20
MESSAGE_SUMMARY_CHARS = 200


def clean_result(result: dict[str, Any]) -> dict[str, Any]:
    """Priority fields first, then remaining fields minus Splunk internals (leading underscore)."""
    cleaned = {f: result[f] for f in PRIORITY_FIELDS if f in result}
    for key, value in result.items():
        if key in cleaned or key.startswith("_"):
            continue
        cleaned[key] = value
    return cleaned


def _text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, list):
        value = value[0] if value else None
        if value is None:
            return None
    return str(value)


def _top_values(results: list[dict[str, Any]], field: str, limit: int) -> list[dict[str, Any]]:
    counts: Counter[str] = Counter()
    for r in results:
        val = _text(r.get(field))
        if val:
            counts[val] += 1
    return [{"value": v, "count": n} for v, n in counts.most_common(limit)]


def build_analysis_summary(results: list[dict[str, Any]]) -> dict[str, Any]:
    summary: dict[str, Any] = {"eventCount": len(results)}

    times = [t for t in (_text(r.get("_time")) for r in results) if t is not None]
    if times:
        summary["timeline"] = {"firstEvent": times[0], "lastEvent": times[-1]}

    severities: Counter[str] = Counter()
    for r in results:
        sev = _text(r.get("severity")) or _text(r.get("level")) or _text(r.get("log_level"))
        if sev:
            severities[sev] += 1
    if severities:
        summary["severityDistribution"] = dict(severities)

    summary["topHosts"] = _top_values(results, "host", TOP_VALUES_LIMIT)
    summary["topSources"] = _top_values(results, "source", TOP_VALUES_LIMIT)
    summary["topSourcetypes"] = _top_values(results, "sourcetype", TOP_VALUES_LIMIT)

    messages: Counter[str] = Counter()
    for r in results:
        msg = _text(r.get("message")) or _text(r.get("_raw"))
        if msg is None:
            continue
        if len(msg) > MESSAGE_SUMMARY_CHARS:
            msg = msg[:MESSAGE_SUMMARY_CHARS] + "..."
        messages[msg] += 1
    if messages:
        summary["topMessages"] = [
            {"message": m, "count": n} for m, n in messages.most_common(TOP_MESSAGES_LIMIT)
        ]
    return summary


def format_query_response(results: list[dict[str, Any]], max_results: int, truncated: bool) -> dict[str, Any]:
    response: dict[str, Any] = {
        "results": [clean_result(r) for r in results],
        "totalResults": len(results),
        "truncated": truncated,
    }
    if truncated:
        response["truncation_guidance"] = (
            f"Results were capped at {max_results}. "
            "Narrow your time range or add filters to get complete data."
        )
    if len(results) > SUMMARY_MIN_RESULTS:
        response["analysis_summary"] = build_analysis_summary(results)
    return response
