"""Outlook tools: mailbox connection check and email chain search."""
from __future__ import annotations

import logging
from typing import Any

from ...outlook import format_connection_response, format_email_chain_response
from ..tool_registry import ToolContext, ToolSpec

logger = logging.getLogger(__name__)


def _flag(params: dict[str, Any], key: str) -> bool:
    value = params.get(key)
    return True if value is None else bool(value)


async def outlook_check_connection(context: ToolContext, params: dict[str, Any]) -> dict[str, Any]:
    logger.info("Checking Outlook connection")
    try:
        return format_connection_response(await context.outlook.check_connection())
    except Exception as e:
        logger.error(f"Outlook connection check failed: {e}")
        return {"status": "error", "connected": False, "error": str(e)}


async def outlook_get_email_chain(context: ToolContext, params: dict[str, Any]) -> dict[str, Any]:
    search_text = (params.get("search_text") or "").strip()
    if not search_text:
        return {"status": "error", "error": "search_text is required"}
    include_personal = _flag(params, "include_personal")
    include_shared = _flag(params, "include_shared")
    logger.info(
        f"Searching Outlook emails: search_text='{search_text}', "
        f"personal={include_personal}, shared={include_shared}"
    )
    result = await context.outlook.search_emails(search_text, include_personal, include_shared)
    return format_email_chain_response(result)


TOOLS: list[ToolSpec] = [
    ToolSpec(
        name="outlook_check_connection",
        description=(
            "Check that Outlook Desktop is running and the mailboxes are accessible. "
            "Returns the Outlook version and personal and shared mailbox status."
        ),
        parameters={"type": "object", "properties": {}, "additionalProperties": False},
        handler=outlook_check_connection,
        integration="outlook",
    ),
    ToolSpec(
        name="outlook_get_email_chain",
        description=(
            "Search Outlook subjects and bodies (case-insensitive phrase match) in the personal and shared "
            "mailboxes and return emails grouped into conversation threads, with participants, date range "
            "and mailbox distribution. Useful for incident chains: search by incident ID (e.g. 'INC-12345'), "
            "error codes (e.g. 'ORA-00060'), deployment topics, or participant names."
        ),
        parameters={
            "type": "object",
            "properties": {
                "search_text": {"type": "string", "description": "Text to search for in subjects and bodies"},
                "include_personal": {"type": "boolean", "description": "Search the personal inbox (default true)"},
                "include_shared": {"type": "boolean", "description": "Search the shared mailbox (default true)"},
            },
            "required": ["search_text"],
            "additionalProperties": False,
        },
        handler=outlook_get_email_chain,
        integration="outlook",
    ),
]
