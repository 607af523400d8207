"""
Groups extracted emails into conversations and shapes tool payloads.
"""
from __future__ import annotations

import re
from typing import Any

_RE_FWD_PREFIX = re.compile(r"^(?:RE|FW|FWD):\s*", re.IGNORECASE)


def normalize_subject(subject: str | None) -> str:
    """Strip any number of leading RE:/FW:/FWD: prefixes."""
    if not subject:
        return ""
    normalized = subject.strip()
    while True:
        stripped = _RE_FWD_PREFIX.sub("", normalized, count=1).strip()
        if stripped == normalized:
            return normalized
        normalized = stripped


def build_email_chain_response(search_text: str, emails: list[dict[str, Any]]) -> dict[str, Any]:
    conversations: dict[str, list[dict[str, Any]]] = {}
    for email in emails:
        conversations.setdefault(normalize_subject(email.get("subject")), []).append(email)
    for thread in conversations.values():
        thread.sort(key=lambda e: e.get("received_time") or "")

    times = sorted(e["received_time"] for e in emails if e.get("received_time"))
    summary: dict[str, Any] = {
        "total_emails": len(emails),
        "conversations": len(conversations),
    }
    if times:
        summary["date_range_start"] = times[0]
        summary["date_range_end"] = times[-1]
    summary["mailbox_distribution"] = {
        "personal": sum(1 for e in emails if e.get("mailbox_type") == "personal"),
        "shared": sum(1 for e in emails if e.get("mailbox_type") == "shared"),
    }

    participants: dict[str, None] = {}
    for email in emails:
        if email.get("sender_name"):
            participants[email["sender_name"]] = None
        for name in email.get("recipients") or []:
            if name:
                participants[name] = None
    summary["participants"] = list(participants)

    threads = []
    for conv_id, (subject, thread) in enumerate(conversations.items(), start=1):
        senders = list(dict.fromkeys(e["sender_name"] for e in thread if e.get("sender_name")))
        threads.append({
            "conversation_id": conv_id,
            "subject": subject,
            "email_count": len(thread),
            "participants": senders,
            "emails": thread,
        })

    return {
        "status": "success",
        "search_text": search_text,
        "summary": summary,
        "conversations": threads,
    }


def _no_results(guidance: str) -> dict[str, Any]:
    return {"status": "success", "total_emails": 0, "guidance": guidance}


def format_email_chain_response(response: dict[str, Any] | None) -> dict[str, Any]:
    if response is None:
        return _no_results("No response from Outlook.")
    if not (response.get("summary") or {}).get("total_emails"):
        return _no_results(
            f"No emails found matching '{response.get('search_text', '')}'. "
            "Try broader search terms, check spelling, or search for incident IDs, "
            "error codes, or participant names."
        )
    return response


def format_connection_response(response: dict[str, Any] | None) -> dict[str, Any]:
    if response is None:
        return {"status": "error", "error": "No response from Outlook connection check."}
    return response
