"""Bitbucket tools: connection check, code search and raw file reads."""
from __future__ import annotations

import logging
from typing import Any

from ..tool_registry import ToolContext, ToolSpec

logger = logging.getLogger(__name__)


async def bitbucket_check_connection(context: ToolContext, params: dict[str, Any]) -> dict[str, Any]:
    logger.info("Checking Bitbucket connection")
    try:
        return await context.bitbucket.check_connection()
    except Exception as e:
        logger.error(f"Bitbucket connection check failed: {e}")
        return {"connected": False, "error": str(e)}


async def bitbucket_search_code(context: ToolContext, params: dict[str, Any]) -> dict[str, Any]:
    query = params.get("query") or ""
    if not query.strip():
        return {"error": "query is required"}
    limit = params.get("max_results")
    return await context.bitbucket.search_code(query, limit if isinstance(limit, int) else None)


async def bitbucket_read_file(context: ToolContext, params: dict[str, Any]) -> dict[str, Any]:
    repo_slug = params.get("repo_slug") or ""
    file_path = params.get("file_path") or ""
    if not repo_slug or not file_path:
        return {"error": "repo_slug and file_path are required"}
    content = await context.bitbucket.get_file_content(repo_slug, file_path, params.get("branch") or None)
    return {"repository": repo_slug, "filePath": file_path, "content": content}


TOOLS: list[ToolSpec] = [
    ToolSpec(
        name="bitbucket_check_connection",
        description="Check the connection to Bitbucket Data Center and return the server version and display name.",
        parameters={"type": "object", "properties": {}, "additionalProperties": False},
        handler=bitbucket_check_connection,
        integration="bitbucket",
    ),
    ToolSpec(
        name="bitbucket_search_code",
        description=(
            "Search code or file names across the repositories of the configured project (default branch). "
            "Use this when logs reference a source file and you need its repository and full path. "
            "Then call bitbucket_read_file with the repository slug and file path from the results. "
            "Example queries: 'RaidServiceImpl.java', 'NullPointerException lang:java', 'class ErrorHandler'."
        ),
        parameters={
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "File name, class name, or code keyword"},
                "max_results": {"type": "integer", "description": "Max results (optional, default 25)"},
            },
            "required": ["query"],
            "additionalProperties": False,
        },
        handler=bitbucket_search_code,
        integration="bitbucket",
    ),
    ToolSpec(
        name="bitbucket_read_file",
        description=(
            "Read the raw content of a file from a repository. Pass the repository slug and file path "
            "exactly as returned by bitbucket_search_code."
        ),
        parameters={
            "type": "object",
            "properties": {
                "repo_slug": {"type": "string", "description": "Repository slug, e.g. raid-service"},
                "file_path": {"type": "string", "description": "Full file path within the repository"},
                "branch": {"type": "string", "description": "Branch or commit (optional, default branch if omitted)"},
            },
            "required": ["repo_slug", "file_path"],
            "additionalProperties": False,
        },
        handler=bitbucket_read_file,
        integration="bitbucket",
    ),
]
