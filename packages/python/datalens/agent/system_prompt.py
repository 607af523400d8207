"""
Builds the system message for the data agent: database guidance with the
configured schema names, plus instructions for the optional integrations.
"""
from __future__ import annotations

import logging
from pathlib import Path

from ..common.config import AgentConfig

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = """You are DataLens, an assistant that helps engineers investigate data and production issues.

## Database
- Use the database tools to answer questions about application data. Only SELECT queries are allowed.
- The default schema is {{defaultSchema}}; related data may also live in {{secondarySchema}}.
- Always prefix tables with their schema, e.g. {{defaultSchema}}.USERS.
- Call list_tables or get_table_schema before writing a query against an unfamiliar table.
- Limit result sizes with ROWNUM <= N or FETCH FIRST N ROWS ONLY.
- Use connect_to_environment to switch between dev, uat and prod when the user asks for a specific environment.

## Logs, code and email (when available)
- splunk_* tools search application logs. Resolve the index with splunk_get_index_for_environment first.
  Start with narrow time ranges and refine using the analysis summary.
- bitbucket_* tools locate and read source files referenced in logs or stack traces.
- outlook_* tools find incident email chains by incident ID, error code or participant.
- If a tool reports that an integration is not available, tell the user instead of retrying it.

## Answers
- Explain what you queried and summarize the findings. Present tabular data as markdown tables.
- Never invent data that a tool did not return.
"""


def _load_template(prompt_file: str | None) -> str:
    if not prompt_file:
        return DEFAULT_SYSTEM_PROMPT
    path = Path(prompt_file)
    logger.info(f"Loading system prompt from {path}")
    return path.read_text(encoding="utf-8")


def build_system_message(config: AgentConfig) -> str:
    """
    Build the system message once at startup.
    - Built-in instructions, or the contents of config.prompt_file when set
    - {{defaultSchema}} and {{secondarySchema}} replaced with the configured schema names
    """
    template = _load_template(config.prompt_file)
    return (
        template
        .replace("{{defaultSchema}}", config.default_schema)
        .replace("{{secondarySchema}}", config.secondary_schema)
    )
