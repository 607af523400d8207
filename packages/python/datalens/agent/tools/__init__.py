# Agent tool implementations grouped by integration (database, splunk, bitbucket, outlook).
# Each module exports async handlers taking (context, params) and a TOOLS list of ToolSpec.

from . import bitbucket_tools, database_tools, outlook_tools, splunk_tools

__all__ = ["bitbucket_tools", "database_tools", "outlook_tools", "splunk_tools"]
