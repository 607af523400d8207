from .client import SplunkClient, normalize_query
from .formatter import format_query_response, build_analysis_summary, clean_result

__all__ = [
    "SplunkClient",
    "normalize_query",
    "format_query_response",
    "build_analysis_summary",
    "clean_result",
]
