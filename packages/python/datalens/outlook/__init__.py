from .client import OutlookClient, strip_html
from .formatter import (
    build_email_chain_response,
    format_connection_response,
    format_email_chain_response,
    normalize_subject,
)

__all__ = [
    "OutlookClient",
    "strip_html",
    "build_email_chain_response",
    "format_connection_response",
    "format_email_chain_response",
    "normalize_subject",
]
