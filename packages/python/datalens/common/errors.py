"""
Error types raised by the integration adapters.
The tool dispatcher turns any of these into a {"error": ...} payload for the model.
"""


class IntegrationError(Exception):
    """Base class for failures talking to an external system."""


class IntegrationUnavailableError(IntegrationError):
    """The integration is disabled or its backend cannot be reached at all."""


class UpstreamHTTPError(IntegrationError):
    """Non-2xx response from an upstream HTTP API."""

    def __init__(self, status_code: int, body: str = "", url: str | None = None):
        self.status_code = status_code
        self.body = body
        self.url = url
        detail = f"HTTP {status_code}"
        if url:
            detail += f" from {url}"
        if body:
            detail += f": {body[:500]}"
        super().__init__(detail)


class AuthenticationError(UpstreamHTTPError):
    """Login failed, or a request was still rejected after a token refresh."""

    def __init__(self, message: str, status_code: int = 401):
        self.status_code = status_code
        self.body = ""
        self.url = None
        Exception.__init__(self, message)


class JobTimeoutError(IntegrationError):
    """A submitted search job did not finish within the maximum wait."""


class AutomationTimeoutError(IntegrationError):
    """A work item on the automation worker did not complete in time."""
