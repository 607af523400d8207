# Shared configuration, errors, HTTP retry helpers and process setup.

from .setup import setup
from .config import (
    AgentConfig,
    BitbucketConfig,
    ChatMemoryConfig,
    OutlookConfig,
    RetryConfig,
    SplunkConfig,
)
from .errors import (
    IntegrationError,
    IntegrationUnavailableError,
    UpstreamHTTPError,
    AuthenticationError,
    JobTimeoutError,
    AutomationTimeoutError,
)
from . import http
