"""
Bounded retry for upstream HTTP calls made by the integration adapters.

Connectivity failures and 408/429/5xx responses are retried with exponential
backoff (1s, 2s, ... by default); any other 4xx is raised on the first attempt.
"""
from __future__ import annotations

import logging
from typing import Awaitable, Callable

import httpx
import stamina

from .config import RetryConfig
from .errors import AuthenticationError, UpstreamHTTPError

logger = logging.getLogger(__name__)


def _is_retryable_status(status_code: int) -> bool:
    if status_code in (408, 429):
        return True
    return 500 <= status_code <= 599


def is_retryable_http_error(exception: Exception) -> bool:
    """
    Decide whether an adapter call should be attempted again.

    Args:
        exception: The exception raised by the attempt

    Returns:
        bool: True for transport failures and retryable status codes
    """
    if isinstance(exception, AuthenticationError):
        return False
    if isinstance(exception, UpstreamHTTPError):
        return _is_retryable_status(exception.status_code)
    return isinstance(exception, httpx.TransportError)


def raise_for_status(response: httpx.Response) -> httpx.Response:
    if response.status_code >= 400:
        raise UpstreamHTTPError(response.status_code, response.text, str(response.request.url))
    return response


async def send_with_retry(
    send: Callable[[], Awaitable[httpx.Response]],
    retry: RetryConfig,
    description: str = "request",
) -> httpx.Response:
    """
    Run send() under the retry policy. send must raise (e.g. via raise_for_status)
    for responses that should count as failures.
    """
    async for attempt in stamina.retry_context(
        on=is_retryable_http_error,
        attempts=retry.attempts,
        timeout=None,
        wait_initial=retry.wait_initial,
        wait_max=retry.wait_max,
        wait_jitter=0.0,
        wait_exp_base=retry.wait_exp_base,
    ):
        with attempt:
            if attempt.num > 1:
                logger.warning(f"Retrying {description} (attempt {attempt.num}/{retry.attempts})")
            return await send()
    raise RuntimeError(f"{description} exhausted retries without a result")
