"""Retry policies for outbound calls (external search, geocoding)."""

import httpx
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

RETRY_CONFIG = {
    "external_search": {
        "max_attempts": 2,
        "initial_delay": 0.5,
        "max_delay": 4.0,
    },
    "geocoding": {
        "max_attempts": 3,
        "initial_delay": 0.25,
        "max_delay": 2.0,
    },
    "default": {
        "max_attempts": 3,
        "initial_delay": 1.0,
        "max_delay": 10.0,
    },
}


def is_retryable_http_error(exc: BaseException) -> bool:
    """Transport errors, timeouts, 429 and 5xx are worth another attempt; other 4xx are not."""
    if isinstance(exc, (httpx.TransportError, httpx.TimeoutException)):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return False


def create_retry_decorator(service: str = "default", predicate=is_retryable_http_error):
    """Build a tenacity decorator for a named outbound dependency."""
    config = RETRY_CONFIG.get(service, RETRY_CONFIG["default"])
    return retry(
        stop=stop_after_attempt(config["max_attempts"]),
        wait=wait_exponential(
            multiplier=config["initial_delay"],
            min=config["initial_delay"],
            max=config["max_delay"],
        ),
        retry=retry_if_exception(predicate),
        reraise=True,
    )
