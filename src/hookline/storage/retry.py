"""Retry policy for Qdrant calls.

Network hiccups and 5xx responses from Qdrant are retried with
exponential backoff; everything else surfaces immediately.
"""

from __future__ import annotations

import logging

import httpx
from qdrant_client.http.exceptions import ResponseHandlingException, UnexpectedResponse
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

STORAGE_RETRY_ATTEMPTS = 3


def _is_transient(exc: BaseException) -> bool:
    """Connect errors, timeouts and 5xx responses are worth another try."""
    if isinstance(exc, httpx.ConnectError | httpx.TimeoutException | ResponseHandlingException):
        return True
    if isinstance(exc, UnexpectedResponse):
        return exc.status_code is None or exc.status_code >= 500
    return False


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "Qdrant call %s failed (try %d/%d), backing off: %s",
        retry_state.fn.__name__ if retry_state.fn else "unknown",
        retry_state.attempt_number,
        STORAGE_RETRY_ATTEMPTS,
        exc,
    )


qdrant_retry = retry(
    stop=stop_after_attempt(STORAGE_RETRY_ATTEMPTS),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=8),
    retry=retry_if_exception(_is_transient),
    before_sleep=_log_retry,
    reraise=True,
)
