# src/dispatch/retry.py
"""
Retry policy for a single bulk-send item.

  - at most MAX_ATTEMPTS sends per item
  - only RETRYABLE_STATUS_CODES are retried; a raised exception (including
    an httpx transport error) ends the item after that attempt
  - wait BACKOFF_SCHEDULE_S[0] after attempt 1, BACKOFF_SCHEDULE_S[1] after
    attempt 2 (the last entry repeats if MAX_ATTEMPTS ever grows)

Implemented on tenacity so the policy stays declarative.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_result,
    stop_after_attempt,
    wait_chain,
    wait_fixed,
)

RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({429, 500, 502, 503, 504})
MAX_ATTEMPTS = 3
BACKOFF_SCHEDULE_S: tuple[float, ...] = (0.3, 0.9)

SleepFn = Callable[[float], Awaitable[Any]]


def is_retryable_status(status_code: int | None) -> bool:
    return status_code in RETRYABLE_STATUS_CODES


def backoff_seconds(attempt: int) -> float:
    """Delay after the given (1-based) failed attempt."""
    idx = max(0, min(attempt - 1, len(BACKOFF_SCHEDULE_S) - 1))
    return BACKOFF_SCHEDULE_S[idx]


def _retryable_response(resp: Any) -> bool:
    return isinstance(resp, httpx.Response) and is_retryable_status(resp.status_code)


def _last_outcome(retry_state: Any) -> Any:
    # attempts exhausted: hand back the last response
    return retry_state.outcome.result()


def send_retrying(sleep: SleepFn = asyncio.sleep) -> AsyncRetrying:
    """
    Fresh retry controller for one item.

    Build one per item: tenacity keeps per-call statistics on the controller.
    """
    return AsyncRetrying(
        stop=stop_after_attempt(MAX_ATTEMPTS),
        wait=wait_chain(*(wait_fixed(s) for s in BACKOFF_SCHEDULE_S)),
        retry=retry_if_result(_retryable_response),
        retry_error_callback=_last_outcome,
        sleep=sleep,
    )
