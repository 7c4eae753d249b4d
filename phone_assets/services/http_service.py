"""Retrying wrapper for outbound HTTP calls (the Resend email API)."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable

import httpx

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})


def _backoff(attempt: int, base_delay: float, max_delay: float) -> float:
    """Exponential delay capped at max_delay, plus up to half of it as jitter."""
    delay = min(max_delay, base_delay * (2**attempt))
    return delay + random.uniform(0, delay / 2) if delay else 0.0


async def request_with_retries(
    request_fn: Callable[[], Awaitable[httpx.Response]],
    *,
    max_attempts: int = 3,
    base_delay: float = 0.5,
    max_delay: float = 4.0,
    retry_statuses: frozenset[int] | None = None,
) -> httpx.Response:
    """
    Call request_fn until it answers with a non-retryable status.

    Transport errors are retried as well and the last one is re-raised. On the
    final attempt a retryable status is handed back for the caller to report.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")
    statuses = retry_statuses or RETRYABLE_STATUSES

    for attempt in range(1, max_attempts + 1):
        final = attempt == max_attempts
        try:
            response = await request_fn()
        except httpx.RequestError as exc:
            if final:
                raise
            logger.warning(
                "Outbound request attempt %d/%d failed: %s",
                attempt,
                max_attempts,
                exc.__class__.__name__,
            )
        else:
            if final or response.status_code not in statuses:
                return response
            logger.warning(
                "Outbound request attempt %d/%d got HTTP %d",
                attempt,
                max_attempts,
                response.status_code,
            )

        delay = _backoff(attempt - 1, base_delay, max_delay)
        if delay:
            await asyncio.sleep(delay)

    raise AssertionError("unreachable")
