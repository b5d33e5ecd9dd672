"""Retry with exponential backoff for provider calls.

The agent loop never retries a failed completion itself; provider
adapters wrap their network call with :func:`retry_with_backoff` and
surface the final failure as a :class:`ProviderError`.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

from brutus.core.errors import (
    ProviderOverloadedError,
    ProviderRateLimitError,
    ProviderTimeoutError,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

T = TypeVar("T")

_RETRYABLE_TYPES: tuple[type[Exception], ...] = (
    ProviderRateLimitError,
    ProviderTimeoutError,
    ProviderOverloadedError,
)


@dataclass(frozen=True, slots=True)
class RetryConfig:
    """Backoff settings for one provider."""

    max_retries: int = 2
    base_delay: float = 1.0
    max_delay: float = 30.0
    jitter: bool = True


def is_retryable(error: Exception) -> bool:
    """Transient provider failures are retryable; everything else is not."""
    return isinstance(error, _RETRYABLE_TYPES)


def compute_delay(attempt: int, config: RetryConfig, error: Exception) -> float:
    """Seconds to wait before retry number ``attempt + 1``.

    A rate-limit ``retry_after`` hint wins over the exponential schedule,
    capped at ``max_delay``.
    """
    if isinstance(error, ProviderRateLimitError) and error.retry_after is not None:
        return min(error.retry_after, config.max_delay)

    delay: float = min(config.base_delay * (2**attempt), config.max_delay)
    if config.jitter:
        delay *= random.uniform(0.5, 1.5)
    return delay


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
    on_retry: Callable[[int, float, Exception], None] | None = None,
) -> T:
    """Await ``fn()`` and retry transient provider errors.

    Args:
        fn: Zero-arg callable returning an awaitable.
        config: Backoff settings. Defaults to :class:`RetryConfig`.
        on_retry: Called as ``on_retry(attempt, delay, error)`` before
            sleeping. When omitted the retry is logged at WARNING.

    Raises:
        The last error once retries are exhausted, or any non-retryable
        error immediately.
    """
    cfg = config or RetryConfig()
    attempt = 0
    while True:
        try:
            return await fn()
        except Exception as e:
            if not is_retryable(e) or attempt >= cfg.max_retries:
                raise
            delay = compute_delay(attempt, cfg, e)
            attempt += 1
            if on_retry is not None:
                on_retry(attempt, delay, e)
            else:
                logger.warning(
                    "Provider call failed (%s); retry %d/%d in %.1fs",
                    e,
                    attempt,
                    cfg.max_retries,
                    delay,
                )
            await asyncio.sleep(delay)
