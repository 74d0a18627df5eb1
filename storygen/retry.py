"""Per-item retry with exponential backoff."""

from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

from .errors import is_retryable

logger = logging.getLogger(__name__)

T = TypeVar("T")

_MAX_RETRIES = 2
_RETRY_BASE_DELAY = 1.0


def backoff_delay(attempt: int, base_delay: float = _RETRY_BASE_DELAY) -> float:
    """Delay before retry number ``attempt`` (1-based): base * 2^(attempt-1)."""
    return base_delay * (2 ** (attempt - 1))


def with_retries(
    func: Callable[[], T],
    *,
    max_retries: int = _MAX_RETRIES,
    base_delay: float = _RETRY_BASE_DELAY,
    label: str = "request",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``func`` until it succeeds, retrying only transient failures.

    The last exception is re-raised once retries are exhausted or as soon as a
    non-transient error (insufficient credits, empty input, policy rejection)
    is seen.
    """
    attempt = 0
    while True:
        try:
            return func()
        except Exception as exc:
            if attempt >= max_retries or not is_retryable(exc):
                raise
            attempt += 1
            wait = backoff_delay(attempt, base_delay)
            logger.warning(
                "%s failed (%s). Retrying in %.1fs (attempt %d/%d)",
                label, exc, wait, attempt, max_retries,
            )
            sleep(wait)
