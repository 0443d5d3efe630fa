"""Bounded retry helper shared by downloads and uploads."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TypeVar

__all__ = ["linear_backoff", "retry_call"]

T = TypeVar("T")

logger = logging.getLogger(__name__)


def linear_backoff(step_seconds: float = 1.0) -> Callable[[int], float]:
    """Return a backoff function waiting ``attempt * step_seconds`` after each failure."""

    def _delay(attempt: int) -> float:
        return max(0.0, attempt * step_seconds)

    return _delay


def retry_call(
    operation: Callable[[], T],
    *,
    max_attempts: int,
    backoff: Callable[[int], float] | None = None,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], None] = time.sleep,
    describe: str = "operation",
) -> T:
    """Call ``operation`` until it succeeds or ``max_attempts`` is exhausted.

    Exceptions outside ``retry_on`` propagate immediately. After the final attempt the
    last error is re-raised unchanged so callers can wrap it in their own taxonomy.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1.")
    delay_for = backoff or linear_backoff()

    attempt = 1
    while True:
        try:
            return operation()
        except retry_on as exc:
            if attempt >= max_attempts:
                logger.debug("%s failed after %d attempt(s): %s", describe, attempt, exc)
                raise
            delay = delay_for(attempt)
            logger.warning(
                "%s failed (attempt %d/%d): %s; retrying in %.1fs",
                describe,
                attempt,
                max_attempts,
                exc,
                delay,
            )
            sleep(delay)
            attempt += 1
