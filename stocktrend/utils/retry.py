"""Fixed-interval retry helper (used when opening the database)."""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryCancelled(RuntimeError):
    """Raised when ``should_stop`` turns true between attempts."""


def retry(
    fn: Callable[[], T],
    limit: int,
    interval_s: float,
    should_stop: Optional[Callable[[], bool]] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``fn`` until it succeeds or ``limit`` attempts have failed.

    Args:
        fn: Zero-argument callable to attempt.
        limit: Maximum number of attempts (>= 1).
        interval_s: Seconds to sleep between attempts.
        should_stop: Optional cancellation check, consulted before each attempt.
        sleep: Injected sleep function (tests pass a no-op).

    Returns:
        Whatever ``fn`` returns on its first successful attempt.

    Raises:
        ValueError: If ``limit < 1``.
        RetryCancelled: If ``should_stop()`` returned ``True``.
        Exception: The last exception raised by ``fn`` once attempts run out.
    """
    if limit < 1:
        raise ValueError(f"limit must be >= 1, got {limit}.")

    attempt = 1
    while True:
        if should_stop is not None and should_stop():
            raise RetryCancelled(f"Retry cancelled before attempt {attempt}.")
        try:
            return fn()
        except Exception as exc:
            if attempt >= limit:
                logger.error(
                    "attempt %d failed: %s. reached attempt limit %d.",
                    attempt, exc, limit,
                )
                raise
            logger.warning(
                "attempt %d failed: %s. sleep %.1fs and retry.",
                attempt, exc, interval_s,
            )
            sleep(interval_s)
            attempt += 1
