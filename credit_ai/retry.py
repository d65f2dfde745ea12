from __future__ import annotations

import logging
import random
import time
from typing import Callable, Optional, TypeVar

from credit_common.errors import RateLimited

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

MAX_ATTEMPTS = 3
BASE_DELAY_SECONDS = 1.0
MAX_JITTER_SECONDS = 1.0


def backoff_delay(attempt: int, base: float = BASE_DELAY_SECONDS, jitter: float = MAX_JITTER_SECONDS) -> float:
    """Delay before retry number `attempt + 1`: base * 2**attempt plus up to `jitter` seconds."""

    return base * (2**attempt) + random.uniform(0, jitter)


def call_with_backoff(
    func: Callable[[], T],
    *,
    max_attempts: int = MAX_ATTEMPTS,
    base_delay: float = BASE_DELAY_SECONDS,
    label: str = "AI call",
    sleep: Optional[Callable[[float], None]] = None,
) -> T:
    """
    Call `func`, retrying only when it raises RateLimited.

    Any other exception propagates immediately. When every attempt was rate
    limited a RateLimited error is raised with the last failure chained.
    """

    sleep = sleep or time.sleep
    last_error: Optional[RateLimited] = None
    for attempt in range(max_attempts):
        try:
            return func()
        except RateLimited as exc:
            last_error = exc
            if attempt + 1 >= max_attempts:
                break
            delay = backoff_delay(attempt, base_delay)
            LOGGER.warning(
                "%s rate limited. Retrying in %.0fms... (Attempt %d/%d)",
                label,
                delay * 1000,
                attempt + 1,
                max_attempts,
            )
            sleep(delay)

    LOGGER.error("%s failed after %d rate-limited attempts: %s", label, max_attempts, last_error)
    raise RateLimited(
        f"{label} failed due to API rate limits after {max_attempts} attempts. Please wait and try again."
    ) from last_error
