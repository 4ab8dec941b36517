"""
Retry with multiplicative backoff for external calls (Slack, LLM).
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

from .logs import log_event

logger = logging.getLogger(__name__)

T = TypeVar("T")

BACKOFF_FACTOR = 1.5
MAX_JITTER_SECONDS = 1.0


def with_retry(
    operation: Callable[[], T],
    max_retries: int = 3,
    initial_delay: float = 2.0,
    *,
    retry_if: Callable[[BaseException], bool] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``operation`` up to ``max_retries + 1`` times.

    After every failed attempt that still has a successor, wait ``delay``
    seconds; the delay grows by 1.5x plus up to one second of jitter.
    ``retry_if`` returning False for an error re-raises it at once.
    """
    last_err: Exception | None = None
    delay = initial_delay

    for attempt in range(max_retries + 1):
        try:
            if attempt > 0:
                log_event(logger, "retry_attempt", attempt=attempt, max_retries=max_retries)
            return operation()
        except Exception as e:
            last_err = e
            log_event(
                logger,
                "attempt_failed",
                logging.WARNING,
                attempt=attempt,
                max_retries=max_retries,
                error=str(e),
            )
            if retry_if is not None and not retry_if(e):
                raise
            if attempt < max_retries:
                log_event(logger, "retry_wait", seconds=round(delay, 3))
                sleep(delay)
                delay = delay * BACKOFF_FACTOR + random.uniform(0, MAX_JITTER_SECONDS)

    raise last_err or RuntimeError("Maximum retries exceeded")


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    initial_delay: float = 2.0
    retry_if: Callable[[BaseException], bool] | None = None
    sleep: Callable[[float], None] = time.sleep

    def call(self, operation: Callable[[], T]) -> T:
        return with_retry(
            operation,
            self.max_retries,
            self.initial_delay,
            retry_if=self.retry_if,
            sleep=self.sleep,
        )
