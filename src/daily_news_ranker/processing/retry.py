"""Retry policy with exponential backoff around one unit of oracle work.

The policy only decides *when* to try again; callers supply the work as a
plain callable, so it composes with thread pools as well as with direct
sequential calls.
"""

from __future__ import annotations

import random
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, TypeVar

from daily_news_ranker.errors import ConfigurationError, ExhaustedRetries, is_retryable

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    jitter: float = 0.0
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ConfigurationError("max_attempts must be >= 1")
        if self.base_delay < 0 or self.max_delay < 0 or self.jitter < 0:
            raise ConfigurationError("retry delays must be non-negative")

    def delay_for(self, attempt: int) -> float:
        """Delay before the attempt following `attempt` (1-based): base * 2^(attempt-1)."""
        delay = min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)
        if self.jitter:
            delay += random.uniform(0, self.jitter)
        return delay

    def call(
        self,
        func: Callable[[], T],
        *,
        retry_if: Callable[[BaseException], bool] = is_retryable,
        on_retry: Callable[[int, BaseException, float], None] | None = None,
        cancel_event: threading.Event | None = None,
    ) -> T:
        """Run `func` until it succeeds or the budget is spent.

        Non-retryable exceptions propagate untouched. Exhausting the budget
        raises `ExhaustedRetries` chained to the last failure.
        """
        last_exc: BaseException | None = None
        attempts = 0
        for attempt in range(1, self.max_attempts + 1):
            if cancel_event is not None and cancel_event.is_set():
                break
            attempts = attempt
            try:
                return func()
            except Exception as e:
                if not retry_if(e):
                    raise
                last_exc = e
                if attempt < self.max_attempts:
                    delay = self.delay_for(attempt)
                    if on_retry:
                        on_retry(attempt, e, delay)
                    if delay > 0:
                        self.sleep(delay)
        raise ExhaustedRetries(attempts, last_exc) from last_exc
