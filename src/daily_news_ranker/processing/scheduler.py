from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Sequence, TypeVar

from daily_news_ranker.errors import ConfigurationError, ExhaustedRetries
from daily_news_ranker.processing.retry import RetryPolicy
from daily_news_ranker.utils import chunked

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class BatchOutcome(Generic[T]):
    index: int
    items: T
    ok: bool = False
    value: Any = None
    error: BaseException | None = None
    cancelled: bool = False


@dataclass
class ScheduleReport:
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    cancelled: int = 0
    errors: list[str] = field(default_factory=list)

    @classmethod
    def from_outcomes(cls, outcomes: Sequence[BatchOutcome[Any]]) -> "ScheduleReport":
        report = cls(total=len(outcomes))
        for outcome in outcomes:
            if outcome.ok:
                report.succeeded += 1
            elif outcome.cancelled:
                report.cancelled += 1
            else:
                report.failed += 1
                if outcome.error is not None:
                    report.errors.append(f"{type(outcome.error).__name__}: {outcome.error}")
        return report


class BatchScheduler:
    """Runs batches through a bounded worker pool.

    Each batch is retried on its own budget; a failed batch becomes a failed
    `BatchOutcome` and never affects its siblings. `run` returns only after
    every batch has finished, which makes it the barrier between rounds.
    """

    def __init__(
        self,
        *,
        concurrency: int,
        retry_policy: RetryPolicy | None = None,
        name: str = "batch",
        log: logging.Logger | None = None,
    ) -> None:
        if concurrency < 1:
            raise ConfigurationError("concurrency must be >= 1")
        self._concurrency = concurrency
        self._retry = retry_policy or RetryPolicy(max_attempts=1, base_delay=0.0)
        self._name = name
        self._log = log or logger
        self._cancel = threading.Event()

    @property
    def concurrency(self) -> int:
        return self._concurrency

    @property
    def aborted(self) -> bool:
        return self._cancel.is_set()

    def abort(self) -> None:
        """Skip batches not yet started and any pending retries.

        The abort is sticky: every later `run` cancels all of its batches
        until `reset` is called.
        """
        self._cancel.set()

    def reset(self) -> None:
        # 중단 상태 해제: 이후 run은 정상 실행
        self._cancel.clear()

    @staticmethod
    def partition(items: Sequence[T], batch_size: int) -> list[list[T]]:
        if batch_size < 1:
            raise ConfigurationError("batch_size must be >= 1")
        return chunked(items, batch_size)

    def _run_one(self, index: int, batch: T, handler: Callable[[T], Any]) -> BatchOutcome[T]:
        outcome: BatchOutcome[T] = BatchOutcome(index=index, items=batch)
        if self._cancel.is_set():
            outcome.cancelled = True
            return outcome

        def _on_retry(attempt: int, exc: BaseException, delay: float) -> None:
            self._log.warning(
                "%s_retry: batch=%s size=%s attempt=%s/%s delay=%.2fs error=%s",
                self._name,
                index,
                len(batch),
                attempt,
                self._retry.max_attempts,
                delay,
                exc,
            )

        try:
            outcome.value = self._retry.call(
                lambda: handler(batch),
                on_retry=_on_retry,
                cancel_event=self._cancel,
            )
            outcome.ok = True
        except ExhaustedRetries as e:
            outcome.error = e
            if self._cancel.is_set() and e.last_error is None:
                outcome.cancelled = True
            else:
                self._log.error("%s_failed: batch=%s size=%s error=%s", self._name, index, len(batch), e)
        except Exception as e:
            outcome.error = e
            self._log.exception("%s_failed: batch=%s size=%s error=%s", self._name, index, len(batch), e)
        return outcome

    def run(self, batches: Sequence[T], handler: Callable[[T], Any]) -> list[BatchOutcome[T]]:
        """Run `handler` once per batch; outcomes come back in batch order.

        A batch is usually a list of items but may be any sized unit of work.
        """
        if not batches:
            return []
        work = list(batches)
        worker_count = min(self._concurrency, len(work))
        if worker_count <= 1:
            return [self._run_one(idx, batch, handler) for idx, batch in enumerate(work)]

        outcomes: list[BatchOutcome[T]] = [None] * len(work)  # type: ignore[list-item]
        with ThreadPoolExecutor(max_workers=worker_count, thread_name_prefix=self._name) as executor:
            future_map = {
                executor.submit(self._run_one, idx, batch, handler): idx for idx, batch in enumerate(work)
            }
            for future in as_completed(future_map):
                idx = future_map[future]
                outcomes[idx] = future.result()
        return outcomes
