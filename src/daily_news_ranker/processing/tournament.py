from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from typing import Sequence

from daily_news_ranker.core.constants import (
    SCORE_KEY_QUALIFY,
    SINGLETON_POLICIES,
    SINGLETON_POLICY_RUNNER_UP,
    SINGLETON_POLICY_ZERO,
)
from daily_news_ranker.errors import ConfigurationError
from daily_news_ranker.processing.oracle import JudgmentOracle
from daily_news_ranker.processing.retry import RetryPolicy
from daily_news_ranker.processing.scheduler import BatchScheduler, ScheduleReport
from daily_news_ranker.processing.store import ScoreStore
from daily_news_ranker.processing.types import Item
from daily_news_ranker.utils import chunked

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TournamentConfig:
    rounds: int
    group_size: int
    points: tuple[int, ...]
    concurrency: int
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    singleton_policy: str = SINGLETON_POLICY_ZERO
    score_key: str = SCORE_KEY_QUALIFY
    name: str = "tournament"

    def __post_init__(self) -> None:
        if self.rounds < 1:
            raise ConfigurationError("rounds must be >= 1")
        if self.group_size < 2:
            raise ConfigurationError("group_size must be >= 2")
        if not self.points:
            raise ConfigurationError("points table must not be empty")
        if self.concurrency < 1:
            raise ConfigurationError("concurrency must be >= 1")
        if self.singleton_policy not in SINGLETON_POLICIES:
            raise ConfigurationError(f"unknown singleton_policy: {self.singleton_policy!r}")

    def points_for(self, position: int) -> int:
        # 배점표 길이를 넘는 순위는 0점
        if 0 <= position < len(self.points):
            return self.points[position]
        return 0

    @property
    def singleton_points(self) -> int:
        if self.singleton_policy == SINGLETON_POLICY_RUNNER_UP:
            return self.points_for(1)
        return 0


@dataclass
class RoundReport:
    round: int
    groups: int
    ranked: int
    failed: int
    cancelled: int
    singletons: int


class SwissTournament:
    """Multi-round Swiss-style ranking built from small-group oracle comparisons.

    Round 1 shuffles participants into groups; later rounds sort by the
    cumulative score (ties keep input order) so similar standings meet.
    Scores only ever grow and are never reset between rounds.
    """

    def __init__(
        self,
        *,
        oracle: JudgmentOracle,
        config: TournamentConfig,
        rng: random.Random | None = None,
        scheduler: BatchScheduler | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        self._oracle = oracle
        self._config = config
        self._rng = rng or random.Random()
        self._log = log or logger
        self._scheduler = scheduler or BatchScheduler(
            concurrency=config.concurrency,
            retry_policy=config.retry,
            name=config.name,
            log=self._log,
        )
        self.reports: list[RoundReport] = []

    @property
    def config(self) -> TournamentConfig:
        return self._config

    @property
    def scheduler(self) -> BatchScheduler:
        return self._scheduler

    def plan_round(self, round_no: int, store: ScoreStore) -> list[list[int]]:
        if round_no == 1:
            order = store.identities()
            self._rng.shuffle(order)
        else:
            order = store.ordered()
        return chunked(order, self._config.group_size)

    def _play_group(self, store: ScoreStore, group: list[int]) -> int:
        titles = [store.title(identity) for identity in group]
        # 파싱/검증이 끝난 뒤에만 점수를 반영 (재시도해도 부작용 없음)
        order = self._oracle.rank(titles)
        awarded = 0
        for position, local in enumerate(order):
            if local < 0:
                continue
            store.add_points(group[local], self._config.points_for(position))
            awarded += 1
        return awarded

    def play_round(self, round_no: int, store: ScoreStore) -> RoundReport:
        groups = self.plan_round(round_no, store)
        contested = [g for g in groups if len(g) >= 2]
        singletons = [g for g in groups if len(g) < 2]
        for group in singletons:
            store.add_points(group[0], self._config.singleton_points)

        outcomes = self._scheduler.run(contested, lambda g: self._play_group(store, g))
        summary = ScheduleReport.from_outcomes(outcomes)
        for outcome in outcomes:
            if not outcome.ok and not outcome.cancelled:
                self._log.warning(
                    "%s_group_skipped: round=%s titles=%s",
                    self._config.name,
                    round_no,
                    [store.title(i) for i in outcome.items],
                )
        report = RoundReport(
            round=round_no,
            groups=len(groups),
            ranked=summary.succeeded,
            failed=summary.failed,
            cancelled=summary.cancelled,
            singletons=len(singletons),
        )
        self._log.info(
            "%s_round_done: round=%s/%s groups=%s ranked=%s failed=%s singletons=%s",
            self._config.name,
            round_no,
            self._config.rounds,
            report.groups,
            report.ranked,
            report.failed,
            report.singletons,
        )
        return report

    def run(self, items: Sequence[Item]) -> list[Item]:
        """Play every round and return copies of `items` with score and dense rank.

        The output always has exactly one entry per input item.
        """
        self.reports = []
        if not items:
            return []
        store = ScoreStore(items)
        for round_no in range(1, self._config.rounds + 1):
            self.reports.append(self.play_round(round_no, store))

        ranked: list[Item] = []
        for rank, identity in enumerate(store.ordered(), start=1):
            item: Item = dict(store.item(identity))  # type: ignore[assignment]
            item[self._config.score_key] = store.score(identity)  # type: ignore[literal-required]
            item["rank"] = rank
            ranked.append(item)
        return ranked
