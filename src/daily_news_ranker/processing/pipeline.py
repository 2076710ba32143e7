from __future__ import annotations

import datetime
import random
from dataclasses import dataclass, field
from typing import Sequence

from daily_news_ranker.core.config import (
    CONTENDERS_TO_RANK,
    GROUPING_BATCH_SIZE,
    GROUPING_CONCURRENCY,
    GROUPING_CROSS_COMPARE,
    GROUPING_MAX_CROSS_PASSES,
    GROUPING_MAX_CYCLES,
    GROUPING_RETRIES,
    GROUPING_STRATEGY,
    GROUPING_VERIFY_ENABLED,
    GROUPING_VERIFY_MODE,
    ORACLE_LONG_TIMEOUT_SEC,
    ORACLE_RETRY_BACKOFF_SEC,
    ORACLE_TIMEOUT_SEC,
    QUALIFICATION_CONCURRENCY,
    QUALIFICATION_GROUP_SIZE,
    QUALIFICATION_POINTS_TABLE,
    QUALIFICATION_RETRIES,
    QUALIFICATION_RETRY_DELAY_SEC,
    QUALIFICATION_ROUNDS,
    SINGLETON_POLICY,
    TASK_DESCRIPTION,
    TOURNAMENT_CONCURRENCY,
    TOURNAMENT_GROUP_SIZE,
    TOURNAMENT_POINTS_TABLE,
    TOURNAMENT_RETRIES,
    TOURNAMENT_RETRY_DELAY_SEC,
    TOURNAMENT_ROUNDS,
)
from daily_news_ranker.core.constants import (
    RANK_TEMPERATURE_FINAL,
    RANK_TEMPERATURE_QUALIFY,
    SCORE_KEY_FINAL,
    SCORE_KEY_QUALIFY,
)
from daily_news_ranker.errors import ConfigurationError
from daily_news_ranker.processing.llm_client import OracleClient
from daily_news_ranker.processing.oracle import JudgmentOracle
from daily_news_ranker.processing.resolution import EntityResolver, ResolutionConfig, ResolutionReport
from daily_news_ranker.processing.retry import RetryPolicy
from daily_news_ranker.processing.tournament import RoundReport, SwissTournament, TournamentConfig
from daily_news_ranker.processing.types import Item, JudgeFunc, LogFunc


def _log(message: str) -> None:
    ts = datetime.datetime.now().strftime("%H:%M:%S")
    print(f"[{ts}] {message}")


@dataclass
class PipelineResult:
    qualified: list[Item] = field(default_factory=list)
    clusters: list[Item] = field(default_factory=list)
    ranked: list[Item] = field(default_factory=list)
    qualification_rounds: list[RoundReport] = field(default_factory=list)
    resolution: ResolutionReport | None = None
    final_rounds: list[RoundReport] = field(default_factory=list)


class RankingPipeline:
    """qualification -> dedup -> finals, each stage fed by the previous one."""

    def __init__(
        self,
        *,
        qualifier: SwissTournament,
        resolver: EntityResolver,
        finalist: SwissTournament,
        logger: LogFunc,
        contenders_to_rank: int,
    ) -> None:
        if contenders_to_rank < 1:
            raise ConfigurationError("contenders_to_rank must be >= 1")
        self._qualifier = qualifier
        self._resolver = resolver
        self._finalist = finalist
        self._log = logger
        self._contenders_to_rank = contenders_to_rank

    def abort(self) -> None:
        # 진행 중인 모든 단계의 남은 배치를 취소
        self._qualifier.scheduler.abort()
        self._resolver.scheduler.abort()
        self._finalist.scheduler.abort()

    def reset(self) -> None:
        # 중단 해제: 다음 run부터 모든 단계를 다시 실행
        self._qualifier.scheduler.reset()
        self._resolver.scheduler.reset()
        self._finalist.scheduler.reset()

    def run(self, items: Sequence[Item]) -> PipelineResult:
        result = PipelineResult()
        if not items:
            self._log("입력 항목 없음: 랭킹 생략")
            return result

        self._log(f"예선 시작: {len(items)}개 항목")
        result.qualified = self._qualifier.run(items)
        result.qualification_rounds = list(self._qualifier.reports)

        contenders = result.qualified[: self._contenders_to_rank]
        self._log(f"중복 묶기 시작: 상위 {len(contenders)}개")
        result.clusters = self._resolver.resolve(contenders)
        result.resolution = self._resolver.report

        self._log(f"결선 시작: {len(result.clusters)}개 클러스터")
        result.ranked = self._finalist.run(result.clusters)
        result.final_rounds = list(self._finalist.reports)

        failed = sum(r.failed for r in result.qualification_rounds + result.final_rounds)
        self._log(
            f"완료: 입력 {len(items)} → 예선 {len(result.qualified)} → 클러스터 {len(result.clusters)} "
            f"→ 결선 {len(result.ranked)} (실패 그룹 {failed}, 실패 배치 {result.resolution.failed_batches})"
        )
        return result


def build_default_judge_func() -> JudgeFunc:
    return OracleClient().judge


def build_default_oracle(*, judge_func: JudgeFunc | None = None) -> JudgmentOracle:
    return JudgmentOracle(
        judge_func=judge_func or build_default_judge_func(),
        task_description=TASK_DESCRIPTION,
        rank_temperature=RANK_TEMPERATURE_QUALIFY,
        rank_timeout_sec=ORACLE_TIMEOUT_SEC,
        grouping_timeout_sec=ORACLE_LONG_TIMEOUT_SEC,
    )


def build_default_qualifier(*, oracle: JudgmentOracle, rng: random.Random | None = None) -> SwissTournament:
    config = TournamentConfig(
        rounds=QUALIFICATION_ROUNDS,
        group_size=QUALIFICATION_GROUP_SIZE,
        points=QUALIFICATION_POINTS_TABLE,
        concurrency=QUALIFICATION_CONCURRENCY,
        retry=RetryPolicy(max_attempts=max(1, QUALIFICATION_RETRIES), base_delay=QUALIFICATION_RETRY_DELAY_SEC),
        singleton_policy=SINGLETON_POLICY,
        score_key=SCORE_KEY_QUALIFY,
        name="qualification",
    )
    return SwissTournament(oracle=oracle, config=config, rng=rng)


def build_default_resolver(*, oracle: JudgmentOracle) -> EntityResolver:
    config = ResolutionConfig(
        batch_size=GROUPING_BATCH_SIZE,
        concurrency=GROUPING_CONCURRENCY,
        max_cycles=GROUPING_MAX_CYCLES,
        strategy=GROUPING_STRATEGY,
        cross_compare=GROUPING_CROSS_COMPARE,
        max_cross_passes=GROUPING_MAX_CROSS_PASSES,
        verify=GROUPING_VERIFY_ENABLED,
        verify_mode=GROUPING_VERIFY_MODE,
        score_key=SCORE_KEY_QUALIFY,
        retry=RetryPolicy(max_attempts=max(1, GROUPING_RETRIES), base_delay=ORACLE_RETRY_BACKOFF_SEC),
    )
    return EntityResolver(oracle=oracle, config=config)


def build_default_finalist(*, oracle: JudgmentOracle, rng: random.Random | None = None) -> SwissTournament:
    config = TournamentConfig(
        rounds=TOURNAMENT_ROUNDS,
        group_size=TOURNAMENT_GROUP_SIZE,
        points=TOURNAMENT_POINTS_TABLE,
        concurrency=TOURNAMENT_CONCURRENCY,
        retry=RetryPolicy(max_attempts=max(1, TOURNAMENT_RETRIES), base_delay=TOURNAMENT_RETRY_DELAY_SEC),
        singleton_policy=SINGLETON_POLICY,
        score_key=SCORE_KEY_FINAL,
        name="finals",
    )
    return SwissTournament(
        oracle=oracle.with_rank_temperature(RANK_TEMPERATURE_FINAL),
        config=config,
        rng=rng,
    )


def build_default_pipeline(
    *,
    logger: LogFunc = _log,
    judge_func: JudgeFunc | None = None,
    rng: random.Random | None = None,
) -> RankingPipeline:
    oracle = build_default_oracle(judge_func=judge_func)
    return RankingPipeline(
        qualifier=build_default_qualifier(oracle=oracle, rng=rng),
        resolver=build_default_resolver(oracle=oracle),
        finalist=build_default_finalist(oracle=oracle, rng=rng),
        logger=logger,
        contenders_to_rank=CONTENDERS_TO_RANK,
    )
