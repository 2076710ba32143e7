"""Oracle-driven entity resolution (near-duplicate clustering).

Relations discovered by the oracle become edges of a `RelationGraph`; the
clusters are its connected components, recomputed on every cycle. Each
cycle runs one discovery step (strategy dependent) followed by an optional
consistency check that ejects members not matching their cluster's theme.
Ejected members become singletons and are re-homed on the next cycle; the
loop ends when a cycle ejects nothing or `max_cycles` is reached.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence

from daily_news_ranker.core.constants import (
    CROSS_COMPARE_MODES,
    CROSS_COMPARE_ONCE,
    RESOLUTION_STRATEGIES,
    SCORE_KEY_QUALIFY,
    STRATEGY_ASSIGN,
    STRATEGY_GRAPH,
    VERIFY_BATCHED,
    VERIFY_MODES,
)
from daily_news_ranker.errors import ConfigurationError, OracleError
from daily_news_ranker.processing.graph import RelationGraph
from daily_news_ranker.processing.oracle import JudgmentOracle
from daily_news_ranker.processing.retry import RetryPolicy
from daily_news_ranker.processing.scheduler import BatchOutcome, BatchScheduler
from daily_news_ranker.processing.types import Item
from daily_news_ranker.utils import chunked, clean_text, stable_order_by_score

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolutionConfig:
    batch_size: int = 25
    concurrency: int = 10
    max_cycles: int = 3
    strategy: str = STRATEGY_GRAPH
    cross_compare: str = CROSS_COMPARE_ONCE
    max_cross_passes: int = 3
    verify: bool = True
    verify_mode: str = VERIFY_BATCHED
    score_key: str = SCORE_KEY_QUALIFY
    retry: RetryPolicy = field(default_factory=lambda: RetryPolicy(max_attempts=2))
    name: str = "grouping"

    def __post_init__(self) -> None:
        if self.batch_size < 2:
            raise ConfigurationError("batch_size must be >= 2")
        if self.concurrency < 1:
            raise ConfigurationError("concurrency must be >= 1")
        if self.max_cycles < 1:
            raise ConfigurationError("max_cycles must be >= 1")
        if self.max_cross_passes < 1:
            raise ConfigurationError("max_cross_passes must be >= 1")
        if self.strategy not in RESOLUTION_STRATEGIES:
            raise ConfigurationError(f"unknown strategy: {self.strategy!r}")
        if self.cross_compare not in CROSS_COMPARE_MODES:
            raise ConfigurationError(f"unknown cross_compare mode: {self.cross_compare!r}")
        if self.verify_mode not in VERIFY_MODES:
            raise ConfigurationError(f"unknown verify_mode: {self.verify_mode!r}")


@dataclass
class Cluster:
    representative: int
    members: list[int]

    @property
    def size(self) -> int:
        return len(self.members)


@dataclass
class ResolutionReport:
    cycles: int = 0
    converged: bool = False
    edges: int = 0
    ejected: int = 0
    oracle_batches: int = 0
    failed_batches: int = 0
    clusters: int = 0


class EntityResolver:
    def __init__(
        self,
        *,
        oracle: JudgmentOracle,
        config: ResolutionConfig,
        scheduler: BatchScheduler | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        self._oracle = oracle
        self._config = config
        self._log = log or logger
        self._scheduler = scheduler or BatchScheduler(
            concurrency=config.concurrency,
            retry_policy=config.retry,
            name=config.name,
            log=self._log,
        )
        self.report = ResolutionReport()

    @property
    def config(self) -> ResolutionConfig:
        return self._config

    @property
    def scheduler(self) -> BatchScheduler:
        return self._scheduler

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    def _score(self, item: Item) -> float:
        try:
            return float(item.get(self._config.score_key) or 0.0)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return 0.0

    @staticmethod
    def elect(members: Sequence[int], scores: Sequence[float]) -> int:
        """Highest score wins; ties go to the first-seen member."""
        return max(members, key=lambda i: (scores[i], -i))

    def _clusters(self, graph: RelationGraph, scores: Sequence[float]) -> list[Cluster]:
        return [
            Cluster(representative=self.elect(members, scores), members=members)
            for members in graph.connected_components()
        ]

    def _run(self, units: Sequence[Any], handler: Callable[[Any], Any]) -> list[BatchOutcome]:
        outcomes = self._scheduler.run(units, handler)
        self.report.oracle_batches += len(outcomes)
        self.report.failed_batches += sum(1 for o in outcomes if not o.ok and not o.cancelled)
        return outcomes

    @staticmethod
    def _added(outcomes: Sequence[BatchOutcome]) -> int:
        return sum(o.value for o in outcomes if o.ok)

    def _relate_handler(self, graph: RelationGraph, titles: Sequence[str]) -> Callable[[list[int]], int]:
        def _handle(batch: list[int]) -> int:
            pairs = self._oracle.relate([titles[i] for i in batch])
            # 배치 내 로컬 인덱스를 전역 ID로 변환
            return sum(1 for a, b in pairs if graph.add_edge(batch[a], batch[b]))

        return _handle

    # ------------------------------------------------------------------
    # discovery: pairwise relations + connectivity
    # ------------------------------------------------------------------
    def _cross_compare(self, graph: RelationGraph, titles: Sequence[str], scores: Sequence[float]) -> int:
        passes = 1 if self._config.cross_compare == CROSS_COMPARE_ONCE else self._config.max_cross_passes
        added_total = 0
        for pass_no in range(1, passes + 1):
            reps = stable_order_by_score(
                [c.representative for c in self._clusters(graph, scores)],
                lambda i: scores[i],
            )
            if len(reps) < 2:
                break
            outcomes = self._run(
                self._scheduler.partition(reps, self._config.batch_size),
                self._relate_handler(graph, titles),
            )
            added = self._added(outcomes)
            added_total += added
            self._log.debug("%s_cross_pass: pass=%s reps=%s added=%s", self._config.name, pass_no, len(reps), added)
            if added == 0:
                break
        return added_total

    def _discover_graph(
        self,
        cycle: int,
        graph: RelationGraph,
        titles: Sequence[str],
        scores: Sequence[float],
    ) -> int:
        added = 0
        if cycle == 1:
            batches = self._scheduler.partition(list(range(len(titles))), self._config.batch_size)
            added += self._added(self._run(batches, self._relate_handler(graph, titles)))
            if len(batches) == 1:
                # 한 배치에서 이미 전부 비교했으므로 대표 교차 비교는 생략
                return added
        added += self._cross_compare(graph, titles, scores)
        return added

    # ------------------------------------------------------------------
    # discovery: assign singletons to representatives
    # ------------------------------------------------------------------
    def _pairing_units(self, nodes: list[int]) -> list[tuple[list[int], list[int]]]:
        """Split `nodes` in halves so every pair is compared exactly once.

        The left half is offered as candidates against the right half, then
        each half is split again. A node never appears on both sides of a unit.
        """
        if len(nodes) < 2:
            return []
        size = self._config.batch_size
        mid = len(nodes) // 2
        left, right = nodes[:mid], nodes[mid:]
        units = [(cand_batch, rep_window) for cand_batch in chunked(left, size) for rep_window in chunked(right, size)]
        return units + self._pairing_units(left) + self._pairing_units(right)

    def _assign_units(
        self,
        graph: RelationGraph,
        scores: Sequence[float],
        fresh: set[int],
    ) -> list[tuple[list[int], list[int]]]:
        clusters = self._clusters(graph, scores)
        by_score = scores.__getitem__
        settled = stable_order_by_score([c.representative for c in clusters if c.size >= 2], by_score)
        singletons = stable_order_by_score([c.members[0] for c in clusters if c.size == 1], by_score)
        size = self._config.batch_size

        # 1) 단독 항목 -> 이미 묶인 클러스터 대표
        units = [
            (cand_batch, rep_window)
            for cand_batch in chunked(singletons, size)
            for rep_window in chunked(settled, size)
        ]
        # 2) 아직 서로 비교하지 않은 단독 항목끼리 (자기 자신은 대표 창에서 제외)
        new = [i for i in singletons if i in fresh]
        old = [i for i in singletons if i not in fresh]
        units += [(cand_batch, rep_window) for cand_batch in chunked(new, size) for rep_window in chunked(old, size)]
        units += self._pairing_units(new)
        return units

    def _discover_assign(
        self,
        graph: RelationGraph,
        titles: Sequence[str],
        scores: Sequence[float],
        fresh: set[int],
    ) -> int:
        units = self._assign_units(graph, scores, fresh)
        if not units:
            return 0

        def _handle(unit: tuple[list[int], list[int]]) -> int:
            cand_batch, rep_window = unit
            mapping = self._oracle.assign(
                [titles[i] for i in rep_window],
                [titles[i] for i in cand_batch],
            )
            added = 0
            for cand_local, rep_local in mapping.items():
                if rep_local is None:
                    continue
                if graph.add_edge(cand_batch[cand_local], rep_window[rep_local]):
                    added += 1
            return added

        return self._added(self._run(units, _handle))

    # ------------------------------------------------------------------
    # consistency verification
    # ------------------------------------------------------------------
    def _check_members(self, titles: Sequence[str], members: list[int]) -> set[int]:
        member_titles = [titles[i] for i in members]
        theme = self._oracle.theme(member_titles)
        if self._config.verify_mode == VERIFY_BATCHED:
            return self._oracle.find_outliers(theme, member_titles)
        outliers: set[int] = set()
        for local, title in enumerate(member_titles):
            try:
                if not self._oracle.matches_theme(theme, title):
                    outliers.add(local)
            except OracleError as e:
                # 개별 판정 실패는 해당 멤버를 유지 (no-op)
                self._log.warning("%s_member_check_failed: title=%s error=%s", self._config.name, title, e)
        return outliers

    def _verify(
        self,
        graph: RelationGraph,
        titles: Sequence[str],
        scores: Sequence[float],
        verified: set[frozenset[int]],
    ) -> list[int]:
        targets = [
            c.members
            for c in self._clusters(graph, scores)
            if c.size >= 2 and frozenset(c.members) not in verified
        ]
        if not targets:
            return []
        outcomes = self._run(targets, lambda members: self._check_members(titles, members))

        ejected: list[int] = []
        for outcome in outcomes:
            if not outcome.ok:
                continue
            members: list[int] = outcome.items
            outliers = {members[i] for i in outcome.value}
            survivors = [m for m in members if m not in outliers]
            for node in sorted(outliers):
                graph.isolate(node)
                for other in members:
                    graph.forbid(node, other)
                ejected.append(node)
            if len(survivors) >= 2:
                # 검증을 통과한 멤버끼리는 연결 유지 (이탈 멤버를 거치던 경로 보존)
                anchor = self.elect(survivors, scores)
                for m in survivors:
                    if m != anchor:
                        graph.add_edge(anchor, m)
                verified.add(frozenset(survivors))
            if outliers:
                self._log.info(
                    "%s_ejected: theme_members=%s ejected=%s",
                    self._config.name,
                    [titles[m] for m in survivors],
                    [titles[m] for m in sorted(outliers)],
                )
        return ejected

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------
    def cluster(self, items: Sequence[Item]) -> list[Cluster]:
        """Group `items` into clusters; every item ends up in exactly one cluster."""
        self.report = ResolutionReport()
        n = len(items)
        if n == 0:
            self.report.converged = True
            return []
        if n == 1:
            self.report.converged = True
            self.report.clusters = 1
            return [Cluster(representative=0, members=[0])]

        titles = [clean_text(str(item.get("title") or "")) for item in items]
        scores = [self._score(item) for item in items]
        graph = RelationGraph(n)
        verified: set[frozenset[int]] = set()
        fresh = set(range(n))

        for cycle in range(1, self._config.max_cycles + 1):
            self.report.cycles = cycle
            if self._config.strategy == STRATEGY_ASSIGN:
                added = self._discover_assign(graph, titles, scores, fresh)
            else:
                added = self._discover_graph(cycle, graph, titles, scores)
            ejected = self._verify(graph, titles, scores, verified) if self._config.verify else []
            self.report.ejected += len(ejected)
            # 이탈 멤버만 다음 사이클에 다른 단독 항목과 다시 비교
            fresh = set(ejected)
            self._log.info(
                "%s_cycle_done: cycle=%s/%s added_edges=%s ejected=%s",
                self._config.name,
                cycle,
                self._config.max_cycles,
                added,
                len(ejected),
            )
            # 배정 전략은 새 연결이 없을 때까지 남은 단독 항목을 다시 배정
            if not ejected and (self._config.strategy != STRATEGY_ASSIGN or added == 0):
                self.report.converged = True
                break
        else:
            # 최대 반복 도달: 남은 이탈 멤버는 단독 클러스터로 확정
            self._log.warning(
                "%s_cycle_cap_reached: cycles=%s ejected_total=%s",
                self._config.name,
                self._config.max_cycles,
                self.report.ejected,
            )

        clusters = self._clusters(graph, scores)
        self.report.edges = len(graph)
        self.report.clusters = len(clusters)
        return clusters

    def resolve(self, items: Sequence[Item]) -> list[Item]:
        """One representative per cluster, carrying the ordered member urls/titles.

        Output is ordered by representative score, highest first.
        """
        clusters = self.cluster(items)
        results: list[Item] = []
        for c in clusters:
            rep: Item = dict(items[c.representative])  # type: ignore[assignment]
            rep["clusterSize"] = c.size
            rep["clusterUrls"] = [str(items[m].get("url") or m) for m in c.members]
            rep["clusterTitles"] = [str(items[m].get("title") or "") for m in c.members]
            results.append(rep)
        self._log.info(
            "%s_done: items=%s clusters=%s cycles=%s converged=%s failed_batches=%s",
            self._config.name,
            len(items),
            len(results),
            self.report.cycles,
            self.report.converged,
            self.report.failed_batches,
        )
        return stable_order_by_score(results, self._score)
