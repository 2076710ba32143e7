from __future__ import annotations

import random
import re
import threading

import pytest

from daily_news_ranker.errors import ConfigurationError
from daily_news_ranker.processing.oracle import JudgmentOracle
from daily_news_ranker.processing.pipeline import (
    RankingPipeline,
    build_default_finalist,
    build_default_pipeline,
    build_default_qualifier,
    build_default_resolver,
)
from daily_news_ranker.processing.resolution import EntityResolver, ResolutionConfig
from daily_news_ranker.processing.retry import RetryPolicy
from daily_news_ranker.processing.tournament import SwissTournament, TournamentConfig

_NUMBERED_RE = re.compile(r"^\d+\. (.*)$", flags=re.MULTILINE)
_ID_RE = re.compile(r'^ID_(\d+): "(.*)"$', flags=re.MULTILINE)


class _NoShuffle(random.Random):
    def shuffle(self, x) -> None:  # type: ignore[override]
        return None


class _NewsDeskJudge:
    """Prefers headlines containing "major"; headlines sharing a first word are one event."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, float]] = []
        self._lock = threading.Lock()

    def __call__(self, messages, temperature=0.2, timeout=None) -> str:
        system, user = messages[0]["content"], messages[1]["content"]
        with self._lock:
            self.calls.append((system, temperature))
        if "news editor" in system:
            titles = _NUMBERED_RE.findall(user)
            order = sorted(range(len(titles)), key=lambda i: ("major" not in titles[i], i))
            return ",".join(str(i + 1) for i in order)
        if "text matcher" in system:
            entries = [(int(i), t.split()[0]) for i, t in _ID_RE.findall(user)]
            pairs = [[a, b] for n, (a, wa) in enumerate(entries) for b, wb in entries[n + 1 :] if wa == wb]
            return str(pairs)
        if "topic analyst" in system:
            return "Shared topic"
        if "checking whether each headline" in system:
            return "none"
        raise AssertionError(f"unexpected prompt: {system}")

    def temperatures(self, marker: str) -> set[float]:
        return {t for s, t in self.calls if marker in s}


def _build_pipeline(judge, *, contenders: int = 10) -> RankingPipeline:
    oracle = JudgmentOracle(judge_func=judge)
    no_retry = RetryPolicy(max_attempts=1, base_delay=0.0)
    qualifier = SwissTournament(
        oracle=oracle,
        config=TournamentConfig(rounds=2, group_size=4, points=(5, 3, 2, 1, 0), concurrency=2, retry=no_retry),
        rng=_NoShuffle(),
    )
    resolver = EntityResolver(
        oracle=oracle,
        config=ResolutionConfig(batch_size=6, concurrency=2, retry=no_retry),
    )
    finalist = SwissTournament(
        oracle=oracle.with_rank_temperature(0.3),
        config=TournamentConfig(
            rounds=3,
            group_size=3,
            points=(3, 1, 0),
            concurrency=2,
            retry=no_retry,
            score_key="tournamentScore",
            name="finals",
        ),
        rng=_NoShuffle(),
    )
    return RankingPipeline(
        qualifier=qualifier,
        resolver=resolver,
        finalist=finalist,
        logger=lambda _msg: None,
        contenders_to_rank=contenders,
    )


def _items() -> list[dict]:
    titles = [
        "quake major damage reported",
        "budget vote delayed",
        "quake aftershocks continue",
        "festival opens downtown",
        "election major turnout",
        "election results contested",
        "storm warning issued",
        "budget talks resume",
    ]
    return [{"url": f"https://news.example/{i}", "title": t} for i, t in enumerate(titles)]


def test_pipeline_qualifies_dedupes_and_ranks() -> None:
    judge = _NewsDeskJudge()
    pipeline = _build_pipeline(judge)
    items = _items()

    result = pipeline.run(items)

    assert len(result.qualified) == len(items)
    assert sorted(i["rank"] for i in result.qualified) == list(range(1, len(items) + 1))

    cluster_titles = sorted(sorted(c["clusterTitles"]) for c in result.clusters)
    assert cluster_titles == [
        ["budget talks resume", "budget vote delayed"],
        ["election major turnout", "election results contested"],
        ["festival opens downtown"],
        ["quake aftershocks continue", "quake major damage reported"],
        ["storm warning issued"],
    ]
    assert sum(c["clusterSize"] for c in result.clusters) == len(items)

    assert len(result.ranked) == len(result.clusters)
    assert [r["rank"] for r in result.ranked] == list(range(1, len(result.clusters) + 1))
    assert all("tournamentScore" in r for r in result.ranked)
    assert {r["title"] for r in result.ranked[:2]} == {"quake major damage reported", "election major turnout"}

    assert len(result.qualification_rounds) == 2
    assert len(result.final_rounds) == 3
    assert result.resolution is not None and result.resolution.converged
    assert judge.temperatures("news editor") == {0.2, 0.3}
    assert judge.temperatures("text matcher") == {0.0}


def test_pipeline_limits_contenders() -> None:
    judge = _NewsDeskJudge()
    result = _build_pipeline(judge, contenders=3).run(_items())

    assert len(result.qualified) == 8
    assert sum(c["clusterSize"] for c in result.clusters) == 3


def test_pipeline_empty_input_makes_no_calls() -> None:
    judge = _NewsDeskJudge()
    result = _build_pipeline(judge).run([])

    assert result.qualified == []
    assert result.clusters == []
    assert result.ranked == []
    assert judge.calls == []


def test_pipeline_rejects_zero_contenders() -> None:
    with pytest.raises(ConfigurationError):
        _build_pipeline(_NewsDeskJudge(), contenders=0)


def test_abort_reaches_every_stage() -> None:
    pipeline = _build_pipeline(_NewsDeskJudge())
    pipeline.abort()
    result = pipeline.run(_items())

    # 취소된 배치는 점수 변화 없이 모든 항목을 그대로 남김
    assert len(result.qualified) == 8
    assert all(i["score"] == 0 for i in result.qualified)
    assert all(r.cancelled == r.groups - r.singletons for r in result.qualification_rounds)


def test_reset_after_abort_runs_normally() -> None:
    pipeline = _build_pipeline(_NewsDeskJudge())
    pipeline.abort()
    pipeline.run(_items())

    pipeline.reset()
    result = pipeline.run(_items())

    assert all(r.cancelled == 0 for r in result.qualification_rounds)
    assert len(result.clusters) == 5


def test_default_builders_wire_configured_engines() -> None:
    judge = _NewsDeskJudge()
    oracle = JudgmentOracle(judge_func=judge)

    qualifier = build_default_qualifier(oracle=oracle)
    finalist = build_default_finalist(oracle=oracle)
    resolver = build_default_resolver(oracle=oracle)
    pipeline = build_default_pipeline(judge_func=judge, logger=lambda _msg: None)

    assert qualifier.config.score_key == "score"
    assert finalist.config.score_key == "tournamentScore"
    assert resolver.config.score_key == "score"
    assert isinstance(pipeline, RankingPipeline)
