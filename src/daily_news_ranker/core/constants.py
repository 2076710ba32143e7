from __future__ import annotations

DEFAULT_TASK_DESCRIPTION = (
    "Provide readers with a daily briefing of the most important national and international news."
)

# 순위별 배점 (0-index 순위 -> 점수, 표 길이를 넘는 순위는 0점)
QUALIFICATION_POINTS: tuple[int, ...] = (5, 3, 2, 1, 0)
TOURNAMENT_POINTS: tuple[int, ...] = (3, 1, 0)

SINGLETON_POLICY_ZERO = "zero"
SINGLETON_POLICY_RUNNER_UP = "runner_up"
SINGLETON_POLICIES = frozenset({SINGLETON_POLICY_ZERO, SINGLETON_POLICY_RUNNER_UP})

STRATEGY_GRAPH = "graph"
STRATEGY_ASSIGN = "assign"
RESOLUTION_STRATEGIES = frozenset({STRATEGY_GRAPH, STRATEGY_ASSIGN})

CROSS_COMPARE_ONCE = "once"
CROSS_COMPARE_ITERATIVE = "iterative"
CROSS_COMPARE_MODES = frozenset({CROSS_COMPARE_ONCE, CROSS_COMPARE_ITERATIVE})

VERIFY_BATCHED = "batched"
VERIFY_PER_MEMBER = "per_member"
VERIFY_MODES = frozenset({VERIFY_BATCHED, VERIFY_PER_MEMBER})

# 프롬프트 종류별 temperature
RANK_TEMPERATURE_QUALIFY = 0.2
RANK_TEMPERATURE_FINAL = 0.3
GROUPING_TEMPERATURE = 0.0

SCORE_KEY_QUALIFY = "score"
SCORE_KEY_FINAL = "tournamentScore"

RETRYABLE_HTTP_STATUS = frozenset({408, 429, 500, 502, 503, 504})

NEW_CLUSTER_LABEL = "new"
NO_OUTLIERS_TOKEN = "none"
THEME_MAX_CHARS = 80
