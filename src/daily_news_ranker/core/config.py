from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

from daily_news_ranker.core.constants import (
    CROSS_COMPARE_ONCE,
    DEFAULT_TASK_DESCRIPTION,
    QUALIFICATION_POINTS,
    SINGLETON_POLICY_ZERO,
    STRATEGY_GRAPH,
    TOURNAMENT_POINTS,
    VERIFY_BATCHED,
)

_repo_root = Path(__file__).resolve().parents[3]
load_dotenv(dotenv_path=_repo_root / ".env")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except Exception:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except Exception:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    return raw in {"1", "true", "True", "yes", "YES"}


def _parse_csv_env(name: str) -> list[str]:
    """CSV 형태의 환경변수를 리스트로 파싱."""
    raw = os.getenv(name, "").strip()
    if not raw:
        return []
    return [x.strip() for x in raw.split(",") if x.strip()]


def _env_points(name: str, default: tuple[int, ...]) -> tuple[int, ...]:
    """배점표 환경변수(예: "5,3,2,1,0")를 파싱, 숫자가 아니면 기본값 사용."""
    parts = _parse_csv_env(name)
    if not parts:
        return default
    try:
        return tuple(int(p) for p in parts)
    except Exception:
        return default


# ==========================================
# 사용자 설정 (수정 가능)
# ==========================================

TASK_DESCRIPTION = os.getenv("TASK_DESCRIPTION", DEFAULT_TASK_DESCRIPTION).strip() or DEFAULT_TASK_DESCRIPTION

# ==========================================
# Oracle (OpenAI 호환 chat completions)
# ==========================================

ORACLE_API_URL = os.getenv("ORACLE_API_URL", "http://localhost:1234/v1/chat/completions")
ORACLE_MODEL = os.getenv("ORACLE_MODEL", "").strip()
ORACLE_API_KEY = os.getenv("ORACLE_API_KEY", "").strip()
ORACLE_TIMEOUT_SEC = _env_float("ORACLE_TIMEOUT_SEC", 120.0)
ORACLE_LONG_TIMEOUT_SEC = _env_float("ORACLE_LONG_TIMEOUT_SEC", 300.0)
ORACLE_MAX_RETRIES = _env_int("ORACLE_MAX_RETRIES", 1)
ORACLE_RETRY_BACKOFF_SEC = _env_float("ORACLE_RETRY_BACKOFF_SEC", 1.0)
ORACLE_MAX_TOKENS = _env_int("ORACLE_MAX_TOKENS", 4096)
ORACLE_DEBUG = _env_bool("ORACLE_DEBUG", False)

# ==========================================
# 예선 (스위스 토너먼트)
# ==========================================

QUALIFICATION_ROUNDS = _env_int("QUALIFICATION_ROUNDS", 2)
QUALIFICATION_GROUP_SIZE = _env_int("QUALIFICATION_GROUP_SIZE", 10)
QUALIFICATION_POINTS_TABLE = _env_points("QUALIFICATION_POINTS", QUALIFICATION_POINTS)
QUALIFICATION_CONCURRENCY = _env_int("QUALIFICATION_CONCURRENCY", 10)
QUALIFICATION_RETRIES = _env_int("QUALIFICATION_RETRIES", 3)
QUALIFICATION_RETRY_DELAY_SEC = _env_float("QUALIFICATION_RETRY_DELAY_SEC", 1.0)

# ==========================================
# 클러스터링 (중복 제거)
# ==========================================

GROUPING_STRATEGY = (os.getenv("GROUPING_STRATEGY", STRATEGY_GRAPH) or STRATEGY_GRAPH).strip().lower()
GROUPING_BATCH_SIZE = _env_int("GROUPING_BATCH_SIZE", 25)
GROUPING_MAX_CYCLES = _env_int("GROUPING_MAX_CYCLES", 3)
# 별도 설정이 없으면 예선 동시성 한도를 재사용
GROUPING_CONCURRENCY = _env_int("GROUPING_CONCURRENCY", QUALIFICATION_CONCURRENCY)
GROUPING_RETRIES = _env_int("GROUPING_RETRIES", 2)
GROUPING_CROSS_COMPARE = (os.getenv("GROUPING_CROSS_COMPARE", CROSS_COMPARE_ONCE) or CROSS_COMPARE_ONCE).strip().lower()
GROUPING_MAX_CROSS_PASSES = _env_int("GROUPING_MAX_CROSS_PASSES", 3)
GROUPING_VERIFY_ENABLED = _env_bool("GROUPING_VERIFY_ENABLED", True)
GROUPING_VERIFY_MODE = (os.getenv("GROUPING_VERIFY_MODE", VERIFY_BATCHED) or VERIFY_BATCHED).strip().lower()

# ==========================================
# 결선 (스위스 토너먼트)
# ==========================================

CONTENDERS_TO_RANK = _env_int("CONTENDERS_TO_RANK", 60)
TOURNAMENT_ROUNDS = _env_int("TOURNAMENT_ROUNDS", 3)
TOURNAMENT_GROUP_SIZE = _env_int("TOURNAMENT_GROUP_SIZE", 3)
TOURNAMENT_POINTS_TABLE = _env_points("TOURNAMENT_POINTS", TOURNAMENT_POINTS)
TOURNAMENT_CONCURRENCY = _env_int("TOURNAMENT_CONCURRENCY", 8)
TOURNAMENT_RETRIES = _env_int("TOURNAMENT_RETRIES", 3)
TOURNAMENT_RETRY_DELAY_SEC = _env_float("TOURNAMENT_RETRY_DELAY_SEC", 1.0)

# 1인 조 처리 정책: "zero"(무득점) | "runner_up"(2위 점수)
SINGLETON_POLICY = (os.getenv("SINGLETON_POLICY", SINGLETON_POLICY_ZERO) or SINGLETON_POLICY_ZERO).strip().lower()
