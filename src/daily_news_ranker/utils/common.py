from __future__ import annotations

import html
import re
from typing import Callable, Sequence, TypeVar

T = TypeVar("T")

_WS_RE = re.compile(r"\s+")  # 연속 공백을 단일 공백으로 축약
_TAG_RE = re.compile(r"<[^>]+>")


def clean_text(s: str) -> str:
    """헤드라인 정규화: 엔티티 해제, 태그 제거, 공백 축약 (오라클 프롬프트 입력용)."""
    if not s:
        return ""
    s = html.unescape(s)
    s = s.replace("\u00a0", " ")
    s = _TAG_RE.sub("", s)
    return _WS_RE.sub(" ", s).strip()


def chunked(items: Sequence[T], size: int) -> list[list[T]]:
    """순서를 유지한 채 최대 size 크기의 조각으로 분할 (마지막 조각은 더 작을 수 있음)."""
    if size < 1:
        raise ValueError("chunk size must be >= 1")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


def stable_order_by_score(items: Sequence[T], score: Callable[[T], float]) -> list[T]:
    # 점수 내림차순, 동점은 원래 순서 유지 (sorted는 안정 정렬)
    return sorted(items, key=lambda x: -score(x))
