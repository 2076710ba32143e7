from __future__ import annotations

import ast
import json
import re
from typing import Any, Iterable

_FENCE_RE = re.compile(r"```(?:json)?", flags=re.IGNORECASE)
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")
_LEADING_INT_RE = re.compile(r"\s*[+-]?\d+")
_WORD_RE = re.compile(r"[a-z_]+")

_CLOSERS = {"{": "}", "[": "]"}


def _try_load_json(payload: str) -> Any | None:
    try:
        return json.loads(payload)
    except Exception:
        return None


def _strip_trailing_commas(payload: str) -> str:
    return _TRAILING_COMMA_RE.sub(r"\1", payload)


def _extract_json_block(payload: str) -> str | None:
    # 가장 먼저 나오는 { 또는 [ 부터 짝이 맞는 닫는 괄호까지 잘라낸다
    starts = [i for i in (payload.find("{"), payload.find("[")) if i != -1]
    if not starts:
        return None
    start = min(starts)
    opener = payload[start]
    closer = _CLOSERS[opener]
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(payload)):
        ch = payload[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == opener:
            depth += 1
        elif ch == closer:
            depth -= 1
            if depth == 0:
                return payload[start : i + 1]
    return payload[start:] if depth > 0 else None


def _literal_eval(payload: str) -> Any | None:
    try:
        return ast.literal_eval(payload)
    except Exception:
        return None


def parse_json(text: str) -> Any | None:
    """문자열에서 JSON 객체/배열을 파싱 (직접 파싱 실패 시 첫 블록 추출 후 보정)."""
    if not text:
        return None
    raw = _FENCE_RE.sub("", text.strip()).replace("```", "").strip()

    parsed = _try_load_json(raw)
    if isinstance(parsed, (dict, list)):
        return parsed

    candidate = _extract_json_block(raw)
    if not candidate:
        return None
    parsed = _try_load_json(candidate)
    if parsed is not None:
        return parsed
    cleaned = _strip_trailing_commas(candidate)
    parsed = _try_load_json(cleaned)
    if parsed is not None:
        return parsed
    # 모델이 작은따옴표/파이썬 리터럴을 섞을 때 대비한 백업 파서
    obj = _literal_eval(cleaned)
    return obj if isinstance(obj, (dict, list)) else None


def parse_index_list(text: str) -> list[int]:
    """"3,1,2" 형태의 1-based 번호 목록을 0-based 정수 리스트로 변환.

    각 조각은 앞부분의 정수만 인정하고(예: "3." -> 3), 숫자로 시작하지 않는
    조각은 버린다.
    """
    if not text:
        return []
    indices: list[int] = []
    for part in text.split(","):
        match = _LEADING_INT_RE.match(part)
        if not match:
            continue
        indices.append(int(match.group(0)) - 1)
    return indices


def parse_label(text: str, labels: Iterable[str]) -> str | None:
    # 응답에서 허용된 라벨 중 가장 먼저 등장하는 토큰을 반환
    allowed = {label.lower() for label in labels}
    for token in _WORD_RE.findall((text or "").lower()):
        if token in allowed:
            return token
    return None
