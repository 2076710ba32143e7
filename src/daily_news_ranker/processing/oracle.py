"""Typed capabilities on top of the raw judgment function.

Every method builds one prompt, makes exactly one call and validates the
shape of the answer before returning it. Shape failures raise
`OracleMalformedResponse` so the caller's retry policy can try again;
individually invalid entries are dropped and the valid remainder returned.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Sequence

from daily_news_ranker.core.config import ORACLE_LONG_TIMEOUT_SEC, TASK_DESCRIPTION
from daily_news_ranker.core.constants import (
    GROUPING_TEMPERATURE,
    NEW_CLUSTER_LABEL,
    NO_OUTLIERS_TOKEN,
    RANK_TEMPERATURE_QUALIFY,
    THEME_MAX_CHARS,
)
from daily_news_ranker.errors import OracleMalformedResponse, OracleValidationError
from daily_news_ranker.processing import prompts
from daily_news_ranker.processing.parsing import parse_index_list, parse_json, parse_label
from daily_news_ranker.processing.types import JudgeFunc, Messages

logger = logging.getLogger(__name__)

_REF_RE = re.compile(r"^\s*([A-Za-z]+)_?(\d+)\s*$")


def _snippet(text: str, limit: int = 160) -> str:
    return re.sub(r"\s+", " ", text or "")[:limit]


def _validate_index(value: Any, size: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        try:
            value = int(str(value).strip())
        except Exception as e:
            raise OracleValidationError(f"not an index: {value!r}") from e
    if not 0 <= value < size:
        raise OracleValidationError(f"index {value} out of range 0..{size - 1}")
    return value


def _validate_pair(pair: Any, size: int) -> tuple[int, int]:
    if not isinstance(pair, (list, tuple)) or len(pair) != 2:
        raise OracleValidationError(f"not a pair: {pair!r}")
    a = _validate_index(pair[0], size)
    b = _validate_index(pair[1], size)
    if a == b:
        raise OracleValidationError(f"self pair: {pair!r}")
    return (a, b) if a < b else (b, a)


def _parse_ref(value: Any, prefix: str, size: int) -> int:
    match = _REF_RE.match(str(value))
    if not match or match.group(1).upper() != prefix:
        raise OracleValidationError(f"bad {prefix}_ reference: {value!r}")
    return _validate_index(int(match.group(2)), size)


class JudgmentOracle:
    def __init__(
        self,
        *,
        judge_func: JudgeFunc,
        task_description: str = TASK_DESCRIPTION,
        rank_temperature: float = RANK_TEMPERATURE_QUALIFY,
        grouping_temperature: float = GROUPING_TEMPERATURE,
        rank_timeout_sec: float | None = None,
        grouping_timeout_sec: float | None = ORACLE_LONG_TIMEOUT_SEC,
        log: logging.Logger | None = None,
    ) -> None:
        self._judge = judge_func
        self._task_description = task_description
        self._rank_temperature = rank_temperature
        self._grouping_temperature = grouping_temperature
        self._rank_timeout_sec = rank_timeout_sec
        self._grouping_timeout_sec = grouping_timeout_sec
        self._log = log or logger

    def with_rank_temperature(self, temperature: float) -> "JudgmentOracle":
        return JudgmentOracle(
            judge_func=self._judge,
            task_description=self._task_description,
            rank_temperature=temperature,
            grouping_temperature=self._grouping_temperature,
            rank_timeout_sec=self._rank_timeout_sec,
            grouping_timeout_sec=self._grouping_timeout_sec,
            log=self._log,
        )

    def _call(self, messages: Messages, temperature: float, timeout: float | None) -> str:
        return self._judge(messages, temperature, timeout)

    def _drop(self, kind: str, err: OracleValidationError) -> None:
        self._log.debug("oracle_entry_dropped: kind=%s reason=%s", kind, err)

    def rank(self, titles: Sequence[str]) -> list[int]:
        """Total order of `titles` as 0-based indices, most relevant first.

        Invalid or repeated entries are kept as -1 so later positions keep
        their place in the point table.
        """
        size = len(titles)
        raw = self._call(
            prompts.rank_titles(titles, self._task_description),
            self._rank_temperature,
            self._rank_timeout_sec,
        )
        parsed = parse_index_list(raw)
        if len(parsed) != size:
            raise OracleMalformedResponse(
                f"rank expected {size} indices, got {len(parsed)}: {_snippet(raw)}",
                raw=raw,
            )
        order: list[int] = []
        seen: set[int] = set()
        for value in parsed:
            try:
                idx = _validate_index(value, size)
                if idx in seen:
                    raise OracleValidationError(f"duplicate index {idx}")
            except OracleValidationError as e:
                self._drop("rank", e)
                # 자리는 유지하되 점수는 주지 않음
                order.append(-1)
                continue
            seen.add(idx)
            order.append(idx)
        return order

    def relate(self, titles: Sequence[str]) -> list[tuple[int, int]]:
        """Pairs of in-batch indices judged to describe the same event."""
        size = len(titles)
        raw = self._call(
            prompts.find_similar_pairs(titles),
            self._grouping_temperature,
            self._grouping_timeout_sec,
        )
        parsed = parse_json(raw)
        if not isinstance(parsed, list):
            raise OracleMalformedResponse(f"relate expected a JSON array: {_snippet(raw)}", raw=raw)
        pairs: list[tuple[int, int]] = []
        for entry in parsed:
            try:
                pairs.append(_validate_pair(entry, size))
            except OracleValidationError as e:
                self._drop("relate", e)
        return pairs

    def assign(self, rep_titles: Sequence[str], candidate_titles: Sequence[str]) -> dict[int, int | None]:
        """Map candidate index -> representative index, or None for a new cluster.

        Candidates the oracle leaves out are simply absent from the result.
        """
        raw = self._call(
            prompts.assign_to_representatives(rep_titles, candidate_titles),
            self._grouping_temperature,
            self._grouping_timeout_sec,
        )
        parsed = parse_json(raw)
        if not isinstance(parsed, dict):
            raise OracleMalformedResponse(f"assign expected a JSON object: {_snippet(raw)}", raw=raw)
        mapping: dict[int, int | None] = {}
        for key, value in parsed.items():
            try:
                cand = _parse_ref(key, "C", len(candidate_titles))
                if str(value).strip().lower() == NEW_CLUSTER_LABEL:
                    mapping[cand] = None
                else:
                    mapping[cand] = _parse_ref(value, "R", len(rep_titles))
            except OracleValidationError as e:
                self._drop("assign", e)
        return mapping

    def theme(self, titles: Sequence[str]) -> str:
        raw = self._call(
            prompts.generate_cluster_theme(titles),
            self._grouping_temperature,
            self._grouping_timeout_sec,
        )
        lines = [ln for ln in (raw or "").strip().splitlines() if ln.strip()]
        theme = lines[0].strip().strip("\"'“”「」 ") if lines else ""
        if not theme:
            raise OracleMalformedResponse("theme response is empty", raw=raw)
        return theme[:THEME_MAX_CHARS]

    def find_outliers(self, theme: str, titles: Sequence[str]) -> set[int]:
        """Indices of members that do NOT match `theme`."""
        raw = self._call(
            prompts.verify_cluster_consistency(theme, titles),
            self._grouping_temperature,
            self._grouping_timeout_sec,
        )
        text = (raw or "").strip()
        if text.lower().strip(" .\"'") == NO_OUTLIERS_TOKEN:
            return set()
        parsed = parse_index_list(text)
        if not parsed:
            raise OracleMalformedResponse(f"verification answer unreadable: {_snippet(raw)}", raw=raw)
        outliers: set[int] = set()
        for value in parsed:
            try:
                outliers.add(_validate_index(value, len(titles)))
            except OracleValidationError as e:
                self._drop("verify", e)
        return outliers

    def classify(self, messages: Messages, labels: Sequence[str]) -> str:
        raw = self._call(messages, self._grouping_temperature, self._grouping_timeout_sec)
        label = parse_label(raw, labels)
        if label is None:
            raise OracleMalformedResponse(
                f"expected one of {sorted(labels)}: {_snippet(raw)}",
                raw=raw,
            )
        return label

    def matches_theme(self, theme: str, title: str) -> bool:
        return self.classify(prompts.match_theme(theme, title), ("yes", "no")) == "yes"
