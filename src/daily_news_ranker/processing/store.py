from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from daily_news_ranker.processing.types import Item
from daily_news_ranker.utils import clean_text


@dataclass
class ItemRecord:
    identity: int
    item: Item
    score: float = 0.0
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)


class ScoreStore:
    """Arena of per-item records addressed by their stable position.

    Score updates are additive and take only the record's own lock, so
    concurrent group handlers never contend on a global lock.
    """

    def __init__(self, items: Sequence[Item], *, initial_scores: Iterable[float] | None = None) -> None:
        scores = list(initial_scores) if initial_scores is not None else [0.0] * len(items)
        if len(scores) != len(items):
            raise ValueError("initial_scores must match items")
        self._records = [
            ItemRecord(identity=idx, item=item, score=float(score))
            for idx, (item, score) in enumerate(zip(items, scores))
        ]

    def __len__(self) -> int:
        return len(self._records)

    def identities(self) -> list[int]:
        return [r.identity for r in self._records]

    def item(self, identity: int) -> Item:
        return self._records[identity].item

    def title(self, identity: int) -> str:
        return clean_text(str(self._records[identity].item.get("title") or ""))

    def score(self, identity: int) -> float:
        return self._records[identity].score

    def add_points(self, identity: int, delta: float) -> None:
        if not delta:
            return
        record = self._records[identity]
        with record.lock:
            record.score += delta

    def snapshot(self) -> dict[int, float]:
        return {r.identity: r.score for r in self._records}

    def ordered(self) -> list[int]:
        # 점수 내림차순, 동점이면 원래 순서 (안정 정렬)
        return [r.identity for r in sorted(self._records, key=lambda r: -r.score)]
