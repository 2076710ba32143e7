from __future__ import annotations

from typing import Callable, NotRequired, TypedDict


class RankItem(TypedDict, total=False):
    url: str
    title: str
    score: float
    tournamentScore: NotRequired[float]
    rank: NotRequired[int]
    clusterSize: NotRequired[int]
    clusterUrls: NotRequired[list[str]]
    clusterTitles: NotRequired[list[str]]


class ChatMessage(TypedDict):
    role: str
    content: str


Item = RankItem
Messages = list[ChatMessage]
LogFunc = Callable[[str], None]
JudgeFunc = Callable[..., str]
