"""Shared text and sequence helpers."""

from daily_news_ranker.utils.common import chunked, clean_text, stable_order_by_score

__all__ = ["chunked", "clean_text", "stable_order_by_score"]
