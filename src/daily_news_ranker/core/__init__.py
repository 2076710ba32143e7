"""Core configuration and constants.

Import what you need from `daily_news_ranker.core.config` and
`daily_news_ranker.core.constants` to avoid heavy side effects at import time.
"""

__all__ = ["config", "constants"]
