"""Swiss tournament ranking and oracle-driven deduplication for news briefings."""

__all__ = ["core", "errors", "processing", "utils"]
