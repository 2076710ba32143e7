"""Oracle-driven ranking and deduplication engines."""

__all__ = [
    "graph",
    "llm_client",
    "oracle",
    "parsing",
    "pipeline",
    "prompts",
    "resolution",
    "retry",
    "scheduler",
    "store",
    "tournament",
    "types",
]
