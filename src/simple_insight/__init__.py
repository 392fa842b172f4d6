"""
Simple Insight.

Ask questions about a personal note export, answered by a language model
grounded in the most relevant notes.
"""

__all__ = [
    "assistant",
    "chat",
    "config",
    "embeddings",
    "errors",
    "funfact",
    "index",
    "ingest",
    "query",
    "session",
    "storage",
    "vector_store",
]
