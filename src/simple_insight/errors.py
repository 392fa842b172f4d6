"""
Error types for simple_insight.

The user-facing taxonomy (export, index, retrieval, chat) shares one base so
callers that only render messages can catch a single type.
"""

from __future__ import annotations


class InsightError(Exception):
    """Base for every error shown to the user."""


class MalformedExportError(InsightError):
    """The uploaded export is not valid JSON or lacks the note collections."""


class IndexingError(InsightError):
    """The remote index could not be verified or rebuilt."""


class IndexNotReadyError(IndexingError):
    """An answer was requested before the index became ready."""


class RetrievalError(InsightError):
    """The primary similarity lookup for a question failed."""


class ChatError(InsightError):
    """The language model call failed."""


class RemoteCallError(Exception):
    """A remote call failed (transport error or non-success status)."""


class EmbeddingValidationError(RemoteCallError):
    """The embedding provider returned vectors of the wrong shape or with non-finite values."""


__all__ = [
    "InsightError",
    "MalformedExportError",
    "IndexingError",
    "IndexNotReadyError",
    "RetrievalError",
    "ChatError",
    "RemoteCallError",
    "EmbeddingValidationError",
]
