from __future__ import annotations

import logging
from typing import List, Sequence

import numpy as np
import openai
from openai import AsyncOpenAI

from .config import AppConfig
from .errors import EmbeddingValidationError, RemoteCallError

logger = logging.getLogger(__name__)


def validate_embeddings(embeddings: Sequence[Sequence[float]], expected: int, dimension: int) -> List[List[float]]:
    """Check count, dimensionality and finiteness of a batch of embeddings.

    Raises EmbeddingValidationError on the first offending vector.
    """
    if len(embeddings) != expected:
        raise EmbeddingValidationError(
            f"Expected {expected} embeddings, provider returned {len(embeddings)}"
        )
    validated: List[List[float]] = []
    for i, values in enumerate(embeddings):
        arr = np.asarray(values, dtype="float64")
        if arr.ndim != 1 or arr.shape[0] != dimension:
            raise EmbeddingValidationError(
                f"Embedding {i} has shape {arr.shape}, expected ({dimension},)"
            )
        if not np.isfinite(arr).all():
            raise EmbeddingValidationError(f"Embedding {i} contains non-finite values")
        validated.append(arr.tolist())
    return validated


class EmbeddingClient:
    """Turns text into fixed-dimension vectors with the OpenAI embeddings API.

    The SDK's own retries are disabled; callers wrap `embed` in
    `call_with_retry`.
    """

    def __init__(self, model: str, dimension: int, client: AsyncOpenAI | None = None) -> None:
        self.model = model
        self.dimension = dimension
        self._client = client if client is not None else AsyncOpenAI(max_retries=0)

    @classmethod
    def from_config(cls, cfg: AppConfig) -> "EmbeddingClient":
        return cls(model=cfg.embedding_model, dimension=cfg.embedding_dimension)

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        if not texts:
            return []
        try:
            response = await self._client.embeddings.create(input=list(texts), model=self.model)
        except openai.OpenAIError as e:
            raise RemoteCallError(f"Embedding request failed: {e}") from e

        # The API tags each item with its input position; do not rely on list order.
        items = sorted(response.data, key=lambda item: item.index)
        return validate_embeddings([item.embedding for item in items], len(texts), self.dimension)

    async def embed_one(self, text: str) -> List[float]:
        return (await self.embed([text]))[0]


__all__ = ["EmbeddingClient", "validate_embeddings"]
