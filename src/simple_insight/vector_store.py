"""
HTTP client for a Pinecone index.

Only the four data-plane operations the indexer and retriever need are
wrapped: stats, upsert, delete-all and query. Every failure (transport
error or non-2xx status) is raised as RemoteCallError so that callers can
apply the single-retry policy uniformly.
"""

from __future__ import annotations

import logging
from typing import List, Sequence

import httpx
from pydantic import BaseModel, Field

from .config import AppConfig, require_env
from .errors import RemoteCallError

logger = logging.getLogger(__name__)


class LineMetadata(BaseModel):
    text: str
    noteId: str


class Vector(BaseModel):
    id: str
    values: List[float]
    metadata: LineMetadata


class QueryResult(BaseModel):
    id: str
    score: float
    metadata: LineMetadata


class _QueryResponse(BaseModel):
    matches: List[QueryResult] = Field(default_factory=list)


class VectorStoreClient:
    """Remote CRUD over one vector index."""

    def __init__(self, host: str, api_key: str, *, client: httpx.AsyncClient | None = None) -> None:
        if not host.startswith(("http://", "https://")):
            host = f"https://{host}"
        self._host = host.rstrip("/")
        self._client = client if client is not None else httpx.AsyncClient(
            base_url=self._host,
            headers={
                "Api-Key": api_key,
                "accept": "application/json",
                "content-type": "application/json",
            },
        )

    @classmethod
    def from_config(cls, cfg: AppConfig) -> "VectorStoreClient":
        if not cfg.pinecone_host:
            raise SystemExit("pinecone_host is not configured. Set it in config.yaml or PINECONE_HOST.")
        return cls(cfg.pinecone_host, require_env("PINECONE_API_KEY"))

    async def _post(self, endpoint: str, body: dict | None = None) -> dict:
        try:
            resp = await self._client.post(f"/{endpoint}", json=body if body is not None else {})
            resp.raise_for_status()
            data = resp.json() if resp.content else {}
        except httpx.HTTPStatusError as e:
            raise RemoteCallError(
                f"{endpoint} failed with status {e.response.status_code}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise RemoteCallError(f"{endpoint} failed: {e}") from e
        if not isinstance(data, dict):
            raise RemoteCallError(f"{endpoint} returned a non-object body: {data!r}")
        return data

    async def describe_stats(self) -> int:
        """Total number of vectors the index reports."""
        data = await self._post("describe_index_stats")
        try:
            return int(data.get("totalVectorCount", 0))
        except (TypeError, ValueError) as e:
            raise RemoteCallError(f"describe_index_stats returned an unexpected body: {data!r}") from e

    async def upsert(self, vectors: Sequence[Vector]) -> None:
        if not vectors:
            return
        await self._post("vectors/upsert", {"vectors": [v.model_dump() for v in vectors]})
        logger.debug("Upserted %d vectors", len(vectors))

    async def delete_all(self) -> None:
        await self._post("vectors/delete", {"deleteAll": True})

    async def query(self, vector: Sequence[float], top_k: int) -> List[QueryResult]:
        data = await self._post(
            "query",
            {
                "vector": list(vector),
                "topK": top_k,
                "includeValues": False,
                "includeMetadata": True,
            },
        )
        try:
            return _QueryResponse.model_validate(data).matches
        except ValueError as e:
            raise RemoteCallError(f"query returned an unexpected body: {e}") from e

    async def aclose(self) -> None:
        await self._client.aclose()


__all__ = ["LineMetadata", "Vector", "QueryResult", "VectorStoreClient"]
