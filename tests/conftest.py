"""
Shared pytest fixtures for simple_insight tests.

Fakes stand in for the embedding, vector store and chat providers so no
test touches the network.
"""

from __future__ import annotations

import json
import random
from types import SimpleNamespace
from typing import Dict, List, Optional, Sequence

import pytest

from simple_insight.assistant import NotesAssistant
from simple_insight.chat import ChatClient
from simple_insight.errors import ChatError, RemoteCallError
from simple_insight.index import EmbeddingIndexer
from simple_insight.query import RetrievalExpander
from simple_insight.storage import MemoryStore
from simple_insight.vector_store import LineMetadata, QueryResult, Vector

DIMENSION = 4


class FakeEmbeddingClient:
    """Gives every distinct text its own vector and remembers which is which."""

    dimension = DIMENSION

    def __init__(self, fail_times: int = 0, fail_texts: Optional[set] = None):
        self.calls = 0
        self.fail_times = fail_times
        self.fail_texts = fail_texts or set()
        self._ids: Dict[str, int] = {}
        self._texts: Dict[float, str] = {}

    def text_for(self, vector: Sequence[float]) -> str:
        return self._texts[vector[0]]

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        self.calls += 1
        if self.fail_times > 0:
            self.fail_times -= 1
            raise RemoteCallError("embedding service unavailable")
        out = []
        for text in texts:
            if text in self.fail_texts:
                raise RemoteCallError(f"cannot embed {text!r}")
            key = float(self._ids.setdefault(text, len(self._ids) + 1))
            self._texts[key] = text
            out.append([key] + [0.0] * (DIMENSION - 1))
        return out

    async def embed_one(self, text: str) -> List[float]:
        return (await self.embed([text]))[0]


class FakeEmbeddings:
    """Stands in for `AsyncOpenAI().embeddings`; returns items out of order."""

    def __init__(self, vectors=None, error=None):
        self.vectors = vectors
        self.error = error
        self.requests = []

    async def create(self, input, model):
        self.requests.append({"input": input, "model": model})
        if self.error is not None:
            raise self.error
        vectors = self.vectors if self.vectors is not None else [[0.1, 0.2, 0.3] for _ in input]
        items = [SimpleNamespace(index=i, embedding=v) for i, v in enumerate(vectors)]
        return SimpleNamespace(data=list(reversed(items)))


class FakeVectorStore:
    """In-memory index; queries answer from `responses` keyed by query text."""

    def __init__(self, embedder: FakeEmbeddingClient | None = None):
        self.embedder = embedder
        self.vectors: Dict[str, Vector] = {}
        self.responses: Dict[str, List[QueryResult]] = {}
        self.calls: List[str] = []
        self.queries: List[tuple] = []
        self.fail: Dict[str, int] = {}
        self.closed = False

    def _maybe_fail(self, op: str) -> None:
        self.calls.append(op)
        if self.fail.get(op, 0) > 0:
            self.fail[op] -= 1
            raise RemoteCallError(f"{op} failed")

    async def describe_stats(self) -> int:
        self._maybe_fail("describe_stats")
        return len(self.vectors)

    async def upsert(self, vectors: Sequence[Vector]) -> None:
        self._maybe_fail("upsert")
        for v in vectors:
            self.vectors[v.id] = v

    async def delete_all(self) -> None:
        self._maybe_fail("delete_all")
        self.vectors.clear()

    async def query(self, vector: Sequence[float], top_k: int) -> List[QueryResult]:
        self._maybe_fail("query")
        text = self.embedder.text_for(vector) if self.embedder else ""
        self.queries.append((text, top_k))
        return self.responses.get(text, [])[:top_k]

    async def aclose(self) -> None:
        self.closed = True


class FakeChatBackend:
    def __init__(self, reply: str = "an answer", fail: bool = False):
        self.reply = reply
        self.fail = fail
        self.requests: List[dict] = []

    async def complete(self, **kwargs) -> str:
        self.requests.append(kwargs)
        if self.fail:
            raise ChatError("Chat failed: boom")
        return self.reply


def hit(note_id: str, text: str = "line", score: float = 0.9) -> QueryResult:
    return QueryResult(id=f"{note_id}-line", score=score, metadata=LineMetadata(text=text, noteId=note_id))


def make_export(active: list, trashed: Optional[list] = None) -> str:
    def item(i, entry):
        content, tags = entry if isinstance(entry, tuple) else (entry, None)
        note = {
            "id": f"n{i}",
            "content": content,
            "creationDate": "2024-01-01T00:00:00.000Z",
            "lastModified": "2024-01-02T00:00:00.000Z",
        }
        if tags is not None:
            note["tags"] = tags
        return note

    active_items = [item(i, e) for i, e in enumerate(active)]
    trashed_items = [item(len(active) + i, e) for i, e in enumerate(trashed or [])]
    return json.dumps({"activeNotes": active_items, "trashedNotes": trashed_items})


@pytest.fixture
def embedder():
    return FakeEmbeddingClient()


@pytest.fixture
def vector_store(embedder):
    return FakeVectorStore(embedder)


@pytest.fixture
def chat_backend():
    return FakeChatBackend()


@pytest.fixture
def make_assistant(embedder, vector_store, chat_backend):
    def _make(store=None, clock=None, rng=None, similar_to_titles=2):
        kwargs = {}
        if clock is not None:
            kwargs["clock"] = clock
        return NotesAssistant(
            store if store is not None else MemoryStore(),
            EmbeddingIndexer(embedder, vector_store, batch_size=2),
            RetrievalExpander(
                embedder,
                vector_store,
                similar_to_question=5,
                similar_to_titles=similar_to_titles,
                rng=random.Random(0),
            ),
            ChatClient(chat_backend),
            rng=rng or random.Random(0),
            **kwargs,
        )

    return _make
