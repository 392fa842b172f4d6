from __future__ import annotations

import logging
from typing import Iterator, List, Sequence, TypeVar

from .embeddings import EmbeddingClient
from .errors import IndexingError, RemoteCallError
from .ingest import NoteLine
from .retry import call_with_retry
from .session import Session
from .vector_store import LineMetadata, Vector, VectorStoreClient

logger = logging.getLogger(__name__)

T = TypeVar("T")


def slice_into_batches(items: Sequence[T], batch_size: int) -> Iterator[List[T]]:
    for start in range(0, len(items), batch_size):
        yield list(items[start : start + batch_size])


class EmbeddingIndexer:
    """Keeps the remote vector index in step with the parsed note lines."""

    def __init__(
        self,
        embedder: EmbeddingClient,
        store: VectorStoreClient,
        batch_size: int = 10,
    ) -> None:
        self.embedder = embedder
        self.store = store
        self.batch_size = batch_size

    async def index_has_data(self) -> bool:
        """True when the remote index reports at least one vector.

        Raises RemoteCallError if the stats call fails twice.
        """
        count = await call_with_retry(self.store.describe_stats, what="describe_index_stats")
        logger.info("Remote index reports %d vectors", count)
        return count > 0

    async def ensure_indexed(self, session: Session, lines: Sequence[NoteLine], force_rebuild: bool) -> bool:
        """Make sure the remote index holds `lines`.

        Without `force_rebuild` an index that already has vectors is trusted
        as-is and nothing is written. Otherwise the index is cleared and
        repopulated batch by batch. Raises IndexingError if any remote call
        fails twice; batches written before the failure are left in place.
        A failed stats check never clears the index.
        """
        readiness = session.readiness
        if not force_rebuild:
            readiness.begin_verify()
            try:
                has_data = await self.index_has_data()
            except RemoteCallError as e:
                readiness.verify_failed()
                raise IndexingError(f"Index verification failed: {e}") from e
            readiness.verified(has_data)
            if has_data:
                return True
        else:
            readiness.begin_rebuild()

        try:
            await self._rebuild(lines)
        except RemoteCallError as e:
            readiness.rebuild_finished(False)
            raise IndexingError(f"Index rebuild failed: {e}") from e

        readiness.rebuild_finished(True)
        return True

    async def _rebuild(self, lines: Sequence[NoteLine]) -> None:
        await call_with_retry(self.store.delete_all, what="delete_all")
        logger.info("Cleared remote index, writing %d lines", len(lines))

        written = 0
        for batch in slice_into_batches(lines, self.batch_size):
            texts = [line.text for line in batch]
            embeddings = await call_with_retry(lambda: self.embedder.embed(texts), what="embed")
            vectors = [
                Vector(
                    id=line.line_id,
                    values=values,
                    metadata=LineMetadata(text=line.text, noteId=line.note_id),
                )
                for line, values in zip(batch, embeddings)
            ]
            await call_with_retry(lambda: self.store.upsert(vectors), what="upsert")
            written += len(vectors)
            logger.debug("Indexed %d/%d lines", written, len(lines))

        logger.info("Index rebuild complete: %d vectors", written)


__all__ = ["EmbeddingIndexer", "slice_into_batches"]
