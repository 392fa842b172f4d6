from __future__ import annotations

import asyncio
import logging
import random
from typing import Dict, List

from .embeddings import EmbeddingClient
from .errors import RemoteCallError, RetrievalError
from .ingest import OLD_TAG, PRIVATE_TAG, Note, NoteMap
from .retry import call_with_retry
from .vector_store import QueryResult, VectorStoreClient

logger = logging.getLogger(__name__)

# Asking for this "question" returns one random note instead of a similarity search.
RANDOM_NOTE_SENTINEL = "__random_note__"


def _hidden(note: Note, filter_private: bool) -> bool:
    return filter_private and note.has_tag(PRIVATE_TAG)


def pick_random_note(
    note_map: NoteMap,
    rng: random.Random,
    *,
    filter_private: bool = True,
    max_draws: int = 100,
) -> Note:
    """Draw a note uniformly at random, redrawing while it is tagged "old".

    After `max_draws` misses the first current note is used, then the first
    old one, so an all-"old" collection still terminates.
    """
    candidates = [n for n in note_map.values() if not _hidden(n, filter_private)]
    if not candidates:
        raise RetrievalError("There are no notes to choose from.")

    for _ in range(max_draws):
        note = rng.choice(candidates)
        if not note.has_tag(OLD_TAG):
            return note

    logger.debug("No current note after %d draws, falling back", max_draws)
    for note in candidates:
        if not note.has_tag(OLD_TAG):
            return note
    return candidates[0]


class RetrievalExpander:
    """Expands a question into the text of the notes most related to it.

    Stage one fetches the lines most similar to the question. Stage two
    queries again with the title of every note found, concurrently, to pull
    in neighbouring notes. Failures in stage two are dropped.
    """

    def __init__(
        self,
        embedder: EmbeddingClient,
        store: VectorStoreClient,
        *,
        similar_to_question: int = 50,
        similar_to_titles: int = 2,
        random_note_max_draws: int = 100,
        rng: random.Random | None = None,
    ) -> None:
        self.embedder = embedder
        self.store = store
        self.similar_to_question = similar_to_question
        self.similar_to_titles = similar_to_titles
        self.random_note_max_draws = random_note_max_draws
        self.rng = rng or random.Random()

    async def similar(self, text: str, top_k: int) -> List[QueryResult]:
        vector = await call_with_retry(lambda: self.embedder.embed_one(text), what="embed query")
        return await call_with_retry(lambda: self.store.query(vector, top_k), what="query")

    async def build_context(self, question: str, note_map: NoteMap, filter_private: bool) -> str:
        if question == RANDOM_NOTE_SENTINEL:
            return pick_random_note(
                note_map,
                self.rng,
                filter_private=filter_private,
                max_draws=self.random_note_max_draws,
            ).content

        try:
            primary = await self.similar(question, self.similar_to_question)
        except RemoteCallError as e:
            raise RetrievalError(f"Could not search notes: {e}") from e

        # Keyed by full content; dict keeps insertion order.
        contents: Dict[str, None] = {}
        found: List[Note] = []

        def collect(results: List[QueryResult]) -> List[Note]:
            added: List[Note] = []
            for result in results:
                note = note_map.get(result.metadata.noteId)
                if note is None:
                    logger.debug("Index returned unknown note %s", result.metadata.noteId)
                    continue
                if _hidden(note, filter_private) or note.content in contents:
                    continue
                contents[note.content] = None
                added.append(note)
            return added

        found.extend(collect(primary))
        logger.info("Question matched %d notes", len(found))

        if self.similar_to_titles > 0 and found:
            # +1 because a title usually matches its own note first.
            outcomes = await asyncio.gather(
                *(self.similar(note.title, self.similar_to_titles + 1) for note in found),
                return_exceptions=True,
            )
            for note, outcome in zip(found, outcomes):
                if isinstance(outcome, BaseException):
                    if not isinstance(outcome, Exception):
                        raise outcome
                    logger.debug("Title query for note %s failed: %s", note.id, outcome)
                    continue
                collect(outcome)
            logger.info("Expanded to %d notes", len(contents))

        return "\n\n".join(contents)


__all__ = ["RANDOM_NOTE_SENTINEL", "RetrievalExpander", "pick_random_note"]
