from __future__ import annotations

import logging
import random
import time
from typing import Callable, Sequence

from .chat import ChatClient
from .config import AppConfig, require_env
from .embeddings import EmbeddingClient
from .errors import IndexingError, IndexNotReadyError, InsightError, MalformedExportError
from .funfact import FunFactCache
from .index import EmbeddingIndexer
from .ingest import NoteLine, deserialize_notes, lines_from_notes, parse_export, serialize_notes
from .query import RetrievalExpander
from .session import Session
from .storage import NOTES_KEY, JsonFileStore, KeyValueStore
from .vector_store import VectorStoreClient

logger = logging.getLogger(__name__)

NO_DATABASE = "No database"
UPLOAD_FAILED = (
    "Error: Notes failed to upload, please check your internet connection and json file, "
    "or restart the app."
)


class NotesAssistant:
    """Upload, load and ask questions over a personal note export.

    Only one action is expected to run at a time; the session is replaced
    wholesale on upload and load, never mutated mid-operation.
    """

    def __init__(
        self,
        store: KeyValueStore,
        indexer: EmbeddingIndexer,
        expander: RetrievalExpander,
        chat: ChatClient,
        *,
        fun_fact_max_age_hours: float = 24.0,
        clock: Callable[[], float] = time.time,
        rng: random.Random | None = None,
    ) -> None:
        self.store = store
        self.indexer = indexer
        self.expander = expander
        self.chat = chat
        self.session = Session()
        self.use_private_notes = False
        self.fun_facts = FunFactCache(
            store,
            self._fun_fact_answer,
            max_age_hours=fun_fact_max_age_hours,
            clock=clock,
            rng=rng,
        )

    @classmethod
    def from_config(cls, cfg: AppConfig) -> "NotesAssistant":
        require_env("OPENAI_API_KEY")
        if cfg.chat_provider == "anthropic":
            require_env("ANTHROPIC_API_KEY")

        embedder = EmbeddingClient.from_config(cfg)
        vectors = VectorStoreClient.from_config(cfg)
        return cls(
            JsonFileStore(cfg.store_path_resolved),
            EmbeddingIndexer(embedder, vectors, batch_size=cfg.embed_batch_size),
            RetrievalExpander(
                embedder,
                vectors,
                similar_to_question=cfg.similar_lines_to_question,
                similar_to_titles=cfg.similar_lines_to_titles,
                random_note_max_draws=cfg.random_note_max_draws,
            ),
            ChatClient.from_config(cfg),
            fun_fact_max_age_hours=cfg.fun_fact_max_age_hours,
        )

    @property
    def ready(self) -> bool:
        return self.session.index_state.ready

    @property
    def has_notes(self) -> bool:
        return bool(self.session.note_map)

    def toggle_private_notes(self) -> bool:
        self.use_private_notes = not self.use_private_notes
        return self.use_private_notes

    async def _index(self, lines: Sequence[NoteLine], force_rebuild: bool) -> bool:
        try:
            return await self.indexer.ensure_indexed(self.session, lines, force_rebuild)
        except IndexingError as e:
            logger.error("%s", e)
            return False

    async def upload(self, raw: bytes | str) -> bool:
        """Replace the stored notes with a new export and rebuild the index.

        Raises MalformedExportError for an unreadable export; the previous
        notes are kept in that case.
        """
        parsed = parse_export(raw)
        self.store.set(NOTES_KEY, serialize_notes(parsed.map))
        self.session = Session(note_map=parsed.map, readiness=self.session.readiness)
        return await self._index(parsed.lines, force_rebuild=True)

    async def load(self) -> bool:
        """Restore previously uploaded notes and verify the remote index."""
        blob = self.store.get(NOTES_KEY)
        self.session = Session()
        if blob is None:
            logger.info("No stored notes")
            return False
        try:
            note_map = deserialize_notes(blob)
        except MalformedExportError as e:
            logger.error("%s", e)
            return False
        self.session = Session(note_map=note_map)
        return await self._index(lines_from_notes(note_map.values()), force_rebuild=False)

    async def _grounded_answer(self, query: str, question: str) -> str:
        context = await self.expander.build_context(
            query, self.session.note_map, filter_private=not self.use_private_notes
        )
        return await self.chat.answer(question, context)

    async def _fun_fact_answer(self, query: str, question: str) -> str:
        if not self.ready:
            raise IndexNotReadyError(NO_DATABASE)
        return await self._grounded_answer(query, question)

    async def ask(self, question: str) -> str:
        if not self.ready:
            return NO_DATABASE
        try:
            return await self._grounded_answer(question, question)
        except InsightError as e:
            return f"Error: {e}"

    async def fun_fact(self, force: bool = False) -> str:
        """Today's cached fun fact, fetched anew when stale or when `force` is set.

        A fresh cache entry is served even while the index is not ready.
        """
        try:
            return await self.fun_facts.get_fun_fact(force_fetch=force)
        except IndexNotReadyError:
            return NO_DATABASE
        except InsightError as e:
            return f"Error: {e}"

    async def aclose(self) -> None:
        await self.indexer.store.aclose()


__all__ = ["NO_DATABASE", "UPLOAD_FAILED", "NotesAssistant"]
