from __future__ import annotations

import json
import logging
import random
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Sequence, Tuple

from .query import RANDOM_NOTE_SENTINEL
from .storage import FUN_FACT_KEY, KeyValueStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FunFactVariant:
    name: str
    # What is searched for in the notes.
    query: str
    # What the chat model is asked about the retrieved notes.
    question: str


MINDSET_QUESTION = (
    "Self_Reflection - What mindset can I take on to help myself improve today? "
    "What should I remember; how should I act?"
)
TASK_QUESTION = (
    "Projects - What task should I try to take on today? What's something small I can try "
    "to find time for that can help build towards a bigger project, improve my life, or improve the world?"
)

MINDSET = FunFactVariant("mindset", MINDSET_QUESTION, MINDSET_QUESTION)
TASK = FunFactVariant("task", TASK_QUESTION, TASK_QUESTION)
RANDOM_NOTE = FunFactVariant(
    "random_note",
    RANDOM_NOTE_SENTINEL,
    "Here is one of my notes. Remind me what it says and share one interesting insight from it.",
)

# (cumulative upper bound, variant); a draw r selects the first row with r <= bound.
VARIANT_TABLE: Tuple[Tuple[float, FunFactVariant], ...] = (
    (0.50, RANDOM_NOTE),
    (0.80, TASK),
    (1.00, MINDSET),
)


def select_variant(r: float, table: Sequence[Tuple[float, FunFactVariant]] = VARIANT_TABLE) -> FunFactVariant:
    for bound, variant in table:
        if r <= bound:
            return variant
    return table[-1][1]


@dataclass(frozen=True)
class FunFactCacheEntry:
    text: str
    fetched_at_ms: int

    def to_json(self) -> str:
        return json.dumps({"text": self.text, "fetchedAtEpochMs": self.fetched_at_ms})

    @classmethod
    def from_json(cls, raw: str) -> Optional["FunFactCacheEntry"]:
        try:
            data = json.loads(raw)
            return cls(text=str(data["text"]), fetched_at_ms=int(data["fetchedAtEpochMs"]))
        except (ValueError, KeyError, TypeError):
            logger.warning("Ignoring unreadable fun fact cache entry")
            return None


AnswerFn = Callable[[str, str], Awaitable[str]]


class FunFactCache:
    """Serves one generated "fun fact" per day.

    `answer(query, question)` retrieves note context for `query` and asks the
    chat model `question`; it must raise on failure so that a failed fetch
    never replaces the cached entry.
    """

    def __init__(
        self,
        store: KeyValueStore,
        answer: AnswerFn,
        *,
        max_age_hours: float = 24.0,
        clock: Callable[[], float] = time.time,
        rng: random.Random | None = None,
    ) -> None:
        self.store = store
        self.answer = answer
        self.max_age_ms = int(max_age_hours * 3600 * 1000)
        self.clock = clock
        self.rng = rng or random.Random()

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    def cached(self) -> Optional[FunFactCacheEntry]:
        raw = self.store.get(FUN_FACT_KEY)
        if raw is None:
            return None
        entry = FunFactCacheEntry.from_json(raw)
        if entry is None or self._now_ms() - entry.fetched_at_ms >= self.max_age_ms:
            return None
        return entry

    async def get_fun_fact(self, force_fetch: bool = False) -> str:
        if not force_fetch:
            entry = self.cached()
            if entry is not None:
                logger.debug("Fun fact cache hit")
                return entry.text

        variant = select_variant(self.rng.random())
        logger.info("Fetching a new fun fact (%s)", variant.name)
        text = await self.answer(variant.query, variant.question)
        self.store.set(FUN_FACT_KEY, FunFactCacheEntry(text=text, fetched_at_ms=self._now_ms()).to_json())
        return text


__all__ = [
    "FunFactVariant",
    "MINDSET",
    "TASK",
    "RANDOM_NOTE",
    "VARIANT_TABLE",
    "select_variant",
    "FunFactCacheEntry",
    "FunFactCache",
]
