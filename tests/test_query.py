"""Tests for two-stage retrieval, privacy filtering and random note selection."""

import random

import pytest

from simple_insight.errors import RetrievalError
from simple_insight.ingest import Note
from simple_insight.query import RANDOM_NOTE_SENTINEL, RetrievalExpander, pick_random_note

from conftest import FakeEmbeddingClient, FakeVectorStore, hit


def note(note_id, content, *tags):
    return Note(id=note_id, content=content, creation_date="", last_modified="", tags=tuple(tags))


@pytest.fixture
def note_map():
    return {
        "n1": note("n1", "Running\n\nRan 5k today"),
        "n2": note("n2", "Diary\n\nsecret feelings", "private"),
        "n3": note("n3", "Shoes\n\nneed new running shoes"),
        "n4": note("n4", "Races\n\nsign up for the half marathon"),
    }


@pytest.fixture
def expander(embedder, vector_store):
    return RetrievalExpander(
        embedder, vector_store, similar_to_question=10, similar_to_titles=2, rng=random.Random(1)
    )


class TestBuildContext:

    @pytest.mark.asyncio
    async def test_primary_and_title_expansion(self, expander, vector_store, note_map):
        vector_store.responses["running"] = [hit("n1"), hit("n3")]
        vector_store.responses["Running"] = [hit("n1"), hit("n4")]
        context = await expander.build_context("running", note_map, filter_private=True)
        assert note_map["n1"].content in context
        assert note_map["n3"].content in context
        assert note_map["n4"].content in context
        assert context.count(note_map["n1"].content) == 1

    @pytest.mark.asyncio
    async def test_title_queries_ask_for_one_extra(self, expander, vector_store, note_map):
        vector_store.responses["running"] = [hit("n1"), hit("n3")]
        await expander.build_context("running", note_map, filter_private=True)
        assert ("running", 10) in vector_store.queries
        assert ("Running", 3) in vector_store.queries
        assert ("Shoes", 3) in vector_store.queries

    @pytest.mark.asyncio
    async def test_private_notes_filtered(self, expander, vector_store, note_map):
        vector_store.responses["feelings"] = [hit("n2"), hit("n1")]
        vector_store.responses["Running"] = [hit("n2")]
        context = await expander.build_context("feelings", note_map, filter_private=True)
        assert "secret feelings" not in context
        assert note_map["n1"].content in context
        # A filtered note never seeds a title query.
        assert ("Diary", 3) not in vector_store.queries

    @pytest.mark.asyncio
    async def test_private_notes_included_when_allowed(self, expander, vector_store, note_map):
        vector_store.responses["feelings"] = [hit("n2")]
        context = await expander.build_context("feelings", note_map, filter_private=False)
        assert "secret feelings" in context

    @pytest.mark.asyncio
    async def test_duplicates_across_lines_collapsed(self, expander, vector_store, note_map):
        vector_store.responses["q"] = [hit("n1", "a"), hit("n1", "b"), hit("n3")]
        vector_store.responses["Running"] = [hit("n3"), hit("n1")]
        vector_store.responses["Shoes"] = [hit("n1"), hit("n3")]
        context = await expander.build_context("q", note_map, filter_private=True)
        assert context == f"{note_map['n1'].content}\n\n{note_map['n3'].content}"

    @pytest.mark.asyncio
    async def test_unknown_note_ids_ignored(self, expander, vector_store, note_map):
        vector_store.responses["q"] = [hit("stale"), hit("n1")]
        context = await expander.build_context("q", note_map, filter_private=True)
        assert context == note_map["n1"].content

    @pytest.mark.asyncio
    async def test_no_title_expansion_when_disabled(self, embedder, vector_store, note_map):
        expander = RetrievalExpander(embedder, vector_store, similar_to_titles=0)
        vector_store.responses["q"] = [hit("n1")]
        await expander.build_context("q", note_map, filter_private=True)
        assert [text for text, _ in vector_store.queries] == ["q"]

    @pytest.mark.asyncio
    async def test_primary_failure_raises(self, expander, vector_store, note_map):
        vector_store.fail["query"] = 2
        with pytest.raises(RetrievalError):
            await expander.build_context("q", note_map, filter_private=True)

    @pytest.mark.asyncio
    async def test_primary_failure_retried_once(self, expander, vector_store, note_map):
        vector_store.fail["query"] = 1
        vector_store.responses["q"] = [hit("n1")]
        context = await expander.build_context("q", note_map, filter_private=True)
        assert note_map["n1"].content in context

    @pytest.mark.asyncio
    async def test_failed_title_query_is_dropped(self, note_map):
        embedder = FakeEmbeddingClient(fail_texts={"Running"})
        store = FakeVectorStore(embedder)
        store.responses["q"] = [hit("n1"), hit("n3")]
        store.responses["Shoes"] = [hit("n4")]
        expander = RetrievalExpander(embedder, store, similar_to_titles=2)
        context = await expander.build_context("q", note_map, filter_private=True)
        assert note_map["n1"].content in context
        assert note_map["n4"].content in context

    @pytest.mark.asyncio
    async def test_random_note_skips_search(self, expander, vector_store, note_map):
        context = await expander.build_context(RANDOM_NOTE_SENTINEL, note_map, filter_private=True)
        assert context in {n.content for n in note_map.values()}
        assert context != note_map["n2"].content
        assert vector_store.calls == []


class TestPickRandomNote:

    def test_never_returns_old_when_current_exists(self):
        notes = {
            "a": note("a", "old one", "old"),
            "b": note("b", "current"),
            "c": note("c", "older", "old"),
        }
        rng = random.Random(3)
        for _ in range(50):
            assert pick_random_note(notes, rng).id == "b"

    def test_all_old_falls_back_to_first(self):
        notes = {"a": note("a", "x", "old"), "b": note("b", "y", "old")}
        assert pick_random_note(notes, random.Random(0), max_draws=5).id == "a"

    def test_private_excluded_when_filtering(self):
        notes = {"a": note("a", "x", "private"), "b": note("b", "y", "old")}
        assert pick_random_note(notes, random.Random(0), filter_private=True).id == "b"
        assert pick_random_note(notes, random.Random(0), filter_private=False).id == "a"

    def test_empty_map_raises(self):
        with pytest.raises(RetrievalError):
            pick_random_note({}, random.Random(0))
