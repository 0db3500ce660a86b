"""Unit tests for similarity selection and the Retriever."""

from __future__ import annotations

import pytest

from src.services.retrieval import Retriever, distinct_filenames, mean_similarity, select_relevant
from tests.conftest import MockVectorStore, make_chunk, make_retrieved


class TestSelectRelevant:
    def test_threshold_then_top_k(self) -> None:
        chunks = [make_retrieved(0.9, index=0), make_retrieved(0.6, index=1), make_retrieved(0.81, index=2)]

        selected = select_relevant(chunks, top_k=2, threshold=0.75)

        assert [rc.similarity_score for rc in selected] == [0.9, 0.81]
        assert mean_similarity(selected) == pytest.approx(0.855)

    def test_threshold_is_inclusive(self) -> None:
        selected = select_relevant([make_retrieved(0.75)], top_k=5, threshold=0.75)
        assert len(selected) == 1

    def test_nothing_above_threshold(self) -> None:
        assert select_relevant([make_retrieved(0.5)], top_k=5, threshold=0.75) == []

    def test_ties_keep_input_order(self) -> None:
        chunks = [make_retrieved(0.8, "a.txt"), make_retrieved(0.8, "b.txt")]

        selected = select_relevant(chunks, top_k=5, threshold=0.0)

        assert [rc.chunk.filename for rc in selected] == ["a.txt", "b.txt"]


class TestAggregates:
    def test_mean_of_nothing_is_zero(self) -> None:
        assert mean_similarity([]) == 0.0

    def test_distinct_filenames_first_appearance(self) -> None:
        chunks = [
            make_retrieved(0.9, "b.pdf", 0),
            make_retrieved(0.8, "a.txt", 1),
            make_retrieved(0.7, "b.pdf", 2),
        ]
        assert distinct_filenames(chunks) == ["b.pdf", "a.txt"]


class TestRetriever:
    @pytest.mark.asyncio
    async def test_category_filter_passed_to_store(self) -> None:
        store = MockVectorStore(fixed_similarity=0.8)
        await store.add_chunks(
            [make_chunk(chunk_id="c1", category="hr"), make_chunk(chunk_id="c2", category="legal")],
            [[0.0], [0.0]],
        )
        retriever = Retriever(store, max_results=5, similarity_threshold=0.75)

        results = await retriever.retrieve("leave", category="legal")

        assert [rc.chunk.chunk_id for rc in results] == ["c2"]

    @pytest.mark.asyncio
    async def test_below_threshold_dropped(self) -> None:
        store = MockVectorStore(fixed_similarity=0.7)
        await store.add_chunks([make_chunk()], [[0.0]])

        results = await Retriever(store, similarity_threshold=0.75).retrieve("leave")

        assert results == []

    @pytest.mark.asyncio
    async def test_max_results_caps_output(self) -> None:
        store = MockVectorStore(fixed_similarity=0.9)
        chunks = [make_chunk(chunk_id=f"c{i}", chunk_index=i) for i in range(8)]
        await store.add_chunks(chunks, [[0.0]] * 8)

        results = await Retriever(store, max_results=3).retrieve("leave")

        assert len(results) == 3

    def test_is_available_delegates(self) -> None:
        assert Retriever(MockVectorStore()).is_available() is True
