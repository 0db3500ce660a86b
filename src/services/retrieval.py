"""Similarity retrieval with threshold and top-K selection.

The vector store returns its nearest chunks; :func:`select_relevant` keeps
the ones at or above the similarity threshold, orders them by descending
similarity, and cuts the list to ``top_k``.  :class:`Retriever` wires that
selection to the vector store and the optional category filter.
"""

from __future__ import annotations

from collections.abc import Sequence

import structlog

from src.interfaces.vector_store_provider import IVectorStoreProvider
from src.models.rag import RetrievedChunk

logger = structlog.get_logger(logger_name=__name__)


def select_relevant(
    chunks: Sequence[RetrievedChunk],
    top_k: int,
    threshold: float,
) -> list[RetrievedChunk]:
    """Return at most *top_k* chunks with ``similarity >= threshold``, best first.

    Ties keep their input order.
    """
    kept = [rc for rc in chunks if rc.similarity_score >= threshold]
    kept.sort(key=lambda rc: rc.similarity_score, reverse=True)
    return kept[:top_k]


def distinct_filenames(chunks: Sequence[RetrievedChunk]) -> list[str]:
    """Source filenames in order of first appearance."""
    return list(dict.fromkeys(rc.chunk.filename for rc in chunks))


def mean_similarity(chunks: Sequence[RetrievedChunk]) -> float:
    """Arithmetic mean similarity; ``0.0`` for no chunks."""
    if not chunks:
        return 0.0
    return sum(rc.similarity_score for rc in chunks) / len(chunks)


class Retriever:
    """Fetches the chunks relevant to a question.

    Parameters
    ----------
    vector_store:
        Index to search.
    max_results:
        Maximum chunks returned per question.
    similarity_threshold:
        Minimum similarity for a chunk to be used.
    """

    def __init__(
        self,
        vector_store: IVectorStoreProvider,
        max_results: int = 5,
        similarity_threshold: float = 0.75,
    ) -> None:
        self._vector_store = vector_store
        self._max_results = max_results
        self._threshold = similarity_threshold

    async def retrieve(self, question: str, category: str | None = None) -> list[RetrievedChunk]:
        """Return the relevant chunks for *question*, optionally within *category*.

        Raises
        ------
        src.utils.errors.RetrievalError
            If the vector store query fails.
        """
        filters = {"category": category} if category else None
        candidates = await self._vector_store.query(
            query_text=question,
            top_k=self._max_results,
            filters=filters,
        )
        selected = select_relevant(candidates, self._max_results, self._threshold)
        logger.info(
            "retrieval_complete",
            category=category,
            candidates=len(candidates),
            selected=len(selected),
            threshold=self._threshold,
        )
        return selected

    def is_available(self) -> bool:
        return self._vector_store.is_available()
