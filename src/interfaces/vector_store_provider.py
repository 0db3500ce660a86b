"""Abstract base class for vector-store service providers.

Defines the contract for storing, searching, and deleting embedded
document chunks.  The default implementation wraps ChromaDB; the
interface keeps the ingestion and query services independent of it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.rag import DocumentChunk, IndexStats, RetrievedChunk


# Concrete implementation: ChromaDBProvider (src/providers/vector_store/)
class IVectorStoreProvider(ABC):
    """Contract for the chunk index.

    All query and mutation methods are async so network-backed stores can
    be swapped in without blocking the event loop.  The index must accept
    concurrent appends for independent documents.

    **Filter syntax** (the *filters* dict in :meth:`query`) is plain
    equality on chunk metadata, e.g. ``{"category": "finance"}``.  Several
    keys are combined with AND.  Matching is exact and case-sensitive.
    """

    @abstractmethod
    async def query(
        self,
        query_text: str,
        top_k: int = 5,
        filters: dict[str, str] | None = None,
    ) -> list[RetrievedChunk]:
        """Embed *query_text* and return the *top_k* most similar chunks.

        Returns
        -------
        list[RetrievedChunk]
            Zero or more results ranked by similarity score (descending).
            Scores are in ``[0, 1]``.

        Raises
        ------
        src.utils.errors.RetrievalError
            If embedding the query or searching the index fails.
        """

    @abstractmethod
    async def add_chunks(
        self,
        chunks: list[DocumentChunk],
        embeddings: list[list[float]],
    ) -> int:
        """Upsert pre-embedded chunks; returns the number stored.

        Raises
        ------
        ValueError
            If ``len(chunks) != len(embeddings)``.
        src.utils.errors.RetrievalError
            If the store operation fails.
        """

    @abstractmethod
    async def delete_by_document(self, document_id: str) -> int:
        """Delete every chunk belonging to *document_id*; returns the count removed."""

    @abstractmethod
    async def get_stats(self) -> IndexStats:
        """Return aggregate chunk and document counts for the index."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"chromadb"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the store is reachable without running a query."""
