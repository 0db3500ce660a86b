"""Interface for the model that turns chunk and question text into vectors.

Ingestion embeds chunk batches before they are written to the vector
index; the ChromaDB adapter embeds the question at query time.  Both
sides must use the same provider, otherwise stored and query vectors
live in different spaces.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementation: OpenAIEmbeddingProvider (src/providers/embedding/)
class IEmbeddingProvider(ABC):
    """Text-to-vector capability shared by ingestion and retrieval."""

    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Embed every string in *texts*.

        Parameters
        ----------
        texts:
            Chunk texts from one ingestion batch.  May be longer than the
            backend accepts in a single request; splitting is the
            adapter's job, not the caller's.

        Returns
        -------
        list[list[float]]
            One vector per input, in input order, each of length
            :meth:`get_dimension`.  An empty input yields an empty list.

        Raises
        ------
        src.utils.errors.RetrievalError
            When the backend rejects or fails the request.
        """

    @abstractmethod
    async def embed_single(self, text: str) -> list[float]:
        """Embed one string, typically a user question."""

    @abstractmethod
    def get_dimension(self) -> int:
        """Vector length produced by the configured model.

        The vector store compares this against the collection it opens,
        so it must not change while the process runs.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Short label used in logs, errors and the health report."""

    @abstractmethod
    def is_available(self) -> bool:
        """Whether the provider has what it needs to make requests."""
