"""Abstract base class for answer generation clients.

A generation client turns an instruction, a question, and (optionally)
retrieved context into an answer.  Two instances exist at runtime: the
*plain* client that sends the question alone and the *RAG* client that
injects the retrieved chunk texts into the model context.  Call sites pick
the one they need; both satisfy this interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Sequence

from src.models.rag import RetrievedChunk


class IGenerationClient(ABC):
    """Contract for producing an answer, whole or streamed."""

    @abstractmethod
    async def generate(
        self,
        system_prompt: str,
        question: str,
        context: Sequence[RetrievedChunk] = (),
    ) -> str:
        """Return the complete answer text.

        Raises
        ------
        src.utils.errors.GenerationError
            If the underlying model call fails.
        """

    @abstractmethod
    def stream(
        self,
        system_prompt: str,
        question: str,
        context: Sequence[RetrievedChunk] = (),
    ) -> AsyncIterator[str]:
        """Yield answer fragments as the model produces them."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the backing model is configured."""
