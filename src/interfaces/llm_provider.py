"""Abstract base class for LLM service providers.

Defines the contract for the text-generation backend.  The model is an
opaque capability: a prompt goes in and either the full text or a lazy
sequence of text fragments comes out.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator


# Concrete implementation: OpenAILLMProvider (src/providers/llm/)
class ILLMProvider(ABC):
    """Contract for LLM services used by the generation clients."""

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 2000,
    ) -> str:
        """Generate a text completion from the model.

        Parameters
        ----------
        system_prompt:
            The system/instruction message that sets the model's behaviour.
        user_prompt:
            The user-facing prompt containing the question and any context.
        temperature:
            Sampling temperature (0.0 = deterministic, 1.0 = creative).
        max_tokens:
            Upper bound on the number of tokens in the response.

        Returns
        -------
        str
            The model's text response.

        Raises
        ------
        src.utils.errors.GenerationError
            If the API call fails or returns an empty response.
        """

    @abstractmethod
    def stream(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 2000,
    ) -> AsyncIterator[str]:
        """Generate a completion as a lazy sequence of text fragments.

        Implementations are async generators.  Concatenating every yielded
        fragment gives the same kind of text :meth:`complete` returns.

        Raises
        ------
        src.utils.errors.GenerationError
            If the API call fails before or during streaming.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"openai"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if credentials are present (no network call)."""

    @abstractmethod
    async def validate_credentials(self) -> bool:
        """Perform a lightweight API call to confirm credentials are valid.

        Unlike :meth:`is_available`, this method actively contacts the
        remote service.
        """
