"""Chunk and question embeddings through the OpenAI embeddings endpoint.

The same adapter serves self-hosted or third-party servers that speak the
OpenAI wire format: set ``OPENAI_BASE_URL`` and ``OPENAI_EMBEDDING_MODEL``
and the client is pointed there instead.
"""

from __future__ import annotations

import openai
import structlog

from src.config.settings import Settings
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.utils.errors import RetrievalError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_MODEL = "text-embedding-3-small"

# Inputs accepted by one embeddings.create call.
_MAX_INPUTS_PER_REQUEST = 2048

# Vector length per model; models missing here are assumed to be 768-d.
_DIMENSIONS: dict[str, int] = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
    "BAAI/bge-base-en-v1.5": 768,
    "BAAI/bge-large-en-v1.5": 1024,
    "intfloat/multilingual-e5-large-instruct": 1024,
}
_FALLBACK_DIMENSION = 768


class OpenAIEmbeddingProvider(IEmbeddingProvider):
    """:class:`IEmbeddingProvider` over ``openai.AsyncOpenAI().embeddings``."""

    def __init__(self, settings: Settings) -> None:
        self._api_key = settings.openai_api_key
        self._model = settings.openai_embedding_model or _DEFAULT_MODEL
        self._dimension = _DIMENSIONS.get(self._model, _FALLBACK_DIMENSION)

        if settings.openai_base_url:
            self._client = openai.AsyncOpenAI(api_key=self._api_key, base_url=settings.openai_base_url)
            self._provider_label = "openai-compatible_embedding"
        else:
            self._client = openai.AsyncOpenAI(api_key=self._api_key)
            self._provider_label = "openai_embedding"

    async def embed(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []

        vectors: list[list[float]] = []
        for offset in range(0, len(texts), _MAX_INPUTS_PER_REQUEST):
            part = texts[offset : offset + _MAX_INPUTS_PER_REQUEST]
            try:
                response = await self._client.embeddings.create(input=part, model=self._model)
            except openai.APIError as exc:
                logger.error(
                    "embedding_request_failed",
                    provider=self._provider_label,
                    model=self._model,
                    inputs=len(part),
                    error=str(exc),
                )
                raise RetrievalError(
                    message=f"{self._provider_label} API error: {exc}",
                    provider_name=self._provider_label,
                ) from exc

            vectors.extend(item.embedding for item in response.data)
            logger.debug(
                "embedding_request_done",
                provider=self._provider_label,
                inputs=len(part),
                offset=offset,
            )
        return vectors

    async def embed_single(self, text: str) -> list[float]:
        (vector,) = await self.embed([text])
        return vector

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return self._provider_label

    def is_available(self) -> bool:
        return bool(self._api_key)
