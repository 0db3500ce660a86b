"""OpenAI-compatible LLM provider adapter.

Wraps the ``openai`` async client to implement :class:`ILLMProvider`.
Supports whole-text completion and streamed completion.  When a custom
``openai_base_url`` is configured (TogetherAI, vLLM, Fireworks, Groq), the
client points at that URL instead of the default OpenAI endpoint, so one
adapter covers every provider with an OpenAI-compatible REST API.
"""

from __future__ import annotations

from collections.abc import AsyncIterator

import openai
import structlog

from src.config.settings import Settings
from src.interfaces.llm_provider import ILLMProvider
from src.utils.errors import GenerationError

logger = structlog.get_logger(logger_name=__name__)

_REQUEST_TIMEOUT_S = 55.0


class OpenAILLMProvider(ILLMProvider):
    """LLM provider backed by an OpenAI-compatible chat completions API.

    Uses ``gpt-4o-mini`` by default; ``openai_text_model`` overrides it.
    """

    def __init__(self, settings: Settings) -> None:
        self._api_key = settings.openai_api_key

        # Request timeout stays under the query service's own timeout so a
        # hung call surfaces as a GenerationError rather than a TIMEOUT.
        client_kwargs: dict = {
            "api_key": self._api_key,
            "timeout": openai.Timeout(_REQUEST_TIMEOUT_S, connect=5.0),
        }
        if settings.openai_base_url:
            client_kwargs["base_url"] = settings.openai_base_url

        self._client = openai.AsyncOpenAI(**client_kwargs)
        self._text_model = settings.openai_text_model or "gpt-4o-mini"
        self._provider_label = "openai-compatible" if settings.openai_base_url else "openai"

    # ------------------------------------------------------------------
    # ILLMProvider implementation
    # ------------------------------------------------------------------

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 2000,
    ) -> str:
        """Generate a text completion via the chat completions API."""
        try:
            response = await self._client.chat.completions.create(
                model=self._text_model,
                messages=self._messages(system_prompt, user_prompt),
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except openai.APITimeoutError as exc:
            raise GenerationError(
                message=f"{self._provider_label} timed out after {_REQUEST_TIMEOUT_S:.0f}s",
                provider_name=self.get_provider_name(),
            ) from exc
        except openai.APIError as exc:
            raise GenerationError(
                message=f"{self._provider_label} API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise GenerationError(
                message=f"{self._provider_label} returned empty response",
                provider_name=self.get_provider_name(),
            )
        logger.info(
            "openai_completion",
            model=self._text_model,
            provider=self._provider_label,
            tokens=response.usage.total_tokens if response.usage else None,
        )
        return content

    async def stream(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 2000,
    ) -> AsyncIterator[str]:
        """Yield completion text fragments as the API streams them."""
        fragments = 0
        try:
            response = await self._client.chat.completions.create(
                model=self._text_model,
                messages=self._messages(system_prompt, user_prompt),
                temperature=temperature,
                max_tokens=max_tokens,
                stream=True,
            )
            async for event in response:
                if not event.choices:
                    continue
                delta = event.choices[0].delta.content
                if delta:
                    fragments += 1
                    yield delta
        except openai.APITimeoutError as exc:
            raise GenerationError(
                message=f"{self._provider_label} stream timed out",
                provider_name=self.get_provider_name(),
            ) from exc
        except openai.APIError as exc:
            raise GenerationError(
                message=f"{self._provider_label} API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.info(
            "openai_stream_complete",
            model=self._text_model,
            provider=self._provider_label,
            fragments=fragments,
        )

    def is_available(self) -> bool:
        """Return ``True`` if an API key is configured (doesn't verify it works)."""
        return bool(self._api_key)

    async def validate_credentials(self) -> bool:
        """Try listing models to verify the API key works without inference cost."""
        if not self.is_available():
            return False
        try:
            await self._client.models.list()
            return True
        except openai.APIError:
            return False

    def get_provider_name(self) -> str:
        """Return 'openai' or 'openai-compatible' depending on configuration."""
        return self._provider_label

    @staticmethod
    def _messages(system_prompt: str, user_prompt: str) -> list[dict[str, str]]:
        return [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]
