"""Answer generation clients built on an :class:`ILLMProvider`.

Two instances are configured at startup:

- the **plain** client sends the question as-is;
- the **RAG** client wraps the question in a question-answer context
  template that injects the text of every retrieved chunk.

Both implement :class:`~src.interfaces.generation_client.IGenerationClient`
and the query service picks one per call.  When the RAG client is given no
chunks it behaves like the plain client and sends the question alone.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence

import structlog

from src.interfaces.generation_client import IGenerationClient
from src.interfaces.llm_provider import ILLMProvider
from src.models.rag import RetrievedChunk

logger = structlog.get_logger(logger_name=__name__)

# Question-answer context template; {context} receives the chunk texts.
QUESTION_ANSWER_TEMPLATE = (
    "{question}\n\n"
    "Context information is below, surrounded by ---------------------\n\n"
    "---------------------\n"
    "{context}\n"
    "---------------------\n\n"
    "Given the context and no prior knowledge, reply to the user's question. "
    "If the answer is not in the context, tell the user you cannot answer it "
    "from the available documents."
)

_CHUNK_SEPARATOR = "\n\n"


class GenerationClient(IGenerationClient):
    """Generates answers through an LLM provider.

    Parameters
    ----------
    llm:
        Text generation backend.
    name:
        Label used in log events (``"plain"`` or ``"rag"``).
    context_template:
        Template with ``{question}`` and ``{context}`` placeholders.  When
        ``None`` the client never injects context.
    temperature:
        Sampling temperature passed to every call.
    max_tokens:
        Response token limit passed to every call.
    """

    def __init__(
        self,
        llm: ILLMProvider,
        name: str = "plain",
        context_template: str | None = None,
        temperature: float = 0.3,
        max_tokens: int = 2000,
    ) -> None:
        self._llm = llm
        self._name = name
        self._context_template = context_template
        self._temperature = temperature
        self._max_tokens = max_tokens

    @classmethod
    def plain(cls, llm: ILLMProvider, temperature: float = 0.3, max_tokens: int = 2000) -> GenerationClient:
        return cls(llm, name="plain", temperature=temperature, max_tokens=max_tokens)

    @classmethod
    def rag(cls, llm: ILLMProvider, temperature: float = 0.3, max_tokens: int = 2000) -> GenerationClient:
        return cls(
            llm,
            name="rag",
            context_template=QUESTION_ANSWER_TEMPLATE,
            temperature=temperature,
            max_tokens=max_tokens,
        )

    @property
    def name(self) -> str:
        return self._name

    def build_user_prompt(self, question: str, context: Sequence[RetrievedChunk] = ()) -> str:
        """Return the user message sent to the model."""
        if self._context_template is None or not context:
            return question
        context_text = _CHUNK_SEPARATOR.join(rc.chunk.text for rc in context)
        return self._context_template.format(question=question, context=context_text)

    async def generate(
        self,
        system_prompt: str,
        question: str,
        context: Sequence[RetrievedChunk] = (),
    ) -> str:
        user_prompt = self.build_user_prompt(question, context)
        logger.debug(
            "generation_request",
            client=self._name,
            context_chunks=len(context),
            prompt_chars=len(user_prompt),
        )
        return await self._llm.complete(
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            temperature=self._temperature,
            max_tokens=self._max_tokens,
        )

    async def stream(
        self,
        system_prompt: str,
        question: str,
        context: Sequence[RetrievedChunk] = (),
    ) -> AsyncIterator[str]:
        user_prompt = self.build_user_prompt(question, context)
        logger.debug(
            "generation_stream_request",
            client=self._name,
            context_chunks=len(context),
            prompt_chars=len(user_prompt),
        )
        async for fragment in self._llm.stream(
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            temperature=self._temperature,
            max_tokens=self._max_tokens,
        ):
            yield fragment

    def is_available(self) -> bool:
        return self._llm.is_available()
