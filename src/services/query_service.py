"""Retrieval-augmented question answering with recorded history.

Every question becomes a :class:`~src.models.query.QueryRecord` that is
written as PROCESSING before any work starts and resolved exactly once:

    1. RECORD   -- insert the PROCESSING row.
    2. RETRIEVE -- (RAG mode) top-K chunks above the similarity threshold,
                   optionally restricted to one category.
    3. GENERATE -- the RAG client gets the grounding instruction plus the
                   chunks; the plain client gets the question alone.
    4. RESOLVE  -- SUCCESS with answer and sources, ERROR with the message,
                   or TIMEOUT when the configured deadline passes.

Failures never escape :meth:`QueryService.answer`: the caller always gets
a :class:`~src.models.query.QueryResult`, with ``status="ERROR"`` and the
message when something went wrong.  Generation calls run inside a slot of
the AI worker pool so concurrent model calls stay bounded.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any

import structlog

from src.config.knowledge_base import QueryConfig
from src.models.query import (
    AnswerEvent,
    QueryOutcome,
    QueryRecord,
    QueryResult,
    QueryStatistics,
    QueryStatus,
)
from src.models.rag import RetrievedChunk
from src.services.retrieval import distinct_filenames, mean_similarity
from src.utils.errors import GenerationError, ValidationError

if TYPE_CHECKING:
    from src.interfaces.generation_client import IGenerationClient
    from src.interfaces.query_store import IQueryStore
    from src.services.retrieval import Retriever
    from src.utils.concurrency import WorkerPool

logger = structlog.get_logger(logger_name=__name__)

PLAIN_SYSTEM_PROMPT = "You are a helpful AI assistant. Answer the user's question."

_TIMEOUT_MESSAGE = "Query timed out, please retry later"


def build_grounding_prompt(category: str | None = None) -> str:
    """System prompt that keeps the answer grounded in retrieved documents."""
    lines = [
        "You are a professional enterprise knowledge base assistant. Answer the "
        "user's question using the document content retrieved from the knowledge base.",
        "",
        "Requirements:",
        "1. Accuracy: base the answer on the retrieved document content and do not "
        "invent information.",
        "2. Completeness: cover every part of the question the documents address.",
        "3. Structure: organise the answer clearly so it is easy to read.",
        "4. Attribution: name the source document where appropriate.",
        "5. Honesty: if the documents do not contain the information, say so explicitly.",
    ]
    if category:
        lines += [
            "",
            f"Domain focus: the question concerns the '{category}' category; "
            "emphasise knowledge from that domain.",
        ]
    lines += ["", "Answer in a professional and friendly tone."]
    return "\n".join(lines)


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


@dataclass
class _Composed:
    """Answer text plus the chunks it was grounded on (``None`` without RAG)."""

    answer: str
    chunks: list[RetrievedChunk] | None = field(default=None)


class QueryService:
    """Answers questions and manages query history.

    Parameters
    ----------
    retriever:
        Finds the chunks relevant to a question.
    plain_client:
        Generation client used when RAG is off.
    rag_client:
        Generation client that injects retrieved chunks into the context.
    query_store:
        Persists query records.
    ai_pool:
        Worker pool whose slots bound concurrent generation calls.
    config:
        Retrieval limits, history cap, and the query timeout.
    """

    def __init__(
        self,
        retriever: Retriever,
        plain_client: IGenerationClient,
        rag_client: IGenerationClient,
        query_store: IQueryStore,
        ai_pool: WorkerPool,
        config: QueryConfig | None = None,
    ) -> None:
        self._retriever = retriever
        self._plain_client = plain_client
        self._rag_client = rag_client
        self._query_store = query_store
        self._ai_pool = ai_pool
        self._config = config or QueryConfig()

    # ------------------------------------------------------------------
    # Answering
    # ------------------------------------------------------------------

    async def answer(
        self,
        question: str,
        owner_id: str,
        category: str | None = None,
        session_id: str | None = None,
        use_rag: bool = True,
    ) -> QueryResult:
        """Answer *question* for *owner_id* and record the outcome."""
        start = time.monotonic()
        record = await self._create_record(question, owner_id, category, session_id, use_rag)

        try:
            composed = await asyncio.wait_for(
                self._compose_in_slot(question, category, use_rag),
                timeout=self._config.timeout_seconds,
            )
        except asyncio.TimeoutError:
            return await self._resolve_timeout(record, start)
        except Exception as exc:
            return await self._resolve_error(record, start, exc)

        return await self._resolve_success(record, start, composed)

    async def stream_answer(
        self,
        question: str,
        owner_id: str,
        category: str | None = None,
        session_id: str | None = None,
        use_rag: bool = True,
    ) -> AsyncIterator[AnswerEvent]:
        """Yield answer fragments as they arrive, then one ``result`` event.

        Recording matches :meth:`answer`; a failure ends the stream with an
        error result event instead of raising.
        """
        start = time.monotonic()
        record = await self._create_record(question, owner_id, category, session_id, use_rag)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._config.timeout_seconds
        fragments: list[str] = []
        result: QueryResult | None = None

        try:
            async with self._ai_pool.slot():
                chunks: list[RetrievedChunk] | None = None
                if use_rag:
                    chunks = await asyncio.wait_for(
                        self._retriever.retrieve(question, category),
                        timeout=max(deadline - loop.time(), 0.0),
                    )
                client, system_prompt = self._client_for(use_rag, category)
                iterator = client.stream(system_prompt, question, chunks or ()).__aiter__()
                while True:
                    remaining = deadline - loop.time()
                    if remaining <= 0:
                        raise asyncio.TimeoutError
                    try:
                        fragment = await asyncio.wait_for(iterator.__anext__(), timeout=remaining)
                    except StopAsyncIteration:
                        break
                    fragments.append(fragment)
                    yield AnswerEvent(kind="fragment", text=fragment)

            answer = "".join(fragments)
            if not answer:
                raise GenerationError(message="Generation returned an empty answer")
            result = await self._resolve_success(record, start, _Composed(answer, chunks))
        except asyncio.TimeoutError:
            result = await self._resolve_timeout(record, start)
        except Exception as exc:
            result = await self._resolve_error(record, start, exc)
        finally:
            if result is None:
                # Consumer went away mid-stream.
                await self._resolve_error(
                    record, start, GenerationError(message="Stream closed before completion")
                )

        yield AnswerEvent(kind="result", result=result)

    async def _compose_in_slot(self, question: str, category: str | None, use_rag: bool) -> _Composed:
        async with self._ai_pool.slot():
            return await self._compose(question, category, use_rag)

    async def _compose(self, question: str, category: str | None, use_rag: bool) -> _Composed:
        client, system_prompt = self._client_for(use_rag, category)
        if not use_rag:
            return _Composed(await client.generate(system_prompt, question))

        chunks = await self._retriever.retrieve(question, category)
        if not chunks:
            logger.info("query_no_relevant_chunks", category=category)
        answer = await client.generate(system_prompt, question, chunks)
        return _Composed(answer, chunks)

    def _client_for(self, use_rag: bool, category: str | None) -> tuple[IGenerationClient, str]:
        if use_rag:
            return self._rag_client, build_grounding_prompt(category)
        return self._plain_client, PLAIN_SYSTEM_PROMPT

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    async def _create_record(
        self,
        question: str,
        owner_id: str,
        category: str | None,
        session_id: str | None,
        use_rag: bool,
    ) -> QueryRecord:
        if not question or not question.strip():
            raise ValidationError(message="Question must not be blank")
        if not owner_id or not owner_id.strip():
            raise ValidationError(message="User id is required")
        record = QueryRecord(
            id=uuid.uuid4().hex,
            question=question,
            owner_id=owner_id,
            category=category or None,
            session_id=session_id or None,
            use_rag=use_rag,
        )
        await self._query_store.create(record)
        logger.info("query_started", query_id=record.id, use_rag=use_rag, category=category)
        return record

    async def _resolve_success(self, record: QueryRecord, start: float, composed: _Composed) -> QueryResult:
        elapsed = _elapsed_ms(start)
        if composed.chunks is None:
            source_documents = None
            similarity = None
            source_files: list[str] | None = None
        else:
            source_documents = len(composed.chunks)
            similarity = round(mean_similarity(composed.chunks), 4)
            source_files = distinct_filenames(composed.chunks)

        await self._resolve(
            record.id,
            QueryOutcome(
                status=QueryStatus.SUCCESS,
                response_time_ms=elapsed,
                answer=composed.answer,
                source_documents=source_documents,
                similarity_score=similarity,
                source_files=source_files or [],
            ),
        )
        logger.info(
            "query_complete",
            query_id=record.id,
            response_time_ms=elapsed,
            source_documents=source_documents,
            similarity=similarity,
        )
        return QueryResult.success(
            answer=composed.answer,
            response_time_ms=elapsed,
            source_documents=source_documents,
            similarity_score=similarity,
            source_files=source_files,
            query_id=record.id,
        )

    async def _resolve_error(self, record: QueryRecord, start: float, exc: Exception) -> QueryResult:
        elapsed = _elapsed_ms(start)
        message = str(exc) or exc.__class__.__name__
        await self._resolve(
            record.id,
            QueryOutcome(status=QueryStatus.ERROR, response_time_ms=elapsed, error_message=message),
        )
        logger.error("query_failed", query_id=record.id, error=message, response_time_ms=elapsed)
        return QueryResult.failure(message, response_time_ms=elapsed, query_id=record.id)

    async def _resolve_timeout(self, record: QueryRecord, start: float) -> QueryResult:
        elapsed = _elapsed_ms(start)
        await self._resolve(
            record.id,
            QueryOutcome(
                status=QueryStatus.TIMEOUT,
                response_time_ms=elapsed,
                error_message=_TIMEOUT_MESSAGE,
            ),
        )
        logger.warning("query_timeout", query_id=record.id, response_time_ms=elapsed)
        return QueryResult.timeout(response_time_ms=elapsed, query_id=record.id)

    async def _resolve(self, query_id: str, outcome: QueryOutcome) -> None:
        try:
            await self._query_store.resolve(query_id, outcome)
        except Exception as exc:
            logger.error("query_record_write_failed", query_id=query_id, error=str(exc))

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    async def get_history(self, owner_id: str, limit: int | None = None) -> list[QueryRecord]:
        """Most recent queries first; *limit* is capped at ``max_history``."""
        cap = self._config.max_history
        effective = cap if limit is None else max(1, min(limit, cap))
        return await self._query_store.list_by_owner(owner_id, effective)

    async def get_session_history(self, owner_id: str, session_id: str) -> list[QueryRecord]:
        """The owner's queries in one session, oldest first."""
        return await self._query_store.list_by_session(owner_id, session_id)

    async def search_history(self, owner_id: str, keyword: str) -> list[QueryRecord]:
        if not keyword or not keyword.strip():
            raise ValidationError(message="Search keyword must not be blank")
        return await self._query_store.search(owner_id, keyword.strip())

    async def get_statistics(self, owner_id: str) -> QueryStatistics:
        return await self._query_store.statistics(owner_id)

    async def cleanup_old_queries(self, days_to_keep: int) -> int:
        """Delete queries older than *days_to_keep* days; returns the count removed."""
        if days_to_keep < 1:
            raise ValidationError(message="days_to_keep must be at least 1")
        cutoff = datetime.now(timezone.utc) - timedelta(days=days_to_keep)
        removed = await self._query_store.delete_before(cutoff)
        logger.info("query_cleanup_complete", days_to_keep=days_to_keep, removed=removed)
        return removed

    async def get_popular_queries(self, limit: int = 10) -> list[str]:
        """Distinct questions, most recently asked first."""
        return await self._query_store.recent_questions(max(1, limit))

    def health(self) -> dict[str, Any]:
        """Availability of the vector index and the generation backend."""
        vector_ok = self._retriever.is_available()
        generation_ok = self._rag_client.is_available()
        return {
            "status": "healthy" if vector_ok and generation_ok else "degraded",
            "vector_store": vector_ok,
            "generation": generation_ok,
        }
