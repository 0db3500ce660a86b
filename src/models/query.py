"""Query record and query result models.

A :class:`QueryRecord` is written once as PROCESSING when a question is
issued and resolved exactly once (SUCCESS, ERROR or TIMEOUT).  After that
the row is history and is never updated again; the retention cleanup is
the only thing that removes it.

:class:`QueryResult` is what callers of the query service receive.  It is
never an exception: failures come back as ``status="ERROR"`` with the
message in ``error``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class QueryStatus(str, Enum):  # noqa: UP042 — StrEnum requires Python 3.11+
    """Lifecycle status of a query record."""

    PROCESSING = "PROCESSING"
    SUCCESS = "SUCCESS"
    ERROR = "ERROR"
    TIMEOUT = "TIMEOUT"


class QueryRecord(BaseModel):
    """One question asked by one user, with its outcome."""

    model_config = ConfigDict(frozen=True)

    id: str
    question: str
    owner_id: str
    category: str | None = None
    session_id: str | None = None
    use_rag: bool = True
    answer: str | None = None
    query_time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    status: QueryStatus = QueryStatus.PROCESSING
    response_time_ms: int | None = Field(default=None, ge=0)
    source_documents: int | None = Field(default=None, ge=0)
    similarity_score: float | None = None
    source_files: list[str] = Field(default_factory=list)
    error_message: str | None = None


class QueryOutcome(BaseModel):
    """The fields written when a query record is resolved."""

    model_config = ConfigDict(frozen=True)

    status: QueryStatus
    response_time_ms: int = Field(ge=0)
    answer: str | None = None
    source_documents: int | None = None
    similarity_score: float | None = None
    source_files: list[str] = Field(default_factory=list)
    error_message: str | None = None


class QueryResult(BaseModel):
    """Answer (or structured failure) returned to the caller."""

    model_config = ConfigDict(frozen=True)

    query_id: str | None = None
    answer: str | None = None
    status: str
    error: str | None = None
    response_time_ms: int | None = None
    source_documents: int | None = None
    similarity_score: float | None = None
    source_files: list[str] | None = None
    query_time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def success(
        cls,
        answer: str,
        response_time_ms: int,
        source_documents: int | None = None,
        similarity_score: float | None = None,
        source_files: list[str] | None = None,
        query_id: str | None = None,
    ) -> QueryResult:
        return cls(
            query_id=query_id,
            answer=answer,
            status=QueryStatus.SUCCESS.value,
            response_time_ms=response_time_ms,
            source_documents=source_documents,
            similarity_score=similarity_score,
            source_files=source_files,
        )

    @classmethod
    def failure(
        cls,
        message: str,
        response_time_ms: int | None = None,
        query_id: str | None = None,
    ) -> QueryResult:
        return cls(
            query_id=query_id,
            status=QueryStatus.ERROR.value,
            error=message,
            response_time_ms=response_time_ms,
        )

    @classmethod
    def timeout(
        cls,
        response_time_ms: int | None = None,
        query_id: str | None = None,
    ) -> QueryResult:
        return cls(
            query_id=query_id,
            status=QueryStatus.TIMEOUT.value,
            error="Query timed out, please retry later",
            response_time_ms=response_time_ms,
        )


class AnswerEvent(BaseModel):
    """One event of a streamed answer: a text fragment or the final result."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["fragment", "result"]
    text: str | None = None
    result: QueryResult | None = None


class QueryStatistics(BaseModel):
    """Per-owner query counts and latency."""

    model_config = ConfigDict(frozen=True)

    total_queries: int = 0
    success_queries: int = 0
    error_queries: int = 0
    timeout_queries: int = 0
    avg_response_time_ms: float = 0.0
    by_category: dict[str, int] = Field(default_factory=dict)
