"""Pydantic request/response schemas for the knowledge base API.

Request schemas end with ``Request`` and response schemas with
``Response``.  Domain models that already have the right public shape
(:class:`~src.models.document.Document`,
:class:`~src.models.query.QueryResult`, ...) are returned directly and are
not duplicated here.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from src.models.document import Document
from src.models.query import QueryRecord


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str | None = None


class HealthResponse(BaseModel):
    """Application health check response."""

    status: str
    version: str
    providers: dict[str, Any]


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


class UploadResponse(BaseModel):
    """Returned as soon as an upload is accepted and ingestion is scheduled."""

    document_id: str | None
    filename: str
    status: str
    message: str
    upload_time: datetime
    file_size: int | None = None


class DocumentListResponse(BaseModel):
    """A list of the caller's documents."""

    documents: list[Document]
    total: int


class DocumentPageResponse(BaseModel):
    """One page of the caller's documents."""

    items: list[Document]
    total: int
    page: int
    size: int
    total_pages: int


class CategoriesResponse(BaseModel):
    categories: list[str]


class BatchDeleteRequest(BaseModel):
    """Ids of the documents to delete in one request."""

    document_ids: list[str] = Field(..., min_length=1)


class BatchDeleteResponse(BaseModel):
    success_count: int
    failure_count: int
    message: str


class DeleteResponse(BaseModel):
    document_id: str
    message: str


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


class QueryRequest(BaseModel):
    """A question for the knowledge base."""

    question: str = Field(..., min_length=1, max_length=1000)
    category: str | None = None
    session_id: str | None = None
    use_rag: bool = True

    @field_validator("question")
    @classmethod
    def _question_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("question must not be blank")
        return value


class QueryHistoryResponse(BaseModel):
    queries: list[QueryRecord]
    total: int


class PopularQueriesResponse(BaseModel):
    questions: list[str]


class CleanupResponse(BaseModel):
    deleted_count: int
    days_to_keep: int
