"""Pydantic models for documents, queries, and RAG chunks."""

from src.models.document import (
    BatchDeleteResult,
    Document,
    DocumentPage,
    DocumentStatistics,
    DocumentStatus,
    UploadResult,
)
from src.models.query import (
    AnswerEvent,
    QueryOutcome,
    QueryRecord,
    QueryResult,
    QueryStatistics,
    QueryStatus,
)
from src.models.rag import (
    DocumentChunk,
    IndexStats,
    IngestionResult,
    RetrievedChunk,
    TextChunk,
)

__all__ = [
    "AnswerEvent",
    "BatchDeleteResult",
    "Document",
    "DocumentChunk",
    "DocumentPage",
    "DocumentStatistics",
    "DocumentStatus",
    "IndexStats",
    "IngestionResult",
    "QueryOutcome",
    "QueryRecord",
    "QueryResult",
    "QueryStatistics",
    "QueryStatus",
    "RetrievedChunk",
    "TextChunk",
    "UploadResult",
]
