"""FastAPI routes for the knowledge base service.

Handlers stay thin: they read the caller's id from ``request.state``
(set by :class:`~src.api.middleware.UserIdentityMiddleware`), call one
service method, and shape the response.  Domain errors propagate to
:class:`~src.api.middleware.ErrorHandlingMiddleware`.

# Endpoint                                   Method  Description
# ---------------------------------------------------------------------
# /api/v1/documents/upload                   POST    Upload + schedule ingestion
# /api/v1/documents                          GET     List own documents
# /api/v1/documents/page                     GET     Paged, sorted listing
# /api/v1/documents/search                   GET     Filename/description search
# /api/v1/documents/statistics               GET     Counts by category/status
# /api/v1/documents/categories               GET     Own categories
# /api/v1/documents/failed                   GET     FAILED documents
# /api/v1/documents/batch                    DELETE  Delete several documents
# /api/v1/documents/{id}                     GET     One document
# /api/v1/documents/{id}                     DELETE  Delete document + chunks
# /api/v1/documents/{id}/reprocess           POST    Re-ingest a FAILED document
# /api/v1/query                              POST    Ask a question
# /api/v1/query/quick                        POST    Ask via query parameters
# /api/v1/query/stream                       POST    Ask, answer streamed as SSE
# /api/v1/query/history                      GET     Recent questions
# /api/v1/query/session/{session_id}         GET     One session, oldest first
# /api/v1/query/search                       GET     Search question/answer text
# /api/v1/query/statistics                   GET     Per-user query statistics
# /api/v1/query/popular                      GET     Recently asked questions
# /api/v1/query/cleanup                      DELETE  Drop old history
# /api/v1/query/health                       GET     Query path availability
# /api/v1/health                             GET     Service health
#
# Fixed document paths are declared before /documents/{document_id} so
# they are not captured by the path parameter.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, Form, Query, Request, UploadFile
from fastapi.responses import StreamingResponse

from src.api.schemas import (
    BatchDeleteRequest,
    BatchDeleteResponse,
    CategoriesResponse,
    CleanupResponse,
    DeleteResponse,
    DocumentListResponse,
    DocumentPageResponse,
    ErrorResponse,
    HealthResponse,
    PopularQueriesResponse,
    QueryHistoryResponse,
    QueryRequest,
    UploadResponse,
)
from src.interfaces.vector_store_provider import IVectorStoreProvider
from src.models.document import Document, DocumentStatistics
from src.models.query import AnswerEvent, QueryResult, QueryStatistics
from src.services.document_service import DocumentService
from src.services.query_service import QueryService
from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

router = APIRouter(prefix="/api/v1")

_VERSION = "0.1.0"

_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
}


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def _get_document_service(request: Request) -> DocumentService:
    """Return the document service from application state."""
    return request.app.state.document_service


def _get_query_service(request: Request) -> QueryService:
    """Return the query service from application state."""
    return request.app.state.query_service


def _get_vector_store(request: Request) -> IVectorStoreProvider:
    return request.app.state.vector_store


def _get_user_id(request: Request) -> str:
    """Return the caller id placed on the request by UserIdentityMiddleware."""
    return request.state.user_id


DocumentServiceDep = Annotated[DocumentService, Depends(_get_document_service)]
QueryServiceDep = Annotated[QueryService, Depends(_get_query_service)]
VectorStoreDep = Annotated[IVectorStoreProvider, Depends(_get_vector_store)]
UserIdDep = Annotated[str, Depends(_get_user_id)]


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


@router.post(
    "/documents/upload",
    response_model=UploadResponse,
    responses={**_ERROR_RESPONSES, 503: {"model": ErrorResponse}},
    summary="Upload a document and schedule ingestion",
)
async def upload_document(
    file: UploadFile,
    documents: DocumentServiceDep,
    user_id: UserIdDep,
    category: Annotated[str, Form()] = "",
    description: Annotated[str | None, Form()] = None,
) -> UploadResponse:
    """Accept a PDF, DOCX, TXT or Markdown file; ingestion runs in the background."""
    content = await file.read()
    result = await documents.upload(
        filename=file.filename or "upload",
        content=content,
        content_type=file.content_type,
        category=category,
        owner_id=user_id,
        description=description,
    )
    return UploadResponse(**result.model_dump())


@router.get(
    "/documents",
    response_model=DocumentListResponse,
    summary="List the caller's documents",
)
async def list_documents(
    documents: DocumentServiceDep,
    user_id: UserIdDep,
    category: str | None = None,
) -> DocumentListResponse:
    items = await documents.list_documents(user_id, category)
    return DocumentListResponse(documents=items, total=len(items))


@router.get(
    "/documents/page",
    response_model=DocumentPageResponse,
    responses={400: {"model": ErrorResponse}},
    summary="Page through the caller's documents",
)
async def list_documents_page(
    documents: DocumentServiceDep,
    user_id: UserIdDep,
    category: str | None = None,
    page: Annotated[int, Query(ge=0)] = 0,
    size: Annotated[int, Query(ge=1, le=100)] = 10,
    sort: str = "upload_time",
    direction: str = "desc",
) -> DocumentPageResponse:
    result = await documents.list_documents_page(
        user_id,
        category=category,
        page=page,
        size=size,
        sort=sort,
        direction=direction,
    )
    return DocumentPageResponse(
        items=result.items,
        total=result.total,
        page=result.page,
        size=result.size,
        total_pages=result.total_pages,
    )


@router.get(
    "/documents/search",
    response_model=DocumentListResponse,
    responses={400: {"model": ErrorResponse}},
    summary="Search the caller's documents by filename or description",
)
async def search_documents(
    documents: DocumentServiceDep,
    user_id: UserIdDep,
    keyword: str = "",
) -> DocumentListResponse:
    items = await documents.search_documents(user_id, keyword)
    return DocumentListResponse(documents=items, total=len(items))


@router.get(
    "/documents/statistics",
    response_model=DocumentStatistics,
    summary="Document counts by category and status",
)
async def document_statistics(
    documents: DocumentServiceDep,
    user_id: UserIdDep,
) -> DocumentStatistics:
    return await documents.get_statistics(user_id)


@router.get(
    "/documents/categories",
    response_model=CategoriesResponse,
    summary="Categories the caller has uploaded into",
)
async def document_categories(
    documents: DocumentServiceDep,
    user_id: UserIdDep,
) -> CategoriesResponse:
    return CategoriesResponse(categories=await documents.get_user_categories(user_id))


@router.get(
    "/documents/failed",
    response_model=DocumentListResponse,
    summary="Documents whose ingestion failed",
)
async def failed_documents(
    documents: DocumentServiceDep,
    user_id: UserIdDep,
) -> DocumentListResponse:
    items = await documents.get_failed_documents(user_id)
    return DocumentListResponse(documents=items, total=len(items))


@router.delete(
    "/documents/batch",
    response_model=BatchDeleteResponse,
    summary="Delete several documents",
)
async def delete_documents(
    body: BatchDeleteRequest,
    documents: DocumentServiceDep,
    user_id: UserIdDep,
) -> BatchDeleteResponse:
    result = await documents.delete_documents(body.document_ids, user_id)
    return BatchDeleteResponse(**result.model_dump())


@router.get(
    "/documents/{document_id}",
    response_model=Document,
    responses=_ERROR_RESPONSES,
    summary="Fetch one document",
)
async def get_document(
    document_id: str,
    documents: DocumentServiceDep,
    user_id: UserIdDep,
) -> Document:
    return await documents.get_document(document_id, user_id)


@router.delete(
    "/documents/{document_id}",
    response_model=DeleteResponse,
    responses={**_ERROR_RESPONSES, 409: {"model": ErrorResponse}},
    summary="Delete a document, its stored file, and its indexed chunks",
)
async def delete_document(
    document_id: str,
    documents: DocumentServiceDep,
    user_id: UserIdDep,
) -> DeleteResponse:
    await documents.delete_document(document_id, user_id)
    return DeleteResponse(document_id=document_id, message="Document deleted")


@router.post(
    "/documents/{document_id}/reprocess",
    response_model=UploadResponse,
    responses={**_ERROR_RESPONSES, 409: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    summary="Re-ingest a FAILED document from its stored file",
)
async def reprocess_document(
    document_id: str,
    documents: DocumentServiceDep,
    user_id: UserIdDep,
) -> UploadResponse:
    result = await documents.reprocess_document(document_id, user_id)
    return UploadResponse(**result.model_dump())


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


@router.post(
    "/query",
    response_model=QueryResult,
    summary="Ask a question",
)
async def ask(
    body: QueryRequest,
    queries: QueryServiceDep,
    user_id: UserIdDep,
) -> QueryResult:
    """Answer a question; failures come back as ``status="ERROR"`` rather than HTTP errors."""
    return await queries.answer(
        body.question,
        owner_id=user_id,
        category=body.category,
        session_id=body.session_id,
        use_rag=body.use_rag,
    )


@router.post(
    "/query/quick",
    response_model=QueryResult,
    responses={400: {"model": ErrorResponse}},
    summary="Ask a question passed as query parameters",
)
async def ask_quick(
    queries: QueryServiceDep,
    user_id: UserIdDep,
    question: Annotated[str, Query(min_length=1, max_length=1000)],
    category: str | None = None,
    use_rag: bool = True,
) -> QueryResult:
    return await queries.answer(question, owner_id=user_id, category=category, use_rag=use_rag)


def _format_event(event: AnswerEvent) -> str:
    if event.kind == "fragment":
        payload = json.dumps({"text": event.text})
    else:
        payload = event.result.model_dump_json() if event.result else "{}"
    return f"event: {event.kind}\ndata: {payload}\n\n"


@router.post(
    "/query/stream",
    summary="Ask a question and stream the answer as server-sent events",
    response_class=StreamingResponse,
)
async def ask_stream(
    body: QueryRequest,
    queries: QueryServiceDep,
    user_id: UserIdDep,
) -> StreamingResponse:
    """Emit ``fragment`` events while the answer is generated, then one ``result`` event."""

    async def event_stream() -> AsyncIterator[str]:
        async for event in queries.stream_answer(
            body.question,
            owner_id=user_id,
            category=body.category,
            session_id=body.session_id,
            use_rag=body.use_rag,
        ):
            yield _format_event(event)

    return StreamingResponse(event_stream(), media_type="text/event-stream")


@router.get(
    "/query/history",
    response_model=QueryHistoryResponse,
    summary="The caller's most recent questions",
)
async def query_history(
    queries: QueryServiceDep,
    user_id: UserIdDep,
    limit: Annotated[int, Query(ge=1, le=50)] = 10,
) -> QueryHistoryResponse:
    records = await queries.get_history(user_id, limit)
    return QueryHistoryResponse(queries=records, total=len(records))


@router.get(
    "/query/session/{session_id}",
    response_model=QueryHistoryResponse,
    summary="All questions of one session, oldest first",
)
async def session_history(
    session_id: str,
    queries: QueryServiceDep,
    user_id: UserIdDep,
) -> QueryHistoryResponse:
    records = await queries.get_session_history(user_id, session_id)
    return QueryHistoryResponse(queries=records, total=len(records))


@router.get(
    "/query/search",
    response_model=QueryHistoryResponse,
    responses={400: {"model": ErrorResponse}},
    summary="Search the caller's questions and answers",
)
async def search_history(
    queries: QueryServiceDep,
    user_id: UserIdDep,
    keyword: str = "",
) -> QueryHistoryResponse:
    records = await queries.search_history(user_id, keyword)
    return QueryHistoryResponse(queries=records, total=len(records))


@router.get(
    "/query/statistics",
    response_model=QueryStatistics,
    summary="Query counts and average latency for the caller",
)
async def query_statistics(
    queries: QueryServiceDep,
    user_id: UserIdDep,
) -> QueryStatistics:
    return await queries.get_statistics(user_id)


@router.get(
    "/query/popular",
    response_model=PopularQueriesResponse,
    summary="Recently asked questions across all users",
)
async def popular_queries(
    queries: QueryServiceDep,
    limit: Annotated[int, Query(ge=1, le=20)] = 10,
) -> PopularQueriesResponse:
    return PopularQueriesResponse(questions=await queries.get_popular_queries(limit))


@router.delete(
    "/query/cleanup",
    response_model=CleanupResponse,
    summary="Delete query history older than the given number of days",
)
async def cleanup_history(
    queries: QueryServiceDep,
    user_id: UserIdDep,
    days_to_keep: Annotated[int, Query(ge=1, le=365)] = 30,
) -> CleanupResponse:
    deleted = await queries.cleanup_old_queries(days_to_keep)
    _logger.info("query_cleanup_requested", requested_by=user_id, deleted=deleted)
    return CleanupResponse(deleted_count=deleted, days_to_keep=days_to_keep)


@router.get(
    "/query/health",
    summary="Availability of retrieval and generation",
)
async def query_health(queries: QueryServiceDep) -> dict[str, Any]:
    return queries.health()


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Application health check",
)
async def health_check(
    request: Request,
    queries: QueryServiceDep,
    vector_store: VectorStoreDep,
) -> HealthResponse:
    """Return service health, version, and provider availability."""
    providers: dict[str, Any] = dict(getattr(request.app.state, "provider_registry", {}))
    query_health = queries.health()
    providers["vector_store"] = query_health["vector_store"]
    providers["generation"] = query_health["generation"]

    try:
        stats = await vector_store.get_stats()
        providers["indexed_chunks"] = stats.total_chunks
        providers["indexed_documents"] = stats.total_documents
    except Exception as exc:
        _logger.warning("health_stats_failed", error=str(exc))
        providers["indexed_chunks"] = 0
        providers["indexed_documents"] = 0

    return HealthResponse(
        status=query_health["status"],
        version=_VERSION,
        providers=providers,
    )
