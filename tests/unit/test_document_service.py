"""Unit tests for DocumentService -- upload validation, ownership, and lifecycle."""

from __future__ import annotations

import asyncio
import hashlib

import pytest

from src.config.knowledge_base import DocumentConfig, ExecutorConfig
from src.models.document import DocumentStatus
from src.providers.storage.local_file_storage import LocalFileStorage
from src.providers.store.sqlite_document_store import SQLiteDocumentStore
from src.services.document_service import DocumentService
from src.services.ingestion.chunker import TextChunker
from src.services.ingestion.document_reader import DocumentReader
from src.services.ingestion.ingestion_service import IngestionService
from src.services.ingestion.metadata_enricher import MetadataEnricher
from src.utils.concurrency import WorkerPool
from src.utils.errors import (
    DocumentNotFoundError,
    IngestionInProgressError,
    PermissionDeniedError,
    ProcessingError,
    ValidationError,
    WorkerPoolSaturatedError,
)
from tests.conftest import GatedEmbeddingProvider, MockEmbeddingProvider, MockVectorStore, make_document

_POLICY = ("Employees receive 25 days of annual leave per calendar year. " * 50).encode()

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _build_service(
    document_store: SQLiteDocumentStore,
    file_storage: LocalFileStorage,
    pool: WorkerPool,
    vector_store: MockVectorStore | None = None,
    config: DocumentConfig | None = None,
    embedding: MockEmbeddingProvider | None = None,
) -> DocumentService:
    vector_store = vector_store or MockVectorStore()
    ingestion = IngestionService(
        reader=DocumentReader(),
        chunker=TextChunker(),
        enricher=MetadataEnricher(),
        embedding_provider=embedding or MockEmbeddingProvider(),
        vector_store=vector_store,
        document_store=document_store,
        file_storage=file_storage,
        pool=pool,
    )
    return DocumentService(document_store, file_storage, vector_store, ingestion, config)


async def _wait_settled(store: SQLiteDocumentStore, document_id: str, timeout: float = 5.0) -> DocumentStatus:
    """Poll until the document leaves PROCESSING."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while True:
        document = await store.get(document_id)
        assert document is not None
        if document.status != DocumentStatus.PROCESSING or loop.time() > deadline:
            return document.status
        await asyncio.sleep(0.01)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestValidateUpload:
    @pytest.fixture
    def service(
        self, document_store: SQLiteDocumentStore, file_storage: LocalFileStorage
    ) -> DocumentService:
        config = DocumentConfig(max_file_size=100)
        return _build_service(document_store, file_storage, pool=None, config=config)  # type: ignore[arg-type]

    def test_empty_file_checked_first(self, service: DocumentService) -> None:
        with pytest.raises(ValidationError, match="empty"):
            service.validate_upload("a.exe", b"", "application/x-msdownload", "", "")

    def test_owner_checked_before_category(self, service: DocumentService) -> None:
        with pytest.raises(ValidationError, match="User id"):
            service.validate_upload("a.txt", b"data", "text/plain", "", " ")

    def test_category_required(self, service: DocumentService) -> None:
        with pytest.raises(ValidationError, match="Category"):
            service.validate_upload("a.txt", b"data", "text/plain", "  ", "alice")

    def test_size_checked_before_type(self, service: DocumentService) -> None:
        with pytest.raises(ValidationError, match="exceeds"):
            service.validate_upload("a.exe", b"x" * 101, "application/x-msdownload", "hr", "alice")

    def test_unsupported_type(self, service: DocumentService) -> None:
        with pytest.raises(ValidationError, match="Unsupported file type"):
            service.validate_upload("photo.png", b"data", "image/png", "hr", "alice")

    def test_returns_extension(self, service: DocumentService) -> None:
        assert service.validate_upload("notes.md", b"# hi", "text/markdown", "hr", "alice") == "md"
        assert service.validate_upload("x.txt", b"x" * 100, "text/plain", "hr", "alice") == "txt"


# ---------------------------------------------------------------------------
# Upload
# ---------------------------------------------------------------------------


class TestUpload:
    @pytest.mark.asyncio
    async def test_upload_records_stores_and_ingests(
        self,
        document_store: SQLiteDocumentStore,
        file_storage: LocalFileStorage,
        document_pool: WorkerPool,
    ) -> None:
        vector_store = MockVectorStore()
        service = _build_service(document_store, file_storage, document_pool, vector_store=vector_store)

        result = await service.upload("policy.txt", _POLICY, "text/plain", " hr ", "alice", "Leave policy")

        assert result.status == "PROCESSING"
        assert result.message == "Document uploaded, processing started"
        assert result.file_size == len(_POLICY)
        assert await _wait_settled(document_store, result.document_id) == DocumentStatus.COMPLETED

        document = await document_store.get(result.document_id)
        assert document is not None
        assert document.category == "hr"
        assert document.owner_id == "alice"
        assert document.description == "Leave policy"
        assert document.content_hash == hashlib.md5(_POLICY, usedforsecurity=False).hexdigest()
        assert document.storage_path is not None
        assert await file_storage.load(document.storage_path) == _POLICY
        assert document.chunk_count == len(vector_store.chunks)

    @pytest.mark.asyncio
    async def test_invalid_upload_persists_nothing(
        self,
        document_store: SQLiteDocumentStore,
        file_storage: LocalFileStorage,
        document_pool: WorkerPool,
    ) -> None:
        service = _build_service(document_store, file_storage, document_pool)

        with pytest.raises(ValidationError):
            await service.upload("a.txt", b"data", "text/plain", "", "alice")

        assert await document_store.list_by_owner("alice") == []

    @pytest.mark.asyncio
    async def test_saturated_pool_marks_document_failed(
        self,
        document_store: SQLiteDocumentStore,
        file_storage: LocalFileStorage,
    ) -> None:
        pool = WorkerPool(ExecutorConfig(max_workers=1, queue_capacity=0, thread_name_prefix="tiny"))
        release = asyncio.Event()
        pool.submit(release.wait)
        service = _build_service(document_store, file_storage, pool)

        try:
            result = await service.upload("policy.txt", _POLICY, "text/plain", "hr", "alice")
        finally:
            release.set()
            await pool.shutdown()

        assert result.status == "FAILED"
        assert result.message == "Processing queue is full, please retry later"
        document = await document_store.get(result.document_id)
        assert document is not None
        assert document.status == DocumentStatus.FAILED


# ---------------------------------------------------------------------------
# Ownership
# ---------------------------------------------------------------------------


class TestOwnership:
    @pytest.mark.asyncio
    async def test_get_unknown_document(
        self, document_store: SQLiteDocumentStore, file_storage: LocalFileStorage, document_pool: WorkerPool
    ) -> None:
        service = _build_service(document_store, file_storage, document_pool)

        with pytest.raises(DocumentNotFoundError):
            await service.get_document("missing", "alice")

    @pytest.mark.asyncio
    async def test_other_user_cannot_read_or_delete(
        self, document_store: SQLiteDocumentStore, file_storage: LocalFileStorage, document_pool: WorkerPool
    ) -> None:
        service = _build_service(document_store, file_storage, document_pool)
        await document_store.create(make_document(owner_id="alice"))

        with pytest.raises(PermissionDeniedError):
            await service.get_document("doc-001", "bob")
        with pytest.raises(PermissionDeniedError):
            await service.delete_document("doc-001", "bob")

        assert await document_store.get("doc-001") is not None

    @pytest.mark.asyncio
    async def test_delete_removes_chunks_file_and_record(
        self, document_store: SQLiteDocumentStore, file_storage: LocalFileStorage, document_pool: WorkerPool
    ) -> None:
        vector_store = MockVectorStore()
        service = _build_service(document_store, file_storage, document_pool, vector_store=vector_store)
        result = await service.upload("policy.txt", _POLICY, "text/plain", "hr", "alice")
        await _wait_settled(document_store, result.document_id)
        document = await document_store.get(result.document_id)
        assert document is not None and document.storage_path is not None

        await service.delete_document(result.document_id, "alice")

        assert await document_store.get(result.document_id) is None
        assert vector_store.chunks == []
        with pytest.raises(ProcessingError):
            await file_storage.load(document.storage_path)

    @pytest.mark.asyncio
    async def test_delete_while_ingesting_is_rejected(
        self, document_store: SQLiteDocumentStore, file_storage: LocalFileStorage, document_pool: WorkerPool
    ) -> None:
        vector_store = MockVectorStore()
        embedding = GatedEmbeddingProvider()
        service = _build_service(
            document_store, file_storage, document_pool, vector_store=vector_store, embedding=embedding
        )
        result = await service.upload("policy.txt", _POLICY, "text/plain", "hr", "alice")
        await asyncio.wait_for(embedding.started.wait(), timeout=5.0)

        with pytest.raises(IngestionInProgressError):
            await service.delete_document(result.document_id, "alice")
        batch = await service.delete_documents([result.document_id], "alice")

        assert batch.failure_count == 1
        assert await document_store.get(result.document_id) is not None

        embedding.release.set()
        assert await _wait_settled(document_store, result.document_id) == DocumentStatus.COMPLETED

        await service.delete_document(result.document_id, "alice")

        assert await document_store.get(result.document_id) is None
        assert [c for c in vector_store.chunks if c.document_id == result.document_id] == []

    @pytest.mark.asyncio
    async def test_batch_delete_counts_each_outcome(
        self, document_store: SQLiteDocumentStore, file_storage: LocalFileStorage, document_pool: WorkerPool
    ) -> None:
        service = _build_service(document_store, file_storage, document_pool)
        await document_store.create(make_document("d1"))
        await document_store.create(make_document("d2"))
        await document_store.create(make_document("b1", owner_id="bob"))

        result = await service.delete_documents(["d1", "b1", "missing", "d2"], "alice")

        assert result.success_count == 2
        assert result.failure_count == 2
        assert result.message == "Deleted 2 document(s), 2 failed"
        assert await document_store.get("b1") is not None


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


class TestReads:
    @pytest.mark.asyncio
    async def test_statistics_total_matches_status_counts(
        self, document_store: SQLiteDocumentStore, file_storage: LocalFileStorage, document_pool: WorkerPool
    ) -> None:
        service = _build_service(document_store, file_storage, document_pool)
        await document_store.create(make_document("d1", category="hr"))
        await document_store.create(make_document("d2", category="finance"))
        await document_store.mark_failed("d2", "boom")

        stats = await service.get_statistics("alice")

        assert stats.total_documents == 2
        assert stats.by_category == {"hr": 1, "finance": 1}
        assert stats.by_status == {"PROCESSING": 1, "FAILED": 1}
        assert [d.id for d in await service.get_failed_documents("alice")] == ["d2"]

    @pytest.mark.asyncio
    async def test_page_reports_total_pages(
        self, document_store: SQLiteDocumentStore, file_storage: LocalFileStorage, document_pool: WorkerPool
    ) -> None:
        service = _build_service(document_store, file_storage, document_pool)
        for i in range(5):
            await document_store.create(make_document(f"d{i}"))

        page = await service.list_documents_page("alice", size=2)

        assert page.total == 5
        assert page.total_pages == 3
        assert len(page.items) == 2

    @pytest.mark.asyncio
    async def test_search_requires_keyword(
        self, document_store: SQLiteDocumentStore, file_storage: LocalFileStorage, document_pool: WorkerPool
    ) -> None:
        service = _build_service(document_store, file_storage, document_pool)

        with pytest.raises(ValidationError):
            await service.search_documents("alice", " ")


# ---------------------------------------------------------------------------
# Reprocess
# ---------------------------------------------------------------------------


class TestReprocess:
    @pytest.mark.asyncio
    async def test_only_failed_documents(
        self, document_store: SQLiteDocumentStore, file_storage: LocalFileStorage, document_pool: WorkerPool
    ) -> None:
        service = _build_service(document_store, file_storage, document_pool)
        await document_store.create(make_document())

        with pytest.raises(ValidationError, match="Only FAILED"):
            await service.reprocess_document("doc-001", "alice")

    @pytest.mark.asyncio
    async def test_failed_document_is_indexed_again(
        self, document_store: SQLiteDocumentStore, file_storage: LocalFileStorage, document_pool: WorkerPool
    ) -> None:
        service = _build_service(document_store, file_storage, document_pool)
        path = await file_storage.save("policy.txt", _POLICY)
        await document_store.create(make_document(storage_path=path))
        await document_store.mark_failed("doc-001", "embedding backend down")

        result = await service.reprocess_document("doc-001", "alice")

        assert result.status == "PROCESSING"
        assert result.message == "Document reprocessing started"
        assert await _wait_settled(document_store, "doc-001") == DocumentStatus.COMPLETED
        document = await document_store.get("doc-001")
        assert document is not None
        assert document.error_message is None

    @pytest.mark.asyncio
    async def test_saturated_reprocess_fails_again(
        self, document_store: SQLiteDocumentStore, file_storage: LocalFileStorage
    ) -> None:
        pool = WorkerPool(ExecutorConfig(max_workers=1, queue_capacity=0, thread_name_prefix="tiny"))
        release = asyncio.Event()
        pool.submit(release.wait)
        service = _build_service(document_store, file_storage, pool)
        await document_store.create(make_document(storage_path="/nowhere/policy.txt"))
        await document_store.mark_failed("doc-001", "boom")

        try:
            with pytest.raises(WorkerPoolSaturatedError):
                await service.reprocess_document("doc-001", "alice")
        finally:
            release.set()
            await pool.shutdown()

        document = await document_store.get("doc-001")
        assert document is not None
        assert document.status == DocumentStatus.FAILED
