"""Document upload, lifecycle, and ownership management.

Uploads are validated synchronously and rejected with a
:class:`~src.utils.errors.ValidationError` before anything is persisted.
Accepted uploads are recorded as PROCESSING, saved to file storage, and
handed to the :class:`~src.services.ingestion.IngestionService`; the HTTP
response returns as soon as ingestion is scheduled.

Every read or write of a single document checks that the caller owns it.
"""

from __future__ import annotations

import hashlib
import uuid
from typing import TYPE_CHECKING

import structlog

from src.config.knowledge_base import DocumentConfig
from src.models.document import (
    BatchDeleteResult,
    Document,
    DocumentPage,
    DocumentStatistics,
    DocumentStatus,
    UploadResult,
)
from src.services.ingestion.document_reader import resolve_extension
from src.utils.errors import (
    DocumentNotFoundError,
    IngestionInProgressError,
    KnowledgeBaseError,
    PermissionDeniedError,
    ValidationError,
    WorkerPoolSaturatedError,
)

if TYPE_CHECKING:
    from src.interfaces.document_store import IDocumentStore
    from src.interfaces.file_storage import IFileStorage
    from src.interfaces.vector_store_provider import IVectorStoreProvider
    from src.services.ingestion.ingestion_service import IngestionService

logger = structlog.get_logger(logger_name=__name__)

_QUEUE_FULL_MESSAGE = "Processing queue is full, please retry later"


class DocumentService:
    """Owns the upload -> ingest -> delete lifecycle of user documents.

    Parameters
    ----------
    document_store:
        Persists document records.
    file_storage:
        Keeps the raw uploads so documents can be reprocessed.
    vector_store:
        Index whose chunks are removed when a document is deleted.
    ingestion:
        Schedules background ingestion.
    config:
        Upload size and type limits.
    """

    def __init__(
        self,
        document_store: IDocumentStore,
        file_storage: IFileStorage,
        vector_store: IVectorStoreProvider,
        ingestion: IngestionService,
        config: DocumentConfig | None = None,
    ) -> None:
        self._document_store = document_store
        self._file_storage = file_storage
        self._vector_store = vector_store
        self._ingestion = ingestion
        self._config = config or DocumentConfig()

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------

    def validate_upload(
        self,
        filename: str,
        content: bytes,
        content_type: str | None,
        category: str,
        owner_id: str,
    ) -> str:
        """Check an upload and return its resolved file extension.

        Checks run in a fixed order: empty file, blank owner, blank
        category, size, then type.
        """
        if not content:
            raise ValidationError(message="Uploaded file is empty")
        if not owner_id or not owner_id.strip():
            raise ValidationError(message="User id is required")
        if not category or not category.strip():
            raise ValidationError(message="Category is required")
        if len(content) > self._config.max_file_size:
            raise ValidationError(
                message=(
                    f"File size {len(content)} exceeds the limit of "
                    f"{self._config.max_file_size} bytes"
                )
            )
        extension = resolve_extension(filename, content_type)
        if extension not in self._config.allowed_types:
            allowed = ", ".join(self._config.allowed_types)
            raise ValidationError(
                message=f"Unsupported file type '{extension or content_type}'; allowed: {allowed}"
            )
        return extension

    async def upload(
        self,
        filename: str,
        content: bytes,
        content_type: str | None,
        category: str,
        owner_id: str,
        description: str | None = None,
    ) -> UploadResult:
        """Validate, persist, store, and schedule ingestion of one upload."""
        self.validate_upload(filename, content, content_type, category, owner_id)

        document = Document(
            id=uuid.uuid4().hex,
            filename=filename,
            category=category.strip(),
            owner_id=owner_id,
            file_size=len(content),
            content_type=content_type or "",
            description=description or None,
            content_hash=hashlib.md5(content, usedforsecurity=False).hexdigest(),
        )
        await self._document_store.create(document)
        logger.info(
            "document_uploaded",
            document_id=document.id,
            filename=filename,
            category=document.category,
            size=len(content),
        )

        try:
            storage_path = await self._file_storage.save(filename, content)
        except OSError as exc:
            logger.warning("document_file_save_failed", document_id=document.id, error=str(exc))
        else:
            await self._document_store.set_storage_path(document.id, storage_path)
            document = document.model_copy(update={"storage_path": storage_path})

        try:
            await self._ingestion.submit(document, content)
        except WorkerPoolSaturatedError:
            await self._document_store.mark_failed(document.id, _QUEUE_FULL_MESSAGE)
            return UploadResult(
                document_id=document.id,
                filename=filename,
                status=DocumentStatus.FAILED.value,
                message=_QUEUE_FULL_MESSAGE,
                upload_time=document.upload_time,
                file_size=document.file_size,
            )

        return UploadResult(
            document_id=document.id,
            filename=filename,
            status=DocumentStatus.PROCESSING.value,
            message="Document uploaded, processing started",
            upload_time=document.upload_time,
            file_size=document.file_size,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_document(self, document_id: str, owner_id: str) -> Document:
        """Return the document if it exists and belongs to *owner_id*."""
        document = await self._document_store.get(document_id)
        if document is None:
            raise DocumentNotFoundError(message=f"Document {document_id} not found")
        if document.owner_id != owner_id:
            logger.warning("document_access_denied", document_id=document_id, owner_id=owner_id)
            raise PermissionDeniedError(message="You do not have access to this document")
        return document

    async def list_documents(self, owner_id: str, category: str | None = None) -> list[Document]:
        return await self._document_store.list_by_owner(owner_id, category or None)

    async def list_documents_page(
        self,
        owner_id: str,
        category: str | None = None,
        page: int = 0,
        size: int = 10,
        sort: str = "upload_time",
        direction: str = "desc",
    ) -> DocumentPage:
        items, total = await self._document_store.page_by_owner(
            owner_id,
            category=category or None,
            page=page,
            size=size,
            sort=sort,
            direction=direction,
        )
        return DocumentPage(items=items, total=total, page=page, size=size)

    async def get_user_categories(self, owner_id: str) -> list[str]:
        return await self._document_store.categories(owner_id)

    async def get_failed_documents(self, owner_id: str) -> list[Document]:
        return await self._document_store.list_by_status(owner_id, DocumentStatus.FAILED)

    async def search_documents(self, owner_id: str, keyword: str) -> list[Document]:
        if not keyword or not keyword.strip():
            raise ValidationError(message="Search keyword must not be blank")
        return await self._document_store.search(owner_id, keyword.strip())

    async def get_statistics(self, owner_id: str) -> DocumentStatistics:
        by_category = await self._document_store.count_by_category(owner_id)
        by_status = await self._document_store.count_by_status(owner_id)
        return DocumentStatistics(
            total_documents=sum(by_status.values()),
            by_category=by_category,
            by_status=by_status,
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def delete_document(self, document_id: str, owner_id: str) -> None:
        """Remove the document's chunks, stored file, and record.

        Raises
        ------
        IngestionInProgressError
            If the document is still being ingested; its remaining batches
            would otherwise land in the index after the chunks are removed.
        """
        document = await self.get_document(document_id, owner_id)
        if self._ingestion.is_active(document_id):
            logger.warning("document_delete_rejected", document_id=document_id, reason="ingesting")
            raise IngestionInProgressError(
                message=f"Document {document_id} is still being ingested, retry when processing ends"
            )

        removed_chunks = await self._vector_store.delete_by_document(document_id)
        if document.storage_path:
            await self._file_storage.delete(document.storage_path)
        await self._document_store.delete(document_id)

        logger.info(
            "document_deleted",
            document_id=document_id,
            owner_id=owner_id,
            removed_chunks=removed_chunks,
        )

    async def delete_documents(self, document_ids: list[str], owner_id: str) -> BatchDeleteResult:
        """Delete each id independently; one failure does not stop the rest."""
        succeeded = 0
        failed = 0
        for document_id in document_ids:
            try:
                await self.delete_document(document_id, owner_id)
                succeeded += 1
            except KnowledgeBaseError as exc:
                failed += 1
                logger.warning("document_delete_failed", document_id=document_id, error=str(exc))

        return BatchDeleteResult(
            success_count=succeeded,
            failure_count=failed,
            message=f"Deleted {succeeded} document(s), {failed} failed",
        )

    async def reprocess_document(self, document_id: str, owner_id: str) -> UploadResult:
        """Reset a FAILED document to PROCESSING and ingest its stored file again."""
        document = await self.get_document(document_id, owner_id)
        if document.status != DocumentStatus.FAILED:
            raise ValidationError(
                message=f"Only FAILED documents can be reprocessed (status is {document.status.value})"
            )

        reset = await self._document_store.transition_status(
            document_id, DocumentStatus.FAILED, DocumentStatus.PROCESSING
        )
        if not reset:
            raise ValidationError(message="Document status changed, reprocess not started")

        refreshed = await self._document_store.get(document_id)
        if refreshed is None:
            raise DocumentNotFoundError(message=f"Document {document_id} not found")

        try:
            await self._ingestion.submit(refreshed)
        except WorkerPoolSaturatedError:
            await self._document_store.mark_failed(document_id, _QUEUE_FULL_MESSAGE)
            raise

        logger.info("document_reprocess_started", document_id=document_id)
        return UploadResult(
            document_id=document_id,
            filename=refreshed.filename,
            status=DocumentStatus.PROCESSING.value,
            message="Document reprocessing started",
            upload_time=refreshed.upload_time,
            file_size=refreshed.file_size,
        )
