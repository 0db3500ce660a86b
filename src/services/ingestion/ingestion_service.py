"""Orchestrator for the asynchronous document ingestion pipeline.

Pipeline stages: **read -> chunk -> enrich -> embed -> store -> status**.

The :class:`IngestionService` implements the **Orchestrator pattern**: it
coordinates its collaborators (document reader, chunker, metadata
enricher, embedding provider, vector store, document store) without any of
them knowing about each other.  Every ingestion follows the same flow:

    1. DocumentReader      -- bytes -> text units (one per PDF page)
    2. TextChunker         -- text units -> overlapping token windows
    3. MetadataEnricher    -- windows -> chunks tagged with the document
    4. IEmbeddingProvider  -- chunk texts -> vectors, one batch at a time
    5. IVectorStoreProvider-- batch upsert into the index
    6. IDocumentStore      -- PROCESSING -> COMPLETED or FAILED

Ingestion never runs on the request path: :meth:`submit` hands the work to
the document :class:`~src.utils.concurrency.WorkerPool` and returns the
task handle immediately.  At most one ingestion per document id is active
at a time; a second submission is rejected, not queued.

Batches already stored when a later batch fails stay in the index; the
document is marked FAILED and a reprocess may index those chunks again.
"""

from __future__ import annotations

import asyncio
import math
import time
from typing import TYPE_CHECKING

import structlog

from src.models.rag import DocumentChunk, IngestionResult
from src.services.ingestion.document_reader import resolve_extension
from src.utils.errors import IndexBatchError, IngestionInProgressError, ProcessingError

if TYPE_CHECKING:
    from src.interfaces.document_store import IDocumentStore
    from src.interfaces.embedding_provider import IEmbeddingProvider
    from src.interfaces.file_storage import IFileStorage
    from src.interfaces.vector_store_provider import IVectorStoreProvider
    from src.models.document import Document
    from src.services.ingestion.chunker import TextChunker
    from src.services.ingestion.document_reader import DocumentReader
    from src.services.ingestion.metadata_enricher import MetadataEnricher
    from src.utils.concurrency import WorkerPool

logger = structlog.get_logger(logger_name=__name__)


class IngestionService:
    """Runs documents through read -> chunk -> enrich -> embed -> store.

    Parameters
    ----------
    reader:
        Extracts text units from the uploaded bytes.
    chunker:
        Splits text units into overlapping token windows.
    enricher:
        Tags each window with its owning document.
    embedding_provider:
        Generates embedding vectors for chunk text.
    vector_store:
        Stores embedded chunks for similarity search.
    document_store:
        Holds the document record whose status this service resolves.
    file_storage:
        Source of the bytes when a submission does not carry them
        (reprocessing a stored upload).
    pool:
        Document worker pool the ingestion tasks run on.
    batch_size:
        Chunks per embed-and-store batch.
    """

    def __init__(
        self,
        reader: DocumentReader,
        chunker: TextChunker,
        enricher: MetadataEnricher,
        embedding_provider: IEmbeddingProvider,
        vector_store: IVectorStoreProvider,
        document_store: IDocumentStore,
        file_storage: IFileStorage,
        pool: WorkerPool,
        batch_size: int = 10,
    ) -> None:
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self._reader = reader
        self._chunker = chunker
        self._enricher = enricher
        self._embedding_provider = embedding_provider
        self._vector_store = vector_store
        self._document_store = document_store
        self._file_storage = file_storage
        self._pool = pool
        self._batch_size = batch_size
        # Document ids with an ingestion task that has not finished yet.
        self._active: set[str] = set()
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    async def submit(
        self,
        document: Document,
        content: bytes | None = None,
    ) -> asyncio.Task[IngestionResult | None]:
        """Schedule ingestion of *document* and return the task handle.

        The task resolves to the :class:`IngestionResult`, or ``None`` when
        ingestion failed (the failure is recorded on the document).

        Raises
        ------
        IngestionInProgressError
            If an ingestion task for this document id is still running.
        WorkerPoolSaturatedError
            If the document pool cannot accept more work.
        """
        async with self._lock:
            if document.id in self._active:
                logger.warning("ingestion_already_active", document_id=document.id)
                raise IngestionInProgressError(
                    message=f"Document {document.id} is already being ingested"
                )
            task = self._pool.submit(lambda: self._run(document, content))
            self._active.add(document.id)

        logger.info("ingestion_submitted", document_id=document.id, filename=document.filename)
        return task

    def is_active(self, document_id: str) -> bool:
        return document_id in self._active

    async def _run(self, document: Document, content: bytes | None) -> IngestionResult | None:
        try:
            return await self.ingest(document, content)
        except Exception:
            # Already logged and recorded on the document by ingest().
            return None
        finally:
            await self._release(document.id)

    async def _release(self, document_id: str) -> None:
        # Runs before the final status write so a caller that sees the
        # resolved status never finds the document still active.
        async with self._lock:
            self._active.discard(document_id)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def ingest(self, document: Document, content: bytes | None = None) -> IngestionResult:
        """Run the full pipeline for one PROCESSING document.

        On success the document becomes COMPLETED with its chunk count; on
        any failure it becomes FAILED with the error message and the
        exception is re-raised.
        """
        start = time.monotonic()
        try:
            result = await self._index(document, content, start)
        except Exception as exc:
            elapsed = round(time.monotonic() - start, 2)
            log_fields: dict[str, object] = {
                "document_id": document.id,
                "error": str(exc),
                "time_s": elapsed,
            }
            if isinstance(exc, IndexBatchError):
                log_fields.update(
                    batch=exc.batch_number,
                    batches_stored=exc.batches_stored,
                    total_batches=exc.total_batches,
                )
            logger.error("ingestion_failed", **log_fields)
            await self._release(document.id)
            await self._record_failure(document.id, str(exc))
            raise

        logger.info(
            "ingestion_complete",
            document_id=document.id,
            chunks=result.chunks_created,
            batches=result.total_batches,
            tokens=result.total_tokens,
            time_s=result.ingestion_time,
        )
        return result

    async def _index(
        self,
        document: Document,
        content: bytes | None,
        start: float,
    ) -> IngestionResult:
        if content is None:
            if not document.storage_path:
                raise ProcessingError(message="No stored content for document")
            content = await self._file_storage.load(document.storage_path)

        extension = resolve_extension(document.filename, document.content_type)
        units = await self._pool.run_blocking(self._reader.read, content, extension)
        text_chunks = await self._pool.run_blocking(self._chunker.chunk_units, units)
        if not text_chunks:
            raise ProcessingError(message="Document contains no indexable text")

        chunks = self._enricher.enrich_all(text_chunks, document)
        total_batches, batches_stored = await self._store_batches(document.id, chunks)

        await self._release(document.id)
        updated = await self._document_store.mark_completed(document.id, len(chunks))
        if not updated:
            logger.warning("ingestion_status_not_updated", document_id=document.id)
            await self._discard_if_deleted(document.id)

        return IngestionResult(
            document_id=document.id,
            chunks_created=len(chunks),
            batches_stored=batches_stored,
            total_batches=total_batches,
            total_tokens=sum(c.token_count for c in chunks),
            ingestion_time=round(time.monotonic() - start, 2),
        )

    async def _store_batches(self, document_id: str, chunks: list[DocumentChunk]) -> tuple[int, int]:
        """Embed and store *chunks* in order, one batch at a time.

        Returns ``(total_batches, batches_stored)``.
        """
        total_batches = math.ceil(len(chunks) / self._batch_size)
        batches_stored = 0

        for number, offset in enumerate(range(0, len(chunks), self._batch_size), start=1):
            batch = chunks[offset : offset + self._batch_size]
            try:
                embeddings = await self._embedding_provider.embed([c.text for c in batch])
                await self._vector_store.add_chunks(batch, embeddings)
            except Exception as exc:
                raise IndexBatchError(
                    message=(
                        f"Batch {number}/{total_batches} failed after "
                        f"{batches_stored} stored: {exc}"
                    ),
                    provider_name=getattr(exc, "provider_name", None),
                    batch_number=number,
                    batches_stored=batches_stored,
                    total_batches=total_batches,
                ) from exc
            batches_stored += 1
            logger.debug(
                "ingestion_batch_stored",
                document_id=document_id,
                batch=number,
                total_batches=total_batches,
                chunks=len(batch),
            )

        return total_batches, batches_stored

    async def _record_failure(self, document_id: str, message: str) -> None:
        try:
            updated = await self._document_store.mark_failed(document_id, message)
        except Exception as exc:
            logger.error("ingestion_status_write_failed", document_id=document_id, error=str(exc))
            return
        if not updated:
            logger.warning("ingestion_status_not_updated", document_id=document_id)
            await self._discard_if_deleted(document_id)

    async def _discard_if_deleted(self, document_id: str) -> None:
        """Drop indexed chunks whose document record no longer exists."""
        if await self._document_store.get(document_id) is not None:
            return
        removed = await self._vector_store.delete_by_document(document_id)
        logger.warning("orphaned_chunks_removed", document_id=document_id, removed_chunks=removed)
