"""ChromaDB vector store provider adapter.

Wraps `chromadb.PersistentClient` to implement :class:`IVectorStoreProvider`.
Uses cosine distance for similarity search.  Fully local, free, and
Python-native -- no external service required.

Each stored chunk carries its owning document's metadata (document id,
filename, category, owner, upload time) so retrieval can filter on
category and deletion can cascade on document id.
"""

from __future__ import annotations

import os
from datetime import datetime
from typing import Any

# Disable ChromaDB telemetry completely before importing chromadb.
# ChromaDB uses PostHog for anonymous telemetry, but a version mismatch
# between ChromaDB's bundled PostHog client and the installed version
# causes "capture() takes 1 positional argument but 3 were given" errors.
# Three layers:
#   1. ANONYMIZED_TELEMETRY env var -- respected by some ChromaDB versions
#   2. posthog.disabled = True -- disables the PostHog SDK directly
#   3. Settings(anonymized_telemetry=False) -- passed to PersistentClient
os.environ["ANONYMIZED_TELEMETRY"] = "False"

import posthog

posthog.disabled = True

import chromadb
import structlog

from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.vector_store_provider import IVectorStoreProvider
from src.models.rag import DocumentChunk, IndexStats, RetrievedChunk
from src.utils.errors import ConfigurationError, RetrievalError

logger = structlog.get_logger(logger_name=__name__)

# Metadata page size for full-collection scans; keeps each ChromaDB
# .get() under SQLite's bind-variable limit.
_PAGE_SIZE = 5000


class _NoopEmbeddingFunction(chromadb.EmbeddingFunction[list[str]]):
    """No-op embedding function that prevents ChromaDB from loading a model.

    Chunks and questions are always embedded by our
    :class:`IEmbeddingProvider`, so ChromaDB's built-in embedding is never
    invoked.  Without this, ChromaDB downloads its default ONNX model on
    collection creation.
    """

    def __call__(self, input: list[str]) -> list[list[float]]:
        raise NotImplementedError(
            "Embeddings are pre-computed; ChromaDB's built-in embedding should never be called."
        )

    def name(self) -> str:
        """Return function name (required by ChromaDB's EmbeddingFunction protocol)."""
        return "noop_precomputed"


class ChromaDBProvider(IVectorStoreProvider):
    """Vector store provider backed by ChromaDB with local persistence.

    An :class:`IEmbeddingProvider` is injected at init time so the provider
    can embed query text before passing it to ChromaDB.
    """

    def __init__(
        self,
        embedding_provider: IEmbeddingProvider,
        persist_directory: str = "./data/chromadb",
        collection_name: str = "knowledge_base",
        client: Any | None = None,
    ) -> None:
        self._embedding_provider = embedding_provider
        self._persist_directory = persist_directory
        self._collection_name = collection_name
        # Passing anonymized_telemetry through Settings is the authoritative
        # way to disable telemetry on current ChromaDB versions.
        self._client = client or chromadb.PersistentClient(
            path=persist_directory,
            settings=chromadb.config.Settings(anonymized_telemetry=False),
        )
        # A collection created with ChromaDB's default embedding function
        # rejects a different one on reopen; fall back to the persisted one,
        # which is fine because every embedding is computed externally.
        try:
            self._collection = self._client.get_or_create_collection(
                name=collection_name,
                metadata={"hnsw:space": "cosine"},
                embedding_function=_NoopEmbeddingFunction(),
            )
        except ValueError:
            self._collection = self._client.get_or_create_collection(
                name=collection_name,
                metadata={"hnsw:space": "cosine"},
            )

        self._validate_embedding_dimensions()

    # ------------------------------------------------------------------
    # Startup validation
    # ------------------------------------------------------------------

    def _validate_embedding_dimensions(self) -> None:
        """Verify the embedding provider matches the vectors already stored.

        A mismatch means every query would compare vectors of different
        models, so startup fails instead.
        """
        try:
            if self._collection.count() == 0:
                return
            sample = self._collection.peek(limit=1)
            embeddings = sample.get("embeddings") if sample else None
            if embeddings is None or len(embeddings) == 0:
                return
            stored_dim = len(embeddings[0])
        except Exception as exc:
            logger.warning("embedding_dimension_check_skipped", error=str(exc))
            return

        expected_dim = self._embedding_provider.get_dimension()
        if stored_dim != expected_dim:
            logger.error(
                "embedding_dimension_mismatch",
                stored_dim=stored_dim,
                expected_dim=expected_dim,
                provider=self._embedding_provider.get_provider_name(),
            )
            raise ConfigurationError(
                message=(
                    f"Embedding dimension mismatch: index has {stored_dim}-dim vectors "
                    f"but provider '{self._embedding_provider.get_provider_name()}' "
                    f"produces {expected_dim}-dim vectors"
                ),
                provider_name="chromadb",
            )
        logger.info("embedding_dimension_validated", dimension=stored_dim)

    # ------------------------------------------------------------------
    # IVectorStoreProvider implementation
    # ------------------------------------------------------------------

    async def query(
        self,
        query_text: str,
        top_k: int = 5,
        filters: dict[str, str] | None = None,
    ) -> list[RetrievedChunk]:
        """Embed *query_text* and return the *top_k* nearest chunks.

        Cosine distance is folded into a ``[0, 1]`` similarity score.
        """
        try:
            query_embedding = await self._embedding_provider.embed_single(query_text)
            total = self._collection.count()
            if total == 0:
                return []

            kwargs: dict[str, Any] = {
                "query_embeddings": [query_embedding],
                "n_results": min(top_k, total),
            }
            where_clause = self._translate_filters(filters) if filters else None
            if where_clause:
                kwargs["where"] = where_clause

            results = self._collection.query(**kwargs)

            if not results["documents"] or not results["documents"][0]:
                return []

            documents = results["documents"][0]
            metadatas = results["metadatas"][0] if results["metadatas"] else [{}] * len(documents)
            distances = results["distances"][0] if results["distances"] else [0.0] * len(documents)
            ids = results["ids"][0]

            retrieved = [
                RetrievedChunk(
                    chunk=self._metadata_to_chunk(chunk_id, meta, doc_text),
                    similarity_score=max(0.0, min(1.0, 1.0 - distance)),
                )
                for chunk_id, doc_text, meta, distance in zip(
                    ids, documents, metadatas, distances, strict=True
                )
            ]
            retrieved.sort(key=lambda rc: rc.similarity_score, reverse=True)

            logger.info(
                "chromadb_query",
                query_length=len(query_text),
                filters=filters,
                results_count=len(retrieved),
                top_score=retrieved[0].similarity_score if retrieved else 0.0,
            )
            return retrieved

        except RetrievalError:
            raise
        except Exception as exc:
            raise RetrievalError(
                message=f"ChromaDB query failed: {exc}",
                provider_name=getattr(exc, "provider_name", None) or self.get_provider_name(),
            ) from exc

    async def add_chunks(
        self,
        chunks: list[DocumentChunk],
        embeddings: list[list[float]],
    ) -> int:
        """Upsert pre-embedded chunks into the collection."""
        if len(chunks) != len(embeddings):
            raise ValueError(
                f"chunks and embeddings length mismatch: {len(chunks)} != {len(embeddings)}"
            )
        if not chunks:
            return 0

        try:
            self._collection.upsert(
                ids=[c.chunk_id for c in chunks],
                embeddings=embeddings,
                documents=[c.text for c in chunks],
                metadatas=[self._chunk_to_metadata(c) for c in chunks],
            )
        except Exception as exc:
            raise RetrievalError(
                message=f"ChromaDB add_chunks failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.debug("chromadb_add_chunks", count=len(chunks), document_id=chunks[0].document_id)
        return len(chunks)

    async def delete_by_document(self, document_id: str) -> int:
        """Delete all chunks belonging to *document_id*."""
        try:
            existing = self._collection.get(where={"document_id": document_id})
            count = len(existing["ids"]) if existing["ids"] else 0
            if count > 0:
                self._collection.delete(where={"document_id": document_id})
        except Exception as exc:
            raise RetrievalError(
                message=f"ChromaDB delete_by_document failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.info("chromadb_delete_by_document", document_id=document_id, deleted_count=count)
        return count

    async def get_stats(self) -> IndexStats:
        """Count chunks, distinct documents, and chunks per category."""
        try:
            total = self._collection.count()
            document_ids: set[str] = set()
            by_category: dict[str, int] = {}
            for offset in range(0, total, _PAGE_SIZE):
                page = self._collection.get(include=["metadatas"], limit=_PAGE_SIZE, offset=offset)
                for meta in page["metadatas"] or []:
                    document_ids.add(str(meta.get("document_id", "")))
                    category = str(meta.get("category", ""))
                    by_category[category] = by_category.get(category, 0) + 1
        except Exception as exc:
            raise RetrievalError(
                message=f"ChromaDB get_stats failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        return IndexStats(
            total_chunks=total,
            total_documents=len(document_ids),
            chunks_by_category=by_category,
        )

    def get_provider_name(self) -> str:
        return "chromadb"

    def is_available(self) -> bool:
        """Return ``True`` if the ChromaDB collection is accessible."""
        try:
            self._collection.count()
            return True
        except Exception:
            return False

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _chunk_to_metadata(chunk: DocumentChunk) -> dict[str, str | int | float | bool]:
        """Convert a DocumentChunk to a ChromaDB-compatible metadata dict.

        ChromaDB metadata values must be str, int, float, or bool.
        """
        return {
            "document_id": chunk.document_id,
            "filename": chunk.filename,
            "category": chunk.category,
            "uploaded_by": chunk.uploaded_by,
            "upload_time": chunk.upload_time.isoformat(),
            "chunk_index": chunk.chunk_index,
            "unit_index": chunk.unit_index,
            "token_count": chunk.token_count,
        }

    @staticmethod
    def _metadata_to_chunk(chunk_id: str, meta: dict[str, Any], text: str) -> DocumentChunk:
        """Reverse :meth:`_chunk_to_metadata`."""
        return DocumentChunk(
            chunk_id=chunk_id,
            text=text,
            chunk_index=int(meta.get("chunk_index", 0)),
            unit_index=int(meta.get("unit_index", 0)),
            token_count=int(meta.get("token_count", 0)),
            document_id=str(meta.get("document_id", "")),
            filename=str(meta.get("filename", "")),
            category=str(meta.get("category", "")),
            uploaded_by=str(meta.get("uploaded_by", "")),
            upload_time=datetime.fromisoformat(str(meta["upload_time"])),
        )

    @staticmethod
    def _translate_filters(filters: dict[str, str]) -> dict[str, Any] | None:
        """Translate equality filters to a ChromaDB ``where`` clause.

        ``{"category": "hr"}`` -> ``{"category": "hr"}``; several keys
        are combined with ``$and``.  ``None`` values are ignored.
        """
        clauses = [{key: value} for key, value in filters.items() if value is not None]
        if not clauses:
            return None
        if len(clauses) == 1:
            return clauses[0]
        return {"$and": clauses}
