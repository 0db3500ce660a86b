"""Shared pytest fixtures for the knowledge base test suite."""

from __future__ import annotations

import asyncio
import hashlib
import struct
from collections.abc import AsyncIterator
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from src.config.knowledge_base import ExecutorConfig
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.llm_provider import ILLMProvider
from src.interfaces.vector_store_provider import IVectorStoreProvider
from src.models.document import Document
from src.models.rag import DocumentChunk, IndexStats, RetrievedChunk
from src.providers.storage.local_file_storage import LocalFileStorage
from src.providers.store.sqlite_document_store import SQLiteDocumentStore
from src.providers.store.sqlite_query_store import SQLiteQueryStore
from src.utils.concurrency import WorkerPool

# ---------------------------------------------------------------------------
# Deterministic embeddings
# ---------------------------------------------------------------------------

_EMBEDDING_DIM = 128


def _hash_to_vector(text: str, dim: int = _EMBEDDING_DIM) -> list[float]:
    """Generate a deterministic fixed-length vector by hashing *text*.

    Uses SHA-256 to hash the text, then unpacks bytes into floats and
    normalises to unit length.  Same text always produces the same vector.
    """
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    raw = digest
    while len(raw) < dim * 4:
        raw += hashlib.sha256(raw).digest()
    raw = raw[: dim * 4]
    # Map each 4-byte word into [-1, 1]; avoids NaN/inf from raw float bits.
    values = [(v / 0xFFFFFFFF) * 2.0 - 1.0 for v in struct.unpack(f"<{dim}I", raw)]
    magnitude = max(sum(v * v for v in values) ** 0.5, 1e-10)
    return [v / magnitude for v in values]


class MockEmbeddingProvider(IEmbeddingProvider):
    """In-memory deterministic embedding provider for tests."""

    def __init__(self) -> None:
        self.calls: list[list[str]] = []

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        return [_hash_to_vector(t) for t in texts]

    async def embed_single(self, text: str) -> list[float]:
        return _hash_to_vector(text)

    def get_dimension(self) -> int:
        return _EMBEDDING_DIM

    def get_provider_name(self) -> str:
        return "mock-embedding"

    def is_available(self) -> bool:
        return True


class GatedEmbeddingProvider(MockEmbeddingProvider):
    """Embedding provider that blocks every call until ``release`` is set.

    ``started`` is set as soon as the first call arrives, so a test can
    act while an ingestion is known to be mid-flight.
    """

    def __init__(self) -> None:
        super().__init__()
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.started.set()
        await self.release.wait()
        return await super().embed(texts)


class MockVectorStore(IVectorStoreProvider):
    """In-memory vector store backed by a simple dict.

    Scores are the cosine similarity of the hash vectors folded into
    ``[0, 1]``, unless ``fixed_similarity`` pins every hit to one value.
    """

    def __init__(self, fixed_similarity: float | None = None) -> None:
        self._store: dict[str, tuple[DocumentChunk, list[float]]] = {}
        self._embedding = MockEmbeddingProvider()
        self.fixed_similarity = fixed_similarity
        self.add_calls = 0

    @property
    def chunks(self) -> list[DocumentChunk]:
        return [chunk for chunk, _ in self._store.values()]

    async def query(
        self,
        query_text: str,
        top_k: int = 5,
        filters: dict[str, str] | None = None,
    ) -> list[RetrievedChunk]:
        if not self._store:
            return []

        query_vec = await self._embedding.embed_single(query_text)
        scored: list[tuple[float, DocumentChunk]] = []
        for chunk, vec in self._store.values():
            if filters and any(getattr(chunk, key) != value for key, value in filters.items()):
                continue
            if self.fixed_similarity is not None:
                similarity = self.fixed_similarity
            else:
                dot = sum(a * b for a, b in zip(query_vec, vec, strict=False))
                similarity = max(0.0, min(1.0, (dot + 1.0) / 2.0))
            scored.append((similarity, chunk))

        scored.sort(key=lambda x: x[0], reverse=True)
        return [
            RetrievedChunk(chunk=chunk, similarity_score=sim)
            for sim, chunk in scored[:top_k]
        ]

    async def add_chunks(
        self,
        chunks: list[DocumentChunk],
        embeddings: list[list[float]],
    ) -> int:
        if len(chunks) != len(embeddings):
            raise ValueError("chunks and embeddings length mismatch")
        self.add_calls += 1
        for chunk, emb in zip(chunks, embeddings, strict=True):
            self._store[chunk.chunk_id] = (chunk, emb)
        return len(chunks)

    async def delete_by_document(self, document_id: str) -> int:
        to_delete = [cid for cid, (chunk, _) in self._store.items() if chunk.document_id == document_id]
        for cid in to_delete:
            del self._store[cid]
        return len(to_delete)

    async def get_stats(self) -> IndexStats:
        by_category: dict[str, int] = {}
        document_ids: set[str] = set()
        for chunk, _ in self._store.values():
            document_ids.add(chunk.document_id)
            by_category[chunk.category] = by_category.get(chunk.category, 0) + 1
        return IndexStats(
            total_chunks=len(self._store),
            total_documents=len(document_ids),
            chunks_by_category=by_category,
        )

    def get_provider_name(self) -> str:
        return "mock-vector-store"

    def is_available(self) -> bool:
        return True


async def _fragments(parts: list[str]) -> AsyncIterator[str]:
    for part in parts:
        yield part


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


def make_document(
    document_id: str = "doc-001",
    owner_id: str = "alice",
    filename: str = "handbook.txt",
    category: str = "hr",
    **overrides: Any,
) -> Document:
    """Build a PROCESSING document with sensible defaults."""
    fields: dict[str, Any] = {
        "id": document_id,
        "filename": filename,
        "category": category,
        "owner_id": owner_id,
        "file_size": 1024,
        "content_type": "text/plain",
        "upload_time": datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc),
    }
    fields.update(overrides)
    return Document(**fields)


def make_chunk(
    text: str = "Employees receive 25 days of annual leave.",
    chunk_id: str = "chunk-001",
    document_id: str = "doc-001",
    filename: str = "handbook.txt",
    category: str = "hr",
    chunk_index: int = 0,
) -> DocumentChunk:
    return DocumentChunk(
        chunk_id=chunk_id,
        text=text,
        chunk_index=chunk_index,
        token_count=len(text),
        document_id=document_id,
        filename=filename,
        category=category,
        uploaded_by="alice",
        upload_time=datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc),
    )


def make_retrieved(score: float, filename: str = "handbook.txt", index: int = 0) -> RetrievedChunk:
    return RetrievedChunk(
        chunk=make_chunk(
            text=f"Chunk {index} of {filename}",
            chunk_id=f"{filename}-{index}",
            filename=filename,
            chunk_index=index,
        ),
        similarity_score=score,
    )


# ---------------------------------------------------------------------------
# Provider fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_embedding_provider() -> MockEmbeddingProvider:
    """Mock IEmbeddingProvider returning deterministic hash-based vectors."""
    return MockEmbeddingProvider()


@pytest.fixture
def mock_vector_store() -> MockVectorStore:
    """Mock IVectorStoreProvider backed by an in-memory dict."""
    return MockVectorStore()


@pytest.fixture
def mock_llm_provider() -> ILLMProvider:
    """Mock ILLMProvider with a fixed answer for complete() and stream().

    Override with ``mock_llm_provider.complete.return_value = "..."`` or
    ``mock_llm_provider.complete.side_effect = ...`` for specific tests.
    """
    mock = MagicMock(spec=ILLMProvider)
    mock.get_provider_name.return_value = "mock-llm"
    mock.is_available.return_value = True
    mock.validate_credentials = AsyncMock(return_value=True)
    mock.complete = AsyncMock(return_value="Employees receive 25 days of annual leave.")
    mock.stream = MagicMock(side_effect=lambda *args, **kwargs: _fragments(["Employees ", "receive ", "25 days."]))
    return mock


# ---------------------------------------------------------------------------
# Store fixtures (real SQLite under tmp_path)
# ---------------------------------------------------------------------------


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    return str(tmp_path / "knowledge_base.db")


@pytest_asyncio.fixture
async def document_store(db_path: str) -> SQLiteDocumentStore:
    store = SQLiteDocumentStore(db_path=db_path)
    await store.initialize()
    return store


@pytest_asyncio.fixture
async def query_store(db_path: str) -> SQLiteQueryStore:
    store = SQLiteQueryStore(db_path=db_path)
    await store.initialize()
    return store


@pytest.fixture
def file_storage(tmp_path: Path) -> LocalFileStorage:
    return LocalFileStorage(base_dir=tmp_path / "uploads")


@pytest_asyncio.fixture
async def document_pool() -> AsyncIterator[WorkerPool]:
    pool = WorkerPool(ExecutorConfig(max_workers=2, queue_capacity=4, thread_name_prefix="test-doc"))
    yield pool
    await pool.shutdown()


@pytest_asyncio.fixture
async def ai_pool() -> AsyncIterator[WorkerPool]:
    pool = WorkerPool(ExecutorConfig(max_workers=2, queue_capacity=4, thread_name_prefix="test-ai"))
    yield pool
    await pool.shutdown()
