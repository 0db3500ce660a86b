"""RAG pipeline data models.

Defines Pydantic v2 models for the three shapes a piece of document text
takes on its way through the system, plus ingestion and index statistics.
All models use frozen config; a chunk never changes once created.

    1. TextChunk      -- produced by the chunker: text plus its position in
                         the source (unit index, character offsets).
    2. DocumentChunk  -- produced by the metadata enricher: a TextChunk
                         tagged with the owning document's identity.  This
                         is what gets embedded and stored in ChromaDB.
    3. RetrievedChunk -- returned by the vector store at query time: a
                         DocumentChunk with its similarity to the question.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# TextChunk: chunker output, before any document metadata is attached.
# ---------------------------------------------------------------------------
class TextChunk(BaseModel):
    """A window of text cut from one text unit (e.g. one PDF page).

    ``start`` and ``end`` are character offsets into the unit, so two
    consecutive chunks of the same unit overlap on ``[next.start, prev.end)``.
    """

    model_config = ConfigDict(frozen=True)

    text: str
    index: int = Field(ge=0, description="Position of this chunk in the document.")
    unit_index: int = Field(default=0, ge=0, description="Which text unit (page) it came from.")
    start: int = Field(default=0, ge=0, description="Start character offset within the unit.")
    end: int = Field(default=0, ge=0, description="End character offset (exclusive) within the unit.")
    token_count: int = Field(default=0, ge=0)


# ---------------------------------------------------------------------------
# DocumentChunk: the unit stored in the vector index.
# ---------------------------------------------------------------------------
class DocumentChunk(BaseModel):
    """A chunk tagged with its owning document, ready for embedding and storage.

    The back-reference fields are what the vector store persists as
    metadata; ``category`` is the field retrieval filters on and
    ``document_id`` is the one deletion cascades on.
    """

    model_config = ConfigDict(frozen=True)

    chunk_id: str = Field(description="Unique identifier (UUID) for this chunk.")
    text: str = Field(description="The chunk's textual content.")
    chunk_index: int = Field(default=0, ge=0)
    unit_index: int = Field(default=0, ge=0)
    token_count: int = Field(default=0, ge=0)
    document_id: str = Field(description="Identifier of the owning document.")
    filename: str = Field(description="Original filename of the owning document.")
    category: str = Field(description="Category of the owning document.")
    uploaded_by: str = Field(description="Owner id of the owning document.")
    upload_time: datetime = Field(description="Upload time of the owning document.")


# ---------------------------------------------------------------------------
# RetrievedChunk: a search hit with its similarity score.
# ---------------------------------------------------------------------------
class RetrievedChunk(BaseModel):
    """A chunk returned from similarity search."""

    model_config = ConfigDict(frozen=True)

    chunk: DocumentChunk
    # 1.0 = identical direction, 0.0 = unrelated (cosine distance folded
    # into [0, 1] by the vector store adapter).
    similarity_score: float = Field(ge=0.0, le=1.0)


# ---------------------------------------------------------------------------
# Ingestion and index statistics
# ---------------------------------------------------------------------------
class IngestionResult(BaseModel):
    """Statistics about one completed ingestion run."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    chunks_created: int = Field(default=0, ge=0)
    batches_stored: int = Field(default=0, ge=0)
    total_batches: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)
    ingestion_time: float = Field(default=0.0, ge=0.0, description="Seconds.")


class IndexStats(BaseModel):
    """Aggregate counts over the vector index."""

    model_config = ConfigDict(frozen=True)

    total_chunks: int = 0
    total_documents: int = 0
    chunks_by_category: dict[str, int] = Field(default_factory=dict)
