"""Attach owning-document metadata to chunker output.

The enricher is a pure mapping from a :class:`TextChunk` and the
:class:`Document` it was cut from to a :class:`DocumentChunk` carrying the
document id, filename, category, owner, and upload time.  Every call mints
a fresh ``chunk_id``; the document itself is never modified.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, Sequence

from src.models.document import Document
from src.models.rag import DocumentChunk, TextChunk


def _new_chunk_id() -> str:
    return str(uuid.uuid4())


class MetadataEnricher:
    """Tags chunks with their owning document.

    Parameters
    ----------
    id_factory:
        Produces chunk ids.  Defaults to random UUID4 strings; tests pass a
        deterministic factory.
    """

    def __init__(self, id_factory: Callable[[], str] = _new_chunk_id) -> None:
        self._id_factory = id_factory

    def enrich(self, chunk: TextChunk, document: Document) -> DocumentChunk:
        return DocumentChunk(
            chunk_id=self._id_factory(),
            text=chunk.text,
            chunk_index=chunk.index,
            unit_index=chunk.unit_index,
            token_count=chunk.token_count,
            document_id=document.id,
            filename=document.filename,
            category=document.category,
            uploaded_by=document.owner_id,
            upload_time=document.upload_time,
        )

    def enrich_all(self, chunks: Sequence[TextChunk], document: Document) -> list[DocumentChunk]:
        """Enrich every chunk, preserving order."""
        return [self.enrich(chunk, document) for chunk in chunks]
