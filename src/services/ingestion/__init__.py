"""Document ingestion pipeline for the knowledge base.

Orchestrates the full pipeline: **read -> chunk -> enrich -> embed -> store**.

Pipeline stages overview:

1. **Read** (document_reader.py / DocumentReader) -- Converts upload bytes
   into text units: one per PDF page, one for DOCX/TXT/MD files.

2. **Chunk** (chunker.py / TextChunker) -- Splits each unit into
   overlapping token windows with a pluggable tokenizer and a global
   chunk limit.

3. **Enrich** (metadata_enricher.py / MetadataEnricher) -- Tags every
   chunk with its document id, filename, category, owner, and upload time.

4. **Embed** (via IEmbeddingProvider) -- Generates embedding vectors batch
   by batch.

5. **Store** (via IVectorStoreProvider) -- Upserts each embedded batch into
   the vector index.

The IngestionService class runs these stages on the document worker pool
and resolves the document's status when they finish.
"""

from src.services.ingestion.chunker import TextChunker, build_tokenizer
from src.services.ingestion.document_reader import DocumentReader, resolve_extension
from src.services.ingestion.ingestion_service import IngestionService
from src.services.ingestion.metadata_enricher import MetadataEnricher

__all__ = [
    "DocumentReader",
    "IngestionService",
    "MetadataEnricher",
    "TextChunker",
    "build_tokenizer",
    "resolve_extension",
]
