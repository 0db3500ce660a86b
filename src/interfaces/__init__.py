"""Public interface definitions for every external dependency of the service.

Storage backends, the embedding model, the vector index, and the LLM are
accessed exclusively through the abstract base classes defined in this
package.  Concrete adapters implement these interfaces and are injected at
startup by ``src/main.py``; unit tests inject mocks instead.

CONCRETE PROVIDER MAP:
    Interface                  →  Concrete implementation
    ─────────────────────────────────────────────────────────────────────
    IEmbeddingProvider         →  OpenAIEmbeddingProvider
    IVectorStoreProvider       →  ChromaDBProvider
    ILLMProvider               →  OpenAILLMProvider
    IGenerationClient          →  GenerationClient (plain and RAG instances)
    IDocumentStore             →  SQLiteDocumentStore
    IQueryStore                →  SQLiteQueryStore
    IFileStorage               →  LocalFileStorage
"""

from src.interfaces.document_store import IDocumentStore
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.file_storage import IFileStorage
from src.interfaces.generation_client import IGenerationClient
from src.interfaces.llm_provider import ILLMProvider
from src.interfaces.query_store import IQueryStore
from src.interfaces.vector_store_provider import IVectorStoreProvider

__all__ = [
    "IDocumentStore",
    "IEmbeddingProvider",
    "IFileStorage",
    "IGenerationClient",
    "ILLMProvider",
    "IQueryStore",
    "IVectorStoreProvider",
]
