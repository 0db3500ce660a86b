"""Embedding provider implementations.

Embeddings convert text into numeric vectors that capture semantic
meaning.  These vectors are stored in ChromaDB and compared at query time.
"""

from src.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

__all__ = ["OpenAIEmbeddingProvider"]
