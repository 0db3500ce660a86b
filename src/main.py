"""Knowledge base FastAPI application entry point.

Wires together all providers and services via dependency injection.
Loads configuration from ``.env`` and ``config/config.yaml``, configures
structured logging, and exposes the API under ``/api/v1``.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import structlog
import uvicorn
from fastapi import FastAPI

from src.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    UserIdentityMiddleware,
    configure_cors,
)
from src.api.routes import router as api_router
from src.config.knowledge_base import KnowledgeBaseConfig
from src.config.loader import load_knowledge_base_config
from src.config.settings import Settings
from src.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from src.providers.llm.openai_provider import OpenAILLMProvider
from src.providers.storage.local_file_storage import LocalFileStorage
from src.providers.store.sqlite_document_store import SQLiteDocumentStore
from src.providers.store.sqlite_query_store import SQLiteQueryStore
from src.providers.vector_store.chromadb_provider import ChromaDBProvider
from src.services.document_service import DocumentService
from src.services.generation_client import GenerationClient
from src.services.ingestion import (
    DocumentReader,
    IngestionService,
    MetadataEnricher,
    TextChunker,
)
from src.services.query_service import QueryService
from src.services.retrieval import Retriever
from src.utils.concurrency import WorkerPool
from src.utils.logging import configure_logging, get_logger

_VERSION = "0.1.0"

settings = Settings()
kb_config = load_knowledge_base_config(settings.config_path, settings=settings)

configure_logging(
    log_level=settings.log_level,
    json_output=(settings.app_env == "production"),
)
_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Component construction
# ---------------------------------------------------------------------------


def _build_all(app_settings: Settings, config: KnowledgeBaseConfig) -> dict[str, Any]:
    """Construct every provider and service instance for the application.

    Returns a flat dict of named components to be stored on ``app.state``.
    """
    Path(app_settings.database_path).parent.mkdir(parents=True, exist_ok=True)

    embedding_provider = OpenAIEmbeddingProvider(settings=app_settings)
    llm = OpenAILLMProvider(settings=app_settings)

    vector_store = ChromaDBProvider(
        embedding_provider=embedding_provider,
        persist_directory=app_settings.chromadb_persist_dir,
        collection_name=app_settings.chromadb_collection,
    )
    document_store = SQLiteDocumentStore(db_path=app_settings.database_path)
    query_store = SQLiteQueryStore(db_path=app_settings.database_path)
    file_storage = LocalFileStorage(base_dir=config.document.storage_path)

    document_pool = WorkerPool(config.executors.document)
    ai_pool = WorkerPool(config.executors.ai)

    ingestion_service = IngestionService(
        reader=DocumentReader(),
        chunker=TextChunker.from_config(config.vectorization),
        enricher=MetadataEnricher(),
        embedding_provider=embedding_provider,
        vector_store=vector_store,
        document_store=document_store,
        file_storage=file_storage,
        pool=document_pool,
        batch_size=config.vectorization.batch_size,
    )
    document_service = DocumentService(
        document_store=document_store,
        file_storage=file_storage,
        vector_store=vector_store,
        ingestion=ingestion_service,
        config=config.document,
    )

    retriever = Retriever(
        vector_store=vector_store,
        max_results=config.query.max_results,
        similarity_threshold=config.query.similarity_threshold,
    )
    query_service = QueryService(
        retriever=retriever,
        plain_client=GenerationClient.plain(
            llm,
            temperature=app_settings.generation_temperature,
            max_tokens=app_settings.generation_max_tokens,
        ),
        rag_client=GenerationClient.rag(
            llm,
            temperature=app_settings.generation_temperature,
            max_tokens=app_settings.generation_max_tokens,
        ),
        query_store=query_store,
        ai_pool=ai_pool,
        config=config.query,
    )

    provider_registry: dict[str, Any] = {
        "llm": llm.get_provider_name(),
        "embedding": embedding_provider.get_provider_name(),
        "vector_store": vector_store.get_provider_name(),
    }

    return {
        "vector_store": vector_store,
        "document_store": document_store,
        "query_store": query_store,
        "document_pool": document_pool,
        "ai_pool": ai_pool,
        "ingestion_service": ingestion_service,
        "document_service": document_service,
        "query_service": query_service,
        "provider_registry": provider_registry,
    }


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(application: FastAPI):  # noqa: ANN201
    """Initialise providers and stores on startup, drain worker pools on shutdown."""
    components = _build_all(settings, kb_config)

    for key, value in components.items():
        setattr(application.state, key, value)

    await components["document_store"].initialize()
    await components["query_store"].initialize()

    _logger.info(
        "app_startup",
        version=_VERSION,
        environment=settings.app_env,
        providers=components["provider_registry"],
    )

    yield

    # Let running ingestions and generations finish before exiting.
    await components["document_pool"].shutdown()
    await components["ai_pool"].shutdown()
    _logger.info("app_shutdown", message="Worker pools drained")


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Build and configure the FastAPI application."""
    application = FastAPI(
        title="Knowledge Base API",
        version=_VERSION,
        description=(
            "Upload PDF, Word, text and Markdown documents into a per-user "
            "knowledge base and ask questions answered from their content."
        ),
        lifespan=_lifespan,
    )

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(UserIdentityMiddleware, header_name=settings.user_id_header)
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application, allowed_origins=settings.cors_origins)

    # -- API routes --
    application.include_router(api_router)

    return application


app = create_app()

# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    uvicorn.run(
        "src.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )
