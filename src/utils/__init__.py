"""Utility modules for the knowledge base service.

Available utility modules (all re-exported here for convenience):

- **errors** -- Domain-specific exception hierarchy rooted at
  KnowledgeBaseError; each layer raises its own subclass and the API
  middleware maps them to HTTP status codes.
- **concurrency** -- WorkerPool, the semaphore-bounded task pool with its
  own thread executor used for ingestion and generation work.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production.
"""

# -- Domain exception hierarchy --------------------------------------------
from src.utils.errors import (
    ConfigurationError,
    DocumentNotFoundError,
    GenerationError,
    IndexBatchError,
    IngestionInProgressError,
    KnowledgeBaseError,
    PermissionDeniedError,
    ProcessingError,
    RetrievalError,
    ValidationError,
    WorkerPoolSaturatedError,
)

# -- Structured logging setup ----------------------------------------------
from src.utils.logging import configure_logging, get_logger

# -- Bounded worker pools --------------------------------------------------
from src.utils.concurrency import WorkerPool

__all__ = [
    "ConfigurationError",
    "DocumentNotFoundError",
    "GenerationError",
    "IndexBatchError",
    "IngestionInProgressError",
    "KnowledgeBaseError",
    "PermissionDeniedError",
    "ProcessingError",
    "RetrievalError",
    "ValidationError",
    "WorkerPool",
    "WorkerPoolSaturatedError",
    "configure_logging",
    "get_logger",
]
