"""Custom exception hierarchy for the knowledge base service.

All application exceptions inherit from :class:`KnowledgeBaseError`, which
carries an optional ``provider_name`` so error handlers can identify which
external service (e.g. "openai", "chromadb", "sqlite") caused the failure.

The hierarchy is organized by where the failure is detected:

    KnowledgeBaseError  (base -- catch-all for any knowledge base error)
    +-- ValidationError            (bad input, rejected synchronously)
    +-- PermissionDeniedError      (caller does not own the resource)
    +-- DocumentNotFoundError      (unknown document id)
    +-- IngestionInProgressError   (document already being ingested)
    +-- WorkerPoolSaturatedError   (ingestion queue is full)
    +-- ProcessingError            (read / chunk / embed / store failure)
    |   +-- IndexBatchError        (one index batch failed mid-document)
    +-- RetrievalError             (embedding or vector-store failure)
    +-- GenerationError            (text generation call failure)
    +-- ConfigurationError         (startup / invalid config)

The API middleware maps each class to an HTTP status code; the ingestion
pipeline and the query service capture the asynchronous ones
(ProcessingError, RetrievalError, GenerationError) onto the stored record
instead of letting them escape.
"""


class KnowledgeBaseError(Exception):
    """Base exception for all knowledge base errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  The ``__str__`` method prefixes the provider name in brackets
    for structured log output, e.g. ``[openai] Rate limit exceeded``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Synchronous request errors
# ---------------------------------------------------------------------------

class ValidationError(KnowledgeBaseError):
    """Raised for bad input: empty file, blank required field, oversize, unsupported type."""

    def __init__(
        self,
        message: str = "Invalid request",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class PermissionDeniedError(KnowledgeBaseError):
    """Raised when the caller does not own the document or query record."""

    def __init__(
        self,
        message: str = "Permission denied",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class DocumentNotFoundError(KnowledgeBaseError):
    """Raised when a document id does not exist."""

    def __init__(
        self,
        message: str = "Document not found",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Ingestion scheduling errors
# ---------------------------------------------------------------------------

class IngestionInProgressError(KnowledgeBaseError):
    """Raised when a document is submitted while its ingestion is still running.

    At most one ingestion task may be active per document id; a second
    submission is rejected rather than queued so chunks are never indexed
    twice in parallel.
    """

    def __init__(
        self,
        message: str = "Document is already being ingested",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class WorkerPoolSaturatedError(KnowledgeBaseError):
    """Raised when a worker pool has no free slot and its queue is full."""

    def __init__(
        self,
        message: str = "Worker pool is saturated",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Asynchronous processing errors
# ---------------------------------------------------------------------------

class ProcessingError(KnowledgeBaseError):
    """Raised when reading, chunking, embedding, or storing a document fails.

    Captured by the ingestion pipeline: the document is marked FAILED with
    this message and can only be recovered by an explicit reprocess.
    """

    def __init__(
        self,
        message: str = "Document processing failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class IndexBatchError(ProcessingError):
    """Raised when one batch of chunks fails to embed or store.

    Carries the 1-based number of the failing batch, how many batches were
    already stored before it, and the total batch count, so a partial index
    can be told apart from a failure before anything was written.  Batches
    stored before the failure are not rolled back.
    """

    def __init__(
        self,
        message: str = "Index batch failed",
        provider_name: str | None = None,
        batch_number: int = 0,
        batches_stored: int = 0,
        total_batches: int = 0,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._batch_number = batch_number
        self._batches_stored = batches_stored
        self._total_batches = total_batches

    @property
    def batch_number(self) -> int:
        return self._batch_number

    @property
    def batches_stored(self) -> int:
        return self._batches_stored

    @property
    def total_batches(self) -> int:
        return self._total_batches

    @property
    def is_partial(self) -> bool:
        """Return ``True`` when some batches reached the index before the failure."""
        return self._batches_stored > 0


# ---------------------------------------------------------------------------
# Query path errors
# ---------------------------------------------------------------------------

class RetrievalError(KnowledgeBaseError):
    """Raised when embedding generation or vector-store search fails."""

    def __init__(
        self,
        message: str = "Retrieval operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class GenerationError(KnowledgeBaseError):
    """Raised when a text generation call fails or returns nothing."""

    def __init__(
        self,
        message: str = "Text generation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Startup errors
# ---------------------------------------------------------------------------

class ConfigurationError(KnowledgeBaseError):
    """Raised when required configuration is missing or invalid."""

    def __init__(
        self,
        message: str = "Invalid configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
