"""Document lifecycle models.

A :class:`Document` is the persisted record of one upload.  Its status
moves PROCESSING -> COMPLETED or PROCESSING -> FAILED, and only an explicit
reprocess request moves FAILED back to PROCESSING.  ``processed_time`` and
``chunk_count`` are set exactly when the status is COMPLETED; the SQLite
store enforces this in its UPDATE statements and the model validator below
rejects any instance that breaks it.

All models are frozen; state changes go through the store, which returns
fresh instances.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class DocumentStatus(str, Enum):  # noqa: UP042 — StrEnum requires Python 3.11+
    """Lifecycle status of an uploaded document."""

    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class Document(BaseModel):
    """An uploaded document and its ingestion state."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Opaque document identifier.")
    filename: str = Field(description="Original filename as uploaded.")
    category: str = Field(description="Category tag used to filter retrieval.")
    owner_id: str = Field(description="User id of the uploader; the only user allowed access.")
    upload_time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    processed_time: datetime | None = None
    status: DocumentStatus = DocumentStatus.PROCESSING
    error_message: str | None = None
    file_size: int = Field(default=0, ge=0, description="Upload size in bytes.")
    content_type: str = ""
    chunk_count: int | None = Field(default=None, ge=0)
    description: str | None = None
    content_hash: str | None = Field(default=None, description="MD5 hex digest of the upload.")
    storage_path: str | None = Field(default=None, description="Where the raw upload was saved.")

    @model_validator(mode="after")
    def _completion_fields_match_status(self) -> Document:
        completed = self.status == DocumentStatus.COMPLETED
        if completed != (self.processed_time is not None):
            raise ValueError("processed_time must be set iff status is COMPLETED")
        if completed != (self.chunk_count is not None):
            raise ValueError("chunk_count must be set iff status is COMPLETED")
        return self

    @property
    def extension(self) -> str:
        """Lower-case file extension without the dot, or ``""``."""
        if "." not in self.filename:
            return ""
        return self.filename.rsplit(".", 1)[1].lower()


class UploadResult(BaseModel):
    """Outcome of an upload or reprocess request."""

    model_config = ConfigDict(frozen=True)

    document_id: str | None
    filename: str
    status: str
    message: str
    upload_time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    file_size: int | None = None


class BatchDeleteResult(BaseModel):
    """Outcome of deleting several documents in one request."""

    model_config = ConfigDict(frozen=True)

    success_count: int = 0
    failure_count: int = 0
    message: str = ""


class DocumentStatistics(BaseModel):
    """Per-owner document counts."""

    model_config = ConfigDict(frozen=True)

    total_documents: int = 0
    by_category: dict[str, int] = Field(default_factory=dict)
    by_status: dict[str, int] = Field(default_factory=dict)


class DocumentPage(BaseModel):
    """One page of an owner's documents."""

    model_config = ConfigDict(frozen=True)

    items: list[Document] = Field(default_factory=list)
    total: int = 0
    page: int = 0
    size: int = 10

    @property
    def total_pages(self) -> int:
        if self.size <= 0:
            return 0
        return (self.total + self.size - 1) // self.size
