"""Abstract base class for document record persistence.

The document store owns the lifecycle status of every upload.  Status
changes go through conditional updates so concurrent writers cannot move a
record out of a state they did not observe.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.document import Document, DocumentStatus


# Concrete implementation: SQLiteDocumentStore (src/providers/store/)
class IDocumentStore(ABC):
    """Contract for storing and querying :class:`Document` records."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables and indices if they do not exist."""

    @abstractmethod
    async def create(self, document: Document) -> Document:
        """Insert a new document record and return it."""

    @abstractmethod
    async def get(self, document_id: str) -> Document | None:
        """Return the document, or ``None`` when the id is unknown."""

    @abstractmethod
    async def list_by_owner(self, owner_id: str, category: str | None = None) -> list[Document]:
        """Return the owner's documents, newest upload first."""

    @abstractmethod
    async def page_by_owner(
        self,
        owner_id: str,
        category: str | None = None,
        page: int = 0,
        size: int = 10,
        sort: str = "upload_time",
        direction: str = "desc",
    ) -> tuple[list[Document], int]:
        """Return one page of the owner's documents and the total match count.

        Raises
        ------
        src.utils.errors.ValidationError
            If *sort* is not a sortable column or *direction* is not
            ``"asc"``/``"desc"``.
        """

    @abstractmethod
    async def list_by_status(self, owner_id: str, status: DocumentStatus) -> list[Document]:
        """Return the owner's documents currently in *status*."""

    @abstractmethod
    async def search(self, owner_id: str, keyword: str) -> list[Document]:
        """Case-insensitive substring search over filename and description."""

    @abstractmethod
    async def categories(self, owner_id: str) -> list[str]:
        """Return the owner's distinct categories, sorted."""

    @abstractmethod
    async def count_by_category(self, owner_id: str) -> dict[str, int]:
        """Return document counts per category for the owner."""

    @abstractmethod
    async def count_by_status(self, owner_id: str) -> dict[str, int]:
        """Return document counts per status for the owner."""

    @abstractmethod
    async def delete(self, document_id: str) -> bool:
        """Delete the record; returns ``True`` if a row was removed."""

    @abstractmethod
    async def set_storage_path(self, document_id: str, storage_path: str) -> None:
        """Record where the raw upload was saved."""

    @abstractmethod
    async def transition_status(
        self,
        document_id: str,
        expected: DocumentStatus,
        new: DocumentStatus,
    ) -> bool:
        """Atomically move the record from *expected* to *new*.

        Returns ``False`` (and changes nothing) when the record is not in
        *expected* at the time of the update.
        """

    @abstractmethod
    async def mark_completed(self, document_id: str, chunk_count: int) -> bool:
        """PROCESSING -> COMPLETED, setting ``processed_time`` and ``chunk_count``."""

    @abstractmethod
    async def mark_failed(self, document_id: str, error_message: str) -> bool:
        """PROCESSING -> FAILED, recording *error_message*."""
