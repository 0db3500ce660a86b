"""Abstract base class for raw upload storage."""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementation: LocalFileStorage (src/providers/storage/)
class IFileStorage(ABC):
    """Contract for saving, loading, and deleting uploaded file bytes."""

    @abstractmethod
    async def save(self, filename: str, content: bytes) -> str:
        """Persist *content* and return the path it was stored under."""

    @abstractmethod
    async def load(self, path: str) -> bytes:
        """Return the bytes stored at *path*.

        Raises
        ------
        src.utils.errors.ProcessingError
            If the file is missing or unreadable.
        """

    @abstractmethod
    async def delete(self, path: str) -> bool:
        """Remove the file; returns ``True`` if something was deleted."""
