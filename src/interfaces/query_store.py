"""Abstract base class for query history persistence.

Query records are append-only history: created as PROCESSING, resolved
exactly once, and afterwards only removed by the retention cleanup.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from src.models.query import QueryOutcome, QueryRecord, QueryStatistics


# Concrete implementation: SQLiteQueryStore (src/providers/store/)
class IQueryStore(ABC):
    """Contract for storing and querying :class:`QueryRecord` rows."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables and indices if they do not exist."""

    @abstractmethod
    async def create(self, record: QueryRecord) -> QueryRecord:
        """Insert a new PROCESSING record and return it."""

    @abstractmethod
    async def resolve(self, query_id: str, outcome: QueryOutcome) -> bool:
        """Write the outcome if the record is still PROCESSING.

        Returns ``False`` when the record was already resolved or is unknown.
        """

    @abstractmethod
    async def get(self, query_id: str) -> QueryRecord | None:
        """Return the record, or ``None`` when the id is unknown."""

    @abstractmethod
    async def list_by_owner(self, owner_id: str, limit: int) -> list[QueryRecord]:
        """Return the owner's most recent records, newest first."""

    @abstractmethod
    async def list_by_session(self, owner_id: str, session_id: str) -> list[QueryRecord]:
        """Return the owner's records in one session, oldest first."""

    @abstractmethod
    async def search(self, owner_id: str, keyword: str) -> list[QueryRecord]:
        """Case-insensitive substring search over question and answer."""

    @abstractmethod
    async def statistics(self, owner_id: str) -> QueryStatistics:
        """Return per-status counts, mean latency, and per-category counts."""

    @abstractmethod
    async def delete_before(self, cutoff: datetime) -> int:
        """Delete records issued before *cutoff*; returns the count removed."""

    @abstractmethod
    async def recent_questions(self, limit: int) -> list[str]:
        """Return up to *limit* distinct questions, most recently asked first."""
