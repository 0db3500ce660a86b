"""SQLite persistence for document and query records."""

from src.providers.store.sqlite_document_store import SQLiteDocumentStore
from src.providers.store.sqlite_query_store import SQLiteQueryStore

__all__ = ["SQLiteDocumentStore", "SQLiteQueryStore"]
