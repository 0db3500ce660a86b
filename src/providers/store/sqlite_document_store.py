"""SQLite-backed document record store.

Persists :class:`~src.models.document.Document` rows to a local SQLite
database (``data/knowledge_base.db`` by default) using ``aiosqlite`` for
async I/O.  Every operation opens its own connection.

Status changes are single conditional ``UPDATE ... WHERE status = ?``
statements: whichever writer's update matches first wins and later ones
affect zero rows, so two callers can never both move a record out of the
same state.  ``processed_time`` and ``chunk_count`` are written and
cleared in the same statements that change the status.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import aiosqlite
import structlog

from src.interfaces.document_store import IDocumentStore
from src.models.document import Document, DocumentStatus
from src.utils.errors import ValidationError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/knowledge_base.db")

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS documents (
    id              TEXT    PRIMARY KEY,
    filename        TEXT    NOT NULL,
    category        TEXT    NOT NULL,
    owner_id        TEXT    NOT NULL,
    upload_time     TEXT    NOT NULL,
    processed_time  TEXT,
    status          TEXT    NOT NULL,
    error_message   TEXT,
    file_size       INTEGER NOT NULL DEFAULT 0,
    content_type    TEXT    NOT NULL DEFAULT '',
    chunk_count     INTEGER,
    description     TEXT,
    content_hash    TEXT,
    storage_path    TEXT
);
"""

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_documents_owner ON documents(owner_id);",
    "CREATE INDEX IF NOT EXISTS idx_documents_owner_category ON documents(owner_id, category);",
    "CREATE INDEX IF NOT EXISTS idx_documents_status ON documents(status);",
]

_COLUMNS = (
    "id, filename, category, owner_id, upload_time, processed_time, status, "
    "error_message, file_size, content_type, chunk_count, description, "
    "content_hash, storage_path"
)

_INSERT_SQL = f"""\
INSERT INTO documents ({_COLUMNS})
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
"""

_SELECT_BY_ID_SQL = f"SELECT {_COLUMNS} FROM documents WHERE id = ?;"

_TRANSITION_SQL = """\
UPDATE documents
SET status = ?, error_message = NULL, processed_time = NULL, chunk_count = NULL
WHERE id = ? AND status = ?;
"""

_MARK_COMPLETED_SQL = """\
UPDATE documents
SET status = 'COMPLETED', processed_time = ?, chunk_count = ?, error_message = NULL
WHERE id = ? AND status = 'PROCESSING';
"""

_MARK_FAILED_SQL = """\
UPDATE documents
SET status = 'FAILED', error_message = ?, processed_time = NULL, chunk_count = NULL
WHERE id = ? AND status = 'PROCESSING';
"""

# Columns a page request may sort on.
_SORTABLE_COLUMNS = frozenset(
    {"upload_time", "processed_time", "filename", "category", "status", "file_size"}
)


def _to_text(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _from_text(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _like_pattern(keyword: str) -> str:
    escaped = keyword.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _row_to_document(row: aiosqlite.Row) -> Document:
    return Document(
        id=row["id"],
        filename=row["filename"],
        category=row["category"],
        owner_id=row["owner_id"],
        upload_time=_from_text(row["upload_time"]),
        processed_time=_from_text(row["processed_time"]),
        status=DocumentStatus(row["status"]),
        error_message=row["error_message"],
        file_size=row["file_size"],
        content_type=row["content_type"],
        chunk_count=row["chunk_count"],
        description=row["description"],
        content_hash=row["content_hash"],
        storage_path=row["storage_path"],
    )


class SQLiteDocumentStore(IDocumentStore):
    """SQLite-backed document persistence."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        """Create the documents table and indices if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(_CREATE_TABLE_SQL)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("document_db_initialized", path=str(self._db_path))

    # ------------------------------------------------------------------
    # Create / read / delete
    # ------------------------------------------------------------------

    async def create(self, document: Document) -> Document:
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(
                _INSERT_SQL,
                (
                    document.id,
                    document.filename,
                    document.category,
                    document.owner_id,
                    _to_text(document.upload_time),
                    _to_text(document.processed_time),
                    document.status.value,
                    document.error_message,
                    document.file_size,
                    document.content_type,
                    document.chunk_count,
                    document.description,
                    document.content_hash,
                    document.storage_path,
                ),
            )
            await db.commit()
        logger.debug("document_record_created", document_id=document.id)
        return document

    async def get(self, document_id: str) -> Document | None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(_SELECT_BY_ID_SQL, (document_id,))
            row = await cursor.fetchone()
        return _row_to_document(row) if row else None

    async def delete(self, document_id: str) -> bool:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute("DELETE FROM documents WHERE id = ?", (document_id,))
            await db.commit()
            deleted = cursor.rowcount == 1
        logger.debug("document_record_deleted", document_id=document_id, deleted=deleted)
        return deleted

    async def set_storage_path(self, document_id: str, storage_path: str) -> None:
        """Record where the raw upload was saved."""
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(
                "UPDATE documents SET storage_path = ? WHERE id = ?",
                (storage_path, document_id),
            )
            await db.commit()

    # ------------------------------------------------------------------
    # Listing and search
    # ------------------------------------------------------------------

    async def list_by_owner(self, owner_id: str, category: str | None = None) -> list[Document]:
        """Return the owner's documents, newest upload first."""
        sql = f"SELECT {_COLUMNS} FROM documents WHERE owner_id = ?"
        params: list[object] = [owner_id]
        if category:
            sql += " AND category = ?"
            params.append(category)
        sql += " ORDER BY upload_time DESC, rowid DESC"
        return await self._fetch_all(sql, params)

    async def page_by_owner(
        self,
        owner_id: str,
        category: str | None = None,
        page: int = 0,
        size: int = 10,
        sort: str = "upload_time",
        direction: str = "desc",
    ) -> tuple[list[Document], int]:
        if sort not in _SORTABLE_COLUMNS:
            raise ValidationError(message=f"Cannot sort by {sort!r}")
        order = direction.lower()
        if order not in ("asc", "desc"):
            raise ValidationError(message=f"Sort direction must be 'asc' or 'desc', got {direction!r}")
        if page < 0 or size <= 0:
            raise ValidationError(message="page must be >= 0 and size must be > 0")

        where = "WHERE owner_id = ?"
        params: list[object] = [owner_id]
        if category:
            where += " AND category = ?"
            params.append(category)

        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(f"SELECT COUNT(*) AS total FROM documents {where}", params)
            total = (await cursor.fetchone())["total"]
            cursor = await db.execute(
                f"SELECT {_COLUMNS} FROM documents {where} "
                f"ORDER BY {sort} {order.upper()}, rowid {order.upper()} LIMIT ? OFFSET ?",
                [*params, size, page * size],
            )
            rows = await cursor.fetchall()
        return [_row_to_document(r) for r in rows], total

    async def list_by_status(self, owner_id: str, status: DocumentStatus) -> list[Document]:
        return await self._fetch_all(
            f"SELECT {_COLUMNS} FROM documents WHERE owner_id = ? AND status = ? "
            "ORDER BY upload_time DESC, rowid DESC",
            [owner_id, status.value],
        )

    async def search(self, owner_id: str, keyword: str) -> list[Document]:
        pattern = _like_pattern(keyword)
        return await self._fetch_all(
            f"SELECT {_COLUMNS} FROM documents WHERE owner_id = ? AND ("
            "LOWER(filename) LIKE ? ESCAPE '\\' "
            "OR LOWER(COALESCE(description, '')) LIKE ? ESCAPE '\\') "
            "ORDER BY upload_time DESC, rowid DESC",
            [owner_id, pattern, pattern],
        )

    async def categories(self, owner_id: str) -> list[str]:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(
                "SELECT DISTINCT category FROM documents WHERE owner_id = ? ORDER BY category",
                (owner_id,),
            )
            rows = await cursor.fetchall()
        return [r[0] for r in rows]

    async def count_by_category(self, owner_id: str) -> dict[str, int]:
        return await self._count_grouped("category", owner_id)

    async def count_by_status(self, owner_id: str) -> dict[str, int]:
        return await self._count_grouped("status", owner_id)

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    async def transition_status(
        self,
        document_id: str,
        expected: DocumentStatus,
        new: DocumentStatus,
    ) -> bool:
        """Move the record from *expected* to *new*, clearing completion fields.

        COMPLETED is only reachable through :meth:`mark_completed`, which
        also records the chunk count.
        """
        if new is DocumentStatus.COMPLETED:
            raise ValueError("use mark_completed() to complete a document")
        applied = await self._execute_update(
            _TRANSITION_SQL, (new.value, document_id, expected.value)
        )
        logger.info(
            "document_status_transition",
            document_id=document_id,
            expected=expected.value,
            new=new.value,
            applied=applied,
        )
        return applied

    async def mark_completed(self, document_id: str, chunk_count: int) -> bool:
        processed = _to_text(datetime.now(timezone.utc))
        return await self._execute_update(
            _MARK_COMPLETED_SQL, (processed, chunk_count, document_id)
        )

    async def mark_failed(self, document_id: str, error_message: str) -> bool:
        return await self._execute_update(_MARK_FAILED_SQL, (error_message, document_id))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _execute_update(self, sql: str, params: tuple[object, ...]) -> bool:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(sql, params)
            await db.commit()
            return cursor.rowcount == 1

    async def _fetch_all(self, sql: str, params: list[object]) -> list[Document]:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(sql, params)
            rows = await cursor.fetchall()
        return [_row_to_document(r) for r in rows]

    async def _count_grouped(self, column: str, owner_id: str) -> dict[str, int]:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(
                f"SELECT {column}, COUNT(*) FROM documents WHERE owner_id = ? GROUP BY {column}",
                (owner_id,),
            )
            rows = await cursor.fetchall()
        return {r[0]: r[1] for r in rows}

    def get_provider_name(self) -> str:
        return "sqlite_documents"
