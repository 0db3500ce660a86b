"""SQLite-backed query history store.

Persists :class:`~src.models.query.QueryRecord` rows next to the document
table using ``aiosqlite``.  A record is inserted as PROCESSING and resolved
by one conditional UPDATE; a second resolve matches no row, so history is
written exactly once.  ``source_files`` is stored as a JSON array.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite
import structlog

from src.interfaces.query_store import IQueryStore
from src.models.query import QueryOutcome, QueryRecord, QueryStatistics, QueryStatus

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/knowledge_base.db")

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS queries (
    id                TEXT    PRIMARY KEY,
    question          TEXT    NOT NULL,
    owner_id          TEXT    NOT NULL,
    category          TEXT,
    session_id        TEXT,
    use_rag           INTEGER NOT NULL DEFAULT 1,
    answer            TEXT,
    query_time        TEXT    NOT NULL,
    status            TEXT    NOT NULL,
    response_time_ms  INTEGER,
    source_documents  INTEGER,
    similarity_score  REAL,
    source_files      TEXT    NOT NULL DEFAULT '[]',
    error_message     TEXT
);
"""

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_queries_owner_time ON queries(owner_id, query_time);",
    "CREATE INDEX IF NOT EXISTS idx_queries_session ON queries(owner_id, session_id);",
    "CREATE INDEX IF NOT EXISTS idx_queries_time ON queries(query_time);",
]

_COLUMNS = (
    "id, question, owner_id, category, session_id, use_rag, answer, query_time, "
    "status, response_time_ms, source_documents, similarity_score, source_files, "
    "error_message"
)

_INSERT_SQL = f"""\
INSERT INTO queries ({_COLUMNS})
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
"""

_RESOLVE_SQL = """\
UPDATE queries
SET status = ?, response_time_ms = ?, answer = ?, source_documents = ?,
    similarity_score = ?, source_files = ?, error_message = ?
WHERE id = ? AND status = 'PROCESSING';
"""

_STATISTICS_SQL = """\
SELECT COUNT(*)                                              AS total,
       SUM(CASE WHEN status = 'SUCCESS' THEN 1 ELSE 0 END)   AS success,
       SUM(CASE WHEN status = 'ERROR'   THEN 1 ELSE 0 END)   AS error,
       SUM(CASE WHEN status = 'TIMEOUT' THEN 1 ELSE 0 END)   AS timeout,
       AVG(CASE WHEN status = 'SUCCESS' THEN response_time_ms END) AS avg_ms
FROM queries
WHERE owner_id = ?;
"""

_RECENT_QUESTIONS_SQL = """\
SELECT question, MAX(query_time) AS last_asked
FROM queries
GROUP BY question
ORDER BY last_asked DESC
LIMIT ?;
"""


def _to_text(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _like_pattern(keyword: str) -> str:
    escaped = keyword.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _row_to_record(row: aiosqlite.Row) -> QueryRecord:
    return QueryRecord(
        id=row["id"],
        question=row["question"],
        owner_id=row["owner_id"],
        category=row["category"],
        session_id=row["session_id"],
        use_rag=bool(row["use_rag"]),
        answer=row["answer"],
        query_time=datetime.fromisoformat(row["query_time"]),
        status=QueryStatus(row["status"]),
        response_time_ms=row["response_time_ms"],
        source_documents=row["source_documents"],
        similarity_score=row["similarity_score"],
        source_files=json.loads(row["source_files"] or "[]"),
        error_message=row["error_message"],
    )


class SQLiteQueryStore(IQueryStore):
    """SQLite-backed query history persistence."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        """Create the queries table and indices if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(_CREATE_TABLE_SQL)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("query_db_initialized", path=str(self._db_path))

    async def create(self, record: QueryRecord) -> QueryRecord:
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(
                _INSERT_SQL,
                (
                    record.id,
                    record.question,
                    record.owner_id,
                    record.category,
                    record.session_id,
                    int(record.use_rag),
                    record.answer,
                    _to_text(record.query_time),
                    record.status.value,
                    record.response_time_ms,
                    record.source_documents,
                    record.similarity_score,
                    json.dumps(record.source_files),
                    record.error_message,
                ),
            )
            await db.commit()
        return record

    async def resolve(self, query_id: str, outcome: QueryOutcome) -> bool:
        if outcome.status is QueryStatus.PROCESSING:
            raise ValueError("a query cannot be resolved to PROCESSING")
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(
                _RESOLVE_SQL,
                (
                    outcome.status.value,
                    outcome.response_time_ms,
                    outcome.answer,
                    outcome.source_documents,
                    outcome.similarity_score,
                    json.dumps(outcome.source_files),
                    outcome.error_message,
                    query_id,
                ),
            )
            await db.commit()
            applied = cursor.rowcount == 1
        if not applied:
            logger.warning("query_already_resolved", query_id=query_id)
        return applied

    async def get(self, query_id: str) -> QueryRecord | None:
        records = await self._fetch_all(
            f"SELECT {_COLUMNS} FROM queries WHERE id = ?", [query_id]
        )
        return records[0] if records else None

    async def list_by_owner(self, owner_id: str, limit: int) -> list[QueryRecord]:
        return await self._fetch_all(
            f"SELECT {_COLUMNS} FROM queries WHERE owner_id = ? "
            "ORDER BY query_time DESC, rowid DESC LIMIT ?",
            [owner_id, limit],
        )

    async def list_by_session(self, owner_id: str, session_id: str) -> list[QueryRecord]:
        return await self._fetch_all(
            f"SELECT {_COLUMNS} FROM queries WHERE owner_id = ? AND session_id = ? "
            "ORDER BY query_time ASC, rowid ASC",
            [owner_id, session_id],
        )

    async def search(self, owner_id: str, keyword: str) -> list[QueryRecord]:
        pattern = _like_pattern(keyword)
        return await self._fetch_all(
            f"SELECT {_COLUMNS} FROM queries WHERE owner_id = ? AND ("
            "LOWER(question) LIKE ? ESCAPE '\\' "
            "OR LOWER(COALESCE(answer, '')) LIKE ? ESCAPE '\\') "
            "ORDER BY query_time DESC, rowid DESC",
            [owner_id, pattern, pattern],
        )

    async def statistics(self, owner_id: str) -> QueryStatistics:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(_STATISTICS_SQL, (owner_id,))
            totals = await cursor.fetchone()
            cursor = await db.execute(
                "SELECT category, COUNT(*) AS n FROM queries "
                "WHERE owner_id = ? AND category IS NOT NULL GROUP BY category",
                (owner_id,),
            )
            by_category = {r["category"]: r["n"] for r in await cursor.fetchall()}

        return QueryStatistics(
            total_queries=totals["total"] or 0,
            success_queries=totals["success"] or 0,
            error_queries=totals["error"] or 0,
            timeout_queries=totals["timeout"] or 0,
            avg_response_time_ms=round(totals["avg_ms"] or 0.0, 2),
            by_category=by_category,
        )

    async def delete_before(self, cutoff: datetime) -> int:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(
                "DELETE FROM queries WHERE query_time < ?", (_to_text(cutoff),)
            )
            await db.commit()
            removed = cursor.rowcount
        logger.info("query_history_cleanup", cutoff=_to_text(cutoff), removed=removed)
        return removed

    async def recent_questions(self, limit: int) -> list[str]:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(_RECENT_QUESTIONS_SQL, (limit,))
            rows = await cursor.fetchall()
        return [r[0] for r in rows]

    async def _fetch_all(self, sql: str, params: list[object]) -> list[QueryRecord]:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(sql, params)
            rows = await cursor.fetchall()
        return [_row_to_record(r) for r in rows]

    def get_provider_name(self) -> str:
        return "sqlite_queries"
