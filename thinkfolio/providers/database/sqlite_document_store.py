"""SQLite-backed document store.

A document row and its ``pending`` processing-status row are inserted in
the same transaction, so every document has exactly one status record from
the moment it exists.  Reads join the status back in so callers always see
the current ``status`` and ``processing_error``.
"""

from __future__ import annotations

import aiosqlite
import structlog

from thinkfolio.interfaces.document_store import IDocumentStore
from thinkfolio.models.document import Document, SourceKind
from thinkfolio.models.processing import ProcessingState, utcnow
from thinkfolio.providers.database.sqlite_base import SQLiteProvider, from_db_time, to_db_time
from thinkfolio.utils.errors import StoreError

logger = structlog.get_logger(logger_name=__name__)

_INSERT_DOCUMENT_SQL = """\
INSERT INTO documents (
    id, owner_id, title, source_kind, source_url, content_type,
    storage_path, file_size, page_count, created_at, updated_at
)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
"""

_INSERT_PENDING_STATUS_SQL = """\
INSERT INTO processing_status (document_id, status, updated_at)
VALUES (?, 'pending', ?);
"""

_SELECT_DOCUMENT_COLUMNS = """\
SELECT d.id, d.owner_id, d.title, d.source_kind, d.source_url, d.content_type,
       d.storage_path, d.file_size, d.page_count, d.created_at, d.updated_at,
       s.status, s.error
FROM documents d
LEFT JOIN processing_status s ON s.document_id = d.id
"""

_SELECT_DOCUMENT_SQL = _SELECT_DOCUMENT_COLUMNS + "WHERE d.id = ?;"

_LIST_FOR_OWNER_SQL = (
    _SELECT_DOCUMENT_COLUMNS
    + "WHERE d.owner_id = ?\nORDER BY d.created_at DESC, d.id\nLIMIT ? OFFSET ?;"
)

_UPDATE_PAGE_COUNT_SQL = """\
UPDATE documents SET page_count = ?, updated_at = ? WHERE id = ?;
"""

_DELETE_DOCUMENT_SQL = "DELETE FROM documents WHERE id = ?;"


class SQLiteDocumentStore(SQLiteProvider, IDocumentStore):
    """Document persistence with cascading delete."""

    async def create(self, document: Document) -> Document:
        """Insert *document* and its pending status atomically."""
        now = to_db_time(utcnow())
        try:
            async with self._connect() as db:
                await db.execute(
                    _INSERT_DOCUMENT_SQL,
                    (
                        document.id,
                        document.owner_id,
                        document.title,
                        document.source_kind.value,
                        document.source_url,
                        document.content_type,
                        document.storage_path,
                        document.file_size,
                        document.page_count,
                        to_db_time(document.created_at),
                        to_db_time(document.updated_at),
                    ),
                )
                await db.execute(_INSERT_PENDING_STATUS_SQL, (document.id, now))
                await db.commit()
        except aiosqlite.Error as exc:
            raise StoreError(message=f"Failed to create document: {exc}", provider_name="sqlite") from exc

        logger.info("document_created", document_id=document.id, owner_id=document.owner_id)
        return document.model_copy(update={"status": ProcessingState.PENDING, "processing_error": None})

    async def get(self, document_id: str) -> Document | None:
        try:
            async with self._connect() as db:
                cursor = await db.execute(_SELECT_DOCUMENT_SQL, (document_id,))
                row = await cursor.fetchone()
        except aiosqlite.Error as exc:
            raise StoreError(message=f"Failed to read document: {exc}", provider_name="sqlite") from exc
        return self._row_to_document(row) if row is not None else None

    async def list_for_owner(self, owner_id: str, limit: int = 20, offset: int = 0) -> list[Document]:
        try:
            async with self._connect() as db:
                cursor = await db.execute(_LIST_FOR_OWNER_SQL, (owner_id, limit, offset))
                rows = await cursor.fetchall()
        except aiosqlite.Error as exc:
            raise StoreError(message=f"Failed to list documents: {exc}", provider_name="sqlite") from exc
        return [self._row_to_document(row) for row in rows]

    async def update_page_count(self, document_id: str, page_count: int) -> None:
        try:
            async with self._connect() as db:
                await db.execute(
                    _UPDATE_PAGE_COUNT_SQL,
                    (page_count, to_db_time(utcnow()), document_id),
                )
                await db.commit()
        except aiosqlite.Error as exc:
            raise StoreError(message=f"Failed to update page count: {exc}", provider_name="sqlite") from exc

    async def delete(self, document_id: str) -> bool:
        try:
            async with self._connect() as db:
                cursor = await db.execute(_DELETE_DOCUMENT_SQL, (document_id,))
                await db.commit()
                deleted = cursor.rowcount > 0
        except aiosqlite.Error as exc:
            raise StoreError(message=f"Failed to delete document: {exc}", provider_name="sqlite") from exc

        if deleted:
            logger.info("document_deleted", document_id=document_id)
        return deleted

    @staticmethod
    def _row_to_document(row: aiosqlite.Row) -> Document:
        return Document(
            id=row["id"],
            owner_id=row["owner_id"],
            title=row["title"],
            source_kind=SourceKind(row["source_kind"]),
            source_url=row["source_url"],
            content_type=row["content_type"],
            storage_path=row["storage_path"],
            file_size=row["file_size"],
            page_count=row["page_count"],
            status=ProcessingState(row["status"] or ProcessingState.PENDING.value),
            processing_error=row["error"],
            created_at=from_db_time(row["created_at"]),
            updated_at=from_db_time(row["updated_at"]),
        )
