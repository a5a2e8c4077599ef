"""SQLite-backed processing status store.

One row per document in ``processing_status``.  Updates are conditional on
the current ``status`` column, which makes every transition a single
atomic compare-and-set even when several requests hit the same document.
"""

from __future__ import annotations

import aiosqlite
import structlog

from thinkfolio.interfaces.status_store import IStatusStore
from thinkfolio.models.processing import (
    ProcessingState,
    ProcessingStatus,
    parse_status,
    utcnow,
)
from thinkfolio.providers.database.sqlite_base import SQLiteProvider, from_db_time, to_db_time
from thinkfolio.utils.errors import StoreError

logger = structlog.get_logger(logger_name=__name__)

_SELECT_STATUS_SQL = """\
SELECT document_id, status, started_at, completed_at, chunks_created, error
FROM processing_status
WHERE document_id = ?;
"""

_TRANSITION_SQL = """\
UPDATE processing_status
SET status = ?, started_at = ?, completed_at = ?, chunks_created = ?, error = ?, updated_at = ?
WHERE document_id = ? AND status = ?;
"""


class SQLiteStatusStore(SQLiteProvider, IStatusStore):
    """Processing status persistence with conditional updates."""

    async def get(self, document_id: str) -> ProcessingStatus | None:
        try:
            async with self._connect() as db:
                cursor = await db.execute(_SELECT_STATUS_SQL, (document_id,))
                row = await cursor.fetchone()
        except aiosqlite.Error as exc:
            raise StoreError(message=f"Failed to read status: {exc}", provider_name="sqlite") from exc

        if row is None:
            return None
        return self._row_to_status(row)

    async def transition(self, expected: ProcessingState, new_status: ProcessingStatus) -> bool:
        try:
            async with self._connect() as db:
                cursor = await db.execute(
                    _TRANSITION_SQL,
                    (
                        new_status.state.value,
                        to_db_time(new_status.started_at),
                        to_db_time(new_status.completed_at),
                        new_status.chunks_created,
                        new_status.error,
                        to_db_time(utcnow()),
                        new_status.document_id,
                        expected.value,
                    ),
                )
                await db.commit()
                applied = cursor.rowcount == 1
        except aiosqlite.Error as exc:
            raise StoreError(message=f"Failed to update status: {exc}", provider_name="sqlite") from exc

        if not applied:
            logger.warning(
                "status_transition_rejected",
                document_id=new_status.document_id,
                expected=expected.value,
                target=new_status.state.value,
            )
        return applied

    @staticmethod
    def _row_to_status(row: aiosqlite.Row) -> ProcessingStatus:
        return parse_status(
            {
                "document_id": row["document_id"],
                "status": row["status"],
                "started_at": from_db_time(row["started_at"]),
                "completed_at": from_db_time(row["completed_at"]),
                "chunks_created": row["chunks_created"],
                "error": row["error"],
            }
        )
