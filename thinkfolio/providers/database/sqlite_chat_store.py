"""SQLite-backed chat session, message and citation store.

Messages are an append-only log ordered by ``created_at`` with the
autoincrement ``sequence`` column breaking ties, so two messages written in
the same instant still read back in insertion order.  An assistant message
and its citations are written in one transaction: a failure leaves neither.
"""

from __future__ import annotations

import uuid

import aiosqlite
import structlog

from thinkfolio.interfaces.chat_store import IChatStore
from thinkfolio.models.chat import ChatMessage, ChatSession, Citation, MessageRole, NewCitation
from thinkfolio.models.processing import utcnow
from thinkfolio.providers.database.sqlite_base import SQLiteProvider, from_db_time, to_db_time
from thinkfolio.utils.errors import NotFoundError, StoreError, ValidationError

logger = structlog.get_logger(logger_name=__name__)

_INSERT_SESSION_SQL = """\
INSERT INTO chat_sessions (id, owner_id, document_id, title, created_at, updated_at)
VALUES (?, ?, ?, ?, ?, ?);
"""

_SELECT_SESSION_SQL = """\
SELECT id, owner_id, document_id, title, created_at, updated_at
FROM chat_sessions
WHERE id = ?;
"""

_LIST_SESSIONS_SQL = """\
SELECT id, owner_id, document_id, title, created_at, updated_at
FROM chat_sessions
WHERE owner_id = ? AND (? IS NULL OR document_id = ?)
ORDER BY updated_at DESC, created_at DESC
LIMIT ? OFFSET ?;
"""

_TOUCH_SESSION_SQL = "UPDATE chat_sessions SET updated_at = ? WHERE id = ?;"

_DELETE_SESSION_SQL = "DELETE FROM chat_sessions WHERE id = ?;"

_INSERT_MESSAGE_SQL = """\
INSERT INTO chat_messages (id, session_id, role, content, created_at)
VALUES (?, ?, ?, ?, ?);
"""

_INSERT_CITATION_SQL = """\
INSERT INTO citations (id, message_id, chunk_id, relevance_score, page_number, excerpt)
VALUES (?, ?, ?, ?, ?, ?);
"""

# Chunks that belong to the session's document; citations may only point here.
_COUNT_SESSION_CHUNKS_SQL = """\
SELECT COUNT(*)
FROM chunks c
JOIN chat_sessions s ON s.document_id = c.document_id
WHERE s.id = ? AND c.id IN ({placeholders});
"""

_LIST_MESSAGES_SQL = """\
SELECT sequence, id, session_id, role, content, created_at
FROM chat_messages
WHERE session_id = ?
ORDER BY created_at ASC, sequence ASC
LIMIT ? OFFSET ?;
"""

_RECENT_MESSAGES_SQL = """\
SELECT sequence, id, session_id, role, content, created_at
FROM chat_messages
WHERE session_id = ?
ORDER BY created_at DESC, sequence DESC
LIMIT ?;
"""

_SELECT_CITATIONS_SQL = """\
SELECT id, message_id, chunk_id, relevance_score, page_number, excerpt
FROM citations
WHERE message_id IN ({placeholders})
ORDER BY relevance_score DESC, rowid ASC;
"""


class SQLiteChatStore(SQLiteProvider, IChatStore):
    """Chat persistence; ownership checks happen in the service layer."""

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def create_session(self, owner_id: str, document_id: str, title: str) -> ChatSession:
        now = utcnow()
        session = ChatSession(
            id=uuid.uuid4().hex,
            owner_id=owner_id,
            document_id=document_id,
            title=title,
            created_at=now,
            updated_at=now,
        )
        try:
            async with self._connect() as db:
                await db.execute(
                    _INSERT_SESSION_SQL,
                    (
                        session.id,
                        session.owner_id,
                        session.document_id,
                        session.title,
                        to_db_time(now),
                        to_db_time(now),
                    ),
                )
                await db.commit()
        except aiosqlite.Error as exc:
            raise StoreError(message=f"Failed to create session: {exc}", provider_name="sqlite") from exc

        logger.info("chat_session_created", session_id=session.id, document_id=document_id)
        return session

    async def get_session(self, session_id: str) -> ChatSession | None:
        try:
            async with self._connect() as db:
                cursor = await db.execute(_SELECT_SESSION_SQL, (session_id,))
                row = await cursor.fetchone()
        except aiosqlite.Error as exc:
            raise StoreError(message=f"Failed to read session: {exc}", provider_name="sqlite") from exc
        return self._row_to_session(row) if row is not None else None

    async def list_sessions(
        self,
        owner_id: str,
        document_id: str | None = None,
        limit: int = 10,
        offset: int = 0,
    ) -> list[ChatSession]:
        try:
            async with self._connect() as db:
                cursor = await db.execute(
                    _LIST_SESSIONS_SQL,
                    (owner_id, document_id, document_id, limit, offset),
                )
                rows = await cursor.fetchall()
        except aiosqlite.Error as exc:
            raise StoreError(message=f"Failed to list sessions: {exc}", provider_name="sqlite") from exc
        return [self._row_to_session(row) for row in rows]

    async def delete_session(self, session_id: str) -> bool:
        try:
            async with self._connect() as db:
                cursor = await db.execute(_DELETE_SESSION_SQL, (session_id,))
                await db.commit()
                deleted = cursor.rowcount > 0
        except aiosqlite.Error as exc:
            raise StoreError(message=f"Failed to delete session: {exc}", provider_name="sqlite") from exc
        return deleted

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def add_message(
        self,
        session_id: str,
        role: MessageRole,
        content: str,
        citations: list[NewCitation] | None = None,
    ) -> ChatMessage:
        """Append a message and its citations atomically.

        Raises
        ------
        NotFoundError
            If the session does not exist.
        ValidationError
            If a citation points at a chunk outside the session's document.
        StoreError
            If SQLite rejects the write.
        """
        citations = citations or []
        message_id = uuid.uuid4().hex
        now = utcnow()

        try:
            async with self._connect() as db:
                cursor = await db.execute(_SELECT_SESSION_SQL, (session_id,))
                if await cursor.fetchone() is None:
                    raise NotFoundError(message=f"Chat session {session_id} not found")

                if citations:
                    chunk_ids = sorted({c.chunk_id for c in citations})
                    placeholders = ", ".join("?" for _ in chunk_ids)
                    cursor = await db.execute(
                        _COUNT_SESSION_CHUNKS_SQL.format(placeholders=placeholders),
                        (session_id, *chunk_ids),
                    )
                    row = await cursor.fetchone()
                    if row is None or row[0] != len(chunk_ids):
                        raise ValidationError(
                            message="Citations must reference chunks of the session's document",
                        )

                try:
                    cursor = await db.execute(
                        _INSERT_MESSAGE_SQL,
                        (message_id, session_id, role.value, content, to_db_time(now)),
                    )
                    sequence = cursor.lastrowid
                    stored_citations = [
                        Citation(
                            id=uuid.uuid4().hex,
                            message_id=message_id,
                            chunk_id=c.chunk_id,
                            relevance_score=c.relevance_score,
                            page_number=c.page_number,
                            excerpt=c.excerpt,
                        )
                        for c in citations
                    ]
                    if stored_citations:
                        await db.executemany(
                            _INSERT_CITATION_SQL,
                            [
                                (
                                    c.id,
                                    c.message_id,
                                    c.chunk_id,
                                    c.relevance_score,
                                    c.page_number,
                                    c.excerpt,
                                )
                                for c in stored_citations
                            ],
                        )
                    await db.execute(_TOUCH_SESSION_SQL, (to_db_time(now), session_id))
                    await db.commit()
                except aiosqlite.Error:
                    await db.rollback()
                    raise
        except aiosqlite.Error as exc:
            raise StoreError(message=f"Failed to store message: {exc}", provider_name="sqlite") from exc

        return ChatMessage(
            id=message_id,
            session_id=session_id,
            role=role,
            content=content,
            created_at=now,
            sequence=sequence or 0,
            citations=stored_citations,
        )

    async def list_messages(self, session_id: str, limit: int = 50, offset: int = 0) -> list[ChatMessage]:
        try:
            async with self._connect() as db:
                cursor = await db.execute(_LIST_MESSAGES_SQL, (session_id, limit, offset))
                rows = await cursor.fetchall()
                citations = await self._citations_for(db, [row["id"] for row in rows])
        except aiosqlite.Error as exc:
            raise StoreError(message=f"Failed to list messages: {exc}", provider_name="sqlite") from exc
        return [self._row_to_message(row, citations.get(row["id"], [])) for row in rows]

    async def recent_messages(self, session_id: str, limit: int) -> list[ChatMessage]:
        if limit <= 0:
            return []
        try:
            async with self._connect() as db:
                cursor = await db.execute(_RECENT_MESSAGES_SQL, (session_id, limit))
                rows = list(reversed(await cursor.fetchall()))
                citations = await self._citations_for(db, [row["id"] for row in rows])
        except aiosqlite.Error as exc:
            raise StoreError(message=f"Failed to read history: {exc}", provider_name="sqlite") from exc
        return [self._row_to_message(row, citations.get(row["id"], [])) for row in rows]

    # ------------------------------------------------------------------
    # Row helpers
    # ------------------------------------------------------------------

    @staticmethod
    async def _citations_for(db: aiosqlite.Connection, message_ids: list[str]) -> dict[str, list[Citation]]:
        if not message_ids:
            return {}
        placeholders = ", ".join("?" for _ in message_ids)
        cursor = await db.execute(
            _SELECT_CITATIONS_SQL.format(placeholders=placeholders),
            message_ids,
        )
        grouped: dict[str, list[Citation]] = {}
        for row in await cursor.fetchall():
            grouped.setdefault(row["message_id"], []).append(
                Citation(
                    id=row["id"],
                    message_id=row["message_id"],
                    chunk_id=row["chunk_id"],
                    relevance_score=row["relevance_score"],
                    page_number=row["page_number"],
                    excerpt=row["excerpt"],
                )
            )
        return grouped

    @staticmethod
    def _row_to_session(row: aiosqlite.Row) -> ChatSession:
        return ChatSession(
            id=row["id"],
            owner_id=row["owner_id"],
            document_id=row["document_id"],
            title=row["title"],
            created_at=from_db_time(row["created_at"]),
            updated_at=from_db_time(row["updated_at"]),
        )

    @staticmethod
    def _row_to_message(row: aiosqlite.Row, citations: list[Citation]) -> ChatMessage:
        return ChatMessage(
            id=row["id"],
            session_id=row["session_id"],
            role=MessageRole(row["role"]),
            content=row["content"],
            created_at=from_db_time(row["created_at"]),
            sequence=row["sequence"],
            citations=citations,
        )
