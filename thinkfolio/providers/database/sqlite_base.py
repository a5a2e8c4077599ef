"""Shared SQLite schema and connection handling for the relational stores.

Documents, processing status, chunks and chat data live in one SQLite file
(``data/thinkfolio.db`` by default) so that deleting a document cascades to
everything that hangs off it.  Each store subclasses :class:`SQLiteProvider`;
calling ``initialize()`` on any of them creates the whole schema, and doing
so repeatedly is harmless.

Foreign keys are off by default in SQLite, so every connection turns them
on before doing anything else.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path

import aiosqlite
import structlog

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/thinkfolio.db")

_CREATE_DOCUMENTS_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS documents (
    id           TEXT    PRIMARY KEY,
    owner_id     TEXT    NOT NULL,
    title        TEXT    NOT NULL,
    source_kind  TEXT    NOT NULL,
    source_url   TEXT,
    content_type TEXT    NOT NULL,
    storage_path TEXT,
    file_size    INTEGER NOT NULL DEFAULT 0,
    page_count   INTEGER NOT NULL DEFAULT 0,
    created_at   TEXT    NOT NULL,
    updated_at   TEXT    NOT NULL
);
"""

_CREATE_STATUS_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS processing_status (
    document_id    TEXT    PRIMARY KEY REFERENCES documents(id) ON DELETE CASCADE,
    status         TEXT    NOT NULL
                   CHECK (status IN ('pending', 'processing', 'completed', 'failed')),
    started_at     TEXT,
    completed_at   TEXT,
    chunks_created INTEGER NOT NULL DEFAULT 0,
    error          TEXT,
    updated_at     TEXT    NOT NULL
);
"""

_CREATE_CHUNKS_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS chunks (
    id            TEXT    PRIMARY KEY,
    document_id   TEXT    NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
    chunk_index   INTEGER NOT NULL,
    page_number   INTEGER NOT NULL,
    content       TEXT    NOT NULL,
    embedding     BLOB,
    embedding_dim INTEGER,
    chunk_type    TEXT    NOT NULL DEFAULT 'body',
    start_index   INTEGER NOT NULL DEFAULT 0,
    end_index     INTEGER NOT NULL DEFAULT 0,
    keyword_count INTEGER NOT NULL DEFAULT 0,
    has_equations INTEGER NOT NULL DEFAULT 0,
    has_citations INTEGER NOT NULL DEFAULT 0,
    created_at    TEXT    NOT NULL,
    UNIQUE (document_id, chunk_index)
);
"""

_CREATE_SESSIONS_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS chat_sessions (
    id          TEXT PRIMARY KEY,
    owner_id    TEXT NOT NULL,
    document_id TEXT NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
    title       TEXT NOT NULL,
    created_at  TEXT NOT NULL,
    updated_at  TEXT NOT NULL
);
"""

_CREATE_MESSAGES_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS chat_messages (
    sequence   INTEGER PRIMARY KEY AUTOINCREMENT,
    id         TEXT    NOT NULL UNIQUE,
    session_id TEXT    NOT NULL REFERENCES chat_sessions(id) ON DELETE CASCADE,
    role       TEXT    NOT NULL CHECK (role IN ('user', 'assistant', 'system')),
    content    TEXT    NOT NULL,
    created_at TEXT    NOT NULL
);
"""

_CREATE_CITATIONS_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS citations (
    id              TEXT    PRIMARY KEY,
    message_id      TEXT    NOT NULL REFERENCES chat_messages(id) ON DELETE CASCADE,
    chunk_id        TEXT    NOT NULL REFERENCES chunks(id) ON DELETE CASCADE,
    relevance_score REAL    NOT NULL,
    page_number     INTEGER NOT NULL,
    excerpt         TEXT
);
"""

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_documents_owner ON documents(owner_id, created_at);",
    "CREATE INDEX IF NOT EXISTS idx_chunks_document ON chunks(document_id, chunk_index);",
    "CREATE INDEX IF NOT EXISTS idx_sessions_owner ON chat_sessions(owner_id, updated_at);",
    "CREATE INDEX IF NOT EXISTS idx_messages_session ON chat_messages(session_id, created_at);",
    "CREATE INDEX IF NOT EXISTS idx_citations_message ON citations(message_id);",
]


class SQLiteProvider:
    """Base class holding the database path and connection helper."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    @property
    def db_path(self) -> Path:
        return self._db_path

    async def initialize(self) -> None:
        """Create every table and index if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with self._connect() as db:
            await db.execute(_CREATE_DOCUMENTS_TABLE_SQL)
            await db.execute(_CREATE_STATUS_TABLE_SQL)
            await db.execute(_CREATE_CHUNKS_TABLE_SQL)
            await db.execute(_CREATE_SESSIONS_TABLE_SQL)
            await db.execute(_CREATE_MESSAGES_TABLE_SQL)
            await db.execute(_CREATE_CITATIONS_TABLE_SQL)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("sqlite_schema_initialized", path=str(self._db_path), store=type(self).__name__)

    @asynccontextmanager
    async def _connect(self) -> AsyncIterator[aiosqlite.Connection]:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            await db.execute("PRAGMA foreign_keys = ON")
            yield db


def to_db_time(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def from_db_time(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None
