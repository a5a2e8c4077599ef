"""SQLite persistence for documents, processing status, chunks and chat.

All stores share one database file and one schema (see
:mod:`thinkfolio.providers.database.sqlite_base`), so foreign keys can
cascade a document delete down to its chunks, status and chat sessions.
"""

from thinkfolio.providers.database.sqlite_chat_store import SQLiteChatStore
from thinkfolio.providers.database.sqlite_chunk_store import SQLiteChunkStore
from thinkfolio.providers.database.sqlite_document_store import SQLiteDocumentStore
from thinkfolio.providers.database.sqlite_status_store import SQLiteStatusStore

__all__ = [
    "SQLiteChatStore",
    "SQLiteChunkStore",
    "SQLiteDocumentStore",
    "SQLiteStatusStore",
]
