"""Pydantic data models for documents, chunks, processing status and chat."""

from thinkfolio.models.chat import (
    AnswerResult,
    ChatMessage,
    ChatSession,
    ChatStreamEvent,
    Citation,
    MessageRole,
    NewCitation,
)
from thinkfolio.models.document import Document, SourceKind
from thinkfolio.models.processing import (
    CompletedStatus,
    FailedStatus,
    PendingStatus,
    ProcessingRun,
    ProcessingState,
    ProcessingStatus,
    parse_status,
)
from thinkfolio.models.rag import (
    Chunk,
    ChunkCandidate,
    ChunkStats,
    ChunkType,
    DocumentStats,
    ExtractedText,
    FetchedDocument,
    IngestionResult,
    NewChunk,
    RetrievalMode,
    RetrievedChunk,
)

__all__ = [
    "AnswerResult",
    "ChatMessage",
    "ChatSession",
    "ChatStreamEvent",
    "Chunk",
    "ChunkCandidate",
    "ChunkStats",
    "ChunkType",
    "Citation",
    "CompletedStatus",
    "Document",
    "DocumentStats",
    "ExtractedText",
    "FailedStatus",
    "FetchedDocument",
    "IngestionResult",
    "MessageRole",
    "NewChunk",
    "NewCitation",
    "PendingStatus",
    "ProcessingRun",
    "ProcessingState",
    "ProcessingStatus",
    "RetrievalMode",
    "RetrievedChunk",
    "SourceKind",
    "parse_status",
]
