"""Pydantic request/response schemas for the ThinkFolio API.

Request schemas end with ``Request``, response schemas with ``Response``.
Response models are built from domain models with ``from_*`` helpers so
internal fields (embeddings, owner ids, storage paths) never leave the
service.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from thinkfolio.models.chat import ChatMessage, ChatSession, ChatStreamEvent, Citation
from thinkfolio.models.document import Document
from thinkfolio.models.processing import ProcessingStatus
from thinkfolio.models.rag import DocumentStats, IngestionResult, RetrievalMode, RetrievedChunk


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str | None = None


class HealthResponse(BaseModel):
    status: str
    version: str
    providers: dict[str, Any]


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


class CreateFromUrlRequest(BaseModel):
    """Import a PDF from a public URL."""

    url: str = Field(min_length=1, description="http(s) URL of the document.")
    title: str = Field(min_length=1)


class DocumentResponse(BaseModel):
    id: str
    title: str
    source_kind: str
    source_url: str | None = None
    content_type: str
    file_size: int
    page_count: int
    status: str
    processing_error: str | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_document(cls, document: Document) -> DocumentResponse:
        return cls(
            id=document.id,
            title=document.title,
            source_kind=document.source_kind.value,
            source_url=document.source_url,
            content_type=document.content_type,
            file_size=document.file_size,
            page_count=document.page_count,
            status=document.status.value,
            processing_error=document.processing_error,
            created_at=document.created_at,
            updated_at=document.updated_at,
        )


class DocumentListResponse(BaseModel):
    documents: list[DocumentResponse]
    limit: int
    offset: int


class ProcessingStatusResponse(BaseModel):
    """Polling view of a document's ingestion."""

    document_id: str
    status: str
    chunks_created: int = 0
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error: str | None = None
    processing_time: float | None = Field(default=None, description="Seconds, once finished.")

    @classmethod
    def from_status(cls, status: ProcessingStatus) -> ProcessingStatusResponse:
        return cls(
            document_id=status.document_id,
            status=status.state.value,
            chunks_created=status.chunks_created,
            started_at=status.started_at,
            completed_at=status.completed_at,
            error=status.error,
            processing_time=status.processing_time,
        )


class DocumentStatsResponse(BaseModel):
    """Chunk statistics for one document."""

    document_id: str
    status: str
    page_count: int
    chunk_count: int
    first_page: int | None = None
    last_page: int | None = None
    pages_covered: int
    chunk_types: dict[str, int]
    average_chunk_chars: float
    chunks_with_equations: int
    chunks_with_citations: int

    @classmethod
    def from_stats(cls, stats: DocumentStats) -> DocumentStatsResponse:
        chunks = stats.chunks
        return cls(
            document_id=stats.document_id,
            status=stats.status.value,
            page_count=stats.page_count,
            chunk_count=chunks.chunk_count,
            first_page=chunks.first_page,
            last_page=chunks.last_page,
            pages_covered=chunks.pages_covered,
            chunk_types={t.value: n for t, n in chunks.chunk_types.items()},
            average_chunk_chars=chunks.average_chunk_chars,
            chunks_with_equations=chunks.chunks_with_equations,
            chunks_with_citations=chunks.chunks_with_citations,
        )


class IngestionResponse(BaseModel):
    document_id: str
    status: str = "completed"
    chunks_created: int
    processing_time: float

    @classmethod
    def from_result(cls, result: IngestionResult) -> IngestionResponse:
        return cls(
            document_id=result.document_id,
            chunks_created=result.chunks_created,
            processing_time=result.processing_time,
        )


# ---------------------------------------------------------------------------
# Retrieval and insights
# ---------------------------------------------------------------------------


class QueryRequest(BaseModel):
    question: str
    k: int | None = Field(default=None, description="Number of chunks; defaults to 5, max 20.")
    mode: RetrievalMode = Field(
        default=RetrievalMode.SEMANTIC,
        description="'semantic' (cosine only) or 'hybrid' (cosine merged with keyword matches).",
    )


class RetrievedChunkResponse(BaseModel):
    chunk_id: str
    chunk_index: int
    page_number: int
    chunk_type: str
    content: str
    score: float
    match_type: str

    @classmethod
    def from_retrieved(cls, result: RetrievedChunk) -> RetrievedChunkResponse:
        return cls(
            chunk_id=result.chunk.id,
            chunk_index=result.chunk.chunk_index,
            page_number=result.chunk.page_number,
            chunk_type=result.chunk.chunk_type.value,
            content=result.chunk.content,
            score=result.score,
            match_type=result.match_type,
        )


class QueryResponse(BaseModel):
    document_id: str
    question: str
    results: list[RetrievedChunkResponse]


class SummaryResponse(BaseModel):
    document_id: str
    summary: str


class InsightsResponse(BaseModel):
    document_id: str
    insights: list[str]


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------


class CreateSessionRequest(BaseModel):
    document_id: str = Field(min_length=1)
    title: str | None = None


class SessionResponse(BaseModel):
    id: str
    document_id: str
    title: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_session(cls, session: ChatSession) -> SessionResponse:
        return cls(
            id=session.id,
            document_id=session.document_id,
            title=session.title,
            created_at=session.created_at,
            updated_at=session.updated_at,
        )


class SessionListResponse(BaseModel):
    sessions: list[SessionResponse]
    limit: int
    offset: int


class CitationResponse(BaseModel):
    chunk_id: str
    relevance_score: float
    page_number: int
    excerpt: str | None = None

    @classmethod
    def from_citation(cls, citation: Citation) -> CitationResponse:
        return cls(
            chunk_id=citation.chunk_id,
            relevance_score=citation.relevance_score,
            page_number=citation.page_number,
            excerpt=citation.excerpt,
        )


class MessageResponse(BaseModel):
    id: str
    role: str
    content: str
    created_at: datetime
    citations: list[CitationResponse] = Field(default_factory=list)

    @classmethod
    def from_message(cls, message: ChatMessage) -> MessageResponse:
        return cls(
            id=message.id,
            role=message.role.value,
            content=message.content,
            created_at=message.created_at,
            citations=[CitationResponse.from_citation(c) for c in message.citations],
        )


class MessageListResponse(BaseModel):
    messages: list[MessageResponse]
    limit: int
    offset: int


class PostMessageRequest(BaseModel):
    content: str


class ChatTurnResponse(BaseModel):
    user_message: MessageResponse
    assistant_message: MessageResponse


class ChatStreamEventResponse(BaseModel):
    """Payload of one ``data:`` line of a streamed chat turn."""

    type: str
    text: str | None = None
    message: MessageResponse | None = None
    detail: str | None = None

    @classmethod
    def from_event(cls, event: ChatStreamEvent) -> ChatStreamEventResponse:
        return cls(
            type=event.type,
            text=event.text,
            message=MessageResponse.from_message(event.message) if event.message else None,
            detail=event.detail,
        )
