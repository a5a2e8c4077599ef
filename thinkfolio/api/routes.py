"""FastAPI routes for ThinkFolio.

Endpoint                                   Method  Description
-------------------------------------------------------------------------
/api/v1/health                             GET     Health + provider status
/api/v1/documents                          POST    Upload a PDF / text file
/api/v1/documents                          GET     List the caller's documents
/api/v1/documents/from-url                 POST    Import a PDF from a URL
/api/v1/documents/{id}                     GET     One document
/api/v1/documents/{id}                     DELETE  Delete document + everything under it
/api/v1/documents/{id}/process             POST    Run ingestion to completion
/api/v1/documents/{id}/reprocess           POST    Reset and ingest again
/api/v1/documents/{id}/status              GET     Poll processing status
/api/v1/documents/{id}/stats               GET     Chunk count, page spread, chunk types
/api/v1/documents/{id}/query               POST    Ranked chunks for a question
/api/v1/documents/{id}/summary             POST    Structured summary
/api/v1/documents/{id}/insights            POST    Key insights as bullets
/api/v1/sessions                           POST    Start a chat about a document
/api/v1/sessions                           GET     List chat sessions
/api/v1/sessions/{id}                      GET     One session
/api/v1/sessions/{id}                      DELETE  Delete a session
/api/v1/sessions/{id}/messages             GET     Page through messages
/api/v1/sessions/{id}/messages             POST    Ask a question (chat turn)
/api/v1/sessions/{id}/messages/stream      POST    Ask a question, reply as server-sent events

The caller is identified by the ``X-User-Id`` header.  Services are read
from ``app.state`` (populated by ``main._build_all``) through
``Annotated[..., Depends(...)]`` aliases.  Application errors propagate to
``ErrorHandlingMiddleware``, which maps them onto status codes.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Form, Header, HTTPException, Query, Request, Response, UploadFile
from fastapi.responses import StreamingResponse

from thinkfolio import __version__
from thinkfolio.api.schemas import (
    ChatStreamEventResponse,
    ChatTurnResponse,
    CreateFromUrlRequest,
    CreateSessionRequest,
    DocumentListResponse,
    DocumentResponse,
    DocumentStatsResponse,
    HealthResponse,
    IngestionResponse,
    InsightsResponse,
    MessageListResponse,
    MessageResponse,
    PostMessageRequest,
    ProcessingStatusResponse,
    QueryRequest,
    QueryResponse,
    RetrievedChunkResponse,
    SessionListResponse,
    SessionResponse,
    SummaryResponse,
)
from thinkfolio.models.chat import ChatStreamEvent
from thinkfolio.services.chat_session_manager import ChatSessionManager
from thinkfolio.services.document_service import DocumentService
from thinkfolio.services.insight_service import InsightService
from thinkfolio.services.retrieval_engine import RetrievalEngine
from thinkfolio.utils.errors import StoreError, ThinkFolioError, ValidationError
from thinkfolio.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

router = APIRouter(prefix="/api/v1")

_MAX_UPLOAD_SIZE = 10 * 1024 * 1024
_UPLOAD_CHUNK_SIZE = 64 * 1024

DOCUMENTS_PER_PAGE = 20
SESSIONS_PER_PAGE = 10
MESSAGES_PER_PAGE = 50


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def _get_owner_id(x_user_id: Annotated[str | None, Header()] = None) -> str:
    """Return the caller's user id from the ``X-User-Id`` header."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return x_user_id.strip()


def _get_document_service(request: Request) -> DocumentService:
    return request.app.state.document_service


def _get_retrieval_engine(request: Request) -> RetrievalEngine:
    return request.app.state.retrieval_engine


def _get_chat_manager(request: Request) -> ChatSessionManager:
    return request.app.state.chat_manager


def _get_insight_service(request: Request) -> InsightService:
    return request.app.state.insight_service


OwnerDep = Annotated[str, Depends(_get_owner_id)]
DocumentServiceDep = Annotated[DocumentService, Depends(_get_document_service)]
RetrievalDep = Annotated[RetrievalEngine, Depends(_get_retrieval_engine)]
ChatManagerDep = Annotated[ChatSessionManager, Depends(_get_chat_manager)]
InsightServiceDep = Annotated[InsightService, Depends(_get_insight_service)]


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@router.get("/health", response_model=HealthResponse, summary="Application health check")
async def health_check(request: Request) -> HealthResponse:
    providers = dict(getattr(request.app.state, "provider_registry", {}))
    healthy = bool(providers.get("llm")) and bool(providers.get("embedding"))
    return HealthResponse(
        status="healthy" if healthy else "degraded",
        version=__version__,
        providers=providers,
    )


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


@router.post("/documents", response_model=DocumentResponse, status_code=201, summary="Upload a document")
async def upload_document(
    owner_id: OwnerDep,
    documents: DocumentServiceDep,
    file: UploadFile,
    title: Annotated[str, Form()],
) -> DocumentResponse:
    # Read in pieces so an oversized upload is rejected without buffering it all.
    data = bytearray()
    while True:
        piece = await file.read(_UPLOAD_CHUNK_SIZE)
        if not piece:
            break
        data.extend(piece)
        if len(data) > _MAX_UPLOAD_SIZE:
            raise ValidationError(
                message=f"File size must be less than {_MAX_UPLOAD_SIZE // (1024 * 1024)}MB",
            )

    document = await documents.upload(
        owner_id,
        title,
        file.filename,
        file.content_type or "application/octet-stream",
        bytes(data),
    )
    return DocumentResponse.from_document(document)


@router.post(
    "/documents/from-url",
    response_model=DocumentResponse,
    status_code=201,
    summary="Import a document from a URL",
)
async def create_document_from_url(
    body: CreateFromUrlRequest,
    owner_id: OwnerDep,
    documents: DocumentServiceDep,
) -> DocumentResponse:
    document = await documents.create_from_url(owner_id, body.url, body.title)
    return DocumentResponse.from_document(document)


@router.get("/documents", response_model=DocumentListResponse, summary="List documents")
async def list_documents(
    owner_id: OwnerDep,
    documents: DocumentServiceDep,
    limit: Annotated[int, Query(ge=1, le=100)] = DOCUMENTS_PER_PAGE,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> DocumentListResponse:
    items = await documents.list_documents(owner_id, limit=limit, offset=offset)
    return DocumentListResponse(
        documents=[DocumentResponse.from_document(d) for d in items],
        limit=limit,
        offset=offset,
    )


@router.get("/documents/{document_id}", response_model=DocumentResponse, summary="Get a document")
async def get_document(document_id: str, owner_id: OwnerDep, documents: DocumentServiceDep) -> DocumentResponse:
    return DocumentResponse.from_document(await documents.get(owner_id, document_id))


@router.delete("/documents/{document_id}", status_code=204, summary="Delete a document")
async def delete_document(document_id: str, owner_id: OwnerDep, documents: DocumentServiceDep) -> Response:
    await documents.delete(owner_id, document_id)
    return Response(status_code=204)


@router.post(
    "/documents/{document_id}/process",
    response_model=IngestionResponse,
    summary="Ingest a pending document",
)
async def process_document(
    document_id: str,
    owner_id: OwnerDep,
    documents: DocumentServiceDep,
) -> IngestionResponse:
    result = await documents.process(owner_id, document_id)
    return IngestionResponse.from_result(result)


@router.post(
    "/documents/{document_id}/reprocess",
    response_model=IngestionResponse,
    summary="Re-ingest a completed or failed document",
)
async def reprocess_document(
    document_id: str,
    owner_id: OwnerDep,
    documents: DocumentServiceDep,
) -> IngestionResponse:
    result = await documents.reprocess(owner_id, document_id)
    return IngestionResponse.from_result(result)


@router.get(
    "/documents/{document_id}/status",
    response_model=ProcessingStatusResponse,
    summary="Poll processing status",
)
async def get_processing_status(
    document_id: str,
    owner_id: OwnerDep,
    documents: DocumentServiceDep,
) -> ProcessingStatusResponse:
    status = await documents.get_status(owner_id, document_id)
    return ProcessingStatusResponse.from_status(status)


@router.get(
    "/documents/{document_id}/stats",
    response_model=DocumentStatsResponse,
    summary="Chunk statistics for a document",
)
async def get_document_stats(
    document_id: str,
    owner_id: OwnerDep,
    documents: DocumentServiceDep,
) -> DocumentStatsResponse:
    stats = await documents.get_stats(owner_id, document_id)
    return DocumentStatsResponse.from_stats(stats)


@router.post(
    "/documents/{document_id}/query",
    response_model=QueryResponse,
    summary="Retrieve the chunks most relevant to a question",
)
async def query_document(
    document_id: str,
    body: QueryRequest,
    owner_id: OwnerDep,
    documents: DocumentServiceDep,
    retrieval: RetrievalDep,
) -> QueryResponse:
    await documents.get(owner_id, document_id)
    results = await retrieval.retrieve(document_id, body.question, body.k, mode=body.mode)
    return QueryResponse(
        document_id=document_id,
        question=body.question,
        results=[RetrievedChunkResponse.from_retrieved(r) for r in results],
    )


@router.post("/documents/{document_id}/summary", response_model=SummaryResponse, summary="Summarize a document")
async def summarize_document(
    document_id: str,
    owner_id: OwnerDep,
    insights: InsightServiceDep,
) -> SummaryResponse:
    summary = await insights.summarize(owner_id, document_id)
    return SummaryResponse(document_id=document_id, summary=summary)


@router.post(
    "/documents/{document_id}/insights",
    response_model=InsightsResponse,
    summary="Extract key insights from a document",
)
async def document_insights(
    document_id: str,
    owner_id: OwnerDep,
    insights: InsightServiceDep,
) -> InsightsResponse:
    items = await insights.extract_key_insights(owner_id, document_id)
    return InsightsResponse(document_id=document_id, insights=items)


# ---------------------------------------------------------------------------
# Chat sessions
# ---------------------------------------------------------------------------


@router.post("/sessions", response_model=SessionResponse, status_code=201, summary="Start a chat session")
async def create_session(body: CreateSessionRequest, owner_id: OwnerDep, chat: ChatManagerDep) -> SessionResponse:
    session = await chat.create_session(owner_id, body.document_id, body.title)
    return SessionResponse.from_session(session)


@router.get("/sessions", response_model=SessionListResponse, summary="List chat sessions")
async def list_sessions(
    owner_id: OwnerDep,
    chat: ChatManagerDep,
    document_id: str | None = None,
    limit: Annotated[int, Query(ge=1, le=100)] = SESSIONS_PER_PAGE,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> SessionListResponse:
    sessions = await chat.list_sessions(owner_id, document_id=document_id, limit=limit, offset=offset)
    return SessionListResponse(
        sessions=[SessionResponse.from_session(s) for s in sessions],
        limit=limit,
        offset=offset,
    )


@router.get("/sessions/{session_id}", response_model=SessionResponse, summary="Get a chat session")
async def get_session(session_id: str, owner_id: OwnerDep, chat: ChatManagerDep) -> SessionResponse:
    return SessionResponse.from_session(await chat.get_session(owner_id, session_id))


@router.delete("/sessions/{session_id}", status_code=204, summary="Delete a chat session")
async def delete_session(session_id: str, owner_id: OwnerDep, chat: ChatManagerDep) -> Response:
    await chat.delete_session(owner_id, session_id)
    return Response(status_code=204)


@router.get("/sessions/{session_id}/messages", response_model=MessageListResponse, summary="List messages")
async def list_messages(
    session_id: str,
    owner_id: OwnerDep,
    chat: ChatManagerDep,
    limit: Annotated[int, Query(ge=1, le=200)] = MESSAGES_PER_PAGE,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> MessageListResponse:
    messages = await chat.list_messages(owner_id, session_id, limit=limit, offset=offset)
    return MessageListResponse(
        messages=[MessageResponse.from_message(m) for m in messages],
        limit=limit,
        offset=offset,
    )


@router.post("/sessions/{session_id}/messages", response_model=ChatTurnResponse, summary="Ask a question")
async def post_message(
    session_id: str,
    body: PostMessageRequest,
    owner_id: OwnerDep,
    chat: ChatManagerDep,
) -> ChatTurnResponse:
    result = await chat.answer(owner_id, session_id, body.content)
    _logger.info(
        "chat_message_answered",
        session_id=session_id,
        citations=len(result.assistant_message.citations),
    )
    return ChatTurnResponse(
        user_message=MessageResponse.from_message(result.user_message),
        assistant_message=MessageResponse.from_message(result.assistant_message),
    )


def _sse(event: ChatStreamEvent) -> str:
    return f"data: {ChatStreamEventResponse.from_event(event).model_dump_json()}\n\n"


@router.post("/sessions/{session_id}/messages/stream", summary="Ask a question, streaming the reply")
async def stream_message(
    session_id: str,
    body: PostMessageRequest,
    owner_id: OwnerDep,
    chat: ChatManagerDep,
) -> StreamingResponse:
    events = chat.stream_answer(owner_id, session_id, body.content)
    # Pull the first event here so a missing session or blank question is
    # still answered with a normal error status.
    first = await anext(events)

    async def event_stream() -> AsyncIterator[str]:
        yield _sse(first)
        try:
            async for event in events:
                yield _sse(event)
        except ThinkFolioError as exc:
            _logger.error("chat_stream_failed", session_id=session_id, error=exc.message)
            detail = "Internal storage error" if isinstance(exc, StoreError) else exc.message
            yield _sse(ChatStreamEvent(type="error", detail=detail))

    return StreamingResponse(event_stream(), media_type="text/event-stream")
