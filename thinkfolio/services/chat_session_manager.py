"""Chat sessions over a single document, answered with retrieved context.

A chat turn (:meth:`ChatSessionManager.answer`):

    1. persist the user message
    2. retrieve the top-k chunks and drop those under the score threshold
    3. pack them, best first, into a context block bounded by
       ``context_char_budget``
    4. add the last ``history_window`` messages of the conversation
    5. call the LLM under ``generation_timeout``
    6. persist the assistant message with one citation per chunk used

If retrieval finds nothing because the document is not ``completed`` yet,
the reply is a fixed "still processing" message and the LLM is not called.
If generation fails, the user message stays and no assistant message is
written; the caller gets :class:`~thinkfolio.utils.errors.LLMError`.

:meth:`ChatSessionManager.stream_answer` runs the same turn but yields the
reply piece by piece from the provider's stream; the assistant message is
stored once the stream has finished.

Every operation takes the caller's ``owner_id``; sessions and documents
owned by someone else are reported as not found.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from dataclasses import dataclass

import structlog

from thinkfolio.interfaces.chat_store import IChatStore
from thinkfolio.interfaces.document_store import IDocumentStore
from thinkfolio.interfaces.llm_provider import ILLMProvider
from thinkfolio.models.chat import (
    AnswerResult,
    ChatMessage,
    ChatSession,
    ChatStreamEvent,
    MessageRole,
    NewCitation,
)
from thinkfolio.models.document import Document
from thinkfolio.models.processing import ProcessingState
from thinkfolio.models.rag import RetrievedChunk
from thinkfolio.services.retrieval_engine import RetrievalEngine
from thinkfolio.utils.errors import LLMError, NotFoundError, ValidationError

logger = structlog.get_logger(logger_name=__name__)

SYSTEM_PROMPT = """\
You are a helpful AI assistant specializing in analyzing academic papers and research documents.
Your role is to provide accurate, insightful answers based on the provided context from the documents.

Guidelines:
1. Base your answers primarily on the provided context
2. If the context doesn't contain enough information, acknowledge this limitation
3. Cite specific sections or page numbers when referencing the source material
4. Maintain academic rigor and precision in your responses
5. If asked about something not in the context, clearly state that the information is not available in the provided documents"""

PROCESSING_REPLY = (
    "This document is still being processed. Please try again in a moment, "
    "once processing has completed."
)

NO_CONTEXT = "No relevant documents found."
CONTEXT_SEPARATOR = "\n\n---\n\n"
_EXCERPT_CHARS = 200


@dataclass(frozen=True)
class _Turn:
    """A question that has been stored and had its context retrieved."""

    session_id: str
    question: str
    history: list[ChatMessage]
    user_message: ChatMessage
    retrieved: list[RetrievedChunk]
    ready: bool


def build_context(results: list[RetrievedChunk], char_budget: int) -> tuple[str, list[RetrievedChunk]]:
    """Format retrieved chunks into one context string within *char_budget*.

    Blocks look like ``[Document i (Page p)]:`` followed by the chunk text
    and are joined with a ``---`` separator.  Chunks are taken highest score
    first; packing stops at the first block that would overflow the budget.
    A first block that alone exceeds the budget is truncated to fit.

    Returns
    -------
    tuple[str, list[RetrievedChunk]]
        The context text and the chunks that made it in, in context order.
    """
    ordered = sorted(results, key=lambda r: r.score, reverse=True)
    blocks: list[str] = []
    used: list[RetrievedChunk] = []
    length = 0

    for position, result in enumerate(ordered, start=1):
        block = f"[Document {position} (Page {result.page_number})]:\n{result.chunk.content}"
        added = len(block) + (len(CONTEXT_SEPARATOR) if blocks else 0)
        if length + added > char_budget:
            if not blocks:
                blocks.append(block[:char_budget])
                used.append(result)
            break
        blocks.append(block)
        used.append(result)
        length += added

    if not blocks:
        return NO_CONTEXT, []
    return CONTEXT_SEPARATOR.join(blocks), used


class ChatSessionManager:
    """Owns chat sessions, their message logs and the question-answer turn.

    Parameters
    ----------
    chat_store:
        Sessions, messages and citations.
    document_store:
        Used for ownership checks and the document's processing state.
    retrieval_engine:
        Finds the chunks a question is answered from.
    llm_provider:
        Generates the reply.
    top_k, score_threshold:
        Retrieval size and the minimum score a chunk needs to be used.
    context_char_budget:
        Upper bound on the context block handed to the LLM.
    history_window:
        Number of earlier messages sent along with the question.
    generation_timeout:
        Seconds allowed for the LLM call.
    """

    def __init__(
        self,
        chat_store: IChatStore,
        document_store: IDocumentStore,
        retrieval_engine: RetrievalEngine,
        llm_provider: ILLMProvider,
        top_k: int = 5,
        score_threshold: float = 0.0,
        context_char_budget: int = 4000,
        history_window: int = 6,
        generation_timeout: float = 30.0,
        temperature: float = 0.3,
        max_tokens: int = 2000,
    ) -> None:
        self._store = chat_store
        self._documents = document_store
        self._retrieval = retrieval_engine
        self._llm = llm_provider
        self._top_k = top_k
        self._score_threshold = score_threshold
        self._context_char_budget = context_char_budget
        self._history_window = history_window
        self._generation_timeout = generation_timeout
        self._temperature = temperature
        self._max_tokens = max_tokens

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def create_session(self, owner_id: str, document_id: str, title: str | None = None) -> ChatSession:
        document = await self._require_document(owner_id, document_id)
        session_title = title.strip() if title and title.strip() else f"Chat about {document.title}"
        return await self._store.create_session(owner_id, document.id, session_title)

    async def get_session(self, owner_id: str, session_id: str) -> ChatSession:
        return await self._require_session(owner_id, session_id)

    async def list_sessions(
        self,
        owner_id: str,
        document_id: str | None = None,
        limit: int = 10,
        offset: int = 0,
    ) -> list[ChatSession]:
        """Sessions of *owner_id*, most recently active first."""
        return await self._store.list_sessions(owner_id, document_id=document_id, limit=limit, offset=offset)

    async def delete_session(self, owner_id: str, session_id: str) -> None:
        await self._require_session(owner_id, session_id)
        await self._store.delete_session(session_id)
        logger.info("chat_session_deleted", session_id=session_id)

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def list_messages(
        self,
        owner_id: str,
        session_id: str,
        limit: int = 50,
        offset: int = 0,
    ) -> list[ChatMessage]:
        """Messages in creation order, citations attached."""
        await self._require_session(owner_id, session_id)
        return await self._store.list_messages(session_id, limit=limit, offset=offset)

    async def load_history(self, session_id: str, limit: int = 20) -> list[ChatMessage]:
        """The last *limit* messages of a session, oldest first."""
        return await self._store.recent_messages(session_id, limit)

    async def post_user_message(self, owner_id: str, session_id: str, content: str) -> ChatMessage:
        await self._require_session(owner_id, session_id)
        return await self._store.add_message(session_id, MessageRole.USER, self._clean(content))

    async def answer(self, owner_id: str, session_id: str, content: str) -> AnswerResult:
        """Run one chat turn: store the question, answer it, store the reply.

        Raises
        ------
        NotFoundError
            If the session does not exist or belongs to someone else.
        ValidationError
            If *content* is blank.
        LLMError
            If generation fails or times out.  The user message is kept.
        """
        turn = await self._open_turn(owner_id, session_id, content)
        if not turn.ready:
            assistant_message = await self._store.add_message(session_id, MessageRole.ASSISTANT, PROCESSING_REPLY)
            return AnswerResult(user_message=turn.user_message, assistant_message=assistant_message)

        context, used = build_context(turn.retrieved, self._context_char_budget)
        reply = await self._generate(turn.question, context, turn.history)
        assistant_message = await self._finish_turn(turn, reply, used)
        return AnswerResult(
            user_message=turn.user_message,
            assistant_message=assistant_message,
            retrieved=turn.retrieved,
        )

    async def stream_answer(
        self,
        owner_id: str,
        session_id: str,
        content: str,
    ) -> AsyncIterator[ChatStreamEvent]:
        """Run a chat turn like :meth:`answer`, yielding the reply as it is generated.

        Events come in order: ``user_message`` once the question is stored,
        ``delta`` pieces of the reply, then ``done`` with the stored
        assistant message.  Failures raise as in :meth:`answer`; a reply that
        breaks off mid-stream is not stored.  ``generation_timeout`` bounds
        the whole stream, not each piece.
        """
        turn = await self._open_turn(owner_id, session_id, content)
        yield ChatStreamEvent(type="user_message", message=turn.user_message)

        if not turn.ready:
            assistant_message = await self._store.add_message(session_id, MessageRole.ASSISTANT, PROCESSING_REPLY)
            yield ChatStreamEvent(type="delta", text=PROCESSING_REPLY)
            yield ChatStreamEvent(type="done", message=assistant_message)
            return

        context, used = build_context(turn.retrieved, self._context_char_budget)
        stream = self._llm.stream(**self._generation_args(turn.question, context, turn.history))
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._generation_timeout
        pieces: list[str] = []
        try:
            while True:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    raise asyncio.TimeoutError
                try:
                    delta = await asyncio.wait_for(anext(stream), timeout=remaining)
                except StopAsyncIteration:
                    break
                pieces.append(delta)
                yield ChatStreamEvent(type="delta", text=delta)
        except asyncio.TimeoutError as exc:
            raise LLMError(
                message=f"Answer generation timed out after {self._generation_timeout}s",
                provider_name=self._llm.get_provider_name(),
            ) from exc
        finally:
            await stream.aclose()

        reply = "".join(pieces).strip()
        if not reply:
            raise LLMError(message="LLM returned an empty answer", provider_name=self._llm.get_provider_name())
        assistant_message = await self._finish_turn(turn, reply, used)
        yield ChatStreamEvent(type="done", message=assistant_message)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _open_turn(self, owner_id: str, session_id: str, content: str) -> _Turn:
        """Store the question and retrieve the context it will be answered from."""
        session = await self._require_session(owner_id, session_id)
        question = self._clean(content)

        history = await self._store.recent_messages(session_id, self._history_window)
        user_message = await self._store.add_message(session_id, MessageRole.USER, question)

        retrieved = await self._retrieval.retrieve(session.document_id, question, self._top_k)
        retrieved = RetrievalEngine.filter_by_score(retrieved, self._score_threshold)

        ready = True
        if not retrieved:
            document = await self._documents.get(session.document_id)
            ready = document is not None and document.status is ProcessingState.COMPLETED
            if not ready:
                logger.info(
                    "chat_document_not_ready",
                    session_id=session_id,
                    document_id=session.document_id,
                )
        return _Turn(
            session_id=session_id,
            question=question,
            history=history,
            user_message=user_message,
            retrieved=retrieved,
            ready=ready,
        )

    async def _finish_turn(self, turn: _Turn, reply: str, used: list[RetrievedChunk]) -> ChatMessage:
        """Store the reply with one citation per chunk that made it into the context."""
        citations = [
            NewCitation(
                chunk_id=r.chunk.id,
                relevance_score=r.score,
                page_number=r.page_number,
                excerpt=r.chunk.content[:_EXCERPT_CHARS],
            )
            for r in used
        ]
        assistant_message = await self._store.add_message(
            turn.session_id, MessageRole.ASSISTANT, reply, citations=citations
        )
        logger.info(
            "chat_turn_complete",
            session_id=turn.session_id,
            retrieved=len(turn.retrieved),
            cited=len(citations),
            history=len(turn.history),
        )
        return assistant_message

    def _generation_args(self, question: str, context: str, history: list[ChatMessage]) -> dict:
        system_prompt = (
            f"{SYSTEM_PROMPT}\n\nContext from documents:\n{context}\n\n"
            "Answer the question based on the above context."
        )
        turns = [
            {"role": m.role.value, "content": m.content}
            for m in history
            if m.role in (MessageRole.USER, MessageRole.ASSISTANT)
        ]
        return {
            "system_prompt": system_prompt,
            "user_prompt": question,
            "temperature": self._temperature,
            "max_tokens": self._max_tokens,
            "history": turns,
        }

    async def _generate(self, question: str, context: str, history: list[ChatMessage]) -> str:
        try:
            reply = await asyncio.wait_for(
                self._llm.complete(**self._generation_args(question, context, history)),
                timeout=self._generation_timeout,
            )
        except asyncio.TimeoutError as exc:
            raise LLMError(
                message=f"Answer generation timed out after {self._generation_timeout}s",
                provider_name=self._llm.get_provider_name(),
            ) from exc

        if not reply or not reply.strip():
            raise LLMError(
                message="LLM returned an empty answer",
                provider_name=self._llm.get_provider_name(),
            )
        return reply.strip()

    async def _require_session(self, owner_id: str, session_id: str) -> ChatSession:
        session = await self._store.get_session(session_id)
        if session is None or session.owner_id != owner_id:
            raise NotFoundError(message=f"Chat session {session_id} not found")
        return session

    async def _require_document(self, owner_id: str, document_id: str) -> Document:
        document = await self._documents.get(document_id)
        if document is None or document.owner_id != owner_id:
            raise NotFoundError(message=f"Document {document_id} not found")
        return document

    @staticmethod
    def _clean(content: str) -> str:
        if not content or not content.strip():
            raise ValidationError(message="Message content must not be empty")
        return content.strip()
