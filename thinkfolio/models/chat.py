"""Chat session, message and citation models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from thinkfolio.models.rag import RetrievedChunk


class MessageRole(str, Enum):  # noqa: UP042
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class Citation(BaseModel):
    """Link from an assistant message to a chunk that supported it."""

    model_config = ConfigDict(frozen=True)

    id: str
    message_id: str
    chunk_id: str = Field(description="Referenced chunk (not owned by the citation).")
    relevance_score: float
    page_number: int = Field(ge=1, description="Copied from the chunk for display.")
    excerpt: str | None = None


class NewCitation(BaseModel):
    """Citation data before the owning message exists."""

    model_config = ConfigDict(frozen=True)

    chunk_id: str
    relevance_score: float
    page_number: int = Field(ge=1)
    excerpt: str | None = None


class ChatSession(BaseModel):
    """A conversation about one document."""

    model_config = ConfigDict(frozen=True)

    id: str
    owner_id: str
    document_id: str
    title: str
    created_at: datetime
    updated_at: datetime


class ChatMessage(BaseModel):
    """One entry in a session's append-only message log."""

    model_config = ConfigDict(frozen=True)

    id: str
    session_id: str
    role: MessageRole
    content: str
    created_at: datetime
    sequence: int = Field(ge=0, description="Insertion ordinal; breaks created_at ties.")
    citations: list[Citation] = Field(default_factory=list)


class AnswerResult(BaseModel):
    """Both sides of a completed chat turn plus what retrieval returned."""

    model_config = ConfigDict(frozen=True)

    user_message: ChatMessage
    assistant_message: ChatMessage
    retrieved: list[RetrievedChunk] = Field(default_factory=list)


class ChatStreamEvent(BaseModel):
    """One step of a streamed chat turn.

    ``user_message`` and ``done`` carry a stored message; ``delta`` carries
    a piece of reply text; ``error`` carries a readable failure.
    """

    model_config = ConfigDict(frozen=True)

    type: Literal["user_message", "delta", "done", "error"]
    text: str | None = None
    message: ChatMessage | None = None
    detail: str | None = None
