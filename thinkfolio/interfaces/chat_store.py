"""Abstract base class for chat sessions, messages and citations."""

from __future__ import annotations

from abc import ABC, abstractmethod

from thinkfolio.models.chat import ChatMessage, ChatSession, MessageRole, NewCitation


class IChatStore(ABC):
    """Persistence for conversations over documents."""

    @abstractmethod
    async def create_session(self, owner_id: str, document_id: str, title: str) -> ChatSession:
        """Insert a new session and return it."""

    @abstractmethod
    async def get_session(self, session_id: str) -> ChatSession | None:
        """Return the session or ``None``."""

    @abstractmethod
    async def list_sessions(
        self,
        owner_id: str,
        document_id: str | None = None,
        limit: int = 10,
        offset: int = 0,
    ) -> list[ChatSession]:
        """Return the owner's sessions ordered by ``updated_at`` descending."""

    @abstractmethod
    async def delete_session(self, session_id: str) -> bool:
        """Delete a session with its messages and citations."""

    @abstractmethod
    async def add_message(
        self,
        session_id: str,
        role: MessageRole,
        content: str,
        citations: list[NewCitation] | None = None,
    ) -> ChatMessage:
        """Append a message (and its citations) in one transaction.

        Also bumps the session's ``updated_at``.
        """

    @abstractmethod
    async def list_messages(self, session_id: str, limit: int = 50, offset: int = 0) -> list[ChatMessage]:
        """Return messages in creation order, citations attached."""

    @abstractmethod
    async def recent_messages(self, session_id: str, limit: int) -> list[ChatMessage]:
        """Return the last *limit* messages, oldest first."""
