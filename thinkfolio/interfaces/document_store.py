"""Abstract base class for document (paper) records."""

from __future__ import annotations

from abc import ABC, abstractmethod

from thinkfolio.models.document import Document


class IDocumentStore(ABC):
    """Keyed document table with cascading delete."""

    @abstractmethod
    async def create(self, document: Document) -> Document:
        """Insert *document* together with its ``pending`` status record."""

    @abstractmethod
    async def get(self, document_id: str) -> Document | None:
        """Return the document (with its current status) or ``None``."""

    @abstractmethod
    async def list_for_owner(self, owner_id: str, limit: int = 20, offset: int = 0) -> list[Document]:
        """Return the owner's documents, newest first."""

    @abstractmethod
    async def update_page_count(self, document_id: str, page_count: int) -> None:
        """Record the page count reported by text extraction."""

    @abstractmethod
    async def delete(self, document_id: str) -> bool:
        """Delete the document and cascade to chunks, status and sessions."""
