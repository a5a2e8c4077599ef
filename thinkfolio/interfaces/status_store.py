"""Abstract base class for per-document processing status records."""

from __future__ import annotations

from abc import ABC, abstractmethod

from thinkfolio.models.processing import ProcessingState, ProcessingStatus


class IStatusStore(ABC):
    """One status record per document, updated by compare-and-set."""

    @abstractmethod
    async def get(self, document_id: str) -> ProcessingStatus | None:
        """Return the current status of *document_id*, or ``None`` if unknown."""

    @abstractmethod
    async def transition(self, expected: ProcessingState, new_status: ProcessingStatus) -> bool:
        """Replace the stored status only if it is currently *expected*.

        Returns
        -------
        bool
            ``True`` if the update was applied, ``False`` if the stored state
            differed (another writer moved it first) or no record exists.
        """
