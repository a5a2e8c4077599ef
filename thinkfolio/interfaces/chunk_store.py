"""Abstract base class for chunk persistence and similarity search."""

from __future__ import annotations

from abc import ABC, abstractmethod

from thinkfolio.models.rag import Chunk, ChunkStats, NewChunk, RetrievedChunk


class IChunkStore(ABC):
    """Stores embedded chunks per document and answers nearest-neighbour queries."""

    @abstractmethod
    async def insert_many(self, document_id: str, chunks: list[NewChunk]) -> list[Chunk]:
        """Persist *chunks* for *document_id* atomically.

        Either every chunk is written or none is.

        Returns
        -------
        list[Chunk]
            The stored records, in the same order as *chunks*.

        Raises
        ------
        thinkfolio.utils.errors.StoreError
            If the write fails; nothing from this call remains stored.
        """

    @abstractmethod
    async def nearest_to(
        self,
        document_id: str,
        query_vector: list[float],
        k: int,
    ) -> list[RetrievedChunk]:
        """Return up to *k* chunks of *document_id* most similar to *query_vector*.

        Results are sorted by score descending; ties go to the lower
        ``chunk_index``.  Chunks of other documents are never returned.
        """

    @abstractmethod
    async def keyword_search(self, document_id: str, terms: list[str], k: int) -> list[RetrievedChunk]:
        """Return up to *k* chunks of *document_id* containing any of *terms*.

        Terms are matched case-insensitively as substrings.  Each result's
        score is the fraction of *terms* its content contains and its
        ``match_type`` is ``"keyword"``.  Results are sorted by score
        descending, ties to the lower ``chunk_index``.  No terms, no results.
        """

    @abstractmethod
    async def count_for(self, document_id: str) -> int:
        """Return the number of stored chunks for *document_id*."""

    @abstractmethod
    async def list_for(self, document_id: str, limit: int | None = None) -> list[Chunk]:
        """Return stored chunks for *document_id* ordered by ``chunk_index``."""

    @abstractmethod
    async def stats_for(self, document_id: str) -> ChunkStats:
        """Aggregate counts over the stored chunks of *document_id*."""

    @abstractmethod
    async def delete_for(self, document_id: str) -> int:
        """Delete every chunk of *document_id*; returns how many were removed."""
