"""Similarity retrieval over one document's chunks.

Embeds the question with the same client used at ingestion time and asks
the chunk store for the nearest chunks.  A document that has no chunks yet
(still pending or processing, failed, or simply empty) yields ``[]``
without an embedding call, so asking early is cheap and never an error.

Hybrid mode adds a keyword pass.  Both passes fetch ``2k`` candidates; the
merged list takes the best ``ceil(0.6k)`` semantic hits, then the best
``ceil(0.4k)`` keyword hits not already present, then tops up from the
leftovers (semantic first) until it holds ``k`` chunks.
"""

from __future__ import annotations

import math
import re

import structlog

from thinkfolio.interfaces.chunk_store import IChunkStore
from thinkfolio.models.rag import RetrievalMode, RetrievedChunk
from thinkfolio.services.embedding_client import EmbeddingClient
from thinkfolio.utils.errors import ValidationError

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_K = 5
MAX_K = 20
SEMANTIC_WEIGHT = 0.6
KEYWORD_WEIGHT = 0.4
MIN_TERM_LENGTH = 3

_WORD = re.compile(r"\w+")


def query_terms(question: str) -> list[str]:
    """Lower-cased words of *question* with at least three characters, deduplicated."""
    words = (w.lower() for w in _WORD.findall(question))
    return list(dict.fromkeys(w for w in words if len(w) >= MIN_TERM_LENGTH))


def combine_results(
    semantic: list[RetrievedChunk],
    keyword: list[RetrievedChunk],
    k: int,
    semantic_weight: float = SEMANTIC_WEIGHT,
    keyword_weight: float = KEYWORD_WEIGHT,
) -> list[RetrievedChunk]:
    """Interleave semantic and keyword hits into at most *k* distinct chunks."""
    max_semantic = math.ceil(k * semantic_weight)
    max_keyword = math.ceil(k * keyword_weight)
    combined: list[RetrievedChunk] = []
    seen: set[str] = set()

    def add(result: RetrievedChunk) -> None:
        if len(combined) < k and result.chunk.id not in seen:
            seen.add(result.chunk.id)
            combined.append(result)

    for result in semantic[:max_semantic]:
        add(result)
    for result in keyword[:max_keyword]:
        add(result)
    for result in semantic[max_semantic:] + keyword[max_keyword:]:
        add(result)
    return combined


class RetrievalEngine:
    """Top-k chunk retrieval by cosine similarity, optionally blended with keywords."""

    def __init__(
        self,
        embedding_client: EmbeddingClient,
        chunk_store: IChunkStore,
        default_k: int = DEFAULT_K,
        max_k: int = MAX_K,
    ) -> None:
        self._embedder = embedding_client
        self._chunks = chunk_store
        self._default_k = default_k
        self._max_k = max_k

    @property
    def default_k(self) -> int:
        return self._default_k

    @property
    def max_k(self) -> int:
        return self._max_k

    async def retrieve(
        self,
        document_id: str,
        question: str,
        k: int | None = None,
        mode: RetrievalMode = RetrievalMode.SEMANTIC,
    ) -> list[RetrievedChunk]:
        """Return up to *k* chunks of *document_id* relevant to *question*.

        Parameters
        ----------
        document_id:
            Only this document's chunks are considered.
        question:
            Natural-language query; must contain non-whitespace text.
        k:
            Number of results, ``1 <= k <= max_k``.  Defaults to
            ``default_k``.
        mode:
            ``SEMANTIC`` ranks by cosine similarity alone.  ``HYBRID``
            merges in keyword matches as described in the module docstring.

        Returns
        -------
        list[RetrievedChunk]
            Semantic mode: highest score first, ties keep lower
            ``chunk_index`` first, scores are raw cosine similarities.
            Hybrid mode: merge order; each result's ``match_type`` says
            which pass found it.

        Raises
        ------
        ValidationError
            If *question* is blank or *k* is out of range.
        EmbeddingError
            If the question cannot be embedded.
        """
        k = self._default_k if k is None else k
        if not 1 <= k <= self._max_k:
            raise ValidationError(message=f"k must be between 1 and {self._max_k}, got {k}")
        if not question or not question.strip():
            raise ValidationError(message="Question must not be empty")

        if await self._chunks.count_for(document_id) == 0:
            logger.info("retrieval_no_chunks", document_id=document_id)
            return []

        query_vector = await self._embedder.embed(question.strip())
        if mode is RetrievalMode.HYBRID:
            semantic = await self._chunks.nearest_to(document_id, query_vector, k * 2)
            keyword = await self._chunks.keyword_search(document_id, query_terms(question), k * 2)
            results = combine_results(semantic, keyword, k)
        else:
            keyword = []
            results = await self._chunks.nearest_to(document_id, query_vector, k)

        logger.info(
            "retrieval_complete",
            document_id=document_id,
            mode=mode.value,
            k=k,
            results=len(results),
            keyword_hits=len(keyword),
            top_score=results[0].score if results else None,
        )
        return results

    @staticmethod
    def filter_by_score(results: list[RetrievedChunk], threshold: float) -> list[RetrievedChunk]:
        """Keep results scoring at least *threshold*, preserving order."""
        return [r for r in results if r.score >= threshold]
