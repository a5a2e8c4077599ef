"""Document ingestion pipeline: text -> chunks -> embeddings -> chunk store.

One run walks a document through::

    begin (pending -> processing)
      -> drop chunks of any earlier run
      -> [read bytes -> extract text -> record page count]   (ingest_document only)
      -> split -> truncate + classify -> embed -> insert_many
    complete (processing -> completed)

Whatever goes wrong after ``begin`` -- a stage error, an unexpected
exception or task cancellation -- the document ends ``failed`` with a
readable message and no chunks.  A document is never left ``processing``.
The caller sees :class:`~thinkfolio.utils.errors.IngestionError` (or the
original ``CancelledError``).

Nothing is written to the chunk store until every chunk has an embedding,
so an embedding failure halfway through persists nothing.  Chunks left from
an earlier run are dropped only after ``begin`` succeeds, so a re-ingestion
never deletes chunks that another caller's run produced.  Storage errors
reach the status record and the caller as a generic message; the details
are logged.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable

import structlog

from thinkfolio.interfaces.byte_store import IByteStore
from thinkfolio.interfaces.chunk_store import IChunkStore
from thinkfolio.interfaces.document_store import IDocumentStore
from thinkfolio.interfaces.text_extractor import ITextExtractor
from thinkfolio.models.document import Document
from thinkfolio.models.rag import ChunkCandidate, IngestionResult, NewChunk
from thinkfolio.services.chunk_classifier import (
    classify_chunk,
    count_keywords,
    has_citations,
    has_equations,
)
from thinkfolio.services.chunk_splitter import ChunkSplitter
from thinkfolio.services.embedding_client import EmbeddingClient
from thinkfolio.services.state_machine import ProcessingStateMachine
from thinkfolio.utils.errors import (
    ConfigurationError,
    ExtractionError,
    IngestionError,
    NotFoundError,
    StoreError,
    ThinkFolioError,
)

logger = structlog.get_logger(logger_name=__name__)

MAX_CHUNK_CHARS = 2000
STORE_FAILURE = "Internal storage error"


class IngestionPipeline:
    """Turns a document's text into stored, embedded chunks.

    Parameters
    ----------
    state_machine:
        Guards the ``pending -> processing -> completed/failed`` lifecycle.
    splitter:
        Produces chunk candidates from flat text.
    embedding_client:
        Embeds chunk text with retries and timeouts.
    chunk_store:
        Persists chunks in one transaction per run.
    document_store, byte_store, extractors:
        Only needed by :meth:`ingest_document`, which reads the stored file
        and extracts its text first.
    bucket:
        Byte-store bucket holding document files.
    max_chunk_chars:
        Chunk content longer than this is truncated before embedding.
    """

    def __init__(
        self,
        state_machine: ProcessingStateMachine,
        splitter: ChunkSplitter,
        embedding_client: EmbeddingClient,
        chunk_store: IChunkStore,
        document_store: IDocumentStore | None = None,
        byte_store: IByteStore | None = None,
        extractors: list[ITextExtractor] | None = None,
        bucket: str = "papers",
        max_chunk_chars: int = MAX_CHUNK_CHARS,
    ) -> None:
        self._state = state_machine
        self._splitter = splitter
        self._embedder = embedding_client
        self._chunks = chunk_store
        self._documents = document_store
        self._bytes = byte_store
        self._extractors: dict[str, ITextExtractor] = {}
        for extractor in extractors or []:
            for content_type in extractor.supported_content_types():
                self._extractors[content_type] = extractor
        self._bucket = bucket
        self._max_chunk_chars = max_chunk_chars

    @property
    def supported_content_types(self) -> list[str]:
        return sorted(self._extractors)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def ingest(self, document_id: str, raw_text: str, page_count_hint: int = 0) -> IngestionResult:
        """Chunk, embed and store already-extracted text.

        Raises
        ------
        ConcurrentIngestionError
            If the document is already processing (status unchanged).
        InvalidTransitionError
            If the document is completed or failed and was not reset.
        IngestionError
            If any stage fails; the document is then ``failed``.
        """
        await self._state.begin(document_id)
        return await self._run(document_id, self._process_text(document_id, raw_text, page_count_hint))

    async def ingest_document(self, document_id: str) -> IngestionResult:
        """Read the document's stored file, extract it and ingest the text.

        Raises
        ------
        NotFoundError
            If the document does not exist.
        ConcurrentIngestionError, InvalidTransitionError
            As for :meth:`ingest`.
        IngestionError
            If reading, extraction or any later stage fails.
        """
        if self._documents is None or self._bytes is None:
            raise ConfigurationError(message="ingest_document needs a document store and a byte store")

        document = await self._documents.get(document_id)
        if document is None:
            raise NotFoundError(message=f"Document {document_id} not found")

        await self._state.begin(document_id)
        return await self._run(document_id, self._process_stored(document))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _run(self, document_id: str, work: Awaitable[int]) -> IngestionResult:
        """Await *work* (which returns a chunk count) and settle the status."""
        started = time.monotonic()
        logger.info("ingestion_started", document_id=document_id)
        try:
            chunks_created = await work
            await self._state.complete(document_id, chunks_created)
        except asyncio.CancelledError:
            logger.warning("ingestion_cancelled", document_id=document_id)
            await self._mark_failed(document_id, "Processing was cancelled")
            raise
        except StoreError as exc:
            logger.error("ingestion_store_error", document_id=document_id, error=exc.message)
            await self._mark_failed(document_id, STORE_FAILURE)
            raise IngestionError(
                message=f"Failed to process document: {STORE_FAILURE}",
                provider_name=exc.provider_name,
            ) from exc
        except ThinkFolioError as exc:
            await self._mark_failed(document_id, exc.message)
            raise IngestionError(
                message=f"Failed to process document: {exc.message}",
                provider_name=exc.provider_name,
            ) from exc
        except Exception as exc:
            logger.exception("ingestion_unexpected_error", document_id=document_id)
            await self._mark_failed(document_id, f"Unexpected error during processing: {exc}")
            raise IngestionError(message="Failed to process document: unexpected error") from exc

        elapsed = round(time.monotonic() - started, 3)
        logger.info(
            "ingestion_complete",
            document_id=document_id,
            chunks=chunks_created,
            processing_time=elapsed,
        )
        return IngestionResult(
            document_id=document_id,
            chunks_created=chunks_created,
            processing_time=elapsed,
        )

    async def _process_stored(self, document: Document) -> int:
        extractor = self._extractors.get(document.content_type)
        if extractor is None:
            raise ExtractionError(message=f"No text extractor for content type {document.content_type}")
        if not document.storage_path:
            raise ExtractionError(message="Document has no stored file")

        data = await self._bytes.get(self._bucket, document.storage_path)
        extracted = await extractor.extract(data)
        await self._documents.update_page_count(document.id, extracted.page_count)
        return await self._process_text(document.id, extracted.text, extracted.page_count)

    async def _process_text(self, document_id: str, text: str, page_count: int) -> int:
        # Only the caller holding "processing" gets here.
        removed = await self._chunks.delete_for(document_id)
        if removed:
            logger.info("ingestion_replaced_chunks", document_id=document_id, chunks_removed=removed)

        candidates = self._splitter.split(text, page_count)
        if not candidates:
            logger.info("ingestion_no_content", document_id=document_id)
            return 0

        prepared = [self._prepare(document_id, index, c) for index, c in enumerate(candidates)]
        vectors = await self._embedder.embed_many([chunk.content for chunk in prepared])
        embedded = [
            chunk.model_copy(update={"embedding": vector})
            for chunk, vector in zip(prepared, vectors, strict=True)
        ]
        stored = await self._chunks.insert_many(document_id, embedded)
        return len(stored)

    def _prepare(self, document_id: str, index: int, candidate: ChunkCandidate) -> NewChunk:
        content = candidate.content
        if len(content) > self._max_chunk_chars:
            logger.warning(
                "chunk_truncated",
                document_id=document_id,
                chunk_index=index,
                original_chars=len(content),
                max_chars=self._max_chunk_chars,
            )
            content = content[: self._max_chunk_chars]

        return NewChunk(
            chunk_index=index,
            page_number=candidate.page_number,
            content=content,
            chunk_type=classify_chunk(content),
            start_index=candidate.start_index,
            end_index=candidate.end_index,
            keyword_count=count_keywords(content),
            has_equations=has_equations(content),
            has_citations=has_citations(content),
        )

    async def _mark_failed(self, document_id: str, error: str) -> None:
        """Drop any partial chunks and move the document to ``failed``."""
        # Errors here are logged, not raised: the caller needs the original failure.
        try:
            await self._chunks.delete_for(document_id)
        except ThinkFolioError as exc:
            logger.error("ingestion_cleanup_failed", document_id=document_id, error=str(exc))
        try:
            await self._state.fail(document_id, error)
        except ThinkFolioError as exc:
            logger.error("ingestion_mark_failed_error", document_id=document_id, error=str(exc))
        logger.error("ingestion_failed", document_id=document_id, error=error)
