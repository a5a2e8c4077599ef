"""Document lifecycle: upload, fetch-by-URL, listing, deletion and (re)processing.

Uploaded bytes go to the byte store under
``<owner_id>/<document_id>/<filename>`` in the configured bucket before the
document row is created; if the row cannot be written the stored object is
removed again so no orphan files pile up.

Every operation is scoped to the caller's ``owner_id``.  A document that
exists but belongs to someone else is reported as not found.
"""

from __future__ import annotations

import re
import uuid
from pathlib import PurePosixPath

import structlog

from thinkfolio.interfaces.byte_store import IByteStore
from thinkfolio.interfaces.chunk_store import IChunkStore
from thinkfolio.interfaces.document_store import IDocumentStore
from thinkfolio.interfaces.text_extractor import IDocumentFetcher
from thinkfolio.models.document import Document, SourceKind
from thinkfolio.models.processing import ProcessingStatus, utcnow
from thinkfolio.models.rag import DocumentStats, IngestionResult
from thinkfolio.providers.extraction.pymupdf_extractor import looks_like_pdf
from thinkfolio.services.ingestion_pipeline import IngestionPipeline
from thinkfolio.services.state_machine import ProcessingStateMachine
from thinkfolio.utils.errors import ConfigurationError, NotFoundError, ThinkFolioError, ValidationError

logger = structlog.get_logger(logger_name=__name__)

MAX_FILE_SIZE = 10 * 1024 * 1024
ALLOWED_CONTENT_TYPES = ("application/pdf", "text/plain", "text/markdown")

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def safe_filename(filename: str | None, content_type: str) -> str:
    """Reduce a client-supplied filename to a single safe path component."""
    name = PurePosixPath((filename or "").replace("\\", "/")).name
    name = _UNSAFE_FILENAME_CHARS.sub("_", name).strip("._")
    if not name:
        name = "document.pdf" if content_type == "application/pdf" else "document.txt"
    return name


class DocumentService:
    """Entry point for everything a user does to their documents."""

    def __init__(
        self,
        document_store: IDocumentStore,
        byte_store: IByteStore,
        state_machine: ProcessingStateMachine,
        chunk_store: IChunkStore,
        pipeline: IngestionPipeline,
        fetcher: IDocumentFetcher | None = None,
        bucket: str = "papers",
        max_file_size: int = MAX_FILE_SIZE,
        allowed_content_types: tuple[str, ...] = ALLOWED_CONTENT_TYPES,
    ) -> None:
        self._documents = document_store
        self._bytes = byte_store
        self._state = state_machine
        self._chunks = chunk_store
        self._pipeline = pipeline
        self._fetcher = fetcher
        self._bucket = bucket
        self._max_file_size = max_file_size
        self._allowed_content_types = allowed_content_types

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def upload(
        self,
        owner_id: str,
        title: str,
        filename: str | None,
        content_type: str,
        data: bytes,
        source_url: str | None = None,
    ) -> Document:
        """Store *data* and create a ``pending`` document for it.

        Raises
        ------
        ValidationError
            For a blank title, empty or oversized body, unsupported content
            type, or a "PDF" whose bytes are not a PDF.
        StoreError
            If the bytes or the document row cannot be written.
        """
        content_type = (content_type or "").split(";")[0].strip().lower()
        self._validate_upload(title, content_type, data)

        document_id = uuid.uuid4().hex
        storage_path = f"{owner_id}/{document_id}/{safe_filename(filename, content_type)}"
        await self._bytes.put(self._bucket, storage_path, data)

        now = utcnow()
        document = Document(
            id=document_id,
            owner_id=owner_id,
            title=title.strip(),
            source_kind=SourceKind.URL if source_url else SourceKind.UPLOAD,
            source_url=source_url,
            content_type=content_type,
            storage_path=storage_path,
            file_size=len(data),
            created_at=now,
            updated_at=now,
        )
        try:
            created = await self._documents.create(document)
        except ThinkFolioError:
            await self._bytes.delete(self._bucket, storage_path)
            raise

        logger.info(
            "document_uploaded",
            document_id=document_id,
            owner_id=owner_id,
            content_type=content_type,
            size=len(data),
        )
        return created

    async def create_from_url(self, owner_id: str, url: str, title: str) -> Document:
        """Download *url* and upload the result as a url-sourced document."""
        if self._fetcher is None:
            raise ConfigurationError(message="No document fetcher configured")
        if not title or not title.strip():
            raise ValidationError(message="Title must not be empty")

        fetched = await self._fetcher.fetch(url)
        return await self.upload(
            owner_id,
            title,
            fetched.filename,
            fetched.content_type,
            fetched.data,
            source_url=fetched.url,
        )

    # ------------------------------------------------------------------
    # Reads and deletion
    # ------------------------------------------------------------------

    async def get(self, owner_id: str, document_id: str) -> Document:
        document = await self._documents.get(document_id)
        if document is None or document.owner_id != owner_id:
            raise NotFoundError(message=f"Document {document_id} not found")
        return document

    async def list_documents(self, owner_id: str, limit: int = 20, offset: int = 0) -> list[Document]:
        """The owner's documents, newest first."""
        return await self._documents.list_for_owner(owner_id, limit=limit, offset=offset)

    async def delete(self, owner_id: str, document_id: str) -> None:
        """Remove the stored file, then the document and everything hanging off it."""
        document = await self.get(owner_id, document_id)
        if document.storage_path:
            await self._bytes.delete(self._bucket, document.storage_path)
        await self._documents.delete(document_id)

    async def get_status(self, owner_id: str, document_id: str) -> ProcessingStatus:
        await self.get(owner_id, document_id)
        return await self._state.get(document_id)

    async def get_stats(self, owner_id: str, document_id: str) -> DocumentStats:
        """Chunk count, page spread and chunk-type breakdown for one document."""
        document = await self.get(owner_id, document_id)
        status = await self._state.get(document_id)
        chunks = await self._chunks.stats_for(document_id)
        return DocumentStats(
            document_id=document_id,
            status=status.state,
            page_count=document.page_count,
            chunks=chunks,
        )

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    async def process(self, owner_id: str, document_id: str) -> IngestionResult:
        """Ingest a ``pending`` document and wait for the run to finish."""
        await self.get(owner_id, document_id)
        return await self._pipeline.ingest_document(document_id)

    async def reprocess(self, owner_id: str, document_id: str) -> IngestionResult:
        """Reset a finished document and ingest it again.

        The old chunks are replaced by the pipeline once this call owns the
        run; a caller that loses the race gets an error and deletes nothing.

        Raises
        ------
        ConcurrentIngestionError
            If the document is currently processing.
        InvalidTransitionError
            If another reprocess finished the document first.
        """
        await self.get(owner_id, document_id)
        await self._state.reset(document_id)
        logger.info("document_reprocess_started", document_id=document_id)
        return await self._pipeline.ingest_document(document_id)

    def _validate_upload(self, title: str, content_type: str, data: bytes) -> None:
        if not title or not title.strip():
            raise ValidationError(message="Title must not be empty")
        if content_type not in self._allowed_content_types:
            raise ValidationError(
                message=(
                    f"Unsupported file type {content_type or 'unknown'}; "
                    f"allowed: {', '.join(self._allowed_content_types)}"
                ),
            )
        if not data:
            raise ValidationError(message="File is empty")
        if len(data) > self._max_file_size:
            raise ValidationError(
                message=f"File size must be less than {self._max_file_size // (1024 * 1024)}MB",
            )
        if content_type == "application/pdf" and not looks_like_pdf(data):
            raise ValidationError(message="File is not a valid PDF")
