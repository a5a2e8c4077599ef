"""RAG pipeline data models: chunks, retrieval results and ingestion output.

Flow of a chunk through the system:

    ChunkSplitter  -> ChunkCandidate  (page, content, offsets)
    IngestionPipeline -> NewChunk     (+ ordinal, type tag, embedding)
    IChunkStore    -> Chunk           (+ id, document id, created_at)
    RetrievalEngine -> RetrievedChunk (Chunk + score + how it matched)

All models are frozen.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from thinkfolio.models.processing import ProcessingState


class ChunkType(str, Enum):  # noqa: UP042
    """Coarse section tag inferred from chunk text."""

    ABSTRACT = "abstract"
    INTRODUCTION = "introduction"
    METHODOLOGY = "methodology"
    RESULTS = "results"
    CONCLUSION = "conclusion"
    REFERENCES = "references"
    FIGURE_CAPTION = "figure_caption"
    TABLE = "table"
    BODY = "body"


class RetrievalMode(str, Enum):  # noqa: UP042
    """How :class:`~thinkfolio.services.retrieval_engine.RetrievalEngine` ranks chunks."""

    SEMANTIC = "semantic"
    HYBRID = "hybrid"


class ChunkCandidate(BaseModel):
    """A span of document text proposed by the splitter."""

    model_config = ConfigDict(frozen=True)

    page_number: int = Field(ge=1, description="Estimated 1-based page number.")
    content: str = Field(description="Trimmed chunk text.")
    start_index: int = Field(ge=0, description="Character offset where the chunk's buffer starts.")
    end_index: int = Field(ge=0, description="Character offset just past the last consumed line.")


class NewChunk(BaseModel):
    """A chunk ready to be persisted, embedding included."""

    model_config = ConfigDict(frozen=True)

    chunk_index: int = Field(ge=0, description="Ordinal within the document, in emission order.")
    page_number: int = Field(ge=1)
    content: str
    embedding: list[float] | None = Field(default=None, description="Vector from the embedding model.")
    chunk_type: ChunkType = ChunkType.BODY
    start_index: int = Field(default=0, ge=0)
    end_index: int = Field(default=0, ge=0)
    keyword_count: int = Field(default=0, ge=0)
    has_equations: bool = False
    has_citations: bool = False


class Chunk(NewChunk):
    """A stored chunk; immutable once written."""

    id: str = Field(description="Chunk identifier (UUID hex).")
    document_id: str = Field(description="Owning document.")
    created_at: datetime


class RetrievedChunk(BaseModel):
    """A chunk returned from similarity search, with its score."""

    model_config = ConfigDict(frozen=True)

    chunk: Chunk
    score: float = Field(
        description="Cosine similarity for semantic matches, matched-term fraction for keyword matches.",
    )
    match_type: Literal["semantic", "keyword"] = "semantic"

    @property
    def page_number(self) -> int:
        return self.chunk.page_number


class ChunkStats(BaseModel):
    """Aggregate view of one document's stored chunks."""

    model_config = ConfigDict(frozen=True)

    chunk_count: int = Field(default=0, ge=0)
    first_page: int | None = None
    last_page: int | None = None
    pages_covered: int = Field(default=0, ge=0, description="Distinct page numbers with at least one chunk.")
    chunk_types: dict[ChunkType, int] = Field(default_factory=dict)
    average_chunk_chars: float = Field(default=0.0, ge=0.0)
    chunks_with_equations: int = Field(default=0, ge=0)
    chunks_with_citations: int = Field(default=0, ge=0)


class DocumentStats(BaseModel):
    """Chunk statistics plus the processing state they belong to."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    status: ProcessingState
    page_count: int = Field(ge=0)
    chunks: ChunkStats


class IngestionResult(BaseModel):
    """Outcome of a successful ingestion run."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    chunks_created: int = Field(ge=0)
    processing_time: float = Field(default=0.0, ge=0.0, description="Wall-clock seconds.")


class ExtractedText(BaseModel):
    """Flat text pulled out of raw document bytes."""

    model_config = ConfigDict(frozen=True)

    text: str
    page_count: int = Field(ge=0)


class FetchedDocument(BaseModel):
    """Bytes downloaded from a document URL."""

    model_config = ConfigDict(frozen=True)

    url: str
    content_type: str
    data: bytes
    filename: str
