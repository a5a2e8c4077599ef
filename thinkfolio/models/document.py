"""Document (paper) records.

A :class:`Document` is created when a user uploads a file or submits a URL,
mutated by the ingestion pipeline (page count, status, error) and deleted
together with everything that hangs off it (chunks, status, chat sessions).
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from thinkfolio.models.processing import ProcessingState


class SourceKind(str, Enum):  # noqa: UP042
    """How the document's bytes reached us."""

    UPLOAD = "upload"
    URL = "url"


class Document(BaseModel):
    """An uploaded paper owned by a single user."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Document identifier (UUID hex).")
    owner_id: str = Field(description="User that owns the document.")
    title: str = Field(min_length=1, description="Display title.")
    source_kind: SourceKind = SourceKind.UPLOAD
    source_url: str | None = Field(default=None, description="Origin URL for url-sourced documents.")
    content_type: str = Field(default="application/pdf", description="MIME type of the stored bytes.")
    storage_path: str | None = Field(default=None, description="Byte-store path; None until stored.")
    file_size: int = Field(default=0, ge=0)
    page_count: int = Field(default=0, ge=0, description="Page count reported by extraction.")
    status: ProcessingState = ProcessingState.PENDING
    processing_error: str | None = None
    created_at: datetime
    updated_at: datetime
