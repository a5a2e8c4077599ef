"""Processing status models: the lifecycle of one document's ingestion.

The status is a tagged union discriminated on ``status``:

    PendingStatus --start()--> ProcessingRun --complete(n)--> CompletedStatus
                                             --fail(msg)----> FailedStatus
    CompletedStatus / FailedStatus --reset()--> PendingStatus

Each variant only exposes the transitions it allows, so an illegal move
such as ``completed -> processing`` cannot be expressed without an explicit
``reset()`` first.  All variants are frozen; transitions return new objects.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


class ProcessingState(str, Enum):  # noqa: UP042
    """The four ingestion states a document can be in."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class _StatusBase(BaseModel):
    """Fields shared by every status variant, for uniform polling output."""

    model_config = ConfigDict(frozen=True)

    document_id: str = Field(description="Document this status record belongs to.")
    started_at: datetime | None = Field(default=None, description="When processing began.")
    completed_at: datetime | None = Field(default=None, description="When processing ended.")
    chunks_created: int = Field(default=0, ge=0, description="Chunks persisted by the run.")
    error: str | None = Field(default=None, description="Human-readable failure reason.")

    @property
    def state(self) -> ProcessingState:
        return ProcessingState(self.status)  # type: ignore[attr-defined]

    @property
    def is_terminal(self) -> bool:
        return self.state in (ProcessingState.COMPLETED, ProcessingState.FAILED)

    @property
    def processing_time(self) -> float | None:
        """Seconds between start and completion, or ``None`` if not both known."""
        if self.started_at is None or self.completed_at is None:
            return None
        return round((self.completed_at - self.started_at).total_seconds(), 3)


class PendingStatus(_StatusBase):
    """Created with the document; waiting for an ingestion run."""

    status: Literal["pending"] = "pending"

    def start(self, at: datetime | None = None) -> ProcessingRun:
        return ProcessingRun(document_id=self.document_id, started_at=at or utcnow())


class ProcessingRun(_StatusBase):
    """An ingestion run is in flight."""

    status: Literal["processing"] = "processing"
    started_at: datetime

    def complete(self, chunks_created: int, at: datetime | None = None) -> CompletedStatus:
        return CompletedStatus(
            document_id=self.document_id,
            started_at=self.started_at,
            completed_at=at or utcnow(),
            chunks_created=chunks_created,
        )

    def fail(self, error: str, at: datetime | None = None) -> FailedStatus:
        return FailedStatus(
            document_id=self.document_id,
            started_at=self.started_at,
            completed_at=at or utcnow(),
            error=error or "Unknown error",
        )


class CompletedStatus(_StatusBase):
    """All chunks were embedded and durably stored."""

    status: Literal["completed"] = "completed"
    started_at: datetime
    completed_at: datetime

    def reset(self) -> PendingStatus:
        return PendingStatus(document_id=self.document_id)


class FailedStatus(_StatusBase):
    """The run ended with an unrecoverable error; ``completed_at`` is still set."""

    status: Literal["failed"] = "failed"
    completed_at: datetime
    error: str

    def reset(self) -> PendingStatus:
        return PendingStatus(document_id=self.document_id)


ProcessingStatus = Annotated[
    Union[PendingStatus, ProcessingRun, CompletedStatus, FailedStatus],
    Field(discriminator="status"),
]

_STATUS_ADAPTER: TypeAdapter[ProcessingStatus] = TypeAdapter(ProcessingStatus)


def parse_status(data: dict) -> ProcessingStatus:
    """Build the right status variant from a plain mapping (e.g. a DB row)."""
    return _STATUS_ADAPTER.validate_python(data)
