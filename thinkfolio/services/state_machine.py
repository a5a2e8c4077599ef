"""Per-document processing state machine.

States: ``pending -> processing -> {completed, failed}``.  ``completed``
and ``failed`` are terminal until :meth:`ProcessingStateMachine.reset`
returns the document to ``pending`` for an explicit re-ingestion.

Every move is a compare-and-set against the status store, so two requests
racing to start the same document cannot both win: the loser sees
:class:`~thinkfolio.utils.errors.ConcurrentIngestionError`.
"""

from __future__ import annotations

import structlog

from thinkfolio.interfaces.status_store import IStatusStore
from thinkfolio.models.processing import (
    CompletedStatus,
    FailedStatus,
    PendingStatus,
    ProcessingRun,
    ProcessingState,
    ProcessingStatus,
)
from thinkfolio.utils.errors import (
    ConcurrentIngestionError,
    InvalidTransitionError,
    NotFoundError,
)

logger = structlog.get_logger(logger_name=__name__)


class ProcessingStateMachine:
    """Validates and persists processing status transitions."""

    def __init__(self, status_store: IStatusStore) -> None:
        self._store = status_store

    async def get(self, document_id: str) -> ProcessingStatus:
        """Return the current status.

        Raises
        ------
        NotFoundError
            If the document has no status record.
        """
        status = await self._store.get(document_id)
        if status is None:
            raise NotFoundError(message=f"No processing status for document {document_id}")
        return status

    async def begin(self, document_id: str) -> ProcessingRun:
        """Move ``pending -> processing`` and record the start time.

        Raises
        ------
        ConcurrentIngestionError
            If the document is already processing.
        InvalidTransitionError
            If the document is ``completed`` or ``failed`` (reset first).
        """
        current = await self.get(document_id)
        if isinstance(current, ProcessingRun):
            raise ConcurrentIngestionError(
                message=f"Document {document_id} is already being processed",
            )
        if not isinstance(current, PendingStatus):
            raise InvalidTransitionError(
                message=(
                    f"Document {document_id} is {current.state.value}; "
                    "reset it before processing again"
                ),
            )

        started = current.start()
        await self._apply(ProcessingState.PENDING, started)
        return started

    async def complete(self, document_id: str, chunks_created: int) -> CompletedStatus:
        """Move ``processing -> completed`` with the final chunk count."""
        current = await self._require_processing(document_id)
        completed = current.complete(chunks_created)
        await self._apply(ProcessingState.PROCESSING, completed)
        return completed

    async def fail(self, document_id: str, error: str) -> FailedStatus:
        """Move ``processing -> failed`` with a human-readable reason."""
        current = await self._require_processing(document_id)
        failed = current.fail(error)
        await self._apply(ProcessingState.PROCESSING, failed)
        return failed

    async def reset(self, document_id: str) -> PendingStatus:
        """Return a terminal document to ``pending`` for re-ingestion.

        A document that is already ``pending`` is returned unchanged.

        Raises
        ------
        ConcurrentIngestionError
            If the document is currently processing.
        """
        current = await self.get(document_id)
        if isinstance(current, PendingStatus):
            return current
        if isinstance(current, ProcessingRun):
            raise ConcurrentIngestionError(
                message=f"Document {document_id} is being processed and cannot be reset",
            )

        pending = current.reset()
        await self._apply(current.state, pending)
        return pending

    async def _require_processing(self, document_id: str) -> ProcessingRun:
        current = await self.get(document_id)
        if not isinstance(current, ProcessingRun):
            raise InvalidTransitionError(
                message=f"Document {document_id} is {current.state.value}, not processing",
            )
        return current

    async def _apply(self, expected: ProcessingState, new_status: ProcessingStatus) -> None:
        applied = await self._store.transition(expected, new_status)
        if not applied:
            # Someone else moved the record between our read and write.
            if expected is ProcessingState.PENDING:
                raise ConcurrentIngestionError(
                    message=f"Document {new_status.document_id} is already being processed",
                )
            raise InvalidTransitionError(
                message=(
                    f"Document {new_status.document_id} left {expected.value} "
                    f"before it could move to {new_status.state.value}"
                ),
            )
        logger.info(
            "processing_status_changed",
            document_id=new_status.document_id,
            from_state=expected.value,
            to_state=new_status.state.value,
            chunks_created=new_status.chunks_created,
        )
