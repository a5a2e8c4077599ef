"""Custom exception hierarchy for ThinkFolio.

All application exceptions inherit from :class:`ThinkFolioError`, which
carries an optional ``provider_name`` so error handlers can identify which
collaborator (e.g. "openai_embedding", "sqlite", "pymupdf") caused the
failure.

The hierarchy is organized by pipeline stage:

    ThinkFolioError  (base -- catch-all for any ThinkFolio error)
    +-- ValidationError          (bad input shape, rejected at the boundary)
    +-- NotFoundError            (missing or not owned by the caller)
    +-- ExtractionError          (bytes could not yield text, never retried)
    +-- EmbeddingError           (embedding call failed, maybe retryable)
    +-- StoreError               (persistence failed, transaction rolled back)
    +-- InvalidTransitionError   (processing status cannot move that way)
    |   +-- ConcurrentIngestionError (document is already processing)
    +-- IngestionError           (terminal ingestion failure, user-facing)
    +-- LLMError                 (text generation failed)
    +-- ConfigurationError       (startup / invalid config)

The ingestion pipeline catches every stage error and re-raises a single
:class:`IngestionError` after marking the document ``failed``.
"""

from __future__ import annotations


class ThinkFolioError(Exception):
    """Base exception for all ThinkFolio errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which collaborator triggered the error.
    The ``__str__`` method prefixes the provider name in brackets for
    structured log output, e.g. ``[openai_embedding] Rate limit exceeded``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Boundary errors
# ---------------------------------------------------------------------------

class ValidationError(ThinkFolioError):
    """Raised when caller input has the wrong shape (never reaches the pipeline)."""

    def __init__(
        self,
        message: str = "Invalid input",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class NotFoundError(ThinkFolioError):
    """Raised when a document, session or chunk is missing or not owned by the caller."""

    def __init__(
        self,
        message: str = "Resource not found",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Ingestion stage errors
# ---------------------------------------------------------------------------

class ExtractionError(ThinkFolioError):
    """Raised when raw document bytes cannot be turned into text."""

    def __init__(
        self,
        message: str = "Text extraction failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class EmbeddingError(ThinkFolioError):
    """Raised when the embedding service fails.

    ``retryable`` distinguishes transient failures (timeouts, rate limits,
    5xx) from permanent ones (invalid input, bad credentials).
    """

    def __init__(
        self,
        message: str = "Embedding request failed",
        provider_name: str | None = None,
        retryable: bool = True,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._retryable = retryable

    @property
    def retryable(self) -> bool:
        return self._retryable


class StoreError(ThinkFolioError):
    """Raised when a persistence operation fails and was rolled back."""

    def __init__(
        self,
        message: str = "Storage operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class InvalidTransitionError(ThinkFolioError):
    """Raised when a processing status change is not allowed from the current state."""

    def __init__(
        self,
        message: str = "Invalid processing status transition",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConcurrentIngestionError(InvalidTransitionError):
    """Raised when a document is already being processed by another request."""

    def __init__(
        self,
        message: str = "Document is already being processed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class IngestionError(ThinkFolioError):
    """Raised when an ingestion run ends in the ``failed`` state."""

    def __init__(
        self,
        message: str = "Document ingestion failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Generation and startup errors
# ---------------------------------------------------------------------------

class LLMError(ThinkFolioError):
    """Raised when an LLM API call fails or returns nothing usable."""

    def __init__(
        self,
        message: str = "LLM request failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(ThinkFolioError):
    """Raised when configuration is missing or inconsistent."""

    def __init__(
        self,
        message: str = "Invalid configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
