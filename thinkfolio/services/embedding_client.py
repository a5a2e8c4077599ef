"""Retrying, time-bounded wrapper around an :class:`IEmbeddingProvider`.

Providers only translate SDK failures into
:class:`~thinkfolio.utils.errors.EmbeddingError`; this client decides what
to do about them:

    - every provider call runs under ``asyncio.wait_for(timeout)``
    - retryable errors (timeouts, rate limits, 5xx) are retried with a
      linear backoff of ``retry_backoff * attempt`` seconds
    - permanent errors (bad input, bad credentials) propagate at once
    - texts are sent in batches of ``batch_size``; output order always
      matches input order
"""

from __future__ import annotations

import asyncio

import structlog

from thinkfolio.interfaces.embedding_provider import IEmbeddingProvider
from thinkfolio.utils.errors import EmbeddingError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_BATCH_SIZE = 64
_MAX_RETRIES = 3
_RETRY_BACKOFF = 1.0  # seconds; multiplied by the attempt number
_TIMEOUT = 30.0


class EmbeddingClient:
    """Embeds text through an injected provider with retries and timeouts.

    Parameters
    ----------
    provider:
        The embedding backend.
    batch_size:
        Maximum number of texts sent in one provider call.
    max_retries:
        Total attempts per batch for retryable failures.
    retry_backoff:
        Base delay in seconds between attempts.
    timeout:
        Seconds allowed for a single provider call.
    """

    def __init__(
        self,
        provider: IEmbeddingProvider,
        batch_size: int = _DEFAULT_BATCH_SIZE,
        max_retries: int = _MAX_RETRIES,
        retry_backoff: float = _RETRY_BACKOFF,
        timeout: float = _TIMEOUT,
    ) -> None:
        self._provider = provider
        self._batch_size = max(batch_size, 1)
        self._max_retries = max(max_retries, 1)
        self._retry_backoff = retry_backoff
        self._timeout = timeout

    @property
    def provider_name(self) -> str:
        return self._provider.get_provider_name()

    async def embed(self, text: str) -> list[float]:
        """Embed a single text."""
        vectors = await self._embed_batch(0, [text])
        return vectors[0]

    async def embed_many(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts* in order, batching provider calls.

        Raises
        ------
        EmbeddingError
            If any batch fails permanently or exhausts its retries.  No
            partial result is returned.
        """
        vectors: list[list[float]] = []
        for start in range(0, len(texts), self._batch_size):
            batch = texts[start : start + self._batch_size]
            vectors.extend(await self._embed_batch(start, batch))
        return vectors

    async def _embed_batch(self, offset: int, batch: list[str]) -> list[list[float]]:
        """Embed one batch, retrying transient failures."""
        last_error: EmbeddingError | None = None

        for attempt in range(1, self._max_retries + 1):
            try:
                vectors = await asyncio.wait_for(
                    self._provider.embed(batch),
                    timeout=self._timeout,
                )
            except asyncio.TimeoutError:
                last_error = EmbeddingError(
                    message=f"Embedding request timed out after {self._timeout}s",
                    provider_name=self.provider_name,
                    retryable=True,
                )
            except EmbeddingError as exc:
                if not exc.retryable:
                    logger.error(
                        "embedding_failed_permanently",
                        provider=self.provider_name,
                        offset=offset,
                        error=exc.message,
                    )
                    raise
                last_error = exc
            else:
                if len(vectors) != len(batch):
                    raise EmbeddingError(
                        message=(
                            f"Embedding provider returned {len(vectors)} vectors "
                            f"for {len(batch)} inputs"
                        ),
                        provider_name=self.provider_name,
                        retryable=False,
                    )
                return vectors

            logger.warning(
                "embedding_retry",
                provider=self.provider_name,
                attempt=attempt,
                offset=offset,
                batch_size=len(batch),
                error=last_error.message,
            )
            if attempt < self._max_retries:
                await asyncio.sleep(self._retry_backoff * attempt)

        assert last_error is not None
        raise EmbeddingError(
            message=f"Embedding failed after {self._max_retries} attempts: {last_error.message}",
            provider_name=self.provider_name,
            retryable=True,
        ) from last_error
