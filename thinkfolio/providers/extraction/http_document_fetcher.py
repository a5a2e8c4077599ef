"""Download documents from public URLs with httpx.

Only ``http``/``https`` URLs are accepted.  The response body is streamed
and abandoned as soon as it passes ``max_bytes``, so a server that lies
about (or omits) ``Content-Length`` still cannot make us buffer more than
the upload limit.
"""

from __future__ import annotations

from urllib.parse import urlparse

import httpx
import structlog

from thinkfolio.interfaces.text_extractor import IDocumentFetcher
from thinkfolio.models.rag import FetchedDocument
from thinkfolio.providers.extraction.pymupdf_extractor import looks_like_pdf
from thinkfolio.utils.errors import ExtractionError, ValidationError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_TIMEOUT = 30.0
_DEFAULT_MAX_BYTES = 10 * 1024 * 1024
_TEXT_CONTENT_TYPES = ("text/plain", "text/markdown")
_DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (compatible; ThinkFolio/0.1)",
    "Accept": "application/pdf,*/*;q=0.8",
}


class HttpDocumentFetcher(IDocumentFetcher):
    """Fetches PDF documents over HTTP(S).

    Parameters
    ----------
    http_client:
        Optional pre-built client (tests pass one backed by
        ``httpx.MockTransport``).  When omitted, one is created with the
        configured timeout and closed by :meth:`close`.
    timeout:
        Seconds allowed for the whole download.
    max_bytes:
        Largest body accepted.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = _DEFAULT_TIMEOUT,
        max_bytes: int = _DEFAULT_MAX_BYTES,
    ) -> None:
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            headers=_DEFAULT_HEADERS,
            follow_redirects=True,
        )
        self._max_bytes = max_bytes

    async def fetch(self, url: str) -> FetchedDocument:
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValidationError(message="Invalid URL format")

        try:
            async with self._client.stream("GET", url) as response:
                response.raise_for_status()

                declared = response.headers.get("content-length")
                if declared and declared.isdigit() and int(declared) > self._max_bytes:
                    raise ValidationError(message=self._too_large_message())

                body = bytearray()
                async for piece in response.aiter_bytes():
                    body.extend(piece)
                    if len(body) > self._max_bytes:
                        raise ValidationError(message=self._too_large_message())
                content_type = response.headers.get("content-type", "").split(";")[0].strip()
        except httpx.TimeoutException as exc:
            raise ExtractionError(
                message="Download timeout - document took too long to download",
                provider_name=self.get_provider_name(),
            ) from exc
        except httpx.HTTPStatusError as exc:
            raise ExtractionError(
                message=f"Failed to download document from URL (HTTP {exc.response.status_code})",
                provider_name=self.get_provider_name(),
            ) from exc
        except httpx.HTTPError as exc:
            raise ExtractionError(
                message=f"Failed to download document: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        data = bytes(body)
        # Servers often label PDFs application/octet-stream; trust the magic number.
        if looks_like_pdf(data):
            content_type = "application/pdf"
        elif content_type not in _TEXT_CONTENT_TYPES:
            raise ValidationError(message="Downloaded file is not a valid PDF")

        default_name = "url-upload.pdf" if content_type == "application/pdf" else "url-upload.txt"
        filename = parsed.path.rsplit("/", 1)[-1] or default_name
        logger.info("document_fetched", url=url, size=len(data), content_type=content_type)
        return FetchedDocument(
            url=url,
            content_type=content_type,
            data=data,
            filename=filename,
        )

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def get_provider_name(self) -> str:
        return "http_fetcher"

    def _too_large_message(self) -> str:
        return f"Document is too large (max {self._max_bytes // (1024 * 1024)}MB)"
