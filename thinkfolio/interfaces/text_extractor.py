"""Abstract base classes for turning raw document bytes into text."""

from __future__ import annotations

from abc import ABC, abstractmethod

from thinkfolio.models.rag import ExtractedText, FetchedDocument


class ITextExtractor(ABC):
    """Extracts flat text and a page count from one document format."""

    @abstractmethod
    async def extract(self, data: bytes) -> ExtractedText:
        """Return the document's text and page count.

        Raises
        ------
        thinkfolio.utils.errors.ExtractionError
            If the bytes cannot be read as this format.
        """

    @abstractmethod
    def supported_content_types(self) -> list[str]:
        """MIME types this extractor handles."""


class IDocumentFetcher(ABC):
    """Downloads a document from a URL."""

    @abstractmethod
    async def fetch(self, url: str) -> FetchedDocument:
        """Download *url* and return its bytes and content type.

        Raises
        ------
        thinkfolio.utils.errors.ValidationError
            If the URL or the response is unacceptable (scheme, type, size).
        thinkfolio.utils.errors.ExtractionError
            If the download itself fails.
        """
