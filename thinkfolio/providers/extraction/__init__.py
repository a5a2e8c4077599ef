"""Text extraction and URL download adapters."""

from thinkfolio.providers.extraction.http_document_fetcher import HttpDocumentFetcher
from thinkfolio.providers.extraction.plain_text_extractor import PlainTextExtractor
from thinkfolio.providers.extraction.pymupdf_extractor import PyMuPDFTextExtractor, looks_like_pdf

__all__ = [
    "HttpDocumentFetcher",
    "PlainTextExtractor",
    "PyMuPDFTextExtractor",
    "looks_like_pdf",
]
