"""PDF text extraction using PyMuPDF (fitz).

Pages are read in order and joined with a newline, so the splitter sees one
flat text stream and estimates page numbers from character position.
Parsing runs in a worker thread; PyMuPDF is synchronous and a large paper
can take a noticeable fraction of a second.
"""

from __future__ import annotations

import asyncio

import fitz  # PyMuPDF -- the "fitz" import name is a PyMuPDF convention
import structlog

from thinkfolio.interfaces.text_extractor import ITextExtractor
from thinkfolio.models.rag import ExtractedText
from thinkfolio.utils.errors import ExtractionError

logger = structlog.get_logger(logger_name=__name__)

PDF_MAGIC = b"%PDF"


def looks_like_pdf(data: bytes) -> bool:
    """Return ``True`` if *data* starts with the PDF magic number."""
    return data[:4] == PDF_MAGIC


class PyMuPDFTextExtractor(ITextExtractor):
    """Extracts text from PDF bytes page by page."""

    async def extract(self, data: bytes) -> ExtractedText:
        if not looks_like_pdf(data):
            raise ExtractionError(
                message="Data is not a valid PDF file",
                provider_name=self.get_provider_name(),
            )
        result = await asyncio.to_thread(self._extract_sync, data)
        logger.info(
            "pdf_text_extracted",
            pages=result.page_count,
            characters=len(result.text),
        )
        return result

    def supported_content_types(self) -> list[str]:
        return ["application/pdf"]

    def get_provider_name(self) -> str:
        return "pymupdf"

    def _extract_sync(self, data: bytes) -> ExtractedText:
        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except Exception as exc:  # noqa: BLE001 -- fitz raises several unrelated types
            raise ExtractionError(
                message=f"Failed to open PDF: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        try:
            pages = [page.get_text("text") for page in doc]
        except Exception as exc:  # noqa: BLE001
            raise ExtractionError(
                message=f"Failed to read PDF text: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        finally:
            doc.close()

        return ExtractedText(text="\n".join(pages), page_count=len(pages))
