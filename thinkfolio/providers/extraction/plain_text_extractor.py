"""Plain-text extraction for ``text/plain`` and ``text/markdown`` uploads.

Form feed characters (``\\f``) are treated as page breaks, which is what
``pdftotext`` and most text dumps of paginated documents emit.
"""

from __future__ import annotations

from thinkfolio.interfaces.text_extractor import ITextExtractor
from thinkfolio.models.rag import ExtractedText
from thinkfolio.utils.errors import ExtractionError


class PlainTextExtractor(ITextExtractor):
    """Decodes UTF-8 text and counts form-feed separated pages."""

    async def extract(self, data: bytes) -> ExtractedText:
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ExtractionError(
                message=f"Text is not valid UTF-8: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        pages = text.split("\f")
        return ExtractedText(text="\n".join(pages), page_count=len(pages) if text else 0)

    def supported_content_types(self) -> list[str]:
        return ["text/plain", "text/markdown"]

    def get_provider_name(self) -> str:
        return "plain_text"
