"""Line-oriented text splitter producing overlapping, page-aware chunks.

The splitter walks the extracted text one line at a time and accumulates
lines into a buffer.  A chunk is cut when adding the next line would push
the buffer past ``chunk_size`` *and* the buffer already holds at least
``min_chunk_size`` characters of real text.  Lines are never split, so a
single very long line becomes one oversized chunk.

Consecutive chunks share context: the buffer that follows a cut starts
with the last ``chunk_overlap`` characters of the chunk just emitted,
whitespace included, so each chunk begins with exactly the previous
chunk's tail.  Only the first chunk is trimmed on both sides; later chunks
are trimmed on the right.

Page numbers are an estimate.  Extracted text carries no page boundaries,
so each chunk is assigned ``ceil(chars_consumed / len(text) * page_count)``
at the point where it starts.  This is an accepted approximation: pages
with figures or sparse reference lists skew it.
"""

from __future__ import annotations

import math

import structlog

from thinkfolio.models.rag import ChunkCandidate
from thinkfolio.utils.errors import ConfigurationError

logger = structlog.get_logger(logger_name=__name__)

CHUNK_SIZE = 500
CHUNK_OVERLAP = 50
MIN_CHUNK_SIZE = 100


class ChunkSplitter:
    """Splits document text into :class:`ChunkCandidate` windows.

    Parameters
    ----------
    chunk_size:
        Soft upper bound on chunk length in characters.
    chunk_overlap:
        Characters carried over from the end of one chunk into the next.
    min_chunk_size:
        A chunk is only cut once it holds at least this many characters.
    """

    def __init__(
        self,
        chunk_size: int = CHUNK_SIZE,
        chunk_overlap: int = CHUNK_OVERLAP,
        min_chunk_size: int = MIN_CHUNK_SIZE,
    ) -> None:
        if chunk_size <= 0:
            raise ConfigurationError(message="chunk_size must be positive")
        if not 0 <= chunk_overlap < chunk_size:
            raise ConfigurationError(message="chunk_overlap must be >= 0 and smaller than chunk_size")
        if not 0 < min_chunk_size <= chunk_size:
            raise ConfigurationError(message="min_chunk_size must be in (0, chunk_size]")
        self._chunk_size = chunk_size
        self._chunk_overlap = chunk_overlap
        self._min_chunk_size = min_chunk_size

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    @property
    def chunk_overlap(self) -> int:
        return self._chunk_overlap

    @property
    def min_chunk_size(self) -> int:
        return self._min_chunk_size

    def split(self, text: str, page_count: int) -> list[ChunkCandidate]:
        """Split *text* into ordered chunk candidates.

        Parameters
        ----------
        text:
            Flat extracted document text; lines are separated by ``\\n``.
        page_count:
            Number of pages reported by extraction.  Values below 1 are
            treated as a single page.

        Returns
        -------
        list[ChunkCandidate]
            Chunks in document order.  Empty when *text* has no
            non-whitespace content.
        """
        if not text or not text.strip():
            return []

        total_length = len(text)
        pages = max(page_count, 1)
        candidates: list[ChunkCandidate] = []

        buffer = ""
        seeded = False
        chunk_start = 0
        chars_consumed = 0
        current_page = 1

        for line in text.split("\n"):
            buffered_text = self._trim(buffer, seeded)
            if (
                len(buffer) + len(line) > self._chunk_size
                and len(buffered_text) >= self._min_chunk_size
            ):
                candidates.append(
                    ChunkCandidate(
                        page_number=current_page,
                        content=buffered_text,
                        start_index=chunk_start,
                        end_index=min(chars_consumed, total_length),
                    )
                )
                # The buffer always ends where the consumed text ends, so the
                # trimmed content's tail sits just before any trailing whitespace.
                content_end = chars_consumed - (len(buffer) - len(buffer.rstrip()))
                overlap = buffered_text[-self._chunk_overlap:] if self._chunk_overlap else ""
                chunk_start = max(content_end - len(overlap), 0)
                current_page = self._estimate_page(chars_consumed, total_length, pages)
                buffer = f"{overlap}\n{line}\n" if overlap else f"{line}\n"
                seeded = bool(overlap)
            else:
                buffer += line + "\n"
            chars_consumed += len(line) + 1

        remainder = self._trim(buffer, seeded)
        if remainder:
            candidates.append(
                ChunkCandidate(
                    page_number=current_page,
                    content=remainder,
                    start_index=chunk_start,
                    end_index=min(chars_consumed, total_length),
                )
            )

        logger.debug(
            "text_split",
            chars=total_length,
            pages=pages,
            chunks=len(candidates),
        )
        return candidates

    @staticmethod
    def _trim(buffer: str, seeded: bool) -> str:
        return buffer.rstrip() if seeded else buffer.strip()

    @staticmethod
    def _estimate_page(chars_consumed: int, total_length: int, pages: int) -> int:
        """Linear page estimate from character position, clamped to ``[1, pages]``."""
        if total_length <= 0:
            return 1
        estimate = math.ceil(chars_consumed / total_length * pages)
        return min(max(estimate, 1), pages)
