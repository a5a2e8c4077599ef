"""Whole-document summaries and key-insight extraction.

Both operations retrieve the chunks most similar to a fixed request
(10 for a summary, 8 for insights), pack them into a context block and ask
the LLM once.  Nothing is persisted.
"""

from __future__ import annotations

import re

import structlog

from thinkfolio.interfaces.document_store import IDocumentStore
from thinkfolio.interfaces.llm_provider import ILLMProvider
from thinkfolio.services.chat_session_manager import build_context
from thinkfolio.services.retrieval_engine import RetrievalEngine
from thinkfolio.utils.errors import NotFoundError

logger = structlog.get_logger(logger_name=__name__)

SUMMARY_REQUEST = """\
Please provide a comprehensive summary of this academic paper, including:
1. Main research question or hypothesis
2. Methodology used
3. Key findings and results
4. Conclusions and implications
5. Limitations and future research directions"""

SUMMARY_SYSTEM_PROMPT = (
    "You are an expert at summarizing academic papers. "
    "Create a clear, structured summary based on the provided context."
)

INSIGHTS_REQUEST = """\
Extract the 5-7 most important insights, findings, or contributions from this paper.
Format each as a concise bullet point."""

INSIGHTS_SYSTEM_PROMPT = "Extract key insights from the academic paper based on the context provided."

NO_SUMMARY = "Unable to generate summary: No document content found."

_SUMMARY_K = 10
_INSIGHTS_K = 8

_BULLET_RE = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s+(?P<text>.+?)\s*$")


def parse_bullets(text: str) -> list[str]:
    """Pull bullet and numbered-list items out of an LLM reply."""
    items: list[str] = []
    for line in text.splitlines():
        match = _BULLET_RE.match(line)
        if match:
            items.append(match.group("text"))
    return items


class InsightService:
    """Summaries and bullet-point insights for one document."""

    def __init__(
        self,
        document_store: IDocumentStore,
        retrieval_engine: RetrievalEngine,
        llm_provider: ILLMProvider,
        context_char_budget: int = 8000,
        temperature: float = 0.3,
        max_tokens: int = 2000,
    ) -> None:
        self._documents = document_store
        self._retrieval = retrieval_engine
        self._llm = llm_provider
        self._context_char_budget = context_char_budget
        self._temperature = temperature
        self._max_tokens = max_tokens

    async def summarize(self, owner_id: str, document_id: str) -> str:
        """Structured summary of the document, or a fixed notice if it has no content."""
        await self._require_document(owner_id, document_id)

        results = await self._retrieval.retrieve(document_id, SUMMARY_REQUEST, _SUMMARY_K)
        if not results:
            return NO_SUMMARY

        context, _ = build_context(results, self._context_char_budget)
        summary = await self._llm.complete(
            system_prompt=f"{SUMMARY_SYSTEM_PROMPT}\n\nContext:\n{context}",
            user_prompt=SUMMARY_REQUEST,
            temperature=self._temperature,
            max_tokens=self._max_tokens,
        )
        logger.info("summary_generated", document_id=document_id, chunks=len(results))
        return summary.strip()

    async def extract_key_insights(self, owner_id: str, document_id: str) -> list[str]:
        """Five to seven one-line insights; ``[]`` when the document has no content."""
        await self._require_document(owner_id, document_id)

        results = await self._retrieval.retrieve(document_id, INSIGHTS_REQUEST, _INSIGHTS_K)
        if not results:
            return []

        context, _ = build_context(results, self._context_char_budget)
        reply = await self._llm.complete(
            system_prompt=f"{INSIGHTS_SYSTEM_PROMPT}\n\nContext:\n{context}",
            user_prompt=INSIGHTS_REQUEST,
            temperature=self._temperature,
            max_tokens=self._max_tokens,
        )
        insights = parse_bullets(reply)
        logger.info("insights_extracted", document_id=document_id, insights=len(insights))
        return insights

    async def _require_document(self, owner_id: str, document_id: str) -> None:
        document = await self._documents.get(document_id)
        if document is None or document.owner_id != owner_id:
            raise NotFoundError(message=f"Document {document_id} not found")
