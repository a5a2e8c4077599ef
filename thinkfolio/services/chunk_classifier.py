"""Keyword heuristics that tag chunks of academic papers.

Used by the ingestion pipeline to label each chunk with a coarse section
type and a few content flags.  The rules are plain substring and regex
checks; they are cheap and deterministic, not accurate section detection.
"""

from __future__ import annotations

import re

from thinkfolio.models.rag import ChunkType

# Checked in order; the first match wins.
_TYPE_RULES: list[tuple[ChunkType, tuple[str, ...]]] = [
    (ChunkType.ABSTRACT, ("abstract",)),
    (ChunkType.INTRODUCTION, ("introduction",)),
    (ChunkType.METHODOLOGY, ("methodology", "methods")),
    (ChunkType.RESULTS, ("results",)),
    (ChunkType.CONCLUSION, ("conclusion",)),
    (ChunkType.REFERENCES, ("references", "bibliography")),
    (ChunkType.FIGURE_CAPTION, ("figure", "fig.")),
    (ChunkType.TABLE, ("table",)),
]

_DISCOURSE_KEYWORDS: tuple[str, ...] = (
    "therefore",
    "however",
    "moreover",
    "furthermore",
    "consequently",
    "hypothesis",
    "analysis",
    "significant",
    "correlation",
    "evidence",
    "research",
    "study",
    "experiment",
    "observation",
    "conclusion",
)

_EQUATION_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"\$.*?\$"),
    re.compile(r"\\begin\{equation\}"),
    re.compile(r"\\\[.*?\\\]"),
    re.compile(r"[a-z]\s*=\s*\w", re.IGNORECASE),
    re.compile(r"[∑∏∫√±≈≠≤≥]"),
]

_CITATION_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"\[\d+\]"),
    re.compile(r"\(\d{4}\)"),
    re.compile(r"et al\."),
    re.compile(r"\([A-Z][a-z]+,?\s+\d{4}\)"),
]


def classify_chunk(text: str) -> ChunkType:
    """Return the section type suggested by keywords in *text*."""
    lowered = text.lower()
    for chunk_type, keywords in _TYPE_RULES:
        if any(keyword in lowered for keyword in keywords):
            return chunk_type
    return ChunkType.BODY


def count_keywords(text: str) -> int:
    """Count how many distinct discourse keywords occur in *text*."""
    lowered = text.lower()
    return sum(1 for keyword in _DISCOURSE_KEYWORDS if keyword in lowered)


def has_equations(text: str) -> bool:
    return any(pattern.search(text) for pattern in _EQUATION_PATTERNS)


def has_citations(text: str) -> bool:
    return any(pattern.search(text) for pattern in _CITATION_PATTERNS)
