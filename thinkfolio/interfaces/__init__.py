"""Capability interfaces for every external collaborator.

Concrete adapters live in ``thinkfolio/providers/`` and are constructed in
``thinkfolio/main.py``; services only ever see these ABCs, so tests can
inject fakes without network or disk access.

    Interface            ->  Concrete implementations
    ------------------------------------------------------------------
    IEmbeddingProvider   ->  OpenAIEmbeddingProvider, NomicEmbeddingProvider
    ILLMProvider         ->  OpenAILLMProvider, AnthropicLLMProvider, OllamaLLMProvider
    IChunkStore          ->  SQLiteChunkStore
    IStatusStore         ->  SQLiteStatusStore
    IDocumentStore       ->  SQLiteDocumentStore
    IChatStore           ->  SQLiteChatStore
    IByteStore           ->  LocalFileByteStore
    ITextExtractor       ->  PyMuPDFTextExtractor, PlainTextExtractor
    IDocumentFetcher     ->  HttpDocumentFetcher
"""

from thinkfolio.interfaces.byte_store import IByteStore
from thinkfolio.interfaces.chat_store import IChatStore
from thinkfolio.interfaces.chunk_store import IChunkStore
from thinkfolio.interfaces.document_store import IDocumentStore
from thinkfolio.interfaces.embedding_provider import IEmbeddingProvider
from thinkfolio.interfaces.llm_provider import ILLMProvider
from thinkfolio.interfaces.status_store import IStatusStore
from thinkfolio.interfaces.text_extractor import IDocumentFetcher, ITextExtractor

__all__ = [
    "IByteStore",
    "IChatStore",
    "IChunkStore",
    "IDocumentFetcher",
    "IDocumentStore",
    "IEmbeddingProvider",
    "ILLMProvider",
    "IStatusStore",
    "ITextExtractor",
]
