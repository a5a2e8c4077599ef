"""Embedding provider implementations.

Two implementations of IEmbeddingProvider, in the order main.py tries them:
    1. OpenAIEmbeddingProvider -- text-embedding-3-small (1536 dims), needs
       OPENAI_API_KEY.
    2. NomicEmbeddingProvider  -- nomic-embed-text via a local Ollama server
       (768 dims), free.
"""

from thinkfolio.providers.embedding.nomic_embedding_provider import NomicEmbeddingProvider
from thinkfolio.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

__all__ = ["OpenAIEmbeddingProvider", "NomicEmbeddingProvider"]
