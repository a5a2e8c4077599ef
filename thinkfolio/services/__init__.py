"""Business logic: chunking, embedding, ingestion, retrieval and chat.

Services depend only on the ABCs in :mod:`thinkfolio.interfaces`; concrete
providers are wired in by :mod:`thinkfolio.main`.
"""

from thinkfolio.services.chat_session_manager import ChatSessionManager
from thinkfolio.services.chunk_splitter import ChunkSplitter
from thinkfolio.services.document_service import DocumentService
from thinkfolio.services.embedding_client import EmbeddingClient
from thinkfolio.services.ingestion_pipeline import IngestionPipeline
from thinkfolio.services.insight_service import InsightService
from thinkfolio.services.retrieval_engine import RetrievalEngine
from thinkfolio.services.state_machine import ProcessingStateMachine

__all__ = [
    "ChatSessionManager",
    "ChunkSplitter",
    "DocumentService",
    "EmbeddingClient",
    "IngestionPipeline",
    "InsightService",
    "ProcessingStateMachine",
    "RetrievalEngine",
]
