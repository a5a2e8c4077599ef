"""ThinkFolio FastAPI application entry point.

Wires together all providers, services, and routes via dependency injection.
Loads configuration from ``.env`` and ``config/config.yaml``, configures
structured logging, and creates the SQLite schema on startup.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import structlog
import uvicorn
from fastapi import FastAPI

from thinkfolio import __version__
from thinkfolio.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from thinkfolio.api.routes import router as api_router
from thinkfolio.config.loader import load_config
from thinkfolio.config.settings import Settings
from thinkfolio.interfaces.embedding_provider import IEmbeddingProvider
from thinkfolio.interfaces.llm_provider import ILLMProvider
from thinkfolio.providers.database import (
    SQLiteChatStore,
    SQLiteChunkStore,
    SQLiteDocumentStore,
    SQLiteStatusStore,
)
from thinkfolio.providers.embedding import NomicEmbeddingProvider, OpenAIEmbeddingProvider
from thinkfolio.providers.extraction import (
    HttpDocumentFetcher,
    PlainTextExtractor,
    PyMuPDFTextExtractor,
)
from thinkfolio.providers.llm import AnthropicLLMProvider, OllamaLLMProvider, OpenAILLMProvider
from thinkfolio.providers.storage import LocalFileByteStore
from thinkfolio.services import (
    ChatSessionManager,
    ChunkSplitter,
    DocumentService,
    EmbeddingClient,
    IngestionPipeline,
    InsightService,
    ProcessingStateMachine,
    RetrievalEngine,
)
from thinkfolio.utils.logging import configure_logging, get_logger

# ---------------------------------------------------------------------------
# Module-level settings & logging
# ---------------------------------------------------------------------------

settings = Settings()
config = load_config(settings=settings)

configure_logging(
    log_level=settings.log_level,
    json_output=(settings.app_env == "production"),
)
_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Provider selection
# ---------------------------------------------------------------------------


def _build_llm_provider(app_settings: Settings) -> ILLMProvider:
    """Select the first available LLM provider based on configured API keys.

    Priority order: Anthropic -> OpenAI -> Ollama (always available).
    """
    if app_settings.anthropic_api_key:
        return AnthropicLLMProvider(settings=app_settings)
    if app_settings.openai_api_key:
        return OpenAILLMProvider(settings=app_settings)
    return OllamaLLMProvider(settings=app_settings)


def _build_embedding_provider(app_settings: Settings) -> IEmbeddingProvider:
    """Select the embedding provider.

    Priority: OpenAI/OpenAI-compatible (if API key set) -> Nomic via Ollama.
    Ollama reachability is not checked here; a missing server surfaces as a
    retryable :class:`EmbeddingError` during ingestion instead of blocking
    startup.
    """
    if app_settings.openai_api_key:
        return OpenAIEmbeddingProvider(settings=app_settings)
    return NomicEmbeddingProvider(settings=app_settings)


# ---------------------------------------------------------------------------
# Full DI assembly for the FastAPI application
# ---------------------------------------------------------------------------


def _build_all(app_settings: Settings, app_config: dict[str, Any]) -> dict[str, Any]:
    """Construct every provider and service instance for the application.

    Returns a flat dict of named components to be stored on ``app.state``.
    """
    chunking = app_config["chunking"]
    embedding = app_config["embedding"]
    retrieval = app_config["retrieval"]
    chat = app_config["chat"]
    upload = app_config["upload"]

    # -- Persistence --
    db_path = Path(app_settings.database_path)
    document_store = SQLiteDocumentStore(db_path=db_path)
    status_store = SQLiteStatusStore(db_path=db_path)
    chunk_store = SQLiteChunkStore(db_path=db_path)
    chat_store = SQLiteChatStore(db_path=db_path)
    byte_store = LocalFileByteStore(root=Path(app_settings.storage_dir))

    # -- External providers --
    llm_provider = _build_llm_provider(app_settings)
    embedding_provider = _build_embedding_provider(app_settings)
    fetcher = HttpDocumentFetcher(
        timeout=upload["fetch_timeout"],
        max_bytes=upload["max_file_size"],
    )
    extractors = [PyMuPDFTextExtractor(), PlainTextExtractor()]

    # -- Ingestion --
    state_machine = ProcessingStateMachine(status_store)
    splitter = ChunkSplitter(
        chunk_size=chunking["chunk_size"],
        chunk_overlap=chunking["chunk_overlap"],
        min_chunk_size=chunking["min_chunk_size"],
    )
    embedding_client = EmbeddingClient(
        provider=embedding_provider,
        batch_size=embedding["batch_size"],
        max_retries=embedding["max_retries"],
        retry_backoff=embedding["retry_backoff"],
        timeout=embedding["timeout"],
    )
    pipeline = IngestionPipeline(
        state_machine=state_machine,
        splitter=splitter,
        embedding_client=embedding_client,
        chunk_store=chunk_store,
        document_store=document_store,
        byte_store=byte_store,
        extractors=extractors,
        bucket=app_settings.storage_bucket,
        max_chunk_chars=chunking["max_chunk_chars"],
    )

    # -- Query side --
    retrieval_engine = RetrievalEngine(
        embedding_client=embedding_client,
        chunk_store=chunk_store,
        default_k=retrieval["default_k"],
        max_k=retrieval["max_k"],
    )
    chat_manager = ChatSessionManager(
        chat_store=chat_store,
        document_store=document_store,
        retrieval_engine=retrieval_engine,
        llm_provider=llm_provider,
        top_k=retrieval["default_k"],
        score_threshold=retrieval["score_threshold"],
        context_char_budget=chat["context_char_budget"],
        history_window=chat["history_window"],
        generation_timeout=chat["generation_timeout"],
        temperature=chat["temperature"],
        max_tokens=chat["max_tokens"],
    )
    insight_service = InsightService(
        document_store=document_store,
        retrieval_engine=retrieval_engine,
        llm_provider=llm_provider,
        temperature=chat["temperature"],
        max_tokens=chat["max_tokens"],
    )
    document_service = DocumentService(
        document_store=document_store,
        byte_store=byte_store,
        state_machine=state_machine,
        chunk_store=chunk_store,
        pipeline=pipeline,
        fetcher=fetcher,
        bucket=app_settings.storage_bucket,
        max_file_size=upload["max_file_size"],
    )

    # -- Provider registry for /health --
    provider_registry: dict[str, Any] = {
        "llm": llm_provider.get_provider_name(),
        "embedding": embedding_provider.get_provider_name(),
        "extraction": pipeline.supported_content_types,
        "database": "sqlite",
        "storage": "local_fs",
    }

    return {
        "database": document_store,
        "fetcher": fetcher,
        "document_service": document_service,
        "retrieval_engine": retrieval_engine,
        "chat_manager": chat_manager,
        "insight_service": insight_service,
        "provider_registry": provider_registry,
        "primary_llm_name": llm_provider.get_provider_name(),
    }


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(application: FastAPI):  # noqa: ANN201
    """Initialise all providers and services on startup, clean up on shutdown."""
    components = _build_all(settings, config)

    for key, value in components.items():
        setattr(application.state, key, value)

    # All stores share one file; creating the schema once covers them all.
    await components["database"].initialize()

    _logger.info(
        "app_startup",
        version=__version__,
        environment=settings.app_env,
        primary_llm=components["primary_llm_name"],
        database=settings.database_path,
    )

    yield

    # -- Shutdown: close the fetcher's HTTP client --
    await components["fetcher"].close()
    _logger.info("app_shutdown", message="HTTP client closed")


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Build and configure the FastAPI application."""
    application = FastAPI(
        title="ThinkFolio API",
        version=__version__,
        description=(
            "Upload research papers, let ThinkFolio chunk and embed them, then "
            "ask questions, get summaries and key insights with page-level "
            "citations back to the source text."
        ),
        lifespan=_lifespan,
    )

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application)

    # -- API routes --
    application.include_router(api_router)

    return application


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "thinkfolio.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )
