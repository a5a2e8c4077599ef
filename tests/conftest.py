"""Shared pytest fixtures for the ThinkFolio test suite."""

from __future__ import annotations

import hashlib
import uuid
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from thinkfolio.interfaces.byte_store import IByteStore
from thinkfolio.interfaces.embedding_provider import IEmbeddingProvider
from thinkfolio.interfaces.llm_provider import ILLMProvider
from thinkfolio.models.document import Document
from thinkfolio.models.processing import utcnow
from thinkfolio.providers.database import (
    SQLiteChatStore,
    SQLiteChunkStore,
    SQLiteDocumentStore,
    SQLiteStatusStore,
)
from thinkfolio.providers.extraction import PlainTextExtractor
from thinkfolio.services import (
    ChunkSplitter,
    EmbeddingClient,
    IngestionPipeline,
    ProcessingStateMachine,
    RetrievalEngine,
)
from thinkfolio.utils.errors import EmbeddingError, NotFoundError

# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

EMBEDDING_DIM = 16


def hash_to_vector(text: str, dim: int = EMBEDDING_DIM) -> list[float]:
    """Deterministic vector for *text*: SHA-256 bytes scaled into [-1, 1]."""
    raw = hashlib.sha256(text.encode("utf-8")).digest()
    while len(raw) < dim:
        raw += hashlib.sha256(raw).digest()
    return [(b - 127.5) / 127.5 for b in raw[:dim]]


class FakeEmbeddingProvider(IEmbeddingProvider):
    """Hash-based embedder that can be told to fail on a given call.

    ``fail_on_call`` is 1-based; ``fail_times`` limits how many calls from
    that point on fail (``None`` = all of them).
    """

    def __init__(
        self,
        dim: int = EMBEDDING_DIM,
        fail_on_call: int | None = None,
        fail_times: int | None = None,
        retryable: bool = False,
    ) -> None:
        self.dim = dim
        self.fail_on_call = fail_on_call
        self.fail_times = fail_times
        self.retryable = retryable
        self.calls: list[list[str]] = []
        self._failures = 0

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        if self.fail_on_call is not None and len(self.calls) >= self.fail_on_call:
            if self.fail_times is None or self._failures < self.fail_times:
                self._failures += 1
                raise EmbeddingError(
                    message="embedding backend unavailable",
                    provider_name="fake_embedding",
                    retryable=self.retryable,
                )
        return [hash_to_vector(t, self.dim) for t in texts]

    def get_dimension(self) -> int:
        return self.dim

    def get_provider_name(self) -> str:
        return "fake_embedding"

    def is_available(self) -> bool:
        return True


class FakeByteStore(IByteStore):
    """In-memory byte store keyed by ``(bucket, path)``."""

    def __init__(self) -> None:
        self.objects: dict[tuple[str, str], bytes] = {}

    async def put(self, bucket: str, path: str, data: bytes) -> str:
        self.objects[(bucket, path)] = data
        return path

    async def get(self, bucket: str, path: str) -> bytes:
        try:
            return self.objects[(bucket, path)]
        except KeyError as exc:
            raise NotFoundError(message=f"No stored object at {bucket}/{path}") from exc

    async def delete(self, bucket: str, path: str) -> None:
        self.objects.pop((bucket, path), None)


def stream_of(*pieces: str):
    """A stand-in for ``ILLMProvider.stream`` that yields *pieces* in order."""

    async def _stream(**kwargs):
        for piece in pieces:
            yield piece

    return _stream


# ---------------------------------------------------------------------------
# Provider fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_embedder() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
def byte_store() -> FakeByteStore:
    return FakeByteStore()


@pytest.fixture
def mock_llm_provider() -> ILLMProvider:
    """Mock ILLMProvider; override ``complete.return_value`` or ``stream`` per test."""
    mock = MagicMock(spec=ILLMProvider)
    mock.get_provider_name.return_value = "mock-llm"
    mock.is_available.return_value = True
    mock.validate_credentials = AsyncMock(return_value=True)
    mock.complete = AsyncMock(return_value="The paper finds that attention is enough [Document 1].")
    mock.stream = MagicMock(side_effect=stream_of("The paper finds ", "that attention is enough [Document 1]."))
    return mock


# ---------------------------------------------------------------------------
# SQLite fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "thinkfolio-test.db"


@pytest_asyncio.fixture
async def document_store(db_path: Path) -> SQLiteDocumentStore:
    store = SQLiteDocumentStore(db_path=db_path)
    await store.initialize()
    return store


@pytest_asyncio.fixture
async def status_store(db_path: Path, document_store: SQLiteDocumentStore) -> SQLiteStatusStore:
    return SQLiteStatusStore(db_path=db_path)


@pytest_asyncio.fixture
async def chunk_store(db_path: Path, document_store: SQLiteDocumentStore) -> SQLiteChunkStore:
    return SQLiteChunkStore(db_path=db_path)


@pytest_asyncio.fixture
async def chat_store(db_path: Path, document_store: SQLiteDocumentStore) -> SQLiteChatStore:
    return SQLiteChatStore(db_path=db_path)


def make_document(owner_id: str = "user-1", **overrides) -> Document:
    now = utcnow()
    document_id = overrides.pop("id", uuid.uuid4().hex)
    fields = {
        "id": document_id,
        "owner_id": owner_id,
        "title": "Attention Is All You Need",
        "content_type": "text/plain",
        "storage_path": f"{owner_id}/{document_id}/paper.txt",
        "file_size": 0,
        "created_at": now,
        "updated_at": now,
    }
    fields.update(overrides)
    return Document(**fields)


@pytest_asyncio.fixture
async def document(document_store: SQLiteDocumentStore) -> Document:
    """A pending document owned by ``user-1``."""
    return await document_store.create(make_document())


# ---------------------------------------------------------------------------
# Service fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def state_machine(status_store: SQLiteStatusStore) -> ProcessingStateMachine:
    return ProcessingStateMachine(status_store)


@pytest.fixture
def embedding_client(fake_embedder: FakeEmbeddingProvider) -> EmbeddingClient:
    return EmbeddingClient(fake_embedder, batch_size=8, max_retries=2, retry_backoff=0.0, timeout=5.0)


@pytest.fixture
def pipeline(
    state_machine: ProcessingStateMachine,
    embedding_client: EmbeddingClient,
    chunk_store: SQLiteChunkStore,
    document_store: SQLiteDocumentStore,
    byte_store: FakeByteStore,
) -> IngestionPipeline:
    return IngestionPipeline(
        state_machine=state_machine,
        splitter=ChunkSplitter(),
        embedding_client=embedding_client,
        chunk_store=chunk_store,
        document_store=document_store,
        byte_store=byte_store,
        extractors=[PlainTextExtractor()],
    )


@pytest.fixture
def retrieval_engine(embedding_client: EmbeddingClient, chunk_store: SQLiteChunkStore) -> RetrievalEngine:
    return RetrievalEngine(embedding_client, chunk_store)


def paper_text(lines: int = 12, width: int = 99) -> str:
    """Deterministic multi-line text; every line is *width* characters."""
    topics = ["attention", "transformer", "encoder", "decoder", "softmax", "embedding"]
    rows = []
    for i in range(lines):
        seed = f"Line {i:02d} discusses {topics[i % len(topics)]} layers "
        rows.append((seed * 10)[: width - 1] + ".")
    return "\n".join(rows)
