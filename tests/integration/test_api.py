"""End-to-end tests of the HTTP API against real SQLite stores.

The app is built with :func:`create_app` and its ``app.state`` filled in
by hand (the lifespan is not run), so providers can be swapped for fakes.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient

from tests.conftest import FakeByteStore, FakeEmbeddingProvider, paper_text
from thinkfolio.interfaces.llm_provider import ILLMProvider
from thinkfolio.main import create_app
from thinkfolio.providers.database import (
    SQLiteChatStore,
    SQLiteChunkStore,
    SQLiteDocumentStore,
    SQLiteStatusStore,
)
from thinkfolio.providers.extraction import HttpDocumentFetcher, PlainTextExtractor, PyMuPDFTextExtractor
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
from thinkfolio.services.chat_session_manager import PROCESSING_REPLY

USER = {"X-User-Id": "user-1"}
OTHER_USER = {"X-User-Id": "user-2"}


def _remote_paper(request: httpx.Request) -> httpx.Response:
    if request.url.path.endswith("missing.pdf"):
        return httpx.Response(404)
    return httpx.Response(200, content=paper_text().encode(), headers={"content-type": "text/plain"})


@pytest.fixture
def client(db_path: Path, mock_llm_provider: ILLMProvider) -> TestClient:
    document_store = SQLiteDocumentStore(db_path=db_path)
    asyncio.run(document_store.initialize())
    chunk_store = SQLiteChunkStore(db_path=db_path)
    chat_store = SQLiteChatStore(db_path=db_path)
    byte_store = FakeByteStore()

    state_machine = ProcessingStateMachine(SQLiteStatusStore(db_path=db_path))
    embedding_client = EmbeddingClient(FakeEmbeddingProvider(), batch_size=8, retry_backoff=0.0, timeout=5.0)
    pipeline = IngestionPipeline(
        state_machine=state_machine,
        splitter=ChunkSplitter(),
        embedding_client=embedding_client,
        chunk_store=chunk_store,
        document_store=document_store,
        byte_store=byte_store,
        extractors=[PyMuPDFTextExtractor(), PlainTextExtractor()],
    )
    retrieval_engine = RetrievalEngine(embedding_client, chunk_store)
    fetcher = HttpDocumentFetcher(http_client=httpx.AsyncClient(transport=httpx.MockTransport(_remote_paper)))

    app = create_app()
    app.state.document_service = DocumentService(
        document_store, byte_store, state_machine, chunk_store, pipeline, fetcher=fetcher
    )
    app.state.retrieval_engine = retrieval_engine
    app.state.chat_manager = ChatSessionManager(chat_store, document_store, retrieval_engine, mock_llm_provider)
    app.state.insight_service = InsightService(document_store, retrieval_engine, mock_llm_provider)
    app.state.provider_registry = {
        "llm": "mock-llm",
        "embedding": "fake_embedding",
        "extraction": pipeline.supported_content_types,
        "database": "sqlite",
        "storage": "memory",
    }
    return TestClient(app)


def _upload(client: TestClient, title: str = "Transformer notes", headers: dict | None = None) -> dict:
    response = client.post(
        "/api/v1/documents",
        headers=headers or USER,
        data={"title": title},
        files={"file": ("notes.txt", paper_text().encode(), "text/plain")},
    )
    assert response.status_code == 201, response.text
    return response.json()


def _sse_event(line: str) -> dict:
    return json.loads(line.removeprefix("data: "))


class TestHealthAndAuth:
    def test_health(self, client: TestClient) -> None:
        response = client.get("/api/v1/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["providers"]["llm"] == "mock-llm"

    def test_missing_user_header(self, client: TestClient) -> None:
        response = client.get("/api/v1/documents")

        assert response.status_code == 401


class TestDocumentsApi:
    def test_upload_and_get(self, client: TestClient) -> None:
        created = _upload(client)

        assert created["status"] == "pending"
        assert created["content_type"] == "text/plain"
        assert "storage_path" not in created

        fetched = client.get(f"/api/v1/documents/{created['id']}", headers=USER)
        assert fetched.status_code == 200
        assert fetched.json()["title"] == "Transformer notes"

    def test_upload_unsupported_type(self, client: TestClient) -> None:
        response = client.post(
            "/api/v1/documents",
            headers=USER,
            data={"title": "Image"},
            files={"file": ("figure.png", b"\x89PNG\r\n", "image/png")},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "ValidationError"

    def test_other_users_document_is_404(self, client: TestClient) -> None:
        created = _upload(client)

        response = client.get(f"/api/v1/documents/{created['id']}", headers=OTHER_USER)

        assert response.status_code == 404
        assert client.get("/api/v1/documents", headers=OTHER_USER).json()["documents"] == []

    def test_import_from_url(self, client: TestClient) -> None:
        response = client.post(
            "/api/v1/documents/from-url",
            headers=USER,
            json={"url": "https://example.org/notes.txt", "title": "Remote notes"},
        )

        assert response.status_code == 201
        body = response.json()
        assert body["source_kind"] == "url"
        assert body["source_url"] == "https://example.org/notes.txt"

    def test_import_from_url_upstream_404(self, client: TestClient) -> None:
        response = client.post(
            "/api/v1/documents/from-url",
            headers=USER,
            json={"url": "https://example.org/missing.pdf", "title": "Gone"},
        )

        assert response.status_code == 422
        assert response.json()["error"] == "ExtractionError"

    def test_process_status_and_conflict(self, client: TestClient) -> None:
        document_id = _upload(client)["id"]

        processed = client.post(f"/api/v1/documents/{document_id}/process", headers=USER)
        assert processed.status_code == 200
        assert processed.json()["chunks_created"] == 3

        status = client.get(f"/api/v1/documents/{document_id}/status", headers=USER).json()
        assert status["status"] == "completed"
        assert status["chunks_created"] == 3
        assert status["processing_time"] is not None

        again = client.post(f"/api/v1/documents/{document_id}/process", headers=USER)
        assert again.status_code == 409

        reprocessed = client.post(f"/api/v1/documents/{document_id}/reprocess", headers=USER)
        assert reprocessed.status_code == 200
        assert reprocessed.json()["chunks_created"] == 3

    def test_query(self, client: TestClient) -> None:
        document_id = _upload(client)["id"]

        early = client.post(f"/api/v1/documents/{document_id}/query", headers=USER, json={"question": "attention?"})
        assert early.status_code == 200
        assert early.json()["results"] == []

        client.post(f"/api/v1/documents/{document_id}/process", headers=USER)
        response = client.post(
            f"/api/v1/documents/{document_id}/query",
            headers=USER,
            json={"question": "How do the encoder layers work?", "k": 2},
        )
        assert response.status_code == 200
        results = response.json()["results"]
        assert len(results) == 2
        assert results[0]["score"] >= results[1]["score"]

    def test_hybrid_query(self, client: TestClient) -> None:
        document_id = _upload(client)["id"]
        client.post(f"/api/v1/documents/{document_id}/process", headers=USER)

        response = client.post(
            f"/api/v1/documents/{document_id}/query",
            headers=USER,
            json={"question": "Which lines cover softmax layers?", "k": 3, "mode": "hybrid"},
        )
        assert response.status_code == 200
        results = response.json()["results"]
        assert len(results) == 3
        assert len({r["chunk_id"] for r in results}) == 3
        assert {r["match_type"] for r in results} <= {"semantic", "keyword"}

        unknown = client.post(
            f"/api/v1/documents/{document_id}/query",
            headers=USER,
            json={"question": "softmax", "mode": "fuzzy"},
        )
        assert unknown.status_code == 422

    def test_stats(self, client: TestClient) -> None:
        document_id = _upload(client)["id"]

        before = client.get(f"/api/v1/documents/{document_id}/stats", headers=USER).json()
        assert before["status"] == "pending"
        assert before["chunk_count"] == 0
        assert before["first_page"] is None

        client.post(f"/api/v1/documents/{document_id}/process", headers=USER)
        after = client.get(f"/api/v1/documents/{document_id}/stats", headers=USER).json()
        assert after["status"] == "completed"
        assert after["chunk_count"] == 3
        assert after["first_page"] == after["last_page"] == 1
        assert sum(after["chunk_types"].values()) == 3
        assert after["average_chunk_chars"] > 0

        assert client.get(f"/api/v1/documents/{document_id}/stats", headers=OTHER_USER).status_code == 404

    def test_query_k_out_of_range(self, client: TestClient) -> None:
        document_id = _upload(client)["id"]

        response = client.post(
            f"/api/v1/documents/{document_id}/query",
            headers=USER,
            json={"question": "anything", "k": 50},
        )

        assert response.status_code == 400

    def test_summary_and_insights(self, client: TestClient, mock_llm_provider: ILLMProvider) -> None:
        document_id = _upload(client)["id"]
        client.post(f"/api/v1/documents/{document_id}/process", headers=USER)

        mock_llm_provider.complete.return_value = "- Insight one\n- Insight two"
        insights = client.post(f"/api/v1/documents/{document_id}/insights", headers=USER)
        summary = client.post(f"/api/v1/documents/{document_id}/summary", headers=USER)

        assert insights.json()["insights"] == ["Insight one", "Insight two"]
        assert summary.json()["summary"] == "- Insight one\n- Insight two"

    def test_delete(self, client: TestClient) -> None:
        document_id = _upload(client)["id"]
        client.post(f"/api/v1/documents/{document_id}/process", headers=USER)

        response = client.delete(f"/api/v1/documents/{document_id}", headers=USER)

        assert response.status_code == 204
        assert client.get(f"/api/v1/documents/{document_id}", headers=USER).status_code == 404


class TestChatApi:
    def test_chat_round_trip(self, client: TestClient, mock_llm_provider: ILLMProvider) -> None:
        document_id = _upload(client)["id"]
        client.post(f"/api/v1/documents/{document_id}/process", headers=USER)

        session = client.post("/api/v1/sessions", headers=USER, json={"document_id": document_id})
        assert session.status_code == 201
        session_id = session.json()["id"]
        assert session.json()["title"] == "Chat about Transformer notes"

        turn = client.post(
            f"/api/v1/sessions/{session_id}/messages",
            headers=USER,
            json={"content": "What do the decoder layers do?"},
        )
        assert turn.status_code == 200
        body = turn.json()
        assert body["user_message"]["role"] == "user"
        assert body["assistant_message"]["content"] == "The paper finds that attention is enough [Document 1]."

        messages = client.get(f"/api/v1/sessions/{session_id}/messages", headers=USER).json()["messages"]
        assert [m["role"] for m in messages] == ["user", "assistant"]
        assert mock_llm_provider.complete.await_count == 1

    def test_streamed_chat_turn(self, client: TestClient) -> None:
        document_id = _upload(client)["id"]
        client.post(f"/api/v1/documents/{document_id}/process", headers=USER)
        session_id = client.post("/api/v1/sessions", headers=USER, json={"document_id": document_id}).json()["id"]

        response = client.post(
            f"/api/v1/sessions/{session_id}/messages/stream",
            headers=USER,
            json={"content": "What do the decoder layers do?"},
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = [_sse_event(line) for line in response.text.splitlines() if line.startswith("data: ")]
        assert [e["type"] for e in events] == ["user_message", "delta", "delta", "done"]
        assert events[0]["message"]["role"] == "user"
        assert "".join(e["text"] for e in events if e["type"] == "delta") == (
            "The paper finds that attention is enough [Document 1]."
        )
        assert events[-1]["message"]["role"] == "assistant"

        messages = client.get(f"/api/v1/sessions/{session_id}/messages", headers=USER).json()["messages"]
        assert [m["role"] for m in messages] == ["user", "assistant"]

    def test_streamed_chat_other_users_session_is_404(self, client: TestClient) -> None:
        document_id = _upload(client)["id"]
        session_id = client.post("/api/v1/sessions", headers=USER, json={"document_id": document_id}).json()["id"]

        response = client.post(
            f"/api/v1/sessions/{session_id}/messages/stream",
            headers=OTHER_USER,
            json={"content": "Hello?"},
        )

        assert response.status_code == 404

    def test_chat_before_processing(self, client: TestClient, mock_llm_provider: ILLMProvider) -> None:
        document_id = _upload(client)["id"]
        session_id = client.post("/api/v1/sessions", headers=USER, json={"document_id": document_id}).json()["id"]

        turn = client.post(f"/api/v1/sessions/{session_id}/messages", headers=USER, json={"content": "Hello?"})

        assert turn.status_code == 200
        assert turn.json()["assistant_message"]["content"] == PROCESSING_REPLY
        mock_llm_provider.complete.assert_not_called()

    def test_sessions_are_owner_scoped(self, client: TestClient) -> None:
        document_id = _upload(client)["id"]
        session_id = client.post("/api/v1/sessions", headers=USER, json={"document_id": document_id}).json()["id"]

        assert client.get(f"/api/v1/sessions/{session_id}", headers=OTHER_USER).status_code == 404
        assert client.get("/api/v1/sessions", headers=OTHER_USER).json()["sessions"] == []
        assert client.post("/api/v1/sessions", headers=OTHER_USER, json={"document_id": document_id}).status_code == 404

    def test_delete_session(self, client: TestClient) -> None:
        document_id = _upload(client)["id"]
        session_id = client.post("/api/v1/sessions", headers=USER, json={"document_id": document_id}).json()["id"]

        assert client.delete(f"/api/v1/sessions/{session_id}", headers=USER).status_code == 204
        assert client.get(f"/api/v1/sessions/{session_id}", headers=USER).status_code == 404

    def test_blank_message_rejected(self, client: TestClient) -> None:
        document_id = _upload(client)["id"]
        session_id = client.post("/api/v1/sessions", headers=USER, json={"document_id": document_id}).json()["id"]

        response = client.post(f"/api/v1/sessions/{session_id}/messages", headers=USER, json={"content": "  "})

        assert response.status_code == 400
