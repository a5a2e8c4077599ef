"""Unit tests for the SQLite document, chunk and chat stores."""

from __future__ import annotations

from datetime import timedelta

import aiosqlite
import pytest

from tests.conftest import hash_to_vector, make_document
from thinkfolio.models.chat import MessageRole, NewCitation
from thinkfolio.models.document import Document
from thinkfolio.models.processing import ProcessingState
from thinkfolio.models.rag import ChunkType, NewChunk
from thinkfolio.providers.database import (
    SQLiteChatStore,
    SQLiteChunkStore,
    SQLiteDocumentStore,
    SQLiteStatusStore,
)
from thinkfolio.utils.errors import NotFoundError, StoreError, ValidationError


def _chunks(texts: list[str], vectors: list[list[float]] | None = None) -> list[NewChunk]:
    vectors = vectors or [hash_to_vector(t) for t in texts]
    return [
        NewChunk(chunk_index=i, page_number=1, content=text, embedding=vector)
        for i, (text, vector) in enumerate(zip(texts, vectors))
    ]


# ======================================================================
# Documents
# ======================================================================


class TestSQLiteDocumentStore:
    @pytest.mark.asyncio
    async def test_create_and_get(self, document_store: SQLiteDocumentStore) -> None:
        created = await document_store.create(make_document(title="BERT"))

        fetched = await document_store.get(created.id)

        assert fetched is not None
        assert fetched.title == "BERT"
        assert fetched.status is ProcessingState.PENDING
        assert fetched.processing_error is None

    @pytest.mark.asyncio
    async def test_create_inserts_pending_status(
        self, document_store: SQLiteDocumentStore, status_store: SQLiteStatusStore
    ) -> None:
        created = await document_store.create(make_document())

        status = await status_store.get(created.id)

        assert status is not None
        assert status.state is ProcessingState.PENDING

    @pytest.mark.asyncio
    async def test_duplicate_id_is_store_error(self, document_store: SQLiteDocumentStore) -> None:
        document = make_document()
        await document_store.create(document)

        with pytest.raises(StoreError):
            await document_store.create(document)

    @pytest.mark.asyncio
    async def test_list_is_scoped_and_newest_first(self, document_store: SQLiteDocumentStore) -> None:
        older = make_document(title="Older")
        newer = make_document(
            title="Newer",
            created_at=older.created_at + timedelta(seconds=5),
            updated_at=older.updated_at + timedelta(seconds=5),
        )
        await document_store.create(older)
        await document_store.create(newer)
        await document_store.create(make_document(owner_id="user-2", title="Someone else's"))

        documents = await document_store.list_for_owner("user-1")

        assert [d.title for d in documents] == ["Newer", "Older"]

    @pytest.mark.asyncio
    async def test_list_paginates(self, document_store: SQLiteDocumentStore) -> None:
        for _ in range(3):
            await document_store.create(make_document())

        first = await document_store.list_for_owner("user-1", limit=2, offset=0)
        rest = await document_store.list_for_owner("user-1", limit=2, offset=2)

        assert len(first) == 2
        assert len(rest) == 1

    @pytest.mark.asyncio
    async def test_update_page_count(self, document_store: SQLiteDocumentStore, document: Document) -> None:
        await document_store.update_page_count(document.id, 12)

        assert (await document_store.get(document.id)).page_count == 12

    @pytest.mark.asyncio
    async def test_failed_status_surfaces_error(
        self, document_store: SQLiteDocumentStore, status_store: SQLiteStatusStore, document: Document
    ) -> None:
        pending = await status_store.get(document.id)
        run = pending.start()
        await status_store.transition(ProcessingState.PENDING, run)
        await status_store.transition(ProcessingState.PROCESSING, run.fail("bad pdf"))

        fetched = await document_store.get(document.id)

        assert fetched.status is ProcessingState.FAILED
        assert fetched.processing_error == "bad pdf"

    @pytest.mark.asyncio
    async def test_delete_missing_returns_false(self, document_store: SQLiteDocumentStore) -> None:
        assert await document_store.delete("missing") is False


# ======================================================================
# Chunks
# ======================================================================


class TestSQLiteChunkStore:
    @pytest.mark.asyncio
    async def test_insert_and_list_round_trip(self, chunk_store: SQLiteChunkStore, document: Document) -> None:
        stored = await chunk_store.insert_many(document.id, _chunks(["alpha", "beta"]))

        listed = await chunk_store.list_for(document.id)

        assert [c.id for c in listed] == [c.id for c in stored]
        assert listed[0].embedding == pytest.approx(hash_to_vector("alpha"), rel=1e-6)
        assert await chunk_store.count_for(document.id) == 2

    @pytest.mark.asyncio
    async def test_insert_empty_is_noop(self, chunk_store: SQLiteChunkStore, document: Document) -> None:
        assert await chunk_store.insert_many(document.id, []) == []

    @pytest.mark.asyncio
    async def test_insert_for_missing_document_rolls_back(self, chunk_store: SQLiteChunkStore) -> None:
        with pytest.raises(StoreError):
            await chunk_store.insert_many("missing", _chunks(["alpha"]))

        assert await chunk_store.count_for("missing") == 0

    @pytest.mark.asyncio
    async def test_duplicate_index_rolls_back_whole_batch(
        self, chunk_store: SQLiteChunkStore, document: Document
    ) -> None:
        batch = _chunks(["alpha", "beta"])
        batch[1] = batch[1].model_copy(update={"chunk_index": 0})

        with pytest.raises(StoreError):
            await chunk_store.insert_many(document.id, batch)

        assert await chunk_store.count_for(document.id) == 0

    @pytest.mark.asyncio
    async def test_mixed_dimensions_rejected(self, chunk_store: SQLiteChunkStore, document: Document) -> None:
        batch = _chunks(["a", "b"], vectors=[[1.0, 0.0], [1.0, 0.0, 0.0]])

        with pytest.raises(StoreError):
            await chunk_store.insert_many(document.id, batch)

    @pytest.mark.asyncio
    async def test_nearest_ranks_by_cosine(self, chunk_store: SQLiteChunkStore, document: Document) -> None:
        await chunk_store.insert_many(
            document.id,
            _chunks(["x-axis", "diagonal", "y-axis"], vectors=[[1.0, 0.0], [1.0, 1.0], [0.0, 1.0]]),
        )

        results = await chunk_store.nearest_to(document.id, [1.0, 0.1], k=2)

        assert [r.chunk.content for r in results] == ["x-axis", "diagonal"]
        assert results[0].score > results[1].score
        assert results[0].score <= 1.0

    @pytest.mark.asyncio
    async def test_ties_keep_lower_chunk_index_first(
        self, chunk_store: SQLiteChunkStore, document: Document
    ) -> None:
        await chunk_store.insert_many(
            document.id,
            _chunks(["first", "second", "third"], vectors=[[0.0, 1.0], [1.0, 0.0], [1.0, 0.0]]),
        )

        results = await chunk_store.nearest_to(document.id, [1.0, 0.0], k=3)

        assert [r.chunk.chunk_index for r in results] == [1, 2, 0]

    @pytest.mark.asyncio
    async def test_nearest_never_crosses_documents(
        self, chunk_store: SQLiteChunkStore, document_store: SQLiteDocumentStore, document: Document
    ) -> None:
        other = await document_store.create(make_document(owner_id="user-2"))
        await chunk_store.insert_many(document.id, _chunks(["mine"], vectors=[[0.0, 1.0]]))
        await chunk_store.insert_many(other.id, _chunks(["theirs"], vectors=[[1.0, 0.0]]))

        results = await chunk_store.nearest_to(document.id, [1.0, 0.0], k=5)

        assert [r.chunk.document_id for r in results] == [document.id]

    @pytest.mark.asyncio
    async def test_zero_vector_scores_zero(self, chunk_store: SQLiteChunkStore, document: Document) -> None:
        await chunk_store.insert_many(document.id, _chunks(["blank"], vectors=[[0.0, 0.0]]))

        results = await chunk_store.nearest_to(document.id, [1.0, 0.0], k=1)

        assert results[0].score == 0.0

    @pytest.mark.asyncio
    async def test_nearest_dimension_mismatch(self, chunk_store: SQLiteChunkStore, document: Document) -> None:
        await chunk_store.insert_many(document.id, _chunks(["a"], vectors=[[1.0, 0.0]]))

        with pytest.raises(StoreError):
            await chunk_store.nearest_to(document.id, [1.0, 0.0, 0.0], k=1)

    @pytest.mark.asyncio
    async def test_nearest_empty_and_zero_k(self, chunk_store: SQLiteChunkStore, document: Document) -> None:
        assert await chunk_store.nearest_to(document.id, [1.0, 0.0], k=3) == []

        await chunk_store.insert_many(document.id, _chunks(["a"], vectors=[[1.0, 0.0]]))
        assert await chunk_store.nearest_to(document.id, [1.0, 0.0], k=0) == []

    @pytest.mark.asyncio
    async def test_delete_for(self, chunk_store: SQLiteChunkStore, document: Document) -> None:
        await chunk_store.insert_many(document.id, _chunks(["a", "b", "c"]))

        assert await chunk_store.delete_for(document.id) == 3
        assert await chunk_store.count_for(document.id) == 0

    @pytest.mark.asyncio
    async def test_keyword_search_scores_term_coverage(
        self, chunk_store: SQLiteChunkStore, document: Document
    ) -> None:
        await chunk_store.insert_many(
            document.id,
            _chunks(["Label smoothing helps BLEU", "label noise", "dropout only", "smoothing and labels"]),
        )

        results = await chunk_store.keyword_search(document.id, ["LABEL", "smoothing", "label"], k=5)

        assert [r.chunk.content for r in results] == [
            "Label smoothing helps BLEU",
            "smoothing and labels",
            "label noise",
        ]
        assert [r.score for r in results] == [1.0, 1.0, 0.5]
        assert all(r.match_type == "keyword" for r in results)

    @pytest.mark.asyncio
    async def test_keyword_search_limits_and_scopes(
        self, chunk_store: SQLiteChunkStore, document_store: SQLiteDocumentStore, document: Document
    ) -> None:
        other = await document_store.create(make_document())
        await chunk_store.insert_many(document.id, _chunks(["encoder one", "encoder two"]))
        await chunk_store.insert_many(other.id, _chunks(["encoder three"]))

        results = await chunk_store.keyword_search(document.id, ["encoder"], k=1)

        assert [r.chunk.content for r in results] == ["encoder one"]
        assert await chunk_store.keyword_search(document.id, [], k=5) == []

    @pytest.mark.asyncio
    async def test_stats_for(self, chunk_store: SQLiteChunkStore, document: Document) -> None:
        chunks = [
            NewChunk(chunk_index=0, page_number=1, content="a" * 10, chunk_type=ChunkType.ABSTRACT),
            NewChunk(chunk_index=1, page_number=2, content="b" * 20, has_equations=True),
            NewChunk(chunk_index=2, page_number=2, content="c" * 30, has_citations=True),
            NewChunk(chunk_index=3, page_number=4, content="d" * 40, chunk_type=ChunkType.REFERENCES),
        ]
        await chunk_store.insert_many(document.id, chunks)

        stats = await chunk_store.stats_for(document.id)

        assert stats.chunk_count == 4
        assert (stats.first_page, stats.last_page, stats.pages_covered) == (1, 4, 3)
        assert stats.chunk_types == {ChunkType.ABSTRACT: 1, ChunkType.BODY: 2, ChunkType.REFERENCES: 1}
        assert stats.average_chunk_chars == 25.0
        assert stats.chunks_with_equations == 1
        assert stats.chunks_with_citations == 1

    @pytest.mark.asyncio
    async def test_stats_for_empty_document(self, chunk_store: SQLiteChunkStore, document: Document) -> None:
        stats = await chunk_store.stats_for(document.id)

        assert stats.chunk_count == 0
        assert stats.first_page is None
        assert stats.chunk_types == {}
        assert stats.average_chunk_chars == 0.0


# ======================================================================
# Chat
# ======================================================================


class TestSQLiteChatStore:
    @pytest.mark.asyncio
    async def test_session_round_trip(self, chat_store: SQLiteChatStore, document: Document) -> None:
        session = await chat_store.create_session("user-1", document.id, "Reading group")

        fetched = await chat_store.get_session(session.id)

        assert fetched == session

    @pytest.mark.asyncio
    async def test_session_for_missing_document(self, chat_store: SQLiteChatStore) -> None:
        with pytest.raises(StoreError):
            await chat_store.create_session("user-1", "missing", "Orphan")

    @pytest.mark.asyncio
    async def test_list_sessions_filters(
        self, chat_store: SQLiteChatStore, document_store: SQLiteDocumentStore, document: Document
    ) -> None:
        other_document = await document_store.create(make_document())
        await chat_store.create_session("user-1", document.id, "One")
        await chat_store.create_session("user-1", other_document.id, "Two")
        await chat_store.create_session("user-2", document.id, "Not mine")

        mine = await chat_store.list_sessions("user-1")
        for_document = await chat_store.list_sessions("user-1", document_id=document.id)

        assert {s.title for s in mine} == {"One", "Two"}
        assert [s.title for s in for_document] == ["One"]

    @pytest.mark.asyncio
    async def test_messages_keep_insertion_order(self, chat_store: SQLiteChatStore, document: Document) -> None:
        session = await chat_store.create_session("user-1", document.id, "Chat")
        for i in range(5):
            role = MessageRole.USER if i % 2 == 0 else MessageRole.ASSISTANT
            await chat_store.add_message(session.id, role, f"message {i}")

        messages = await chat_store.list_messages(session.id)

        assert [m.content for m in messages] == [f"message {i}" for i in range(5)]
        sequences = [m.sequence for m in messages]
        assert sequences == sorted(sequences)

    @pytest.mark.asyncio
    async def test_recent_messages_oldest_first(self, chat_store: SQLiteChatStore, document: Document) -> None:
        session = await chat_store.create_session("user-1", document.id, "Chat")
        for i in range(8):
            await chat_store.add_message(session.id, MessageRole.USER, f"m{i}")

        recent = await chat_store.recent_messages(session.id, 3)

        assert [m.content for m in recent] == ["m5", "m6", "m7"]
        assert await chat_store.recent_messages(session.id, 0) == []

    @pytest.mark.asyncio
    async def test_add_message_to_missing_session(self, chat_store: SQLiteChatStore) -> None:
        with pytest.raises(NotFoundError):
            await chat_store.add_message("missing", MessageRole.USER, "hello")

    @pytest.mark.asyncio
    async def test_citations_round_trip(
        self, chat_store: SQLiteChatStore, chunk_store: SQLiteChunkStore, document: Document
    ) -> None:
        stored = await chunk_store.insert_many(document.id, _chunks(["alpha", "beta"]))
        session = await chat_store.create_session("user-1", document.id, "Chat")

        message = await chat_store.add_message(
            session.id,
            MessageRole.ASSISTANT,
            "Answer",
            citations=[
                NewCitation(chunk_id=stored[0].id, relevance_score=0.4, page_number=1, excerpt="alpha"),
                NewCitation(chunk_id=stored[1].id, relevance_score=0.9, page_number=1, excerpt="beta"),
            ],
        )
        listed = await chat_store.list_messages(session.id)

        assert len(message.citations) == 2
        assert [c.chunk_id for c in listed[0].citations] == [stored[1].id, stored[0].id]

    @pytest.mark.asyncio
    async def test_citation_to_other_document_rejected(
        self,
        chat_store: SQLiteChatStore,
        chunk_store: SQLiteChunkStore,
        document_store: SQLiteDocumentStore,
        document: Document,
    ) -> None:
        other = await document_store.create(make_document())
        foreign = await chunk_store.insert_many(other.id, _chunks(["foreign"]))
        session = await chat_store.create_session("user-1", document.id, "Chat")

        with pytest.raises(ValidationError):
            await chat_store.add_message(
                session.id,
                MessageRole.ASSISTANT,
                "Answer",
                citations=[NewCitation(chunk_id=foreign[0].id, relevance_score=0.5, page_number=1)],
            )

        assert await chat_store.list_messages(session.id) == []

    @pytest.mark.asyncio
    async def test_delete_session_removes_messages(
        self, chat_store: SQLiteChatStore, document: Document, db_path
    ) -> None:
        session = await chat_store.create_session("user-1", document.id, "Chat")
        await chat_store.add_message(session.id, MessageRole.USER, "hello")

        assert await chat_store.delete_session(session.id) is True
        assert await chat_store.get_session(session.id) is None

        async with aiosqlite.connect(db_path) as db:
            cursor = await db.execute("SELECT COUNT(*) FROM chat_messages")
            assert (await cursor.fetchone())[0] == 0


# ======================================================================
# Cascades
# ======================================================================


class TestDocumentCascade:
    @pytest.mark.asyncio
    async def test_delete_document_removes_everything(
        self,
        document_store: SQLiteDocumentStore,
        status_store: SQLiteStatusStore,
        chunk_store: SQLiteChunkStore,
        chat_store: SQLiteChatStore,
        document: Document,
    ) -> None:
        stored = await chunk_store.insert_many(document.id, _chunks(["alpha"]))
        session = await chat_store.create_session("user-1", document.id, "Chat")
        await chat_store.add_message(
            session.id,
            MessageRole.ASSISTANT,
            "Answer",
            citations=[NewCitation(chunk_id=stored[0].id, relevance_score=0.5, page_number=1)],
        )

        assert await document_store.delete(document.id) is True

        assert await document_store.get(document.id) is None
        assert await status_store.get(document.id) is None
        assert await chunk_store.count_for(document.id) == 0
        assert await chat_store.get_session(session.id) is None
