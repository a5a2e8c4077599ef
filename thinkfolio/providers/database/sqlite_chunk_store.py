"""SQLite-backed chunk store with brute-force cosine similarity search.

Chunks are written in one transaction per :meth:`SQLiteChunkStore.insert_many`
call, so a failed batch leaves nothing behind.  Embeddings are stored as
float32 BLOBs and scored in memory with numpy; a document's chunk count is
small enough (hundreds, not millions) that a linear scan is fine.  Keyword
search prefilters rows in SQL with ``instr`` and scores term coverage in
Python.
"""

from __future__ import annotations

import uuid

import aiosqlite
import numpy as np
import structlog

from thinkfolio.interfaces.chunk_store import IChunkStore
from thinkfolio.models.processing import utcnow
from thinkfolio.models.rag import Chunk, ChunkStats, ChunkType, NewChunk, RetrievedChunk
from thinkfolio.providers.database.sqlite_base import SQLiteProvider, from_db_time, to_db_time
from thinkfolio.utils.errors import StoreError

logger = structlog.get_logger(logger_name=__name__)

_CHUNK_COLUMNS = """\
id, document_id, chunk_index, page_number, content, embedding, embedding_dim,
chunk_type, start_index, end_index, keyword_count, has_equations, has_citations, created_at"""

_INSERT_CHUNK_SQL = f"""\
INSERT INTO chunks ({_CHUNK_COLUMNS})
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
"""

_SELECT_EMBEDDED_SQL = f"""\
SELECT {_CHUNK_COLUMNS}
FROM chunks
WHERE document_id = ? AND embedding IS NOT NULL
ORDER BY chunk_index;
"""

_LIST_FOR_DOCUMENT_SQL = f"""\
SELECT {_CHUNK_COLUMNS}
FROM chunks
WHERE document_id = ?
ORDER BY chunk_index
LIMIT ?;
"""

_COUNT_FOR_DOCUMENT_SQL = "SELECT COUNT(*) FROM chunks WHERE document_id = ?;"

_DELETE_FOR_DOCUMENT_SQL = "DELETE FROM chunks WHERE document_id = ?;"

_STATS_SQL = """\
SELECT COUNT(*) AS chunk_count,
       MIN(page_number) AS first_page,
       MAX(page_number) AS last_page,
       COUNT(DISTINCT page_number) AS pages_covered,
       AVG(LENGTH(content)) AS average_chars,
       SUM(has_equations) AS with_equations,
       SUM(has_citations) AS with_citations
FROM chunks
WHERE document_id = ?;
"""

_STATS_BY_TYPE_SQL = """\
SELECT chunk_type, COUNT(*) AS chunks
FROM chunks
WHERE document_id = ?
GROUP BY chunk_type;
"""


class SQLiteChunkStore(SQLiteProvider, IChunkStore):
    """Chunk persistence and nearest-neighbour lookup."""

    async def insert_many(self, document_id: str, chunks: list[NewChunk]) -> list[Chunk]:
        """Write all *chunks* in a single transaction.

        Raises
        ------
        StoreError
            If vectors disagree on dimension, the document does not exist,
            or SQLite rejects the write.  The transaction is rolled back.
        """
        if not chunks:
            return []

        dimensions = {len(c.embedding) for c in chunks if c.embedding is not None}
        if len(dimensions) > 1:
            raise StoreError(
                message=f"Embeddings for one document must share a dimension, got {sorted(dimensions)}",
                provider_name="sqlite",
            )

        created_at = utcnow()
        stored = [
            Chunk(
                id=uuid.uuid4().hex,
                document_id=document_id,
                created_at=created_at,
                **chunk.model_dump(),
            )
            for chunk in chunks
        ]
        rows = [self._chunk_to_row(chunk) for chunk in stored]

        try:
            async with self._connect() as db:
                try:
                    await db.executemany(_INSERT_CHUNK_SQL, rows)
                    await db.commit()
                except aiosqlite.Error:
                    await db.rollback()
                    raise
        except aiosqlite.Error as exc:
            logger.error(
                "chunk_insert_failed",
                document_id=document_id,
                chunks=len(chunks),
                error=str(exc),
            )
            raise StoreError(message=f"Failed to store chunks: {exc}", provider_name="sqlite") from exc

        logger.info("chunks_stored", document_id=document_id, chunks=len(stored))
        return stored

    async def nearest_to(
        self,
        document_id: str,
        query_vector: list[float],
        k: int,
    ) -> list[RetrievedChunk]:
        """Rank the document's chunks by cosine similarity to *query_vector*."""
        if k <= 0:
            return []

        try:
            async with self._connect() as db:
                cursor = await db.execute(_SELECT_EMBEDDED_SQL, (document_id,))
                rows = await cursor.fetchall()
        except aiosqlite.Error as exc:
            raise StoreError(message=f"Failed to read chunks: {exc}", provider_name="sqlite") from exc

        if not rows:
            return []

        query = np.asarray(query_vector, dtype=np.float32)
        matrix = np.vstack([np.frombuffer(row["embedding"], dtype=np.float32) for row in rows])
        if matrix.shape[1] != query.shape[0]:
            raise StoreError(
                message=(
                    f"Query vector has dimension {query.shape[0]} but stored "
                    f"embeddings have {matrix.shape[1]}"
                ),
                provider_name="sqlite",
            )

        scores = self._cosine_scores(matrix, query)
        # Rows arrive in chunk_index order, so a stable sort on score keeps
        # lower indices first among equal scores.
        order = np.argsort(-scores, kind="stable")[:k]

        return [
            RetrievedChunk(chunk=self._row_to_chunk(rows[i]), score=float(scores[i]))
            for i in order
        ]

    async def keyword_search(self, document_id: str, terms: list[str], k: int) -> list[RetrievedChunk]:
        """Score chunks by the fraction of *terms* they contain."""
        terms = list(dict.fromkeys(t.lower() for t in terms if t))
        if k <= 0 or not terms:
            return []

        clause = " OR ".join("instr(lower(content), ?) > 0" for _ in terms)
        sql = (
            f"SELECT {_CHUNK_COLUMNS} FROM chunks "
            f"WHERE document_id = ? AND ({clause}) ORDER BY chunk_index;"
        )
        try:
            async with self._connect() as db:
                cursor = await db.execute(sql, (document_id, *terms))
                rows = await cursor.fetchall()
        except aiosqlite.Error as exc:
            raise StoreError(message=f"Failed to search chunks: {exc}", provider_name="sqlite") from exc

        scored = []
        for row in rows:
            content = row["content"].lower()
            matched = sum(1 for term in terms if term in content)
            if matched:
                scored.append((matched / len(terms), row))
        # Stable sort over chunk_index order.
        scored.sort(key=lambda item: -item[0])

        return [
            RetrievedChunk(chunk=self._row_to_chunk(row), score=score, match_type="keyword")
            for score, row in scored[:k]
        ]

    async def count_for(self, document_id: str) -> int:
        try:
            async with self._connect() as db:
                cursor = await db.execute(_COUNT_FOR_DOCUMENT_SQL, (document_id,))
                row = await cursor.fetchone()
        except aiosqlite.Error as exc:
            raise StoreError(message=f"Failed to count chunks: {exc}", provider_name="sqlite") from exc
        return int(row[0]) if row else 0

    async def list_for(self, document_id: str, limit: int | None = None) -> list[Chunk]:
        try:
            async with self._connect() as db:
                # SQLite treats a negative LIMIT as "no limit".
                cursor = await db.execute(
                    _LIST_FOR_DOCUMENT_SQL,
                    (document_id, limit if limit is not None else -1),
                )
                rows = await cursor.fetchall()
        except aiosqlite.Error as exc:
            raise StoreError(message=f"Failed to list chunks: {exc}", provider_name="sqlite") from exc
        return [self._row_to_chunk(row) for row in rows]

    async def stats_for(self, document_id: str) -> ChunkStats:
        try:
            async with self._connect() as db:
                cursor = await db.execute(_STATS_SQL, (document_id,))
                totals = await cursor.fetchone()
                cursor = await db.execute(_STATS_BY_TYPE_SQL, (document_id,))
                by_type = await cursor.fetchall()
        except aiosqlite.Error as exc:
            raise StoreError(message=f"Failed to read chunk stats: {exc}", provider_name="sqlite") from exc

        return ChunkStats(
            chunk_count=totals["chunk_count"],
            first_page=totals["first_page"],
            last_page=totals["last_page"],
            pages_covered=totals["pages_covered"],
            chunk_types={ChunkType(row["chunk_type"]): row["chunks"] for row in by_type},
            average_chunk_chars=round(totals["average_chars"] or 0.0, 1),
            chunks_with_equations=totals["with_equations"] or 0,
            chunks_with_citations=totals["with_citations"] or 0,
        )

    async def delete_for(self, document_id: str) -> int:
        try:
            async with self._connect() as db:
                cursor = await db.execute(_DELETE_FOR_DOCUMENT_SQL, (document_id,))
                await db.commit()
                deleted = cursor.rowcount
        except aiosqlite.Error as exc:
            raise StoreError(message=f"Failed to delete chunks: {exc}", provider_name="sqlite") from exc

        logger.info("chunks_deleted", document_id=document_id, chunks=deleted)
        return deleted

    @staticmethod
    def _cosine_scores(matrix: np.ndarray, query: np.ndarray) -> np.ndarray:
        """Cosine similarity of every row of *matrix* with *query*; zero vectors score 0."""
        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        dots = matrix @ query
        with np.errstate(divide="ignore", invalid="ignore"):
            scores = np.where(norms > 0, dots / norms, 0.0)
        return scores.astype(np.float64)

    @staticmethod
    def _chunk_to_row(chunk: Chunk) -> tuple:
        embedding = None
        dimension = None
        if chunk.embedding is not None:
            embedding = np.asarray(chunk.embedding, dtype=np.float32).tobytes()
            dimension = len(chunk.embedding)
        return (
            chunk.id,
            chunk.document_id,
            chunk.chunk_index,
            chunk.page_number,
            chunk.content,
            embedding,
            dimension,
            chunk.chunk_type.value,
            chunk.start_index,
            chunk.end_index,
            chunk.keyword_count,
            int(chunk.has_equations),
            int(chunk.has_citations),
            to_db_time(chunk.created_at),
        )

    @staticmethod
    def _row_to_chunk(row: aiosqlite.Row) -> Chunk:
        embedding = None
        if row["embedding"] is not None:
            embedding = np.frombuffer(row["embedding"], dtype=np.float32).tolist()
        return Chunk(
            id=row["id"],
            document_id=row["document_id"],
            chunk_index=row["chunk_index"],
            page_number=row["page_number"],
            content=row["content"],
            embedding=embedding,
            chunk_type=ChunkType(row["chunk_type"]),
            start_index=row["start_index"],
            end_index=row["end_index"],
            keyword_count=row["keyword_count"],
            has_equations=bool(row["has_equations"]),
            has_citations=bool(row["has_citations"]),
            created_at=from_db_time(row["created_at"]),
        )
