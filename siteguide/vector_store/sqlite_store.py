"""SQLite-based vector index with brute-force numpy cosine search."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np

from siteguide.config import config
from siteguide.models import RetrievalMatch
from siteguide.vector_store.base import BaseSQLiteStore

if TYPE_CHECKING:
    from collections.abc import Collection

    from siteguide.models import DocumentChunk

logger = config.get_logger(__name__)


class SQLiteVectorStore(BaseSQLiteStore):
    """Vector index keeping float32 embeddings as BLOBs next to their metadata."""

    backend = "sqlite"

    def __init__(self, db_path: Path = Path("data/vector_store.db")) -> None:
        """Initialize the SQLiteVectorStore.

        Args:
            db_path: Path to the SQLite database file.
        """
        self._matrix: np.ndarray | None = None
        self._vector_ids: list[int] = []
        super().__init__(db_path)

    @staticmethod
    def _normalize(matrix: np.ndarray) -> np.ndarray:
        norms = np.linalg.norm(matrix, axis=-1, keepdims=True)
        norms[norms == 0] = 1.0
        return matrix / norms

    async def upsert(self, chunks: list[DocumentChunk]) -> int:
        """Insert or overwrite chunks by id.

        Returns:
            Number of vectors written.
        """
        written = 0
        with self._connect() as conn:
            cursor = conn.cursor()
            for chunk in chunks:
                if chunk.embedding is None:
                    logger.warning("Skipping chunk %s without embedding", chunk.id)
                    continue
                blob = np.asarray(chunk.embedding, dtype="float32").tobytes()
                self._upsert_row(cursor, chunk, embedding_blob=blob)
                written += 1
            conn.commit()

        self._matrix = None
        logger.info("Upserted %d vectors into SQLite store", written)
        return written

    def load(self) -> None:
        """Load all embeddings into an in-memory matrix."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT vector_id, embedding FROM chunks "
                "WHERE embedding IS NOT NULL ORDER BY vector_id"
            ).fetchall()

        self._vector_ids = [int(vector_id) for vector_id, _ in rows]
        if rows:
            matrix = np.vstack([np.frombuffer(blob, dtype="float32") for _, blob in rows])
            self._matrix = self._normalize(matrix)
        else:
            self._matrix = np.empty((0, 0), dtype="float32")
        logger.info("Loaded %d vectors from %s", len(rows), self.db_path)

    def save(self) -> None:
        """Nothing to flush; every upsert is committed immediately."""

    async def query(
        self,
        query_embedding: np.ndarray,
        top_k: int = 8,
    ) -> list[RetrievalMatch]:
        """Search nearest chunks by cosine similarity.

        Returns:
            Ranked list of matches, best first.
        """
        if self._matrix is None:
            self.load()
        matrix = self._matrix
        if matrix is None or matrix.shape[0] == 0:
            return []

        query_vector = self._normalize(np.asarray(query_embedding, dtype="float32"))
        scores = matrix @ query_vector
        k = min(max(top_k, 1), scores.shape[0])
        order = np.argsort(-scores)[:k]
        ranked_ids = [self._vector_ids[i] for i in order]

        with self._connect() as conn:
            metadata = self._fetch_metadata(conn.cursor(), ranked_ids)

        return [
            RetrievalMatch.from_metadata(metadata.get(vector_id), scores[i])
            for i, vector_id in zip(order, ranked_ids, strict=True)
        ]

    async def prune(
        self,
        base_url: str,
        keep_ids: set[str],
        protected_urls: Collection[str] = frozenset(),
    ) -> int:
        """Delete vectors under ``base_url`` that are not in ``keep_ids``.

        Vectors whose source URL is in ``protected_urls`` are kept.

        Returns:
            Number of vectors removed.
        """
        with self._connect() as conn:
            cursor = conn.cursor()
            stale = self._stale_rows(cursor, base_url, keep_ids, protected_urls)
            self._delete_rows(cursor, [chunk_id for chunk_id, _ in stale])
            conn.commit()

        if stale:
            self._matrix = None
            logger.info("Pruned %d stale vectors under %s", len(stale), base_url)
        return len(stale)
