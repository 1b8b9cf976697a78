"""FAISS-backed vector index with SQLite metadata."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import faiss
import numpy as np

from siteguide.config import config
from siteguide.models import RetrievalMatch
from siteguide.vector_store.base import BaseSQLiteStore

if TYPE_CHECKING:
    from collections.abc import Collection

    from siteguide.models import DocumentChunk

logger = config.get_logger(__name__)


class FaissVectorStore(BaseSQLiteStore):
    """Vector index using FAISS for embeddings and SQLite for metadata."""

    backend = "faiss"

    def __init__(
        self,
        db_path: Path = Path("data/vector_store.db"),
        index_path: Path = Path("data/faiss/index.faiss"),
    ) -> None:
        """Configure FAISS-backed vector store."""
        self.index_path = Path(index_path)
        self.index_path.parent.mkdir(exist_ok=True, parents=True)

        self.index: faiss.IndexIDMap | None = None

        super().__init__(db_path)

    @staticmethod
    def _normalize_embedding(embedding: np.ndarray) -> np.ndarray:
        """Normalize embedding for cosine similarity using inner product search.

        Returns:
            Normalized embedding vector.
        """
        vector = np.array(embedding, dtype="float32")
        norm = np.linalg.norm(vector)
        if norm == 0:
            return vector
        faiss.normalize_L2(vector.reshape(1, -1))
        return vector

    def _init_index(self, dimension: int) -> None:
        """Initialize FAISS index if missing."""
        base_index = faiss.IndexFlatIP(dimension)
        self.index = faiss.IndexIDMap(base_index)
        logger.info("Initialized FAISS IndexIDMap with dimension %d", dimension)

    async def upsert(self, chunks: list[DocumentChunk]) -> int:
        """Insert or overwrite chunks by id.

        Returns:
            Number of vectors written.

        Raises:
            ValueError: If embedding dimension mismatches the index.
        """
        embeddings_batch: list[np.ndarray] = []
        vector_ids: list[int] = []

        with self._connect() as conn:
            cursor = conn.cursor()

            for chunk in chunks:
                if chunk.embedding is None:
                    logger.warning("Skipping chunk %s without embedding", chunk.id)
                    continue

                embedding = self._normalize_embedding(chunk.embedding)
                if self.index is None:
                    self._init_index(embedding.shape[0])
                elif embedding.shape[0] != self.index.d:
                    msg = (
                        f"Embedding dimension {embedding.shape[0]} does not match "
                        f"FAISS index dimension {self.index.d}"
                    )
                    raise ValueError(msg)

                vector_ids.append(
                    self._upsert_row(cursor, chunk, embedding_blob=None)
                )
                embeddings_batch.append(embedding)

            conn.commit()

        if not embeddings_batch or self.index is None:
            logger.warning("No embeddings added to FAISS index")
            return 0

        ids_array = np.asarray(vector_ids, dtype="int64")
        # Overwrite in place: drop any previous vector for the same id first.
        self.index.remove_ids(ids_array)
        self.index.add_with_ids(  # pyright: ignore[reportCallIssue]
            np.vstack(embeddings_batch).astype("float32"),
            ids_array,
        )
        logger.info("Upserted %d vectors into FAISS index", len(vector_ids))
        return len(vector_ids)

    async def query(
        self,
        query_embedding: np.ndarray,
        top_k: int = 8,
    ) -> list[RetrievalMatch]:
        """Search nearest chunks.

        Returns:
            Ranked list of matches, best first.
        """
        index = self.index
        if index is None or index.ntotal == 0:
            logger.warning("FAISS index empty; returning no results")
            return []

        normalized_query = self._normalize_embedding(query_embedding)
        k = min(max(top_k, 1), index.ntotal)
        scores, vector_ids = index.search(
            normalized_query.reshape(1, -1),
            k,
        )  # pyright: ignore[reportCallIssue]

        with self._connect() as conn:
            metadata = self._fetch_metadata(
                conn.cursor(),
                (int(v) for v in vector_ids[0] if int(v) != -1),
            )

        results: list[RetrievalMatch] = []
        for score, vector_id in zip(scores[0], vector_ids[0], strict=True):
            if int(vector_id) == -1:  # faiss returns -1 for empty results
                continue
            results.append(
                RetrievalMatch.from_metadata(metadata.get(int(vector_id)), score)
            )
        return results

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

        if stale and self.index is not None:
            self.index.remove_ids(
                np.asarray([vector_id for _, vector_id in stale], dtype="int64")
            )
        if stale:
            logger.info("Pruned %d stale vectors under %s", len(stale), base_url)
        return len(stale)

    def count(self) -> int:
        """Number of vectors currently searchable.

        Returns:
            FAISS ``ntotal`` or zero when no index exists.
        """
        return int(self.index.ntotal) if self.index is not None else 0

    def save(self) -> None:
        """Persist FAISS index to disk."""
        index = self.index
        if index is None:
            logger.warning("No FAISS index to save")
            return

        self.index_path.parent.mkdir(exist_ok=True, parents=True)
        faiss.write_index(index, str(self.index_path))
        logger.info("Saved FAISS index to %s", self.index_path)

    def load(self) -> None:
        """Load the FAISS index from disk if present."""
        if not self.index_path.exists():
            logger.warning(
                "FAISS index not found at %s. Start with an empty index.",
                self.index_path,
            )
            self.index = None
            return

        loaded_index = faiss.read_index(str(self.index_path))
        if not isinstance(loaded_index, (faiss.IndexIDMap, faiss.IndexIDMap2)):
            logger.warning(
                "Loaded FAISS index is %s; wrapping with IndexIDMap to enable IDs",
                type(loaded_index).__name__,
            )
            loaded_index = faiss.IndexIDMap(loaded_index)
        self.index = loaded_index
        logger.info(
            "Loaded FAISS index from %s with %d vectors",
            self.index_path,
            loaded_index.ntotal,
        )
