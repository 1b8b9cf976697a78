"""Shared helpers for SQLite-backed vector stores."""

from __future__ import annotations

import hashlib
import sqlite3
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol
from urllib.parse import urldefrag, urlparse

from siteguide.config import config

if TYPE_CHECKING:
    from collections.abc import Collection, Iterable

    import numpy as np

    from siteguide.models import DocumentChunk, RetrievalMatch

logger = config.get_logger(__name__)

_INT63_MASK = (1 << 63) - 1


class VectorIndex(Protocol):
    """Operations the assistant needs from a vector index."""

    backend: str

    async def upsert(self, chunks: list[DocumentChunk]) -> int: ...

    async def query(
        self, query_embedding: np.ndarray, top_k: int
    ) -> list[RetrievalMatch]: ...

    async def prune(
        self,
        base_url: str,
        keep_ids: set[str],
        protected_urls: Collection[str] = ...,
    ) -> int: ...

    def count(self) -> int: ...

    def save(self) -> None: ...

    def load(self) -> None: ...


def vector_id_for(chunk_id: str) -> int:
    """Map a string chunk id to a stable non-negative int64 vector id.

    Returns:
        First 8 bytes of the SHA-256 digest, masked to 63 bits.
    """
    digest = hashlib.sha256(chunk_id.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], byteorder="big") & _INT63_MASK


def host_of(url: str) -> str:
    """Return the lower-cased network location of a URL.

    Returns:
        Host (with port, if any) or empty string.
    """
    return urlparse(url).netloc.lower()


def crawl_scope(base_url: str) -> str:
    """URL prefix covered by a crawl starting at ``base_url``.

    A crawl of the site root covers the whole host; a crawl of
    ``/docs/`` covers only URLs under ``/docs/``.

    Returns:
        ``base_url`` without query string or fragment.
    """
    return urldefrag(base_url)[0].split("?", 1)[0]


class BaseSQLiteStore:
    """Common schema management and helpers for stores keeping metadata in SQLite."""

    def __init__(self, db_path: Path) -> None:
        """Initialize metadata store and ensure schema exists."""
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(exist_ok=True, parents=True)
        self._create_tables()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self.db_path))

    def _create_tables(self) -> None:
        """Create the chunks table if it doesn't exist."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS chunks (
                    id TEXT PRIMARY KEY,
                    vector_id INTEGER NOT NULL UNIQUE,
                    source_url TEXT NOT NULL,
                    host TEXT NOT NULL,
                    content TEXT NOT NULL,
                    embedding BLOB,
                    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
                )
            """)
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_chunks_host ON chunks(host)",
            )
            conn.commit()

    @staticmethod
    def _upsert_row(
        cursor: sqlite3.Cursor,
        chunk: DocumentChunk,
        *,
        embedding_blob: bytes | None,
    ) -> int:
        """Insert or overwrite the metadata row for a chunk.

        Returns:
            The chunk's int64 vector id.
        """
        vector_id = vector_id_for(chunk.id)
        cursor.execute(
            """
            INSERT INTO chunks (id, vector_id, source_url, host, content, embedding)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                source_url = excluded.source_url,
                host = excluded.host,
                content = excluded.content,
                embedding = excluded.embedding,
                updated_at = CURRENT_TIMESTAMP
            """,
            (
                chunk.id,
                vector_id,
                chunk.source_url,
                host_of(chunk.source_url),
                chunk.text,
                embedding_blob,
            ),
        )
        return vector_id

    @staticmethod
    def _fetch_metadata(
        cursor: sqlite3.Cursor,
        vector_ids: Iterable[int],
    ) -> dict[int, dict[str, Any]]:
        """Fetch ``{url, text}`` metadata for the given vector ids.

        Returns:
            Mapping of vector id to its metadata.
        """
        ids = [int(vector_id) for vector_id in vector_ids]
        if not ids:
            return {}
        placeholders = ",".join("?" for _ in ids)
        cursor.execute(
            "SELECT vector_id, source_url, content FROM chunks "  # noqa: S608
            f"WHERE vector_id IN ({placeholders})",
            ids,
        )
        return {
            int(vector_id): {"url": source_url, "text": content}
            for vector_id, source_url, content in cursor.fetchall()
        }

    @staticmethod
    def _stale_rows(
        cursor: sqlite3.Cursor,
        base_url: str,
        keep_ids: set[str],
        protected_urls: Collection[str],
    ) -> list[tuple[str, int]]:
        """List rows under ``base_url`` whose chunk id is not in ``keep_ids``.

        Rows from ``protected_urls`` are never listed.

        Returns:
            List of (chunk id, vector id) pairs.
        """
        prefix = crawl_scope(base_url)
        cursor.execute(
            "SELECT id, vector_id, source_url FROM chunks WHERE host = ?",
            (host_of(base_url),),
        )
        return [
            (chunk_id, int(vector_id))
            for chunk_id, vector_id, source_url in cursor.fetchall()
            if chunk_id not in keep_ids
            and source_url.startswith(prefix)
            and source_url not in protected_urls
        ]

    @staticmethod
    def _delete_rows(cursor: sqlite3.Cursor, chunk_ids: list[str]) -> None:
        cursor.executemany(
            "DELETE FROM chunks WHERE id = ?",
            [(chunk_id,) for chunk_id in chunk_ids],
        )

    def count(self) -> int:
        """Number of chunks recorded in the metadata store.

        Returns:
            Row count of the chunks table.
        """
        with self._connect() as conn:
            row = conn.execute("SELECT COUNT(*) FROM chunks").fetchone()
        return int(row[0]) if row else 0
