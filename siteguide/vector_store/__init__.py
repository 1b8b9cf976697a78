"""Vector store adapters and factory."""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal

from siteguide.config import config

from .base import VectorIndex, crawl_scope, host_of, vector_id_for
from .faiss_store import FaissVectorStore
from .sqlite_store import SQLiteVectorStore

if TYPE_CHECKING:
    from pathlib import Path

VectorBackend = Literal["faiss", "sqlite"]


def get_vector_store(
    store: VectorBackend | str = "faiss",
    *,
    db_path: Path | None = None,
    index_path: Path | None = None,
) -> FaissVectorStore | SQLiteVectorStore:
    """Return a configured vector store instance.

    Raises:
        ValueError: If an unsupported backend is requested.
    """
    if db_path is None:
        db_path = config.VECTOR_STORE_DB_PATH
    backend = store.lower()

    if backend == "faiss":
        return FaissVectorStore(
            db_path=db_path,
            index_path=(
                index_path if index_path is not None else config.FAISS_INDEX_PATH
            ),
        )

    if backend == "sqlite":
        return SQLiteVectorStore(db_path=db_path)

    msg = f"Unsupported vector store backend: {store}"
    raise ValueError(msg)


__all__ = [
    "FaissVectorStore",
    "SQLiteVectorStore",
    "VectorBackend",
    "VectorIndex",
    "crawl_scope",
    "get_vector_store",
    "host_of",
    "vector_id_for",
]
