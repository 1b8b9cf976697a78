"""Query embedding, similarity search and context assembly."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .config import config
from .document_processing import truncate_utf8
from .errors import UpstreamUnavailableError
from .models import EmbeddingTask, RetrievalMatch, RetrievalResult
from .retry import RetryPolicy

if TYPE_CHECKING:
    import numpy as np

    from .embeddings import EmbeddingService
    from .vector_store import VectorIndex

logger = config.get_logger(__name__)

CONTEXT_SEPARATOR = "\n\n---\n\n"


def format_context(matches: list[RetrievalMatch], max_bytes: int) -> str:
    """Render matches as ``Source: <url>`` blocks, capped at ``max_bytes``.

    Returns:
        The joined context blob, suffix-cut to the byte cap.
    """
    blob = CONTEXT_SEPARATOR.join(
        f"Source: {match.source_url}\n{match.text}" for match in matches if match.text
    )
    return truncate_utf8(blob, max_bytes)


class ContextRetriever:
    """Turns a question into grounding context and source citations."""

    def __init__(
        self,
        embedding_service: EmbeddingService,
        index: VectorIndex,
        retry_policy: RetryPolicy | None = None,
        max_context_bytes: int | None = None,
        max_sources: int | None = None,
    ) -> None:
        """Initialize the retriever.

        Args:
            embedding_service: Provider used to embed queries.
            index: Vector index to search.
            retry_policy: Backoff for vector-search calls.
            max_context_bytes: Cap on the context blob, in UTF-8 bytes.
            max_sources: Number of source URLs returned.
        """
        self.embedding_service = embedding_service
        self.index = index
        self.retry_policy = retry_policy or RetryPolicy.from_config()
        self.max_context_bytes = (
            config.CONTEXT_MAX_BYTES if max_context_bytes is None else max_context_bytes
        )
        self.max_sources = config.MAX_SOURCES if max_sources is None else max_sources

    def has_indexed_content(self) -> bool:
        """Whether the index holds any vector. Local check, no network call.

        Returns:
            True if at least one chunk is searchable.
        """
        return self.index.count() > 0

    async def embed_query(self, query: str) -> np.ndarray:
        """Embed a query in QUERY mode.

        Returns:
            The query vector.

        Raises:
            UpstreamUnavailableError: If the embedding provider fails.
        """
        try:
            return await self.embedding_service.get_embedding(
                query, task=EmbeddingTask.QUERY
            )
        except Exception as exc:
            logger.exception("Query embedding failed")
            raise UpstreamUnavailableError("embedding", "Embedding failed") from exc

    async def embed_queries(self, queries: list[str]) -> list[np.ndarray]:
        """Embed several queries in QUERY mode as one batch.

        Returns:
            One vector per query, in order.

        Raises:
            UpstreamUnavailableError: If the embedding provider fails.
        """
        try:
            return await self.embedding_service.get_embeddings_batch(
                queries, task=EmbeddingTask.QUERY
            )
        except Exception as exc:
            logger.exception("Batch query embedding failed")
            raise UpstreamUnavailableError("embedding", "Embedding failed") from exc

    async def search(self, vector: np.ndarray, top_k: int) -> list[RetrievalMatch]:
        """Similarity search with retries.

        Returns:
            Matches ranked best first.

        Raises:
            UpstreamUnavailableError: If the vector index fails.
        """
        try:
            return await self.retry_policy.run(
                lambda: self.index.query(vector, top_k), label="vector search"
            )
        except Exception as exc:
            logger.exception("Vector search failed")
            raise UpstreamUnavailableError(
                "vector_search", "Vector search failed"
            ) from exc

    async def retrieve(self, query: str, top_k: int | None = None) -> RetrievalResult:
        """Embed the query, search the index and assemble context.

        Args:
            query: The user's question.
            top_k: Number of nearest chunks to fetch (default 8).

        Returns:
            Context blob plus the first few source URLs in rank order.
        """
        top_k = config.DEFAULT_TOP_K if top_k is None else top_k
        vector = await self.embed_query(query)
        matches = await self.search(vector, top_k)
        result = self.assemble(matches)
        logger.info(
            "Retrieved %d matches (%d context bytes) for query",
            len(matches),
            len(result.contexts.encode("utf-8")),
        )
        return result

    def assemble(
        self,
        matches: list[RetrievalMatch],
        max_bytes: int | None = None,
    ) -> RetrievalResult:
        """Build a RetrievalResult from ranked matches.

        Returns:
            Result whose sources are the URLs of the first ``max_sources``
            matches; duplicates are kept as-is, missing URLs are dropped.
        """
        contexts = format_context(
            matches, self.max_context_bytes if max_bytes is None else max_bytes
        )
        sources = [
            match.source_url
            for match in matches[: self.max_sources]
            if match.source_url
        ]
        return RetrievalResult(contexts=contexts, sources=sources, matches=matches)
