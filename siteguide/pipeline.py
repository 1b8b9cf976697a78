"""Crawl -> Split -> Embed -> Upsert pipeline and its periodic scheduler."""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING

from .config import config
from .crawler import SiteCrawler
from .document_processing import TextChunker
from .models import CrawlResult, EmbeddingTask

if TYPE_CHECKING:
    from collections.abc import Callable

    from .embeddings import EmbeddingService
    from .vector_store import VectorIndex

logger = config.get_logger(__name__)


class IndexPipeline:
    """Populates the vector index from a crawled site."""

    def __init__(
        self,
        embedding_service: EmbeddingService,
        index: VectorIndex,
        crawler: SiteCrawler | None = None,
        chunker: TextChunker | None = None,
        upsert_batch_size: int | None = None,
        on_indexed: Callable[[], None] | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            embedding_service: Embeds chunks in DOCUMENT mode.
            index: Vector index receiving the upserts.
            crawler: Page fetcher. If None, a SiteCrawler from config.
            chunker: Text splitter. If None, uses config.CHUNK_SIZE/CHUNK_OVERLAP.
            upsert_batch_size: Vectors per upsert call.
            on_indexed: Called after a crawl changed the index
                (used to invalidate the guide cache).
        """
        self.embedding_service = embedding_service
        self.index = index
        self.crawler = crawler or SiteCrawler()
        self.chunker = chunker or TextChunker(
            chunk_size=config.CHUNK_SIZE, overlap=config.CHUNK_OVERLAP
        )
        self.upsert_batch_size = upsert_batch_size or config.UPSERT_BATCH_SIZE
        self.on_indexed = on_indexed

    async def crawl_and_index(
        self, base_url: str, max_depth: int | None = None
    ) -> CrawlResult:
        """Crawl a site and upsert its chunks into the vector index.

        Returns:
            CrawlResult with page and chunk counts, or a failure reason.
        """
        if not base_url:
            return CrawlResult(ok=False, reason="SITE_URL not set")
        max_depth = config.CRAWL_DEPTH if max_depth is None else max_depth

        logger.info("Starting crawl of %s (depth %d)", base_url, max_depth)
        report = await self.crawler.load(base_url, max_depth)
        pages = report.pages
        if not pages:
            logger.warning(
                "Crawl of %s returned no pages; index left unchanged", base_url
            )
            return CrawlResult(ok=False, reason=f"no pages fetched from {base_url}")

        chunks = self.chunker.chunk_pages([(page.url, page.text) for page in pages])
        embeddings = await self.embedding_service.get_embeddings_batch(
            [chunk.text for chunk in chunks], task=EmbeddingTask.DOCUMENT
        )
        for chunk, embedding in zip(chunks, embeddings, strict=True):
            chunk.embedding = embedding
        if embeddings:
            logger.info("Embedding dimension %d", len(embeddings[0]))

        for i in range(0, len(chunks), self.upsert_batch_size):
            await self.index.upsert(chunks[i : i + self.upsert_batch_size])

        if report.skipped_urls:
            logger.warning(
                "Keeping indexed content of %d pages that could not be fetched",
                len(report.skipped_urls),
            )
        await self.index.prune(
            base_url,
            {chunk.id for chunk in chunks},
            protected_urls=report.skipped_urls,
        )
        self.index.save()
        if self.on_indexed is not None:
            self.on_indexed()

        logger.info(
            "Indexed %s: %d pages, %d chunks", base_url, len(pages), len(chunks)
        )
        return CrawlResult(ok=True, pages=len(pages), chunks=len(chunks))


class RecrawlScheduler:
    """Runs the pipeline at startup and then on a fixed interval.

    A failed run is logged and never cancels the next one.
    """

    def __init__(
        self,
        pipeline: IndexPipeline,
        base_url: str,
        interval_seconds: float | None = None,
        max_depth: int | None = None,
    ) -> None:
        self.pipeline = pipeline
        self.base_url = base_url
        self.interval_seconds = (
            config.recrawl_interval_seconds()
            if interval_seconds is None
            else interval_seconds
        )
        self.max_depth = max_depth
        self._task: asyncio.Task[None] | None = None
        self.runs = 0

    async def run_once(self) -> CrawlResult | None:
        """Run one crawl, logging instead of raising on failure.

        Returns:
            The crawl result, or None if the crawl raised.
        """
        self.runs += 1
        try:
            result = await self.pipeline.crawl_and_index(self.base_url, self.max_depth)
        except Exception:
            logger.exception("Scheduled crawl of %s failed", self.base_url)
            return None
        if not result.ok:
            logger.warning("Scheduled crawl skipped: %s", result.reason)
        return result

    async def _loop(self) -> None:
        while True:
            await self.run_once()
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        """Start the background loop on the running event loop."""
        if not self.base_url:
            logger.info("SITE_URL not set; periodic crawl disabled")
            return
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._loop(), name="recrawl")
            logger.info(
                "Periodic crawl of %s every %.0fs", self.base_url, self.interval_seconds
            )

    async def stop(self) -> None:
        """Cancel the background loop and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
