"""Test configuration and fixtures for SiteGuide tests.

This module provides reusable test fixtures organized by functionality:
- Constants and test data
- Mock services and API responses
- EmbeddingService / AnswerGenerator fixtures
- Vector index fixtures
- Assistant component fixtures
- Sample data factories
"""

import hashlib
from contextlib import contextmanager
from unittest.mock import AsyncMock, Mock, patch

import httpx
import numpy as np
import pytest

from siteguide import (
    AnswerGenerator,
    AssistantDispatcher,
    ContextRetriever,
    DocumentChunk,
    EmbeddingService,
    FaissVectorStore,
    GuideCache,
    GuideSynthesizer,
    IndexPipeline,
    RecrawlScheduler,
    RetrievalMatch,
    RetryPolicy,
    SessionStore,
    SiteCrawler,
    SQLiteVectorStore,
    TextChunker,
)
from siteguide.models import EmbeddingTask
from siteguide.services import Services


class TestConstants:
    """Centralized test constants to avoid repetition across test files."""

    # API Configuration
    TEST_API_KEY = "test-key"
    TEST_EMBEDDING_MODEL = "text-embedding-3-small"
    TEST_CHAT_MODEL = "gpt-test"
    DEFAULT_EMBEDDING_DIMENSION = 64

    # Text Chunking Configuration
    SMALL_CHUNK_SIZE = 100
    SMALL_CHUNK_OVERLAP = 20


class MockEmbeddingService:
    """Mock embedding service for testing without API calls.

    Generates deterministic embeddings based on text content hash,
    ensuring consistent test results across runs. Every call is counted so
    tests can assert that a branch never reached the provider.
    """

    def __init__(
        self, dimension: int = TestConstants.DEFAULT_EMBEDDING_DIMENSION
    ) -> None:
        self.dimension = dimension
        self.calls = 0
        self.tasks: list[EmbeddingTask] = []
        self.fail_with: Exception | None = None

    def embed(self, text: str) -> np.ndarray:
        """Generate deterministic mock embedding based on text hash."""
        seed = int.from_bytes(
            hashlib.sha256(text.lower().encode("utf-8")).digest()[:8],
            byteorder="big",
            signed=False,
        )
        rng = np.random.default_rng(seed)
        embedding = rng.normal(0, 1, self.dimension)
        return (embedding / np.linalg.norm(embedding)).astype(np.float32)

    def _record(self, task: EmbeddingTask) -> None:
        self.calls += 1
        self.tasks.append(task)
        if self.fail_with is not None:
            raise self.fail_with

    async def get_embedding(
        self, text: str, task: EmbeddingTask = EmbeddingTask.QUERY
    ) -> np.ndarray:
        self._record(task)
        return self.embed(text)

    async def get_embeddings_batch(
        self,
        texts: list[str],
        task: EmbeddingTask = EmbeddingTask.DOCUMENT,
        batch_size: int | None = None,
    ) -> list[np.ndarray]:
        self._record(task)
        return [self.embed(text) for text in texts]


class FakeVectorIndex:
    """In-memory stand-in for a vector index returning preset matches."""

    backend = "fake"

    def __init__(self, matches: list[RetrievalMatch] | None = None) -> None:
        self.matches = list(matches or [])
        self.upserted: list[DocumentChunk] = []
        self.upsert_batches: list[int] = []
        self.pruned: list[tuple[str, set[str], set[str]]] = []
        self.queries: list[int] = []
        self.saved = 0
        self.fail_with: Exception | None = None

    async def upsert(self, chunks: list[DocumentChunk]) -> int:
        self.upserted.extend(chunks)
        self.upsert_batches.append(len(chunks))
        return len(chunks)

    async def query(self, query_embedding: np.ndarray, top_k: int) -> list:
        self.queries.append(top_k)
        if self.fail_with is not None:
            raise self.fail_with
        return self.matches[:top_k]

    async def prune(
        self, base_url: str, keep_ids: set[str], protected_urls=frozenset()
    ) -> int:
        self.pruned.append((base_url, keep_ids, set(protected_urls)))
        return 0

    def count(self) -> int:
        return len(self.matches) + len(self.upserted)

    def save(self) -> None:
        self.saved += 1

    def load(self) -> None:
        pass


def create_mock_openai_response(embeddings: list[list[float]]) -> Mock:
    """Create a mock OpenAI embeddings API response.

    Args:
        embeddings: List of embedding vectors to return.

    Returns:
        Mock object representing OpenAI embeddings API response.
    """
    mock_response = Mock()
    mock_response.data = [Mock(embedding=emb) for emb in embeddings]
    return mock_response


def create_mock_chat_response(content: str | None) -> Mock:
    """Create a mock OpenAI chat completion response.

    Args:
        content: The content for the chat completion response.

    Returns:
        Mock object representing OpenAI chat completion response.
    """
    mock_response = Mock()
    mock_response.choices = [Mock(message=Mock(content=content))]
    return mock_response


def make_match(url: str, text: str, score: float = 0.9) -> RetrievalMatch:
    return RetrievalMatch(source_url=url, text=text, score=score)


@pytest.fixture
def instant_retry_policy():
    """Retry policy whose backoff sleeps are recorded instead of awaited."""
    return RetryPolicy(max_retries=4, jitter=0.0, sleep=AsyncMock())


@pytest.fixture
def openai_embeddings_api_mock():
    """Patch the async OpenAI embeddings.create method."""
    with patch(
        "openai.resources.embeddings.AsyncEmbeddings.create",
        new_callable=AsyncMock,
    ) as mock_create:
        yield mock_create


@pytest.fixture
def embedding_service_factory(instant_retry_policy):
    """Factory for creating EmbeddingService instances with different configurations."""

    def _create_service(  # noqa: ANN202
        api_key=None, model=None, query_prefix="", document_prefix=""
    ):
        return EmbeddingService(
            api_key=api_key or TestConstants.TEST_API_KEY,
            model=model or TestConstants.TEST_EMBEDDING_MODEL,
            retry_policy=instant_retry_policy,
            query_prefix=query_prefix,
            document_prefix=document_prefix,
        )

    return _create_service


@pytest.fixture
def embedding_service(embedding_service_factory):
    """Default EmbeddingService with test API key for most tests."""
    return embedding_service_factory()


@pytest.fixture
def mock_embedding_service():
    """Counting MockEmbeddingService for consistent test embeddings."""
    return MockEmbeddingService()


@pytest.fixture
def sample_matches():
    """Ranked matches as a vector index would return them."""
    return [
        make_match("https://bus.example.com/booking", "Pick a route and date."),
        make_match("https://bus.example.com/tracking", "Enter your PNR to track."),
        make_match("https://bus.example.com/booking", "Pay with UPI or card."),
    ]


@pytest.fixture
def fake_index(sample_matches):
    return FakeVectorIndex(sample_matches)


@pytest.fixture
def empty_index():
    return FakeVectorIndex()


@pytest.fixture
def retriever_factory(mock_embedding_service, instant_retry_policy):
    def _create_retriever(index, **kwargs) -> ContextRetriever:
        return ContextRetriever(
            mock_embedding_service,
            index,
            retry_policy=instant_retry_policy,
            **kwargs,
        )

    return _create_retriever


@pytest.fixture
def retriever(retriever_factory, fake_index):
    return retriever_factory(fake_index)


@pytest.fixture
def generator(instant_retry_policy):
    """AnswerGenerator with a test key; patch its client before calling it."""
    return AnswerGenerator(
        openai_api_key=TestConstants.TEST_API_KEY,
        model=TestConstants.TEST_CHAT_MODEL,
        retry_policy=instant_retry_policy,
    )


@pytest.fixture
def chat_mock_factory():
    """Factory mock for an AnswerGenerator's client.chat.completions.create."""

    @contextmanager
    def _mock_chat(  # noqa: ANN202
        generator, content: str | None = "Test response", side_effect=None
    ):
        with patch.object(
            generator.client.chat.completions,
            "create",
            new_callable=AsyncMock,
        ) as mock_create:
            if side_effect is not None:
                mock_create.side_effect = side_effect
            else:
                mock_create.return_value = create_mock_chat_response(content)
            yield mock_create

    return _mock_chat


@pytest.fixture
def session_store():
    return SessionStore(max_turns=12)


@pytest.fixture
def guide_factory(generator):
    def _create_guide(retriever, clock=None, ttl_seconds=1800) -> GuideSynthesizer:
        cache = (
            GuideCache(ttl_seconds=ttl_seconds)
            if clock is None
            else GuideCache(ttl_seconds=ttl_seconds, clock=clock)
        )
        return GuideSynthesizer(retriever, generator, cache=cache)

    return _create_guide


@pytest.fixture
def dispatcher_factory(generator, session_store, guide_factory):
    def _create_dispatcher(retriever) -> AssistantDispatcher:
        return AssistantDispatcher(
            retriever, generator, guide_factory(retriever), session_store
        )

    return _create_dispatcher


@pytest.fixture
def dispatcher(dispatcher_factory, retriever):
    return dispatcher_factory(retriever)


@pytest.fixture
def text_chunker_small():
    """Text chunker configured for small chunks (100/20)."""
    return TextChunker(
        chunk_size=TestConstants.SMALL_CHUNK_SIZE,
        overlap=TestConstants.SMALL_CHUNK_OVERLAP,
    )


def html_page(body: str, links: tuple[str, ...] = ()) -> str:
    anchors = "".join(f'<a href="{link}">{link}</a>' for link in links)
    return f"<html><body><main>{body}</main><nav>{anchors}</nav></body></html>"


@pytest.fixture
def site_pages():
    """A small three-page site plus one off-site link."""
    return {
        "https://bus.example.com/": html_page(
            "Welcome to the bus booking platform. " * 40,
            ("/booking", "/tracking", "https://elsewhere.example.org/ad"),
        ),
        "https://bus.example.com/booking": html_page(
            "Choose a route, pick a date and pay to confirm your seat. " * 40,
            ("/", "/tracking#live"),
        ),
        "https://bus.example.com/tracking": html_page(
            "Track your bus live with the PNR from your ticket. " * 40,
            ("/driver",),
        ),
        "https://bus.example.com/driver": html_page("Driver onboarding. " * 20),
        "https://elsewhere.example.org/ad": html_page("Unrelated advert."),
    }


@pytest.fixture
def requested_urls():
    return []


@pytest.fixture
def mock_site_client(site_pages, requested_urls):
    """httpx client serving ``site_pages`` and recording requested URLs."""

    def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        requested_urls.append(url)
        if url not in site_pages:
            return httpx.Response(404, text="not found")
        return httpx.Response(
            200,
            text=site_pages[url],
            headers={"content-type": "text/html; charset=utf-8"},
        )

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def site_crawler(mock_site_client):
    return SiteCrawler(timeout=5, max_pages=50, client=mock_site_client)


@pytest.fixture
def temp_faiss_store(tmp_path) -> FaissVectorStore:
    return FaissVectorStore(
        db_path=tmp_path / "store.db",
        index_path=tmp_path / "faiss" / "index.faiss",
    )


@pytest.fixture
def temp_sqlite_store(tmp_path) -> SQLiteVectorStore:
    return SQLiteVectorStore(db_path=tmp_path / "store.db")


@pytest.fixture
def embedded_chunk_factory(mock_embedding_service):
    """Factory for DocumentChunks carrying deterministic embeddings."""

    def _create_chunk(
        chunk_id: str, url: str, text: str, embed_text: str | None = None
    ) -> DocumentChunk:
        return DocumentChunk(
            id=chunk_id,
            source_url=url,
            text=text,
            embedding=mock_embedding_service.embed(embed_text or text),
        )

    return _create_chunk


@pytest.fixture
def services_factory(generator, session_store, guide_factory, mock_embedding_service):
    """Build a Services container around injected fakes for HTTP tests."""

    def _create_services(index, retriever) -> Services:
        guide = guide_factory(retriever)
        pipeline = IndexPipeline(
            mock_embedding_service,
            index,
            crawler=Mock(spec=SiteCrawler),
            on_indexed=guide.invalidate,
        )
        return Services(
            index=index,
            retriever=retriever,
            generator=generator,
            sessions=session_store,
            guide=guide,
            dispatcher=AssistantDispatcher(retriever, generator, guide, session_store),
            pipeline=pipeline,
            scheduler=RecrawlScheduler(pipeline, ""),
        )

    return _create_services


@pytest.fixture
def embeddings_response():
    """Factory for mock OpenAI embeddings API responses."""
    return create_mock_openai_response


@pytest.fixture
def chat_response():
    """Factory for mock OpenAI chat completion responses."""
    return create_mock_chat_response
