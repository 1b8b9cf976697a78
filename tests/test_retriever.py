"""Tests for ContextRetriever."""

import pytest

from siteguide.errors import UpstreamUnavailableError
from siteguide.models import EmbeddingTask, RetrievalMatch
from siteguide.retriever import CONTEXT_SEPARATOR, format_context


def match(url: str, text: str, score: float = 0.5) -> RetrievalMatch:
    return RetrievalMatch(source_url=url, text=text, score=score)


def test_format_context_renders_source_blocks():
    blob = format_context(
        [match("https://a.example/1", "first"), match("https://a.example/2", "second")],
        max_bytes=1000,
    )

    assert blob == (
        "Source: https://a.example/1\nfirst"
        + CONTEXT_SEPARATOR
        + "Source: https://a.example/2\nsecond"
    )


def test_format_context_skips_matches_without_text():
    blob = format_context(
        [match("https://a.example/1", ""), match("https://a.example/2", "kept")],
        max_bytes=1000,
    )

    assert blob == "Source: https://a.example/2\nkept"


def test_from_metadata_defaults_missing_fields():
    result = RetrievalMatch.from_metadata({"source_url": "https://a.example"}, "n/a")

    assert result == RetrievalMatch(source_url="https://a.example", text="", score=0.0)
    assert RetrievalMatch.from_metadata(None, 0.7).source_url == ""


@pytest.mark.asyncio
async def test_retrieve_happy_path(retriever, mock_embedding_service, fake_index):
    result = await retriever.retrieve("How do I book?", top_k=8)

    assert mock_embedding_service.tasks == [EmbeddingTask.QUERY]
    assert fake_index.queries == [8]
    assert "Source: https://bus.example.com/booking\nPick a route and date." in (
        result.contexts
    )
    assert result.sources == [
        "https://bus.example.com/booking",
        "https://bus.example.com/tracking",
        "https://bus.example.com/booking",
    ]
    assert not result.is_empty


@pytest.mark.asyncio
async def test_retrieve_uses_default_top_k(retriever, fake_index):
    await retriever.retrieve("How do I book?")

    assert fake_index.queries == [8]


def test_sources_capped_in_rank_order_with_duplicates(retriever):
    matches = [match(f"https://bus.example.com/{i % 3}", f"text {i}") for i in range(8)]

    result = retriever.assemble(matches)

    assert result.sources == [
        "https://bus.example.com/0",
        "https://bus.example.com/1",
        "https://bus.example.com/2",
        "https://bus.example.com/0",
        "https://bus.example.com/1",
    ]


def test_sources_skip_matches_without_url(retriever):
    result = retriever.assemble([match("", "orphan"), match("https://a.example", "x")])

    assert result.sources == ["https://a.example"]


def test_context_truncated_to_exact_byte_cap(retriever_factory, fake_index):
    retriever = retriever_factory(fake_index, max_context_bytes=120_000)
    matches = [match("https://bus.example.com/big", "x" * 50_000) for _ in range(5)]

    result = retriever.assemble(matches)

    assert len(result.contexts.encode("utf-8")) == 120_000


@pytest.mark.asyncio
async def test_empty_index_gives_empty_result(retriever_factory, empty_index):
    retriever = retriever_factory(empty_index)

    result = await retriever.retrieve("anything")

    assert result.is_empty
    assert result.sources == []
    assert not retriever.has_indexed_content()


@pytest.mark.asyncio
async def test_embedding_failure_is_upstream_error(retriever, mock_embedding_service):
    mock_embedding_service.fail_with = RuntimeError("provider down")

    with pytest.raises(UpstreamUnavailableError) as exc_info:
        await retriever.retrieve("How do I book?")

    assert exc_info.value.dependency == "embedding"
    assert exc_info.value.message == "Embedding failed"


@pytest.mark.asyncio
async def test_search_failure_is_retried_then_upstream_error(
    retriever, fake_index, instant_retry_policy
):
    fake_index.fail_with = RuntimeError("503 UNAVAILABLE")

    with pytest.raises(UpstreamUnavailableError) as exc_info:
        await retriever.retrieve("How do I book?")

    assert exc_info.value.dependency == "vector_search"
    assert exc_info.value.message == "Vector search failed"
    assert len(fake_index.queries) == instant_retry_policy.max_retries + 1


@pytest.mark.asyncio
async def test_embed_queries_batches_in_query_mode(retriever, mock_embedding_service):
    vectors = await retriever.embed_queries(["booking", "tracking"])

    assert len(vectors) == 2
    assert mock_embedding_service.calls == 1
    assert mock_embedding_service.tasks == [EmbeddingTask.QUERY]
