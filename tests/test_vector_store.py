"""Behaviour shared by every vector index backend."""

import pytest

from siteguide import FaissVectorStore, SQLiteVectorStore, get_vector_store
from siteguide.vector_store import crawl_scope, host_of, vector_id_for


@pytest.fixture(params=["faiss", "sqlite"])
def vector_store(request, temp_faiss_store, temp_sqlite_store):
    return temp_faiss_store if request.param == "faiss" else temp_sqlite_store


@pytest.fixture
def site_chunks(embedded_chunk_factory):
    return [
        embedded_chunk_factory(
            "doc-a", "https://bus.example.com/booking", "Pick a route and date."
        ),
        embedded_chunk_factory(
            "doc-b", "https://bus.example.com/tracking", "Track with your PNR."
        ),
        embedded_chunk_factory(
            "doc-c", "https://bus.example.com/driver", "Driver onboarding steps."
        ),
    ]


def test_vector_id_is_stable_non_negative_int64():
    first = vector_id_for("doc-a")

    assert first == vector_id_for("doc-a")
    assert first != vector_id_for("doc-b")
    assert 0 <= first < 2**63


def test_host_of():
    assert host_of("https://Bus.Example.com/booking?x=1") == "bus.example.com"
    assert host_of("not a url") == ""


def test_crawl_scope_drops_query_and_fragment():
    assert crawl_scope("https://bus.example.com/docs/?page=2#top") == (
        "https://bus.example.com/docs/"
    )


def test_get_vector_store_factory(tmp_path):
    faiss_store = get_vector_store(
        "faiss", db_path=tmp_path / "a.db", index_path=tmp_path / "a.faiss"
    )
    sqlite_store = get_vector_store("SQLITE", db_path=tmp_path / "b.db")

    assert isinstance(faiss_store, FaissVectorStore)
    assert isinstance(sqlite_store, SQLiteVectorStore)
    with pytest.raises(ValueError, match="Unsupported vector store backend"):
        get_vector_store("pinecone", db_path=tmp_path / "c.db")


@pytest.mark.asyncio
async def test_query_empty_store_returns_nothing(vector_store, mock_embedding_service):
    results = await vector_store.query(mock_embedding_service.embed("booking"), 5)

    assert results == []
    assert vector_store.count() == 0


@pytest.mark.asyncio
async def test_upsert_and_query_ranks_exact_match_first(vector_store, site_chunks):
    written = await vector_store.upsert(site_chunks)

    results = await vector_store.query(site_chunks[1].embedding, top_k=2)

    assert written == 3
    assert vector_store.count() == 3
    assert len(results) == 2
    assert results[0].source_url == "https://bus.example.com/tracking"
    assert results[0].text == "Track with your PNR."
    assert results[0].score == pytest.approx(1.0, abs=1e-5)
    assert results[0].score >= results[1].score


@pytest.mark.asyncio
async def test_upsert_same_id_overwrites(
    vector_store, site_chunks, embedded_chunk_factory
):
    await vector_store.upsert(site_chunks)
    replacement = embedded_chunk_factory(
        "doc-a", "https://bus.example.com/booking", "Booking now needs an OTP."
    )

    await vector_store.upsert([replacement])
    results = await vector_store.query(replacement.embedding, top_k=1)

    assert vector_store.count() == 3
    assert results[0].text == "Booking now needs an OTP."


@pytest.mark.asyncio
async def test_upsert_skips_chunks_without_embedding(vector_store, site_chunks):
    site_chunks[0].embedding = None

    written = await vector_store.upsert(site_chunks)

    assert written == 2
    assert vector_store.count() == 2


@pytest.mark.asyncio
async def test_prune_removes_only_stale_chunks_of_host(
    vector_store, site_chunks, embedded_chunk_factory
):
    other_site = embedded_chunk_factory(
        "doc-x", "https://other.example.org/", "Another site entirely."
    )
    await vector_store.upsert([*site_chunks, other_site])

    removed = await vector_store.prune(
        "https://bus.example.com/", {"doc-a", "doc-b"}
    )
    results = await vector_store.query(site_chunks[2].embedding, top_k=10)

    assert removed == 1
    assert vector_store.count() == 3
    assert "https://bus.example.com/driver" not in {r.source_url for r in results}
    assert "https://other.example.org/" in {r.source_url for r in results}


@pytest.mark.asyncio
async def test_prune_with_nothing_stale_is_noop(vector_store, site_chunks):
    await vector_store.upsert(site_chunks)

    removed = await vector_store.prune(
        "https://bus.example.com/", {chunk.id for chunk in site_chunks}
    )

    assert removed == 0
    assert vector_store.count() == 3


@pytest.mark.asyncio
async def test_prune_keeps_protected_urls(vector_store, site_chunks):
    await vector_store.upsert(site_chunks)

    removed = await vector_store.prune(
        "https://bus.example.com/",
        {"doc-a"},
        protected_urls={"https://bus.example.com/tracking"},
    )

    assert removed == 1
    assert vector_store.count() == 2


@pytest.mark.asyncio
async def test_prune_is_limited_to_crawled_path(vector_store, site_chunks):
    await vector_store.upsert(site_chunks)

    removed = await vector_store.prune("https://bus.example.com/driver", set())

    assert removed == 1
    assert vector_store.count() == 2
