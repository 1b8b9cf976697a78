"""Wiring of the assistant components, built once per process."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from .config import config
from .dispatcher import AssistantDispatcher
from .embeddings import EmbeddingService
from .generator import AnswerGenerator
from .guide import GuideCache, GuideSynthesizer
from .pipeline import IndexPipeline, RecrawlScheduler
from .retriever import ContextRetriever
from .retry import RetryPolicy
from .session import SessionStore
from .vector_store import VectorIndex, get_vector_store

logger = config.get_logger(__name__)


@dataclass
class Services:
    """Every long-lived component the HTTP handlers need."""

    index: VectorIndex
    retriever: ContextRetriever
    generator: AnswerGenerator
    sessions: SessionStore
    guide: GuideSynthesizer
    dispatcher: AssistantDispatcher
    pipeline: IndexPipeline
    scheduler: RecrawlScheduler


def build_services(
    *,
    openai_api_key: str | None = None,
    vector_backend: str | None = None,
    db_path: Path | None = None,
    index_path: Path | None = None,
    site_url: str | None = None,
) -> Services:
    """Construct and connect all components from configuration.

    Returns:
        A fully wired Services container.
    """
    retry_policy = RetryPolicy.from_config()
    index = get_vector_store(
        vector_backend or config.VECTOR_BACKEND,
        db_path=db_path or config.VECTOR_STORE_DB_PATH,
        index_path=index_path or config.FAISS_INDEX_PATH,
    )
    index.load()
    logger.info("Using %s vector index '%s'", index.backend, config.VECTOR_INDEX_NAME)

    embedding_service = EmbeddingService(
        api_key=openai_api_key, retry_policy=retry_policy
    )
    generator = AnswerGenerator(
        openai_api_key=openai_api_key, retry_policy=retry_policy
    )
    retriever = ContextRetriever(embedding_service, index, retry_policy=retry_policy)
    sessions = SessionStore()
    guide = GuideSynthesizer(retriever, generator, cache=GuideCache())
    dispatcher = AssistantDispatcher(retriever, generator, guide, sessions)
    pipeline = IndexPipeline(embedding_service, index, on_indexed=guide.invalidate)
    scheduler = RecrawlScheduler(
        pipeline, config.SITE_URL if site_url is None else site_url
    )

    return Services(
        index=index,
        retriever=retriever,
        generator=generator,
        sessions=sessions,
        guide=guide,
        dispatcher=dispatcher,
        pipeline=pipeline,
        scheduler=scheduler,
    )
