"""SiteGuide - retrieval-augmented assistant for a crawled website."""

from .crawler import SiteCrawler
from .dispatcher import AssistantDispatcher
from .document_processing import DocumentLoader, TextChunker
from .embeddings import EmbeddingService
from .generator import AnswerGenerator
from .guide import GuideCache, GuideSynthesizer
from .models import ConversationTurn, DocumentChunk, RetrievalMatch, RetrievalResult
from .pipeline import IndexPipeline, RecrawlScheduler
from .retriever import ContextRetriever
from .retry import RetryPolicy
from .session import SessionStore
from .vector_store import FaissVectorStore, SQLiteVectorStore, get_vector_store

__all__ = [
    "AnswerGenerator",
    "AssistantDispatcher",
    "ContextRetriever",
    "ConversationTurn",
    "DocumentChunk",
    "DocumentLoader",
    "EmbeddingService",
    "FaissVectorStore",
    "GuideCache",
    "GuideSynthesizer",
    "IndexPipeline",
    "RecrawlScheduler",
    "RetrievalMatch",
    "RetrievalResult",
    "RetryPolicy",
    "SQLiteVectorStore",
    "SessionStore",
    "SiteCrawler",
    "TextChunker",
    "get_vector_store",
]
