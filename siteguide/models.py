"""Data models for the site guide assistant."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

import numpy as np

Role = Literal["user", "assistant"]
Lang = Literal["hi", "en"]


class EmbeddingTask(str, Enum):
    """Task hint passed to the embedding provider."""

    QUERY = "query"
    DOCUMENT = "document"


@dataclass(frozen=True)
class ConversationTurn:
    """A single message in a session's history."""

    role: Role
    text: str


@dataclass
class DocumentChunk:
    """A bounded slice of a crawled page, the unit of indexing."""

    id: str
    source_url: str
    text: str
    embedding: np.ndarray | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RetrievalMatch:
    """Narrow, validated result of a similarity query."""

    source_url: str
    text: str
    score: float

    @classmethod
    def from_metadata(
        cls, metadata: dict[str, Any] | None, score: object
    ) -> "RetrievalMatch":
        """Build a match from an untyped metadata mapping, defaulting missing fields.

        Returns:
            RetrievalMatch with string fields and a float score.
        """
        metadata = metadata or {}
        try:
            numeric_score = float(score)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            numeric_score = 0.0
        return cls(
            source_url=str(metadata.get("url") or metadata.get("source_url") or ""),
            text=str(metadata.get("text") or ""),
            score=numeric_score,
        )


@dataclass(frozen=True)
class RetrievalResult:
    """Context blob and citations assembled from a similarity search."""

    contexts: str
    sources: list[str]
    matches: list[RetrievalMatch] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        """True when there is no usable grounding text."""
        return not self.contexts.strip()


@dataclass(frozen=True)
class GuideCacheEntry:
    """A cached onboarding guide for one language."""

    text: str
    lang: Lang
    timestamp: float


@dataclass(frozen=True)
class CrawledPage:
    """Text extracted from one fetched page."""

    url: str
    text: str


@dataclass
class CrawlReport:
    """Pages a crawl extracted, plus URLs it meant to fetch but could not.

    ``skipped_urls`` holds transient fetch failures and URLs left in the queue
    when the page limit was reached; their indexed content must be kept.
    """

    pages: list[CrawledPage] = field(default_factory=list)
    skipped_urls: set[str] = field(default_factory=set)


@dataclass(frozen=True)
class CrawlResult:
    """Outcome of a crawl-and-index run."""

    ok: bool
    pages: int = 0
    chunks: int = 0
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the HTTP layer.

        Returns:
            ``{ok, pages, chunks}`` on success, ``{ok, reason}`` otherwise.
        """
        if self.ok:
            return {"ok": True, "pages": self.pages, "chunks": self.chunks}
        return {"ok": False, "reason": self.reason or "crawl failed"}


@dataclass(frozen=True)
class AssistantReply:
    """What the dispatcher returns for one inbound question."""

    text: str
    sources: list[str]
    lang: Lang
    session_id: str
