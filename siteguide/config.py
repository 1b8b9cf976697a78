"""Configuration management for the SiteGuide assistant service."""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

env_path = Path(__file__).parent.parent / ".env"

if env_path.exists():
    load_dotenv(env_path)

# Task prefixes (query, document) expected by instruction-tuned embedders,
# keyed by a model-name fragment. OpenAI embedding models take none.
KNOWN_TASK_PREFIXES: dict[str, tuple[str, str]] = {
    "nomic-embed": ("search_query: ", "search_document: "),
    "e5-": ("query: ", "passage: "),
    "bge-": ("Represent this sentence for searching relevant passages: ", ""),
}


def default_task_prefixes(model: str) -> tuple[str, str]:
    """Look up the query/document prefixes an embedding model was trained with.

    Returns:
        (query prefix, document prefix), empty for models without task hints.
    """
    name = model.lower()
    for fragment, prefixes in KNOWN_TASK_PREFIXES.items():
        if fragment in name:
            return prefixes
    return "", ""


class Config:
    """Application configuration loaded from environment variables."""

    # OpenAI-compatible provider configuration
    @classmethod
    def get_openai_api_key(cls) -> str:
        """Get the generative/embedding provider API key from the environment.

        Returns:
            API key from environment or empty string if not set.
        """
        return os.getenv("OPENAI_API_KEY", "")

    OPENAI_BASE_URL: str | None = os.getenv("OPENAI_BASE_URL")

    # Logging Configuration
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    OPENAI_LOG_LEVEL: str = os.getenv("OPENAI_LOG_LEVEL", "WARNING").upper()
    HTTPX_LOG_LEVEL: str = os.getenv("HTTPX_LOG_LEVEL", "WARNING").upper()

    # Application Settings
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    HOST: str = os.getenv("HOST", "0.0.0.0")  # noqa: S104
    PORT: int = int(os.getenv("PORT", "3000"))

    # Embedding Configuration
    EMBEDDING_MODEL: str = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
    EMBEDDING_BATCH_SIZE: int = int(os.getenv("EMBEDDING_BATCH_SIZE", "100"))
    # Task hints are applied as text prefixes so instruction-tuned embedders can
    # tell queries from documents. Defaults follow EMBEDDING_MODEL.
    EMBEDDING_QUERY_PREFIX: str = os.getenv(
        "EMBEDDING_QUERY_PREFIX", default_task_prefixes(EMBEDDING_MODEL)[0]
    )
    EMBEDDING_DOCUMENT_PREFIX: str = os.getenv(
        "EMBEDDING_DOCUMENT_PREFIX", default_task_prefixes(EMBEDDING_MODEL)[1]
    )

    # Chat Model Configuration
    CHAT_MODEL: str = os.getenv("CHAT_MODEL", "gpt-4.1-nano-2025-04-14")
    CHAT_MAX_TOKENS: int = int(os.getenv("CHAT_MAX_TOKENS", "800"))
    CHAT_TEMPERATURE: float = float(os.getenv("CHAT_TEMPERATURE", "0.3"))

    # Retrieval Configuration
    DEFAULT_TOP_K: int = int(os.getenv("DEFAULT_TOP_K", "8"))
    MAX_SOURCES: int = int(os.getenv("MAX_SOURCES", "5"))
    CONTEXT_MAX_BYTES: int = int(os.getenv("CONTEXT_MAX_BYTES", "120000"))
    GUIDE_CONTEXT_MAX_BYTES: int = int(
        os.getenv("GUIDE_CONTEXT_MAX_BYTES", "100000")
    )
    GUIDE_TOP_K: int = int(os.getenv("GUIDE_TOP_K", "4"))
    GUIDE_TTL_SECONDS: float = float(os.getenv("GUIDE_TTL_SECONDS", "1800"))

    # Session Configuration
    SESSION_MAX_TURNS: int = int(os.getenv("SESSION_MAX_TURNS", "12"))

    # Retry Configuration
    RETRY_MAX_RETRIES: int = int(os.getenv("RETRY_MAX_RETRIES", "4"))
    RETRY_BASE_DELAY: float = float(os.getenv("RETRY_BASE_DELAY", "0.4"))
    RETRY_MAX_DELAY: float = float(os.getenv("RETRY_MAX_DELAY", "2.0"))
    RETRY_JITTER: float = float(os.getenv("RETRY_JITTER", "0.2"))

    # Crawl / Index Configuration
    SITE_URL: str = os.getenv("SITE_URL", "")
    CRAWL_DEPTH: int = int(os.getenv("CRAWL_DEPTH", "2"))
    CRAWL_TIMEOUT_SECONDS: float = float(os.getenv("CRAWL_TIMEOUT_SECONDS", "15"))
    CRAWL_MAX_PAGES: int = int(os.getenv("CRAWL_MAX_PAGES", "200"))
    RECRAWL_INTERVAL_HOURS: float = float(os.getenv("RECRAWL_INTERVAL_HOURS", "6"))
    CHUNK_SIZE: int = int(os.getenv("CHUNK_SIZE", "800"))
    CHUNK_OVERLAP: int = int(os.getenv("CHUNK_OVERLAP", "120"))
    CHUNK_TEXT_MAX_BYTES: int = int(os.getenv("CHUNK_TEXT_MAX_BYTES", "35000"))
    UPSERT_BATCH_SIZE: int = int(os.getenv("UPSERT_BATCH_SIZE", "50"))

    # Vector Store Configuration
    VECTOR_BACKEND: str = os.getenv("VECTOR_BACKEND", "faiss").lower()
    VECTOR_INDEX_NAME: str = os.getenv("VECTOR_INDEX_NAME", "siteguide")
    VECTOR_STORE_DB_PATH: Path = Path(
        os.getenv("VECTOR_STORE_DB_PATH", f"data/{VECTOR_INDEX_NAME}.db")
    )
    FAISS_INDEX_PATH: Path = Path(
        os.getenv("FAISS_INDEX_PATH", f"data/faiss/{VECTOR_INDEX_NAME}.faiss")
    )

    # API Header Configuration
    API_USER_AGENT: str = os.getenv("API_USER_AGENT", "SiteGuide/1.0")

    @classmethod
    def validate(cls) -> None:
        """Validate required configuration values.

        Raises:
            ValueError: If OPENAI_API_KEY is not set or chunking is inconsistent.
        """
        if not cls.get_openai_api_key():
            msg = (
                "OPENAI_API_KEY is required. Please set it in .env file or environment."
            )
            raise ValueError(msg)
        if cls.CHUNK_OVERLAP >= cls.CHUNK_SIZE:
            msg = "CHUNK_OVERLAP must be smaller than CHUNK_SIZE."
            raise ValueError(msg)

    @classmethod
    def is_development(cls) -> bool:
        """Check if running in development environment.

        Returns:
            True if environment is development.
        """
        return cls.ENVIRONMENT.lower() == "development"

    @classmethod
    def is_production(cls) -> bool:
        """Check if running in production environment.

        Returns:
            True if environment is production.
        """
        return cls.ENVIRONMENT.lower() == "production"

    @classmethod
    def recrawl_interval_seconds(cls) -> float:
        """Interval between scheduled crawls in seconds.

        Returns:
            RECRAWL_INTERVAL_HOURS converted to seconds.
        """
        return cls.RECRAWL_INTERVAL_HOURS * 60 * 60

    @classmethod
    def setup_logging(cls) -> None:
        """Setup basic logging configuration.

        Configure logging once at application startup with:
        - Console output for all levels
        - Simple, readable format
        - Configurable level via environment variable
        """
        logging.basicConfig(
            level=getattr(logging, cls.LOG_LEVEL, logging.INFO),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )

        # Configure third-party library log levels via environment variables
        logging.getLogger("openai").setLevel(
            getattr(logging, cls.OPENAI_LOG_LEVEL, logging.WARNING)
        )
        logging.getLogger("httpx").setLevel(
            getattr(logging, cls.HTTPX_LOG_LEVEL, logging.WARNING)
        )

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """Get a logger with the specified name.

        Args:
            name: Logger name (typically __name__)

        Returns:
            Logger instance
        """
        return logging.getLogger(name)

    @classmethod
    def get_api_headers(cls) -> dict[str, str]:
        """Build default headers for outbound API calls.

        Returns:
            Mapping of header names to values used on outbound HTTP requests.
        """
        headers: dict[str, str] = {}

        if cls.API_USER_AGENT:
            headers["User-Agent"] = cls.API_USER_AGENT

        return headers


config = Config()
