"""OpenAI-compatible embeddings service with query/document task hints."""

import numpy as np
from openai import AsyncOpenAI

from .config import config
from .models import EmbeddingTask
from .retry import RetryPolicy

logger = config.get_logger(__name__)


class EmbeddingService:
    """Handles embedding generation for queries and documents."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        retry_policy: RetryPolicy | None = None,
        query_prefix: str | None = None,
        document_prefix: str | None = None,
    ) -> None:
        """Initialize the EmbeddingService with API key and model.

        Args:
            api_key: Provider API key. If None,
                reads from OPENAI_API_KEY environment variable.
            model: Embedding model name. If None, uses config.EMBEDDING_MODEL.
            retry_policy: Backoff applied to every provider call.
            query_prefix: Text prepended for QUERY embeddings.
            document_prefix: Text prepended for DOCUMENT embeddings.
        """
        api_key = api_key or config.get_openai_api_key()
        default_headers = config.get_api_headers()
        self.client = AsyncOpenAI(
            api_key=api_key,
            base_url=config.OPENAI_BASE_URL,
            default_headers=default_headers or None,
        )
        self.model = model or config.EMBEDDING_MODEL
        self.retry_policy = retry_policy or RetryPolicy.from_config()
        self.task_prefixes = {
            EmbeddingTask.QUERY: (
                config.EMBEDDING_QUERY_PREFIX if query_prefix is None else query_prefix
            ),
            EmbeddingTask.DOCUMENT: (
                config.EMBEDDING_DOCUMENT_PREFIX
                if document_prefix is None
                else document_prefix
            ),
        }

    def _apply_task(self, text: str, task: EmbeddingTask) -> str:
        return f"{self.task_prefixes[task]}{text}"

    async def _create(self, inputs: str | list[str]) -> list[np.ndarray]:
        async def _call() -> list[np.ndarray]:
            response = await self.client.embeddings.create(
                model=self.model,
                input=inputs,
            )
            return [np.array(data.embedding) for data in response.data]

        return await self.retry_policy.run(_call, label="embedding")

    async def get_embedding(
        self,
        text: str,
        task: EmbeddingTask = EmbeddingTask.QUERY,
    ) -> np.ndarray:
        """Get embedding for a single text.

        Args:
            text: The input text to generate an embedding for.
            task: Whether the text is a search query or an indexed document.

        Returns:
            np.ndarray: The embedding vector for the input text.

        Raises:
            ValueError: If the provider returned no vector.
        """
        try:
            embeddings = await self._create(self._apply_task(text, task))
            if not embeddings:
                msg = "Embedding response contained no vectors"
                raise ValueError(msg)
        except Exception:
            logger.exception("Error generating embedding")
            raise
        else:
            return embeddings[0]

    async def get_embeddings_batch(
        self,
        texts: list[str],
        task: EmbeddingTask = EmbeddingTask.DOCUMENT,
        batch_size: int | None = None,
    ) -> list[np.ndarray]:
        """Get embeddings for multiple texts in batches.

        Args:
            texts: List of input texts to generate embeddings for.
            task: Whether the texts are queries or indexed documents.
            batch_size: Number of texts to process in each batch.

        Returns:
            list[np.ndarray]: List of embedding vectors for the input texts.
        """
        batch_size = batch_size or config.EMBEDDING_BATCH_SIZE
        embeddings: list[np.ndarray] = []

        for i in range(0, len(texts), batch_size):
            batch_texts = [
                self._apply_task(text, task) for text in texts[i : i + batch_size]
            ]
            try:
                embeddings.extend(await self._create(batch_texts))
                logger.info(
                    "Generated %s embeddings for batch %d",
                    task.value,
                    i // batch_size + 1,
                )
            except Exception:
                logger.exception("Error generating batch embeddings")
                raise

        return embeddings
