"""OpenAI embeddings for search queries and bookmark backfill."""

import asyncio
import logging

from openai import APIError, APITimeoutError, AsyncOpenAI, RateLimitError

logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = (APIError, RateLimitError, APITimeoutError)


class OpenAIEmbeddingClient:
    """Thin async wrapper over the OpenAI embeddings endpoint.

    The SDK's own retries are disabled; failed requests are retried here
    with exponential backoff (1s, 2s, 4s, ...) and the last error is
    re-raised. ``embed_text`` can be passed directly to ``SearchService``
    as its query embedder.
    """

    def __init__(
        self,
        api_key: str,
        embedding_model: str = "text-embedding-3-small",
        timeout: float = 30.0,
        max_retries: int = 3,
    ):
        """Initialize embedding client.

        Args:
            api_key: OpenAI API key
            embedding_model: Embedding model name
            timeout: Per-request timeout in seconds
            max_retries: Total attempts per request, including the first
        """
        self.client = AsyncOpenAI(api_key=api_key, timeout=timeout, max_retries=0)
        self.embedding_model = embedding_model
        self.timeout = timeout
        self.max_retries = max_retries

    async def _create(self, label: str, inputs: str | list[str]):
        for attempt in range(1, self.max_retries + 1):
            try:
                return await self.client.embeddings.create(
                    model=self.embedding_model,
                    input=inputs,
                )
            except RETRYABLE_ERRORS as e:
                if attempt >= self.max_retries:
                    logger.error(
                        f"{label} FAILED after {attempt} attempts: {type(e).__name__}: {e}"
                    )
                    raise
                delay = 2 ** (attempt - 1)
                logger.warning(
                    f"{label} attempt {attempt}/{self.max_retries} failed "
                    f"({type(e).__name__}: {e}), retrying in {delay}s"
                )
                await asyncio.sleep(delay)

    async def embed_text(self, text: str) -> list[float]:
        """Embed one query string.

        Raises:
            APIError: If every attempt fails
        """
        response = await self._create("Query embedding", text)
        return response.data[0].embedding

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed several bookmark texts in one request, preserving input order.

        Raises:
            APIError: If every attempt fails
        """
        if not texts:
            return []

        response = await self._create(f"Batch embedding ({len(texts)} texts)", texts)
        return [item.embedding for item in sorted(response.data, key=lambda item: item.index)]

    async def close(self) -> None:
        await self.client.close()

    async def __aenter__(self) -> "OpenAIEmbeddingClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
