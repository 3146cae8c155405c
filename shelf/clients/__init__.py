"""External API clients."""

from shelf.clients.openai_client import OpenAIEmbeddingClient

__all__ = ["OpenAIEmbeddingClient"]
