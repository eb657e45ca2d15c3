"""Abstract base class for text-embedding providers.

Defines the contract for turning text into fixed-dimension vectors.
Every vector a deployment stores must share one dimension, so providers
report theirs via :meth:`IEmbeddingProvider.get_dimension` and the
processing pipeline checks it against ``Settings.embedding_dimension``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations:
#   OpenAIEmbeddingProvider  - text-embedding-3-small (requires API key)
#   OllamaEmbeddingProvider  - any Ollama embedding model (local, free)
# Located in: ragdesk/providers/embedding/
class IEmbeddingProvider(ABC):
    """Contract for embedding services used at ingestion and query time."""

    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for a batch of texts.

        Parameters
        ----------
        texts:
            Text strings to embed.  Callers bound the batch size; providers
            may split further if their API has a lower per-call limit.

        Returns
        -------
        list[list[float]]
            Vectors corresponding positionally to *texts*.

        Raises
        ------
        ragdesk.utils.errors.EmbeddingError
            If the embedding API call fails.
        """

    @abstractmethod
    async def embed_single(self, text: str) -> list[float]:
        """Generate an embedding vector for one text (e.g. a search query).

        Raises
        ------
        ragdesk.utils.errors.EmbeddingError
            If the embedding API call fails.
        """

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the length of every vector this provider produces."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier, e.g. ``"openai_embedding"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured and reachable."""
