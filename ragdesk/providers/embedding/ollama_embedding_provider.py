"""Ollama embedding provider adapter (local, no API key).

Talks to Ollama's OpenAI-compatible ``/v1`` endpoint with the ``openai``
client and uses ``httpx`` only for the reachability probe.  Local models
often produce fewer dimensions than the deployment stores; vectors are
zero-padded up to ``Settings.embedding_dimension`` so cosine distances are
unchanged and a corpus can move between providers of the same model.
"""

from __future__ import annotations

import httpx
import openai
import structlog

from ragdesk.config.settings import Settings
from ragdesk.interfaces.embedding_provider import IEmbeddingProvider
from ragdesk.utils.errors import EmbeddingError

logger = structlog.get_logger(logger_name=__name__)

_OLLAMA_BATCH_LIMIT = 512


class OllamaEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by a model served by a local Ollama."""

    def __init__(self, settings: Settings) -> None:
        self._base_url = settings.ollama_base_url.rstrip("/")
        self._client = openai.AsyncOpenAI(
            base_url=f"{self._base_url}/v1",
            api_key="ollama",  # Ollama ignores the key but the SDK requires one
        )
        self._model = settings.ollama_embedding_model
        self._dimension = settings.embedding_dimension

    # ------------------------------------------------------------------
    # IEmbeddingProvider implementation
    # ------------------------------------------------------------------

    async def embed(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []

        try:
            all_embeddings: list[list[float]] = []
            for start in range(0, len(texts), _OLLAMA_BATCH_LIMIT):
                batch = texts[start : start + _OLLAMA_BATCH_LIMIT]
                response = await self._client.embeddings.create(input=batch, model=self._model)
                all_embeddings.extend(self._pad(item.embedding) for item in response.data)
                logger.info("ollama_embedding_batch", model=self._model, batch_size=len(batch))
            return all_embeddings
        except openai.APIError as exc:
            raise EmbeddingError(
                message=f"Ollama embedding API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    async def embed_single(self, text: str) -> list[float]:
        result = await self.embed([text])
        return result[0]

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return "ollama_embedding"

    def is_available(self) -> bool:
        """Return ``True`` if the Ollama server answers its tags endpoint."""
        if not self._base_url:
            return False
        try:
            response = httpx.get(f"{self._base_url}/api/tags", timeout=3.0)
            return response.status_code == 200
        except (httpx.ConnectError, httpx.TimeoutException):
            return False

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _pad(self, vector: list[float]) -> list[float]:
        """Zero-pad *vector* to the deployment dimension; longer vectors raise."""
        if len(vector) > self._dimension:
            raise EmbeddingError(
                message=(
                    f"Model '{self._model}' returned {len(vector)} dimensions, "
                    f"more than the configured {self._dimension}"
                ),
                provider_name=self.get_provider_name(),
            )
        return vector + [0.0] * (self._dimension - len(vector))
