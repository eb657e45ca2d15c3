"""ChromaDB vector index adapter.

Wraps ``chromadb.PersistentClient`` to implement :class:`IVectorIndex`.
The collection holds only ``chunk_id → embedding`` (no documents or
metadata): chunk text and filters live in SQLite, and ChromaDB is purely a
nearest-neighbour mirror that can be dropped and rebuilt at any time.
Cosine space is used, so distances fall in [0, 2].
"""

from __future__ import annotations

import os

# ChromaDB reports anonymous telemetry through PostHog.  The env var and
# posthog.disabled must both be set before chromadb is imported; the
# client Settings below turn it off for versions that ignore both.
os.environ["ANONYMIZED_TELEMETRY"] = "False"

import posthog

posthog.disabled = True

import chromadb
import structlog

from ragdesk.interfaces.vector_index import IVectorIndex
from ragdesk.utils.errors import VectorIndexError

logger = structlog.get_logger(logger_name=__name__)

_UPSERT_BATCH = 500


class _NoopEmbeddingFunction(chromadb.EmbeddingFunction[list[str]]):
    """Stops ChromaDB from loading its default ONNX model.

    ragdesk always passes pre-computed embeddings, so this is never called.
    """

    def __call__(self, input: list[str]) -> list[list[float]]:
        raise NotImplementedError("ragdesk passes pre-computed embeddings only")

    def name(self) -> str:
        """Return function name (required by ChromaDB's EmbeddingFunction protocol)."""
        return "noop_precomputed"


class ChromaDBVectorIndex(IVectorIndex):
    """Vector index backed by a local, persistent ChromaDB collection.

    Parameters
    ----------
    persist_directory:
        Directory for ChromaDB's on-disk state.
    collection_name:
        Collection holding the chunk vectors.
    client:
        Optional pre-built client (e.g. ``chromadb.EphemeralClient()`` in
        tests).  Overrides *persist_directory*.
    """

    def __init__(
        self,
        persist_directory: str = "./data/chromadb",
        collection_name: str = "ragdesk_chunks",
        client: chromadb.ClientAPI | None = None,
    ) -> None:
        self._collection_name = collection_name
        self._client = client or chromadb.PersistentClient(
            path=persist_directory,
            settings=chromadb.config.Settings(anonymized_telemetry=False),
        )
        self._collection = self._open_collection()

    def _open_collection(self) -> chromadb.Collection:
        return self._client.get_or_create_collection(
            name=self._collection_name,
            metadata={"hnsw:space": "cosine"},
            embedding_function=_NoopEmbeddingFunction(),
        )

    # ------------------------------------------------------------------
    # IVectorIndex implementation
    # ------------------------------------------------------------------

    async def insert(self, chunk_id: str, vector: list[float]) -> None:
        await self.insert_many([(chunk_id, vector)])

    async def insert_many(self, items: list[tuple[str, list[float]]]) -> int:
        """Upsert vectors in slices of 500 to bound peak memory."""
        if not items:
            return 0
        try:
            for start in range(0, len(items), _UPSERT_BATCH):
                batch = items[start : start + _UPSERT_BATCH]
                self._collection.upsert(
                    ids=[chunk_id for chunk_id, _ in batch],
                    embeddings=[vector for _, vector in batch],
                )
        except Exception as exc:
            raise VectorIndexError(
                message=f"ChromaDB upsert failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        logger.debug("chromadb_upsert", count=len(items))
        return len(items)

    async def delete(self, chunk_id: str) -> None:
        await self.delete_many([chunk_id])

    async def delete_many(self, chunk_ids: list[str]) -> int:
        if not chunk_ids:
            return 0
        try:
            self._collection.delete(ids=chunk_ids)
        except Exception as exc:
            raise VectorIndexError(
                message=f"ChromaDB delete failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        logger.debug("chromadb_delete", count=len(chunk_ids))
        return len(chunk_ids)

    async def nearest(
        self,
        query_vector: list[float],
        k: int,
        max_distance: float | None = None,
    ) -> list[tuple[str, float]]:
        if k <= 0:
            return []
        try:
            total = self._collection.count()
            if total == 0:
                return []
            results = self._collection.query(
                query_embeddings=[query_vector],
                n_results=min(k, total),
                include=["distances"],
            )
        except Exception as exc:
            raise VectorIndexError(
                message=f"ChromaDB query failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        ids = results["ids"][0] if results["ids"] else []
        distances = results["distances"][0] if results["distances"] else []
        pairs = [
            (chunk_id, float(distance))
            for chunk_id, distance in zip(ids, distances, strict=True)
            if max_distance is None or distance <= max_distance
        ]
        pairs.sort(key=lambda pair: pair[1])
        logger.debug(
            "chromadb_query",
            requested=k,
            returned=len(pairs),
            max_distance=max_distance,
        )
        return pairs

    async def count(self) -> int:
        try:
            return self._collection.count()
        except Exception as exc:
            raise VectorIndexError(
                message=f"ChromaDB count failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    async def reset(self) -> None:
        """Drop and recreate the collection."""
        try:
            self._client.delete_collection(self._collection_name)
        except Exception as exc:  # noqa: BLE001
            # A missing collection is already reset.
            logger.debug("chromadb_delete_collection_skipped", error=str(exc))
        self._collection = self._open_collection()
        logger.info("chromadb_reset", collection=self._collection_name)

    def get_provider_name(self) -> str:
        return "chromadb"

    def is_available(self) -> bool:
        """Return ``True`` if the ChromaDB collection is accessible."""
        try:
            self._collection.count()
            return True
        except Exception:
            return False
