"""Abstract base class for the nearest-neighbour vector index.

The index is a *mirror* of the chunk embeddings held in relational rows.
It cannot join a relational transaction, so callers must treat each write
as best-effort and rely on
:meth:`~ragdesk.interfaces.chunk_store.IChunkStore.rebuild_index` to repair
drift.  Implementations therefore need :meth:`reset` and :meth:`count` in
addition to the read/write calls.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations: ChromaDBVectorIndex (cosine distance)
# Located in: ragdesk/providers/vector_index/
class IVectorIndex(ABC):
    """Contract for a keyed vector index with distance-bounded search."""

    @abstractmethod
    async def insert(self, chunk_id: str, vector: list[float]) -> None:
        """Add or replace the vector stored under *chunk_id*."""

    @abstractmethod
    async def insert_many(self, items: list[tuple[str, list[float]]]) -> int:
        """Add or replace many vectors at once.  Returns the number written."""

    @abstractmethod
    async def delete(self, chunk_id: str) -> None:
        """Remove *chunk_id*.  Removing an absent id is not an error."""

    @abstractmethod
    async def delete_many(self, chunk_ids: list[str]) -> int:
        """Remove every id in *chunk_ids*.  Returns the number requested."""

    @abstractmethod
    async def nearest(
        self,
        query_vector: list[float],
        k: int,
        max_distance: float | None = None,
    ) -> list[tuple[str, float]]:
        """Return up to *k* ``(chunk_id, distance)`` pairs, closest first.

        Pairs with a distance above *max_distance* are dropped.

        Raises
        ------
        ragdesk.utils.errors.VectorIndexError
            If the index cannot be queried.
        """

    @abstractmethod
    async def count(self) -> int:
        """Return the number of vectors in the index."""

    @abstractmethod
    async def reset(self) -> None:
        """Remove every vector from the index."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier, e.g. ``"chromadb"``."""
