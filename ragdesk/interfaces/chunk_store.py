"""Abstract base class for chunk persistence across two stores.

Chunks live in two places:

1. **Relational rows** (the source of truth): content, position, token
   count and the embedding itself.
2. **A vector index** holding a copy of each embedding for fast
   nearest-neighbour search.

The two stores cannot share a transaction.  An :class:`IChunkStore` writes
rows first and then mirrors into the index; a failed mirror write is logged
and left for :meth:`IChunkStore.rebuild_index` to repair.
:meth:`IChunkStore.check_consistency` reports whether a repair is needed.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from pydantic import BaseModel, ConfigDict

from ragdesk.models.document import Chunk


class IndexConsistency(BaseModel):
    """Row-count comparison between relational chunk rows and the vector index."""

    model_config = ConfigDict(frozen=True)

    row_count: int
    index_count: int

    @property
    def consistent(self) -> bool:
        return self.row_count == self.index_count


# Concrete implementations: MirroredChunkStore
# Located in: ragdesk/services/chunk_store.py
class IChunkStore(ABC):
    """Contract for writing, searching and repairing persisted chunks."""

    @abstractmethod
    async def insert(self, chunks: list[Chunk]) -> int:
        """Persist *chunks* (rows, then index mirror).  Returns rows written.

        Every chunk must carry its embedding.

        Raises
        ------
        ragdesk.utils.errors.StorageError
            If the relational write fails.  Index failures do not raise.
        """

    @abstractmethod
    async def delete(self, chunk_id: str) -> None:
        """Delete one chunk's row and its index entry."""

    @abstractmethod
    async def delete_for_document(self, document_id: str) -> int:
        """Delete every chunk of *document_id* from both stores.  Returns the count."""

    @abstractmethod
    async def remove_vectors(self, chunk_ids: list[str]) -> None:
        """Drop index entries whose rows were already deleted (e.g. by a document cascade)."""

    @abstractmethod
    async def nearest(
        self,
        query_vector: list[float],
        k: int,
        max_distance: float | None = None,
    ) -> list[tuple[str, float]]:
        """Return up to *k* ``(chunk_id, distance)`` pairs, closest first."""

    @abstractmethod
    async def get_chunks(self, chunk_ids: list[str]) -> dict[str, Chunk]:
        """Load chunk rows by id.  Unknown ids are absent from the result."""

    @abstractmethod
    async def rebuild_index(self) -> int:
        """Clear the index and re-add every embedding from the rows.

        Idempotent.  Returns the number of vectors written.
        """

    @abstractmethod
    async def check_consistency(self) -> IndexConsistency:
        """Compare the relational row count with the index count."""
