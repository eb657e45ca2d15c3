"""Write-through chunk store over relational rows and a vector index.

:class:`MirroredChunkStore` is the only writer of chunk data.  Every write
goes to the relational repository first, inside its transaction, and is
then mirrored into the vector index.  The index cannot join that
transaction, so a mirror failure is logged and left behind as drift rather
than undoing the committed rows.  Two operations deal with drift:

- :meth:`MirroredChunkStore.check_consistency` compares row and vector
  counts.
- :meth:`MirroredChunkStore.rebuild_index` resets the index and reloads it
  from the embeddings stored in the rows.  Running it twice gives the same
  index as running it once.

Reads tolerate drift as well: the retriever skips index hits whose row no
longer exists.
"""

from __future__ import annotations

import structlog

from ragdesk.interfaces.chunk_store import IChunkStore, IndexConsistency
from ragdesk.interfaces.document_repository import IDocumentRepository
from ragdesk.interfaces.vector_index import IVectorIndex
from ragdesk.models.document import Chunk
from ragdesk.utils.errors import VectorIndexError

logger = structlog.get_logger(logger_name=__name__)

_REBUILD_BATCH = 500


class MirroredChunkStore(IChunkStore):
    """Chunk persistence with SQLite rows as truth and a mirrored vector index.

    Parameters
    ----------
    repository:
        Relational store holding chunk rows and their embeddings.
    index:
        Nearest-neighbour index mirroring those embeddings.
    """

    def __init__(self, repository: IDocumentRepository, index: IVectorIndex) -> None:
        self._repository = repository
        self._index = index

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def insert(self, chunks: list[Chunk]) -> int:
        written = await self._repository.insert_chunks(chunks)
        try:
            await self._index.insert_many([(c.id, c.embedding) for c in chunks])
        except VectorIndexError as exc:
            logger.error(
                "vector_mirror_insert_failed",
                chunks=len(chunks),
                document_ids=sorted({c.document_id for c in chunks}),
                error=str(exc),
            )
        return written

    async def delete(self, chunk_id: str) -> None:
        await self._repository.delete_chunk(chunk_id)
        await self._mirror_delete([chunk_id])

    async def delete_for_document(self, document_id: str) -> int:
        chunk_ids = await self._repository.delete_chunks_for_document(document_id)
        await self._mirror_delete(chunk_ids)
        return len(chunk_ids)

    async def remove_vectors(self, chunk_ids: list[str]) -> None:
        """Drop index entries whose rows were already deleted by the repository."""
        await self._mirror_delete(chunk_ids)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def nearest(
        self,
        query_vector: list[float],
        k: int,
        max_distance: float | None = None,
    ) -> list[tuple[str, float]]:
        return await self._index.nearest(query_vector, k, max_distance)

    async def get_chunks(self, chunk_ids: list[str]) -> dict[str, Chunk]:
        return await self._repository.get_chunks(chunk_ids)

    # ------------------------------------------------------------------
    # Repair
    # ------------------------------------------------------------------

    async def rebuild_index(self) -> int:
        """Reset the index and re-add every embedding held in the rows."""
        rows = await self._repository.list_chunk_embeddings()
        await self._index.reset()

        written = 0
        for start in range(0, len(rows), _REBUILD_BATCH):
            written += await self._index.insert_many(rows[start : start + _REBUILD_BATCH])

        logger.info("vector_index_rebuilt", vectors=written)
        return written

    async def check_consistency(self) -> IndexConsistency:
        report = IndexConsistency(
            row_count=await self._repository.count_chunks(),
            index_count=await self._index.count(),
        )
        if not report.consistent:
            logger.warning(
                "vector_index_drift",
                row_count=report.row_count,
                index_count=report.index_count,
            )
        return report

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _mirror_delete(self, chunk_ids: list[str]) -> None:
        if not chunk_ids:
            return
        try:
            await self._index.delete_many(chunk_ids)
        except VectorIndexError as exc:
            logger.error("vector_mirror_delete_failed", chunks=len(chunk_ids), error=str(exc))
