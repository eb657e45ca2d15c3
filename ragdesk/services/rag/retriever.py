"""Similarity retrieval with document-set and recency post-filters.

:class:`ChunkRetriever` turns a question into ranked chunks:

1. **Embed** the query.  A blank query returns ``[]`` before the embedding
   provider is touched; an :class:`EmbeddingError` is logged and also
   returns ``[]``.  "Nothing to ground on" is a normal outcome here.
2. **Search** the whole corpus for the ``limit`` nearest vectors within
   ``distance_threshold``.
3. **Hydrate** hits with their chunk rows and parent documents.  Hits
   whose row has disappeared (index drift) are skipped.
4. **Post-filter** by ``document_ids`` and ``created_after`` (the parent
   document's creation time).

Filters run after the similarity search, so a filtered result can hold
fewer than ``limit`` chunks even when more matching material exists
outside the initial window.  At this corpus size that trade-off is
accepted; pushing filters into the index query is the fix if it ever
stops being acceptable.
"""

from __future__ import annotations

from datetime import datetime, timezone

import structlog

from ragdesk.interfaces.chunk_store import IChunkStore
from ragdesk.interfaces.document_repository import IDocumentRepository
from ragdesk.interfaces.embedding_provider import IEmbeddingProvider
from ragdesk.models.rag import RetrievedChunk
from ragdesk.utils.errors import EmbeddingError

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_LIMIT = 5
DEFAULT_DISTANCE_THRESHOLD = 1.0


class ChunkRetriever:
    """Finds the chunks closest to a question.

    Parameters
    ----------
    embedding_provider:
        Embeds the query text.
    chunk_store:
        Nearest-neighbour search and chunk row lookup.
    repository:
        Parent document lookup for titles and creation times.
    distance_threshold:
        Default maximum distance for a hit to count as relevant.
    """

    def __init__(
        self,
        embedding_provider: IEmbeddingProvider,
        chunk_store: IChunkStore,
        repository: IDocumentRepository,
        distance_threshold: float = DEFAULT_DISTANCE_THRESHOLD,
    ) -> None:
        self._embedding_provider = embedding_provider
        self._chunk_store = chunk_store
        self._repository = repository
        self._distance_threshold = distance_threshold

    async def retrieve(
        self,
        query: str | None,
        limit: int = DEFAULT_LIMIT,
        distance_threshold: float | None = None,
        document_ids: list[str] | None = None,
        created_after: datetime | None = None,
    ) -> list[RetrievedChunk]:
        """Return up to *limit* chunks, closest first.

        Parameters
        ----------
        query:
            The question.  ``None`` or blank returns ``[]``.
        limit:
            Maximum number of results (and size of the search window).
        distance_threshold:
            Maximum distance; ``None`` uses the retriever's default.
        document_ids:
            When given, keep only chunks of these documents.
        created_after:
            When given, keep only chunks whose document was created at or
            after this time.  Naive datetimes are taken as UTC.

        Returns
        -------
        list[RetrievedChunk]
            Ordered by non-decreasing distance.
        """
        if query is None or not query.strip():
            logger.debug("retrieval_skipped_blank_query")
            return []

        threshold = self._distance_threshold if distance_threshold is None else distance_threshold

        try:
            query_vector = await self._embedding_provider.embed_single(query)
        except EmbeddingError as exc:
            logger.error(
                "retrieval_embedding_failed",
                error=str(exc),
                provider=exc.provider_name,
            )
            return []

        hits = await self._chunk_store.nearest(query_vector, k=limit, max_distance=threshold)
        if not hits:
            logger.info("retrieval_no_hits", limit=limit, distance_threshold=threshold)
            return []

        chunks = await self._chunk_store.get_chunks([chunk_id for chunk_id, _ in hits])
        documents = await self._repository.get_documents(
            list({chunk.document_id for chunk in chunks.values()})
        )

        allowed_ids = set(document_ids) if document_ids is not None else None
        cutoff = _as_utc(created_after) if created_after is not None else None

        results: list[RetrievedChunk] = []
        missing = 0
        for chunk_id, distance in hits:
            chunk = chunks.get(chunk_id)
            document = documents.get(chunk.document_id) if chunk is not None else None
            if chunk is None or document is None:
                missing += 1
                continue
            if allowed_ids is not None and document.id not in allowed_ids:
                continue
            if cutoff is not None and document.created_at < cutoff:
                continue
            results.append(
                RetrievedChunk(
                    chunk=chunk,
                    distance=max(0.0, distance),
                    document=document,
                    position=chunk.position,
                )
            )

        if missing:
            logger.warning("retrieval_index_drift", missing_rows=missing)

        # sorted() is stable, so equal distances keep index order.
        results = sorted(results, key=lambda rc: rc.distance)[:limit]
        logger.info(
            "retrieval_complete",
            hits=len(hits),
            results=len(results),
            filtered_by_documents=allowed_ids is not None,
            filtered_by_date=cutoff is not None,
            best_distance=results[0].distance if results else None,
        )
        return results


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
