"""Per-document processing: extract, chunk, embed, persist.

# ─── STATE MACHINE ────────────────────────────────────────────────────
#
#   PENDING ──process()──► PROCESSING ──► COMPLETED   (processed_at set)
#                                     ╲
#                                      ► FAILED       (error_message set)
#
#   FAILED ──reset_for_retry()──► PENDING             (explicit only)
#
# process() refuses any document that is not PENDING, so a failed run is
# never re-entered by accident.  The steps inside PROCESSING run in strict
# order; the first exception moves the document to FAILED with a message
# chosen by exception type, and is then re-raised to the caller (usually
# the task queue worker, which logs it).
#
# Chunks are written in one relational transaction as the last step, so a
# failed run normally leaves no chunk rows behind.  reset_for_retry()
# still drops any it finds before the document is queued again.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
import uuid

import structlog

from ragdesk.interfaces.chunk_store import IChunkStore
from ragdesk.interfaces.document_repository import IDocumentRepository
from ragdesk.interfaces.embedding_provider import IEmbeddingProvider
from ragdesk.models.document import Chunk, Document, DocumentStatus, utc_now
from ragdesk.models.rag import TextSegment
from ragdesk.services.ingestion.chunker import TextChunker
from ragdesk.services.ingestion.text_extraction import TextExtractionService
from ragdesk.utils.errors import (
    EmbeddingError,
    ExtractionError,
    PipelineError,
    ProcessingError,
    UnsupportedFormatError,
)

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_EMBEDDING_BATCH_SIZE = 50

NO_TEXT_MESSAGE = "No text could be extracted from document"
NO_CHUNKS_MESSAGE = "No chunks could be created from extracted text"
EXTRACTION_FAILED_MESSAGE = (
    "Unable to extract text from document. "
    "The file may be corrupted or in an unsupported format."
)


def failure_message(exc: BaseException) -> str:
    """Map a processing exception to the message stored on the document."""
    if isinstance(exc, (ProcessingError, UnsupportedFormatError)):
        return exc.message
    if isinstance(exc, ExtractionError):
        return EXTRACTION_FAILED_MESSAGE
    return f"An unexpected error occurred while processing the document: {type(exc).__name__}"


class ProcessingPipeline:
    """Drives one document from ``pending`` to ``completed`` or ``failed``.

    Parameters
    ----------
    repository:
        Document rows and uploaded bytes.
    extraction_service:
        Content-type dispatch to text extractors.
    chunker:
        Token-bounded chunker.
    embedding_provider:
        Embeds chunk texts.
    chunk_store:
        Write-through store for chunk rows and vectors.
    embedding_batch_size:
        Texts per embedding call.  Batches run one after another.
    embedding_dimension:
        Required vector length.  ``None`` accepts the provider's own.
    """

    def __init__(
        self,
        repository: IDocumentRepository,
        extraction_service: TextExtractionService,
        chunker: TextChunker,
        embedding_provider: IEmbeddingProvider,
        chunk_store: IChunkStore,
        embedding_batch_size: int = DEFAULT_EMBEDDING_BATCH_SIZE,
        embedding_dimension: int | None = None,
    ) -> None:
        if embedding_batch_size <= 0:
            raise ValueError(f"embedding_batch_size must be positive, got {embedding_batch_size}")
        self._repository = repository
        self._extraction_service = extraction_service
        self._chunker = chunker
        self._embedding_provider = embedding_provider
        self._chunk_store = chunk_store
        self._batch_size = embedding_batch_size
        self._dimension = embedding_dimension

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def process(self, document_id: str) -> Document:
        """Run the full pipeline for a ``pending`` document.

        Returns
        -------
        Document
            The document in ``completed`` state.

        Raises
        ------
        PipelineError
            If the document does not exist or is not ``pending``.  The row
            is left untouched.
        Exception
            Whatever a step raised.  The document is ``failed`` by then.
        """
        document = await self._repository.get_document(document_id)
        if document is None:
            raise PipelineError(message=f"Document {document_id} not found")
        if document.status != DocumentStatus.PENDING:
            raise PipelineError(
                message=(
                    f"Document {document_id} is {document.status.value}; "
                    f"only pending documents can be processed"
                )
            )

        document = await self._repository.update_document(
            document.model_copy(update={"status": DocumentStatus.PROCESSING, "error_message": None})
        )
        logger.info("document_processing_started", document_id=document_id, title=document.title)

        try:
            chunk_count = await self._run_steps(document)
        except Exception as exc:
            message = failure_message(exc)
            await self._repository.update_document(
                document.model_copy(
                    update={"status": DocumentStatus.FAILED, "error_message": message}
                )
            )
            logger.error(
                "document_processing_failed",
                document_id=document_id,
                error_type=type(exc).__name__,
                error=str(exc),
                error_message=message,
            )
            raise

        completed = await self._repository.update_document(
            document.model_copy(
                update={
                    "status": DocumentStatus.COMPLETED,
                    "processed_at": utc_now(),
                    "error_message": None,
                }
            )
        )
        logger.info("document_processed", document_id=document_id, chunks=chunk_count)
        return completed

    async def reset_for_retry(self, document_id: str) -> Document:
        """Return a ``failed`` document to ``pending`` and drop any partial chunks.

        This is the only way back out of ``failed``; callers use it for an
        explicit reprocess request or an explicit retry policy.

        Raises
        ------
        PipelineError
            If the document does not exist or is not ``failed``.
        """
        document = await self._repository.get_document(document_id)
        if document is None:
            raise PipelineError(message=f"Document {document_id} not found")
        if document.status != DocumentStatus.FAILED:
            raise PipelineError(
                message=(
                    f"Document {document_id} is {document.status.value}; "
                    f"only failed documents can be reset"
                )
            )

        dropped = await self._chunk_store.delete_for_document(document_id)
        reset = await self._repository.update_document(
            document.model_copy(
                update={"status": DocumentStatus.PENDING, "error_message": None, "processed_at": None}
            )
        )
        logger.info("document_reset_for_retry", document_id=document_id, dropped_chunks=dropped)
        return reset

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _run_steps(self, document: Document) -> int:
        data = await self._repository.get_document_data(document.id)
        if data is None:
            raise ProcessingError(message=f"Uploaded data for document {document.id} is missing")

        # Extraction (PyMuPDF, python-docx) and chunking are synchronous; keep them off the loop.
        text = await asyncio.to_thread(self._extraction_service.extract, data, document.content_type)
        if not text or not text.strip():
            raise ProcessingError(message=NO_TEXT_MESSAGE)

        segments = await asyncio.to_thread(self._chunker.chunk, text)
        if not segments:
            raise ProcessingError(message=NO_CHUNKS_MESSAGE)

        embeddings = await self._embed_segments(segments)

        chunks = [
            Chunk(
                id=uuid.uuid4().hex,
                document_id=document.id,
                content=segment.text,
                position=position,
                token_count=segment.token_count,
                embedding=embedding,
            )
            for position, (segment, embedding) in enumerate(zip(segments, embeddings, strict=True))
        ]
        await self._chunk_store.insert(chunks)
        return len(chunks)

    async def _embed_segments(self, segments: list[TextSegment]) -> list[list[float]]:
        """Embed segment texts in sequential batches, validating every vector."""
        texts = [segment.text for segment in segments]
        expected = self._dimension or self._embedding_provider.get_dimension()

        embeddings: list[list[float]] = []
        for start in range(0, len(texts), self._batch_size):
            batch = texts[start : start + self._batch_size]
            vectors = await self._embedding_provider.embed(batch)
            if len(vectors) != len(batch):
                raise EmbeddingError(
                    message=f"Embedding provider returned {len(vectors)} vectors for {len(batch)} texts",
                    provider_name=self._embedding_provider.get_provider_name(),
                )
            for vector in vectors:
                if len(vector) != expected:
                    raise EmbeddingError(
                        message=f"Expected embedding dimension {expected}, got {len(vector)}",
                        provider_name=self._embedding_provider.get_provider_name(),
                    )
            embeddings.extend(vectors)
            logger.debug(
                "embedding_batch_complete",
                batch_start=start,
                batch_size=len(batch),
                total=len(texts),
            )
        return embeddings
