"""Application facade: the operations ragdesk exposes to its callers.

:class:`KnowledgeBase` is what the CLI (or any other front end) talks to.
It owns no business logic of its own; it validates input, writes the
rows that must exist before background work starts, and hands the rest
to the :class:`~ragdesk.pipeline.task_queue.TaskQueue`.

Task keys
---------
- ``document:<id>``: processing of one document.  Uploading or
  reprocessing while a run is in flight reuses the running task.
- ``chat:<chat_id>:<request id>``: one question.  Every ``ask`` gets its
  own key, so repeated questions in a chat are answered independently.
"""

from __future__ import annotations

import uuid
from pathlib import PurePath
from typing import Any

import structlog

from ragdesk.interfaces.chunk_store import IChunkStore, IndexConsistency
from ragdesk.interfaces.document_repository import IDocumentRepository
from ragdesk.interfaces.message_store import IMessageStore
from ragdesk.models.chat import AcceptedTask, ChatMessage, MessageRole
from ragdesk.models.document import Document, DocumentStatus, UploadMetadata
from ragdesk.models.rag import AnswerResult, QueryFilters
from ragdesk.pipeline.processing_pipeline import ProcessingPipeline
from ragdesk.pipeline.task_queue import TaskQueue
from ragdesk.services.ingestion.text_extraction import (
    TextExtractionService,
    guess_content_type,
    normalize_content_type,
)
from ragdesk.services.rag.answer_generator import GENERATION_ERROR_MESSAGE, AnswerGenerator
from ragdesk.utils.errors import (
    EmbeddingError,
    PipelineError,
    QuestionError,
    StorageError,
    UploadError,
)
from ragdesk.utils.retry import with_retry

logger = structlog.get_logger(logger_name=__name__)

# Failures worth another attempt when a retry budget is configured.
# Extraction and chunking failures are deterministic and never retried.
_RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (EmbeddingError, StorageError)


def document_task_key(document_id: str) -> str:
    return f"document:{document_id}"


class KnowledgeBase:
    """Upload, ask, and corpus maintenance over one operator's documents.

    Parameters
    ----------
    repository:
        Document and chunk rows.
    message_store:
        Chat history.
    chunk_store:
        Write-through chunk store; used for deletes and index repair.
    extraction_service:
        Decides which content types an upload may declare.
    pipeline:
        Per-document processing state machine.
    answer_generator:
        Retrieval, generation and citation resolution for ``ask``.
    task_queue:
        Background worker pool.
    processing_max_attempts:
        Attempts per processing run.  ``1`` means a failure is final until
        the operator calls :meth:`reprocess_document`.
    processing_retry_backoff_s:
        Base delay between processing attempts.
    """

    def __init__(
        self,
        repository: IDocumentRepository,
        message_store: IMessageStore,
        chunk_store: IChunkStore,
        extraction_service: TextExtractionService,
        pipeline: ProcessingPipeline,
        answer_generator: AnswerGenerator,
        task_queue: TaskQueue,
        processing_max_attempts: int = 1,
        processing_retry_backoff_s: float = 5.0,
    ) -> None:
        self._repository = repository
        self._message_store = message_store
        self._chunk_store = chunk_store
        self._extraction_service = extraction_service
        self._pipeline = pipeline
        self._answer_generator = answer_generator
        self._task_queue = task_queue
        self._max_attempts = processing_max_attempts
        self._retry_backoff_s = processing_retry_backoff_s

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Create storage schemas and start the background workers."""
        await self._repository.initialize()
        await self._message_store.initialize()
        await self._task_queue.start()

    async def close(self) -> None:
        await self._task_queue.stop()

    async def wait_for(self, task_key: str) -> Any:
        """Wait for the background task under *task_key*, if any, to finish."""
        return await self._task_queue.wait(task_key)

    async def drain(self) -> None:
        """Wait until every queued background task has finished."""
        await self._task_queue.join()

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def upload(self, file_bytes: bytes, metadata: UploadMetadata) -> str:
        """Store a new document and schedule its processing.

        Parameters
        ----------
        file_bytes:
            The raw uploaded file.
        metadata:
            Filename, optional title and declared content type.  A missing
            content type is inferred from the filename suffix.

        Returns
        -------
        str
            The new document's id.  Processing has been scheduled, not run.

        Raises
        ------
        UploadError
            If the file is empty.
        UnsupportedFormatError
            If no extractor handles the content type.  No row is created.
        """
        if not file_bytes:
            raise UploadError(message="Uploaded file is empty")

        content_type = normalize_content_type(metadata.content_type) or guess_content_type(
            metadata.filename
        )
        # Raises UnsupportedFormatError before anything is stored.
        self._extraction_service.extractor_for(content_type)

        document = Document(
            id=uuid.uuid4().hex,
            title=_resolve_title(metadata),
            filename=metadata.filename,
            content_type=content_type,
            file_size=len(file_bytes),
            status=DocumentStatus.PENDING,
        )
        await self._repository.create_document(document, file_bytes)
        logger.info(
            "document_uploaded",
            document_id=document.id,
            title=document.title,
            content_type=content_type,
            file_size=document.file_size,
        )

        self._schedule_processing(document.id)
        return document.id

    async def list_documents(self) -> list[Document]:
        """All documents, newest first, including failure messages."""
        return await self._repository.list_documents()

    async def get_document(self, document_id: str) -> Document | None:
        return await self._repository.get_document(document_id)

    async def delete_document(self, document_id: str) -> bool:
        """Delete a document, its chunk rows, and their vectors.

        Returns ``False`` if the document does not exist.

        Raises
        ------
        PipelineError
            If the document is being processed right now.
        """
        if self._task_queue.is_in_flight(document_task_key(document_id)):
            raise PipelineError(
                message=f"Document {document_id} is being processed; delete it once processing ends"
            )
        if await self._repository.get_document(document_id) is None:
            return False

        chunk_ids = await self._repository.delete_document(document_id)
        await self._chunk_store.remove_vectors(chunk_ids)
        return True

    async def reprocess_document(self, document_id: str) -> AcceptedTask:
        """Reset a failed document to ``pending`` and schedule it again.

        Raises
        ------
        PipelineError
            If the document does not exist or is not ``failed``.
        """
        await self._pipeline.reset_for_retry(document_id)
        return self._schedule_processing(document_id)

    # ------------------------------------------------------------------
    # Questions
    # ------------------------------------------------------------------

    async def ask(
        self,
        question: str,
        chat_id: str,
        filters: QueryFilters | None = None,
    ) -> AcceptedTask:
        """Record *question* in *chat_id* and schedule the answer.

        The answer is appended to the chat as an assistant message whose
        metadata holds ``citations`` and, when nothing was retrieved,
        ``empty_context``.

        Raises
        ------
        QuestionError
            If *question* is blank.  Nothing is stored.
        """
        if not question or not question.strip():
            raise QuestionError(message="Question is empty")

        await self._message_store.add_message(
            ChatMessage(
                id=uuid.uuid4().hex,
                chat_id=chat_id,
                role=MessageRole.USER,
                content=question,
            )
        )

        key = f"chat:{chat_id}:{uuid.uuid4().hex}"

        async def _answer() -> AnswerResult:
            return await self._answer_question(question, chat_id, filters)

        _, accepted = self._task_queue.submit(key, _answer)
        logger.info("question_accepted", chat_id=chat_id, task_key=key)
        return AcceptedTask(task_key=key, accepted=accepted)

    async def get_messages(self, chat_id: str) -> list[ChatMessage]:
        """The chat's messages, oldest first."""
        return await self._message_store.list_messages(chat_id)

    # ------------------------------------------------------------------
    # Index maintenance
    # ------------------------------------------------------------------

    async def check_index(self) -> IndexConsistency:
        return await self._chunk_store.check_consistency()

    async def rebuild_index(self) -> int:
        """Rebuild the vector index from the stored chunk rows."""
        return await self._chunk_store.rebuild_index()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _schedule_processing(self, document_id: str) -> AcceptedTask:
        key = document_task_key(document_id)

        async def _process() -> Document:
            return await self._pipeline.process(document_id)

        async def _reset(attempt: int, exc: BaseException) -> None:
            await self._pipeline.reset_for_retry(document_id)

        task = with_retry(
            attempts=self._max_attempts,
            retry_on=_RETRYABLE_ERRORS,
            backoff_s=self._retry_backoff_s,
            before_retry=_reset,
        )(_process)

        _, accepted = self._task_queue.submit(key, task)
        return AcceptedTask(task_key=key, accepted=accepted)

    async def _answer_question(
        self,
        question: str,
        chat_id: str,
        filters: QueryFilters | None,
    ) -> AnswerResult:
        try:
            result = await self._answer_generator.generate(question, filters)
        except Exception as exc:
            # Retrieval reads the vector index and the database; whatever
            # fails there, the chat gets the apology and the worker logs it.
            await self._message_store.add_message(
                ChatMessage(
                    id=uuid.uuid4().hex,
                    chat_id=chat_id,
                    role=MessageRole.ASSISTANT,
                    content=GENERATION_ERROR_MESSAGE,
                    metadata={"citations": []},
                )
            )
            logger.error(
                "question_failed",
                chat_id=chat_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise

        await self._message_store.add_message(
            ChatMessage(
                id=uuid.uuid4().hex,
                chat_id=chat_id,
                role=MessageRole.ASSISTANT,
                content=result.answer,
                metadata=result.to_message_metadata(),
            )
        )
        return result


def _resolve_title(metadata: UploadMetadata) -> str:
    if metadata.title and metadata.title.strip():
        return metadata.title.strip()
    stem = PurePath(metadata.filename).stem if metadata.filename else ""
    return stem or "Untitled document"
