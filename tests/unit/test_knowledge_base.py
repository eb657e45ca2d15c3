"""Unit tests for KnowledgeBase: upload, ask, delete, reprocess, index upkeep."""

from __future__ import annotations

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock, patch

import aiosqlite
import pytest

from ragdesk.models.chat import MessageRole
from ragdesk.models.document import DocumentStatus, UploadMetadata
from ragdesk.services.knowledge_base import KnowledgeBase, _resolve_title, document_task_key
from ragdesk.services.rag.answer_generator import GENERATION_ERROR_MESSAGE
from ragdesk.utils.errors import (
    EmbeddingError,
    PipelineError,
    ProcessingError,
    QuestionError,
    UnsupportedFormatError,
    UploadError,
    VectorIndexError,
)
from tests.conftest import MockEmbeddingProvider, MockVectorIndex, build_knowledge_base

_HANDBOOK = (
    b"Vacation policy. Every employee receives twenty vacation days per year. "
    b"Unused vacation days carry over to the next year.\n\n"
    b"Expense policy. Submit receipts within thirty days of purchase."
)


class _FlakyEmbeddingProvider(MockEmbeddingProvider):
    """Fails the first ``failures`` batch calls, then behaves normally."""

    def __init__(self, failures: int = 1) -> None:
        super().__init__()
        self._failures = failures

    async def embed(self, texts: list[str]) -> list[list[float]]:
        if self._failures > 0:
            self._failures -= 1
            raise EmbeddingError(message="rate limited", provider_name="mock-embedding")
        return await super().embed(texts)


class _GatedEmbeddingProvider(MockEmbeddingProvider):
    """Blocks every batch call until ``gate`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.gate = asyncio.Event()
        self.entered = asyncio.Event()

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.entered.set()
        await self.gate.wait()
        return await super().embed(texts)


async def _upload_handbook(kb: KnowledgeBase, **metadata) -> str:
    metadata.setdefault("filename", "handbook.txt")
    document_id = await kb.upload(_HANDBOOK, UploadMetadata(**metadata))
    await kb.wait_for(document_task_key(document_id))
    return document_id


# ======================================================================
# upload
# ======================================================================


class TestUpload:
    @pytest.mark.asyncio()
    async def test_processes_to_completed(self, knowledge_base: KnowledgeBase) -> None:
        document_id = await _upload_handbook(knowledge_base, title="Staff Handbook")

        document = await knowledge_base.get_document(document_id)
        assert document is not None
        assert document.status == DocumentStatus.COMPLETED
        assert document.title == "Staff Handbook"
        assert document.content_type == "text/plain"
        assert document.file_size == len(_HANDBOOK)
        assert document.processed_at is not None
        assert document.error_message is None

    @pytest.mark.asyncio()
    async def test_chunks_mirrored_into_index(
        self, knowledge_base: KnowledgeBase, mock_vector_index: MockVectorIndex
    ) -> None:
        await _upload_handbook(knowledge_base)

        report = await knowledge_base.check_index()
        assert report.row_count >= 1
        assert report.consistent
        assert len(mock_vector_index.vectors) == report.row_count

    @pytest.mark.asyncio()
    async def test_empty_file_rejected(self, knowledge_base: KnowledgeBase) -> None:
        with pytest.raises(UploadError):
            await knowledge_base.upload(b"", UploadMetadata(filename="empty.txt"))
        assert await knowledge_base.list_documents() == []

    @pytest.mark.asyncio()
    async def test_unsupported_type_creates_no_row(self, knowledge_base: KnowledgeBase) -> None:
        with pytest.raises(UnsupportedFormatError):
            await knowledge_base.upload(
                b"\x89PNG\r\n", UploadMetadata(filename="scan.png", content_type="image/png")
            )
        assert await knowledge_base.list_documents() == []

    @pytest.mark.asyncio()
    async def test_content_type_inferred_from_suffix(self, knowledge_base: KnowledgeBase) -> None:
        document_id = await knowledge_base.upload(
            b"# Notes\n\nSome markdown.", UploadMetadata(filename="notes.md")
        )
        await knowledge_base.wait_for(document_task_key(document_id))

        document = await knowledge_base.get_document(document_id)
        assert document is not None
        assert document.content_type == "text/markdown"

    @pytest.mark.asyncio()
    async def test_declared_content_type_normalized(self, knowledge_base: KnowledgeBase) -> None:
        document_id = await knowledge_base.upload(
            b"plain words here",
            UploadMetadata(filename="upload.bin", content_type="Text/Plain; charset=utf-8"),
        )
        await knowledge_base.wait_for(document_task_key(document_id))

        document = await knowledge_base.get_document(document_id)
        assert document is not None
        assert document.content_type == "text/plain"

    @pytest.mark.asyncio()
    async def test_blank_text_marks_failed(self, knowledge_base: KnowledgeBase) -> None:
        document_id = await knowledge_base.upload(b"   \n\t  ", UploadMetadata(filename="blank.txt"))
        with pytest.raises(ProcessingError):
            await knowledge_base.wait_for(document_task_key(document_id))

        document = await knowledge_base.get_document(document_id)
        assert document is not None
        assert document.status == DocumentStatus.FAILED
        assert document.error_message == "No text could be extracted from document"


class TestResolveTitle:
    def test_explicit_title_stripped(self) -> None:
        assert _resolve_title(UploadMetadata(filename="a.txt", title="  Guide  ")) == "Guide"

    def test_falls_back_to_filename_stem(self) -> None:
        assert _resolve_title(UploadMetadata(filename="reports/q3-summary.pdf")) == "q3-summary"

    def test_blank_title_uses_filename(self) -> None:
        assert _resolve_title(UploadMetadata(filename="notes.md", title="   ")) == "notes"

    def test_nothing_to_go_on(self) -> None:
        assert _resolve_title(UploadMetadata()) == "Untitled document"


# ======================================================================
# ask
# ======================================================================


class TestAsk:
    @pytest.mark.asyncio()
    async def test_records_question_and_cited_answer(self, knowledge_base: KnowledgeBase) -> None:
        await _upload_handbook(knowledge_base, title="Staff Handbook")

        task = await knowledge_base.ask("How many vacation days per year?", chat_id="chat-1")
        assert task.accepted
        assert task.task_key.startswith("chat:chat-1:")
        await knowledge_base.wait_for(task.task_key)

        messages = await knowledge_base.get_messages("chat-1")
        assert [m.role for m in messages] == [MessageRole.USER, MessageRole.ASSISTANT]
        assert messages[0].content == "How many vacation days per year?"

        reply = messages[1]
        assert reply.content == "The answer is in the documents [1]."
        citations = reply.metadata["citations"]
        assert len(citations) == 1
        assert citations[0]["document_title"] == "Staff Handbook"
        assert "empty_context" not in reply.metadata

    @pytest.mark.asyncio()
    async def test_each_question_gets_its_own_task(self, knowledge_base: KnowledgeBase) -> None:
        first = await knowledge_base.ask("Same question?", chat_id="chat-1")
        second = await knowledge_base.ask("Same question?", chat_id="chat-1")
        assert first.task_key != second.task_key
        await knowledge_base.drain()

        messages = await knowledge_base.get_messages("chat-1")
        assert sum(1 for m in messages if m.role == MessageRole.ASSISTANT) == 2

    @pytest.mark.asyncio()
    async def test_empty_corpus_answer_not_generated(
        self, knowledge_base: KnowledgeBase, mock_llm_provider
    ) -> None:
        task = await knowledge_base.ask("Anything?", chat_id="chat-1")
        await knowledge_base.wait_for(task.task_key)

        reply = (await knowledge_base.get_messages("chat-1"))[-1]
        assert reply.metadata["citations"] == []
        assert reply.metadata["empty_context"] == {"type": "no_documents"}
        mock_llm_provider.generate.assert_not_called()

    @pytest.mark.asyncio()
    async def test_index_failure_stores_apology(
        self, knowledge_base: KnowledgeBase, mock_vector_index: MockVectorIndex
    ) -> None:
        await _upload_handbook(knowledge_base)
        mock_vector_index.nearest = AsyncMock(
            side_effect=VectorIndexError(message="collection missing", provider_name="mock-index")
        )

        task = await knowledge_base.ask("Vacation days?", chat_id="chat-1")
        with pytest.raises(VectorIndexError):
            await knowledge_base.wait_for(task.task_key)

        reply = (await knowledge_base.get_messages("chat-1"))[-1]
        assert reply.role == MessageRole.ASSISTANT
        assert reply.content == GENERATION_ERROR_MESSAGE
        assert reply.metadata == {"citations": []}

    @pytest.mark.asyncio()
    async def test_database_failure_stores_apology(self, knowledge_base: KnowledgeBase) -> None:
        await _upload_handbook(knowledge_base)

        with patch.object(
            knowledge_base._repository,
            "count_documents",
            AsyncMock(side_effect=aiosqlite.OperationalError("database is locked")),
        ):
            task = await knowledge_base.ask("Vacation days?", chat_id="chat-1")
            with pytest.raises(aiosqlite.OperationalError):
                await knowledge_base.wait_for(task.task_key)

        messages = await knowledge_base.get_messages("chat-1")
        assert [m.role for m in messages] == [MessageRole.USER, MessageRole.ASSISTANT]
        assert messages[1].content == GENERATION_ERROR_MESSAGE
        assert messages[1].metadata == {"citations": []}

    @pytest.mark.asyncio()
    @pytest.mark.parametrize("question", ["", "   ", "\n\t"])
    async def test_blank_question_rejected(
        self, knowledge_base: KnowledgeBase, mock_llm_provider, question: str
    ) -> None:
        with pytest.raises(QuestionError):
            await knowledge_base.ask(question, chat_id="chat-1")

        await knowledge_base.drain()
        assert await knowledge_base.get_messages("chat-1") == []
        mock_llm_provider.generate.assert_not_called()


# ======================================================================
# delete / reprocess
# ======================================================================


class TestDeleteDocument:
    @pytest.mark.asyncio()
    async def test_removes_rows_and_vectors(
        self, knowledge_base: KnowledgeBase, mock_vector_index: MockVectorIndex
    ) -> None:
        document_id = await _upload_handbook(knowledge_base)
        assert mock_vector_index.vectors

        assert await knowledge_base.delete_document(document_id) is True

        assert await knowledge_base.get_document(document_id) is None
        assert mock_vector_index.vectors == {}
        report = await knowledge_base.check_index()
        assert report.row_count == 0
        assert report.consistent

    @pytest.mark.asyncio()
    async def test_unknown_document(self, knowledge_base: KnowledgeBase) -> None:
        assert await knowledge_base.delete_document("nope") is False

    @pytest.mark.asyncio()
    async def test_refused_while_processing(self, db_path: Path, mock_llm_provider) -> None:
        embedder = _GatedEmbeddingProvider()
        kb = build_knowledge_base(db_path, embedder, MockVectorIndex(), mock_llm_provider)
        await kb.start()
        try:
            document_id = await kb.upload(_HANDBOOK, UploadMetadata(filename="handbook.txt"))
            await embedder.entered.wait()

            with pytest.raises(PipelineError):
                await kb.delete_document(document_id)

            embedder.gate.set()
            await kb.wait_for(document_task_key(document_id))
            assert await kb.delete_document(document_id) is True
        finally:
            embedder.gate.set()
            await kb.close()


class TestReprocessDocument:
    @pytest.mark.asyncio()
    async def test_failed_document_completes_on_reprocess(
        self, db_path: Path, mock_llm_provider
    ) -> None:
        kb = build_knowledge_base(
            db_path, _FlakyEmbeddingProvider(failures=1), MockVectorIndex(), mock_llm_provider
        )
        await kb.start()
        try:
            document_id = await kb.upload(_HANDBOOK, UploadMetadata(filename="handbook.txt"))
            with pytest.raises(EmbeddingError):
                await kb.wait_for(document_task_key(document_id))
            failed = await kb.get_document(document_id)
            assert failed is not None
            assert failed.status == DocumentStatus.FAILED
            assert failed.error_message == (
                "An unexpected error occurred while processing the document: EmbeddingError"
            )

            task = await kb.reprocess_document(document_id)
            assert task.task_key == document_task_key(document_id)
            await kb.wait_for(task.task_key)

            document = await kb.get_document(document_id)
            assert document is not None
            assert document.status == DocumentStatus.COMPLETED
            assert document.error_message is None
        finally:
            await kb.close()

    @pytest.mark.asyncio()
    async def test_completed_document_cannot_be_reprocessed(
        self, knowledge_base: KnowledgeBase
    ) -> None:
        document_id = await _upload_handbook(knowledge_base)
        with pytest.raises(PipelineError):
            await knowledge_base.reprocess_document(document_id)

    @pytest.mark.asyncio()
    async def test_retry_budget_recovers_transient_failure(
        self, db_path: Path, mock_llm_provider
    ) -> None:
        kb = build_knowledge_base(
            db_path,
            _FlakyEmbeddingProvider(failures=1),
            MockVectorIndex(),
            mock_llm_provider,
            max_attempts=2,
        )
        await kb.start()
        try:
            document_id = await kb.upload(_HANDBOOK, UploadMetadata(filename="handbook.txt"))
            await kb.wait_for(document_task_key(document_id))

            document = await kb.get_document(document_id)
            assert document is not None
            assert document.status == DocumentStatus.COMPLETED
        finally:
            await kb.close()


# ======================================================================
# Index maintenance
# ======================================================================


class TestIndexMaintenance:
    @pytest.mark.asyncio()
    async def test_rebuild_repairs_drift(
        self, knowledge_base: KnowledgeBase, mock_vector_index: MockVectorIndex
    ) -> None:
        await _upload_handbook(knowledge_base)
        rows = (await knowledge_base.check_index()).row_count
        mock_vector_index.vectors.clear()

        assert not (await knowledge_base.check_index()).consistent
        assert await knowledge_base.rebuild_index() == rows
        assert (await knowledge_base.check_index()).consistent
