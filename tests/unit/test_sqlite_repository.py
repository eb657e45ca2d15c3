"""Unit tests for the aiosqlite document repository and message store."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from ragdesk.models.chat import ChatMessage, MessageRole
from ragdesk.models.document import DocumentStatus
from ragdesk.providers.storage.sqlite_document_repository import SQLiteDocumentRepository
from ragdesk.providers.storage.sqlite_message_store import SQLiteMessageStore
from ragdesk.utils.errors import StorageError
from tests.conftest import make_chunk, make_document


class TestDocuments:
    @pytest.mark.asyncio()
    async def test_create_and_get_roundtrip(self, repository: SQLiteDocumentRepository) -> None:
        document = make_document("doc-1", status=DocumentStatus.PENDING)

        await repository.create_document(document, b"payload")

        assert await repository.get_document("doc-1") == document
        assert await repository.get_document_data("doc-1") == b"payload"

    @pytest.mark.asyncio()
    async def test_duplicate_id_rejected(self, repository: SQLiteDocumentRepository) -> None:
        await repository.create_document(make_document("doc-1"), b"a")

        with pytest.raises(StorageError):
            await repository.create_document(make_document("doc-1"), b"b")

    @pytest.mark.asyncio()
    async def test_list_newest_first(self, repository: SQLiteDocumentRepository) -> None:
        await repository.create_document(
            make_document("old", created_at=datetime(2025, 1, 1, tzinfo=timezone.utc)), b"a"
        )
        await repository.create_document(
            make_document("new", created_at=datetime(2026, 1, 1, tzinfo=timezone.utc)), b"b"
        )

        assert [d.id for d in await repository.list_documents()] == ["new", "old"]

    @pytest.mark.asyncio()
    async def test_update_persists_status_and_error(
        self, repository: SQLiteDocumentRepository
    ) -> None:
        document = make_document("doc-1", status=DocumentStatus.PENDING)
        await repository.create_document(document, b"a")

        await repository.update_document(
            document.model_copy(update={"status": DocumentStatus.FAILED, "error_message": "bad"})
        )

        stored = await repository.get_document("doc-1")
        assert stored is not None
        assert stored.status == DocumentStatus.FAILED
        assert stored.error_message == "bad"

    @pytest.mark.asyncio()
    async def test_update_missing_document_raises(
        self, repository: SQLiteDocumentRepository
    ) -> None:
        with pytest.raises(StorageError):
            await repository.update_document(make_document("ghost"))

    @pytest.mark.asyncio()
    async def test_count_by_status_and_date(self, repository: SQLiteDocumentRepository) -> None:
        await repository.create_document(
            make_document("a", created_at=datetime(2025, 1, 1, tzinfo=timezone.utc)), b"a"
        )
        await repository.create_document(
            make_document("b", created_at=datetime(2026, 2, 1, tzinfo=timezone.utc)), b"b"
        )
        await repository.create_document(
            make_document("c", status=DocumentStatus.FAILED), b"c"
        )

        assert await repository.count_documents() == 3
        assert await repository.count_documents(status=DocumentStatus.COMPLETED) == 2
        assert (
            await repository.count_documents(
                status=DocumentStatus.COMPLETED,
                created_after=datetime(2026, 1, 1, tzinfo=timezone.utc),
            )
            == 1
        )

    @pytest.mark.asyncio()
    async def test_delete_cascades_to_chunks(self, repository: SQLiteDocumentRepository) -> None:
        await repository.create_document(make_document("doc-1"), b"a")
        await repository.insert_chunks(
            [make_chunk(f"c{i}", "doc-1", f"text {i}", i, embedding=[0.5, 0.5]) for i in range(3)]
        )

        deleted = await repository.delete_document("doc-1")

        assert deleted == ["c0", "c1", "c2"]
        assert await repository.get_document("doc-1") is None
        assert await repository.count_chunks() == 0


class TestChunkRows:
    @pytest.mark.asyncio()
    async def test_embeddings_stored_as_float32(self, repository: SQLiteDocumentRepository) -> None:
        await repository.create_document(make_document("doc-1"), b"a")
        await repository.insert_chunks([make_chunk("c0", "doc-1", embedding=[0.25, -1.5, 3.0])])

        assert await repository.list_chunk_embeddings() == [("c0", [0.25, -1.5, 3.0])]

    @pytest.mark.asyncio()
    async def test_chunk_reads_omit_embedding(self, repository: SQLiteDocumentRepository) -> None:
        await repository.create_document(make_document("doc-1"), b"a")
        await repository.insert_chunks([make_chunk("c0", "doc-1", "hello", embedding=[1.0])])

        chunk = (await repository.get_chunks(["c0", "missing"]))["c0"]

        assert chunk.content == "hello"
        assert chunk.embedding == []

    @pytest.mark.asyncio()
    async def test_chunk_without_embedding_rejected(
        self, repository: SQLiteDocumentRepository
    ) -> None:
        await repository.create_document(make_document("doc-1"), b"a")

        with pytest.raises(StorageError):
            await repository.insert_chunks([make_chunk("c0", "doc-1")])

    @pytest.mark.asyncio()
    async def test_duplicate_position_rejected_atomically(
        self, repository: SQLiteDocumentRepository
    ) -> None:
        await repository.create_document(make_document("doc-1"), b"a")

        with pytest.raises(StorageError):
            await repository.insert_chunks(
                [
                    make_chunk("c0", "doc-1", position=0, embedding=[1.0]),
                    make_chunk("c1", "doc-1", position=0, embedding=[1.0]),
                ]
            )

        assert await repository.count_chunks() == 0

    @pytest.mark.asyncio()
    async def test_chunk_for_unknown_document_rejected(
        self, repository: SQLiteDocumentRepository
    ) -> None:
        with pytest.raises(StorageError):
            await repository.insert_chunks([make_chunk("c0", "ghost", embedding=[1.0])])


class TestMessages:
    @pytest.mark.asyncio()
    async def test_messages_listed_in_order_with_metadata(
        self, message_store: SQLiteMessageStore
    ) -> None:
        await message_store.add_message(
            ChatMessage(id="m1", chat_id="chat", role=MessageRole.USER, content="Q?")
        )
        await message_store.add_message(
            ChatMessage(
                id="m2",
                chat_id="chat",
                role=MessageRole.ASSISTANT,
                content="A [1].",
                metadata={"citations": [{"chunk_id": "c1"}]},
            )
        )
        await message_store.add_message(
            ChatMessage(id="m3", chat_id="other", role=MessageRole.USER, content="?")
        )

        messages = await message_store.list_messages("chat")

        assert [m.id for m in messages] == ["m1", "m2"]
        assert messages[1].metadata == {"citations": [{"chunk_id": "c1"}]}
        assert messages[1].role == MessageRole.ASSISTANT
