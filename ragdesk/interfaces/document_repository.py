"""Abstract base class for the relational document and chunk store.

Holds documents (with their uploaded bytes) and chunk rows.  Deleting a
document deletes its chunk rows in the same transaction; removing the
matching vectors is the chunk store's job.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from ragdesk.models.document import Chunk, Document, DocumentStatus


# Concrete implementations: SQLiteDocumentRepository (aiosqlite)
# Located in: ragdesk/providers/storage/
class IDocumentRepository(ABC):
    """Contract for document and chunk-row persistence."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables and indices if they do not exist."""

    # -- documents ---------------------------------------------------------

    @abstractmethod
    async def create_document(self, document: Document, data: bytes) -> Document:
        """Insert a new document row together with its uploaded bytes."""

    @abstractmethod
    async def get_document(self, document_id: str) -> Document | None:
        """Return the document, or ``None`` if it does not exist."""

    @abstractmethod
    async def get_documents(self, document_ids: list[str]) -> dict[str, Document]:
        """Return documents keyed by id.  Unknown ids are absent."""

    @abstractmethod
    async def get_document_data(self, document_id: str) -> bytes | None:
        """Return the uploaded bytes, or ``None`` if the document is gone."""

    @abstractmethod
    async def list_documents(self) -> list[Document]:
        """Return every document, newest first."""

    @abstractmethod
    async def update_document(self, document: Document) -> Document:
        """Persist status, timestamps and error message of *document*."""

    @abstractmethod
    async def delete_document(self, document_id: str) -> list[str]:
        """Delete the document and its chunk rows.

        Returns
        -------
        list[str]
            Ids of the chunk rows that were deleted, so the caller can
            remove them from the vector index.
        """

    @abstractmethod
    async def count_documents(
        self,
        status: DocumentStatus | None = None,
        created_after: datetime | None = None,
    ) -> int:
        """Count documents, optionally by status and creation time."""

    # -- chunk rows --------------------------------------------------------

    @abstractmethod
    async def insert_chunks(self, chunks: list[Chunk]) -> int:
        """Insert chunk rows (with embeddings) in one transaction."""

    @abstractmethod
    async def get_chunks(self, chunk_ids: list[str]) -> dict[str, Chunk]:
        """Return chunk rows keyed by id, without embeddings."""

    @abstractmethod
    async def list_document_chunks(self, document_id: str) -> list[Chunk]:
        """Return a document's chunk rows in position order, without embeddings."""

    @abstractmethod
    async def delete_chunk(self, chunk_id: str) -> bool:
        """Delete one chunk row.  Returns ``True`` if it existed."""

    @abstractmethod
    async def delete_chunks_for_document(self, document_id: str) -> list[str]:
        """Delete a document's chunk rows.  Returns the deleted ids."""

    @abstractmethod
    async def list_chunk_embeddings(self) -> list[tuple[str, list[float]]]:
        """Return ``(chunk_id, embedding)`` for every chunk row."""

    @abstractmethod
    async def count_chunks(self, document_id: str | None = None) -> int:
        """Count chunk rows, optionally for one document."""
