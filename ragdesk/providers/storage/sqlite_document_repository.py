"""SQLite-backed document and chunk-row repository.

Persists documents (including the uploaded bytes) and chunk rows in one
local SQLite database using ``aiosqlite`` for async I/O.  Chunk embeddings
are stored in the row as little-endian float32 bytes; the rows are the
source of truth from which the vector index can always be rebuilt.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

import aiosqlite
import numpy as np
import structlog

from ragdesk.interfaces.document_repository import IDocumentRepository
from ragdesk.models.document import Chunk, Document, DocumentStatus
from ragdesk.providers.storage.sqlite_common import connect, format_timestamp, parse_timestamp
from ragdesk.utils.errors import StorageError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/ragdesk.db")

_CREATE_DOCUMENTS_SQL = """\
CREATE TABLE IF NOT EXISTS documents (
    id            TEXT    PRIMARY KEY,
    title         TEXT    NOT NULL,
    filename      TEXT    NOT NULL DEFAULT '',
    content_type  TEXT    NOT NULL,
    file_size     INTEGER NOT NULL DEFAULT 0,
    status        TEXT    NOT NULL,
    created_at    TEXT    NOT NULL,
    processed_at  TEXT,
    error_message TEXT,
    data          BLOB    NOT NULL
);
"""

_CREATE_CHUNKS_SQL = """\
CREATE TABLE IF NOT EXISTS chunks (
    id          TEXT    PRIMARY KEY,
    document_id TEXT    NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
    content     TEXT    NOT NULL,
    position    INTEGER NOT NULL,
    token_count INTEGER NOT NULL,
    embedding   BLOB    NOT NULL,
    created_at  TEXT    NOT NULL,
    UNIQUE(document_id, position)
);
"""

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_documents_status ON documents(status);",
    "CREATE INDEX IF NOT EXISTS idx_documents_created ON documents(created_at);",
    "CREATE INDEX IF NOT EXISTS idx_chunks_document ON chunks(document_id, position);",
]

_DOCUMENT_COLUMNS = (
    "id, title, filename, content_type, file_size, status, "
    "created_at, processed_at, error_message"
)

_CHUNK_COLUMNS = "id, document_id, content, position, token_count, created_at"

_INSERT_CHUNK_SQL = """\
INSERT INTO chunks (id, document_id, content, position, token_count, embedding, created_at)
VALUES (?, ?, ?, ?, ?, ?, ?);
"""


def _encode_embedding(vector: list[float]) -> bytes:
    return np.asarray(vector, dtype="<f4").tobytes()


def _decode_embedding(blob: bytes) -> list[float]:
    return np.frombuffer(blob, dtype="<f4").astype(float).tolist()


class SQLiteDocumentRepository(IDocumentRepository):
    """SQLite persistence for documents and chunk rows."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        """Create the tables and indices if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with connect(self._db_path) as db:
            await db.execute(_CREATE_DOCUMENTS_SQL)
            await db.execute(_CREATE_CHUNKS_SQL)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("document_db_initialized", path=str(self._db_path))

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def create_document(self, document: Document, data: bytes) -> Document:
        try:
            async with connect(self._db_path) as db:
                await db.execute(
                    f"INSERT INTO documents ({_DOCUMENT_COLUMNS}, data) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        document.id,
                        document.title,
                        document.filename,
                        document.content_type,
                        document.file_size,
                        document.status.value,
                        format_timestamp(document.created_at),
                        format_timestamp(document.processed_at),
                        document.error_message,
                        data,
                    ),
                )
                await db.commit()
        except aiosqlite.IntegrityError as exc:
            raise StorageError(
                message=f"Document {document.id} already exists",
                provider_name="sqlite",
            ) from exc
        logger.info("document_created", document_id=document.id, bytes=len(data))
        return document

    async def get_document(self, document_id: str) -> Document | None:
        async with connect(self._db_path) as db:
            cursor = await db.execute(
                f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE id = ?",
                (document_id,),
            )
            row = await cursor.fetchone()
        return self._row_to_document(row) if row else None

    async def get_documents(self, document_ids: list[str]) -> dict[str, Document]:
        if not document_ids:
            return {}
        unique_ids = list(dict.fromkeys(document_ids))
        placeholders = ", ".join("?" for _ in unique_ids)
        async with connect(self._db_path) as db:
            cursor = await db.execute(
                f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE id IN ({placeholders})",
                unique_ids,
            )
            rows = await cursor.fetchall()
        return {row["id"]: self._row_to_document(row) for row in rows}

    async def get_document_data(self, document_id: str) -> bytes | None:
        async with connect(self._db_path) as db:
            cursor = await db.execute("SELECT data FROM documents WHERE id = ?", (document_id,))
            row = await cursor.fetchone()
        return bytes(row["data"]) if row else None

    async def list_documents(self) -> list[Document]:
        async with connect(self._db_path) as db:
            cursor = await db.execute(
                f"SELECT {_DOCUMENT_COLUMNS} FROM documents ORDER BY created_at DESC, id"
            )
            rows = await cursor.fetchall()
        return [self._row_to_document(r) for r in rows]

    async def update_document(self, document: Document) -> Document:
        async with connect(self._db_path) as db:
            cursor = await db.execute(
                "UPDATE documents SET title = ?, status = ?, processed_at = ?, "
                "error_message = ? WHERE id = ?",
                (
                    document.title,
                    document.status.value,
                    format_timestamp(document.processed_at),
                    document.error_message,
                    document.id,
                ),
            )
            await db.commit()
            updated = cursor.rowcount
        if updated == 0:
            raise StorageError(
                message=f"Document {document.id} does not exist",
                provider_name="sqlite",
            )
        logger.debug("document_updated", document_id=document.id, status=document.status.value)
        return document

    async def delete_document(self, document_id: str) -> list[str]:
        async with connect(self._db_path) as db:
            cursor = await db.execute(
                "SELECT id FROM chunks WHERE document_id = ? ORDER BY position",
                (document_id,),
            )
            chunk_ids = [row["id"] for row in await cursor.fetchall()]
            # Chunk rows go with the document through ON DELETE CASCADE.
            await db.execute("DELETE FROM documents WHERE id = ?", (document_id,))
            await db.commit()
        logger.info("document_deleted", document_id=document_id, chunks=len(chunk_ids))
        return chunk_ids

    async def count_documents(
        self,
        status: DocumentStatus | None = None,
        created_after: datetime | None = None,
    ) -> int:
        clauses: list[str] = []
        params: list[str] = []
        if status is not None:
            clauses.append("status = ?")
            params.append(status.value)
        if created_after is not None:
            clauses.append("created_at >= ?")
            params.append(format_timestamp(created_after) or "")
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        async with connect(self._db_path) as db:
            cursor = await db.execute(f"SELECT COUNT(*) AS n FROM documents{where}", params)
            row = await cursor.fetchone()
        return int(row["n"])

    # ------------------------------------------------------------------
    # Chunk rows
    # ------------------------------------------------------------------

    async def insert_chunks(self, chunks: list[Chunk]) -> int:
        if not chunks:
            return 0
        rows = []
        for chunk in chunks:
            if not chunk.embedding:
                raise StorageError(
                    message=f"Chunk {chunk.id} has no embedding",
                    provider_name="sqlite",
                )
            rows.append(
                (
                    chunk.id,
                    chunk.document_id,
                    chunk.content,
                    chunk.position,
                    chunk.token_count,
                    _encode_embedding(chunk.embedding),
                    format_timestamp(chunk.created_at),
                )
            )
        try:
            async with connect(self._db_path) as db:
                await db.executemany(_INSERT_CHUNK_SQL, rows)
                await db.commit()
        except aiosqlite.IntegrityError as exc:
            raise StorageError(
                message=f"Chunk rows rejected: {exc}",
                provider_name="sqlite",
            ) from exc
        logger.debug("chunk_rows_inserted", count=len(rows))
        return len(rows)

    async def get_chunks(self, chunk_ids: list[str]) -> dict[str, Chunk]:
        if not chunk_ids:
            return {}
        unique_ids = list(dict.fromkeys(chunk_ids))
        placeholders = ", ".join("?" for _ in unique_ids)
        async with connect(self._db_path) as db:
            cursor = await db.execute(
                f"SELECT {_CHUNK_COLUMNS} FROM chunks WHERE id IN ({placeholders})",
                unique_ids,
            )
            rows = await cursor.fetchall()
        return {row["id"]: self._row_to_chunk(row) for row in rows}

    async def list_document_chunks(self, document_id: str) -> list[Chunk]:
        """Return a document's chunk rows in position order, without embeddings."""
        async with connect(self._db_path) as db:
            cursor = await db.execute(
                f"SELECT {_CHUNK_COLUMNS} FROM chunks WHERE document_id = ? ORDER BY position",
                (document_id,),
            )
            rows = await cursor.fetchall()
        return [self._row_to_chunk(r) for r in rows]

    async def delete_chunk(self, chunk_id: str) -> bool:
        async with connect(self._db_path) as db:
            cursor = await db.execute("DELETE FROM chunks WHERE id = ?", (chunk_id,))
            await db.commit()
            return cursor.rowcount > 0

    async def delete_chunks_for_document(self, document_id: str) -> list[str]:
        async with connect(self._db_path) as db:
            cursor = await db.execute(
                "SELECT id FROM chunks WHERE document_id = ?", (document_id,)
            )
            chunk_ids = [row["id"] for row in await cursor.fetchall()]
            await db.execute("DELETE FROM chunks WHERE document_id = ?", (document_id,))
            await db.commit()
        return chunk_ids

    async def list_chunk_embeddings(self) -> list[tuple[str, list[float]]]:
        async with connect(self._db_path) as db:
            cursor = await db.execute("SELECT id, embedding FROM chunks ORDER BY rowid")
            rows = await cursor.fetchall()
        return [(row["id"], _decode_embedding(row["embedding"])) for row in rows]

    async def count_chunks(self, document_id: str | None = None) -> int:
        async with connect(self._db_path) as db:
            if document_id is None:
                cursor = await db.execute("SELECT COUNT(*) AS n FROM chunks")
            else:
                cursor = await db.execute(
                    "SELECT COUNT(*) AS n FROM chunks WHERE document_id = ?", (document_id,)
                )
            row = await cursor.fetchone()
        return int(row["n"])

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_document(row: aiosqlite.Row) -> Document:
        return Document(
            id=row["id"],
            title=row["title"],
            filename=row["filename"],
            content_type=row["content_type"],
            file_size=row["file_size"],
            status=DocumentStatus(row["status"]),
            created_at=parse_timestamp(row["created_at"]),
            processed_at=parse_timestamp(row["processed_at"]),
            error_message=row["error_message"],
        )

    @staticmethod
    def _row_to_chunk(row: aiosqlite.Row) -> Chunk:
        return Chunk(
            id=row["id"],
            document_id=row["document_id"],
            content=row["content"],
            position=row["position"],
            token_count=row["token_count"],
            created_at=parse_timestamp(row["created_at"]),
        )
