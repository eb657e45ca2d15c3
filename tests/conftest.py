"""Shared pytest fixtures for the ragdesk test suite."""

from __future__ import annotations

import hashlib
import math
import re
from collections.abc import AsyncIterator
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from ragdesk.interfaces.embedding_provider import IEmbeddingProvider
from ragdesk.interfaces.llm_provider import ILLMProvider
from ragdesk.interfaces.vector_index import IVectorIndex
from ragdesk.models.document import Chunk, Document, DocumentStatus
from ragdesk.models.rag import RetrievedChunk
from ragdesk.pipeline.processing_pipeline import ProcessingPipeline
from ragdesk.pipeline.task_queue import TaskQueue
from ragdesk.providers.storage.sqlite_document_repository import SQLiteDocumentRepository
from ragdesk.providers.storage.sqlite_message_store import SQLiteMessageStore
from ragdesk.services.chunk_store import MirroredChunkStore
from ragdesk.services.ingestion.chunker import TextChunker
from ragdesk.services.ingestion.text_extraction import TextExtractionService
from ragdesk.services.knowledge_base import KnowledgeBase
from ragdesk.services.rag.answer_generator import AnswerGenerator
from ragdesk.services.rag.citation_extractor import CitationExtractor
from ragdesk.services.rag.prompt_builder import PromptBuilder
from ragdesk.services.rag.retriever import ChunkRetriever

# ---------------------------------------------------------------------------
# Token encoding
# ---------------------------------------------------------------------------


class WhitespaceEncoding:
    """Deterministic stand-in for a tiktoken encoding: one token per word.

    Token ids are assigned on first sight.
    """

    def __init__(self) -> None:
        self._ids: dict[str, int] = {}

    def encode_ordinary(self, text: str) -> list[int]:
        tokens: list[int] = []
        for word in text.split():
            tokens.append(self._ids.setdefault(word, len(self._ids)))
        return tokens


class ByteEncoding:
    """Byte-level stand-in: one token per UTF-8 byte.

    Accented, CJK and emoji characters span several tokens, the way rare
    characters do under ``cl100k_base``.
    """

    def encode_ordinary(self, text: str) -> list[int]:
        return list(text.encode("utf-8"))


@pytest.fixture
def whitespace_encoding() -> WhitespaceEncoding:
    return WhitespaceEncoding()


# ---------------------------------------------------------------------------
# Embeddings and vector index
# ---------------------------------------------------------------------------

_EMBEDDING_DIM = 64
_WORD_RE = re.compile(r"[a-z0-9]+")


def _bag_of_words_vector(text: str, dim: int = _EMBEDDING_DIM) -> list[float]:
    """Hash each lower-cased word into one of *dim* buckets and normalise.

    Texts that share words point in similar directions; texts with no
    words in common are (barring bucket collisions) orthogonal.
    Deterministic across runs.
    """
    values = [0.0] * dim
    for word in _WORD_RE.findall(text.lower()):
        bucket = int.from_bytes(hashlib.sha256(word.encode("utf-8")).digest()[:4], "little") % dim
        values[bucket] += 1.0
    magnitude = math.sqrt(sum(v * v for v in values))
    if magnitude == 0.0:
        values[0] = 1.0
        return values
    return [v / magnitude for v in values]


class MockEmbeddingProvider(IEmbeddingProvider):
    """In-memory deterministic embedding provider for tests."""

    def __init__(self, dimension: int = _EMBEDDING_DIM) -> None:
        self._dimension = dimension
        self.embed_calls = 0
        self.embed_single_calls = 0

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.embed_calls += 1
        return [_bag_of_words_vector(t, self._dimension) for t in texts]

    async def embed_single(self, text: str) -> list[float]:
        self.embed_single_calls += 1
        return _bag_of_words_vector(text, self._dimension)

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return "mock-embedding"

    def is_available(self) -> bool:
        return True


def _cosine_distance(a: list[float], b: list[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b, strict=True))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    if norm == 0.0:
        return 1.0
    return max(0.0, min(2.0, 1.0 - dot / norm))


class MockVectorIndex(IVectorIndex):
    """In-memory vector index using cosine distance, like the Chroma collection."""

    def __init__(self) -> None:
        self.vectors: dict[str, list[float]] = {}

    async def insert(self, chunk_id: str, vector: list[float]) -> None:
        self.vectors[chunk_id] = list(vector)

    async def insert_many(self, items: list[tuple[str, list[float]]]) -> int:
        for chunk_id, vector in items:
            self.vectors[chunk_id] = list(vector)
        return len(items)

    async def delete(self, chunk_id: str) -> None:
        self.vectors.pop(chunk_id, None)

    async def delete_many(self, chunk_ids: list[str]) -> int:
        removed = 0
        for chunk_id in chunk_ids:
            if self.vectors.pop(chunk_id, None) is not None:
                removed += 1
        return removed

    async def nearest(
        self,
        query_vector: list[float],
        k: int,
        max_distance: float | None = None,
    ) -> list[tuple[str, float]]:
        scored = sorted(
            ((chunk_id, _cosine_distance(query_vector, vector)) for chunk_id, vector in self.vectors.items()),
            key=lambda item: item[1],
        )[:k]
        return [(cid, d) for cid, d in scored if max_distance is None or d <= max_distance]

    async def count(self) -> int:
        return len(self.vectors)

    async def reset(self) -> None:
        self.vectors.clear()

    def get_provider_name(self) -> str:
        return "mock-index"


@pytest.fixture
def mock_embedding_provider() -> MockEmbeddingProvider:
    return MockEmbeddingProvider()


@pytest.fixture
def mock_vector_index() -> MockVectorIndex:
    return MockVectorIndex()


@pytest.fixture
def mock_llm_provider() -> ILLMProvider:
    """Mock ILLMProvider; override ``generate.return_value`` per test."""
    mock = MagicMock(spec=ILLMProvider)
    mock.get_provider_name.return_value = "mock-llm"
    mock.get_default_model.return_value = "mock-model"
    mock.is_available.return_value = True
    mock.generate = AsyncMock(return_value="The answer is in the documents [1].")
    return mock


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "ragdesk.db"


@pytest.fixture
async def repository(db_path: Path) -> SQLiteDocumentRepository:
    repo = SQLiteDocumentRepository(db_path=db_path)
    await repo.initialize()
    return repo


@pytest.fixture
async def message_store(db_path: Path) -> SQLiteMessageStore:
    store = SQLiteMessageStore(db_path=db_path)
    await store.initialize()
    return store


# ---------------------------------------------------------------------------
# Model factories
# ---------------------------------------------------------------------------


def make_document(
    document_id: str = "doc-1",
    title: str = "Handbook",
    status: DocumentStatus = DocumentStatus.COMPLETED,
    created_at: datetime | None = None,
    content_type: str = "text/plain",
) -> Document:
    return Document(
        id=document_id,
        title=title,
        filename=f"{title.lower()}.txt",
        content_type=content_type,
        file_size=10,
        status=status,
        created_at=created_at or datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc),
    )


def make_chunk(
    chunk_id: str = "chunk-1",
    document_id: str = "doc-1",
    content: str = "Some chunk text.",
    position: int = 0,
    embedding: list[float] | None = None,
) -> Chunk:
    return Chunk(
        id=chunk_id,
        document_id=document_id,
        content=content,
        position=position,
        token_count=len(content.split()),
        embedding=embedding if embedding is not None else [],
    )


def make_retrieved(
    chunk_id: str = "chunk-1",
    distance: float = 0.2,
    document: Document | None = None,
    content: str = "Some chunk text.",
    position: int = 0,
) -> RetrievedChunk:
    document = document or make_document()
    return RetrievedChunk(
        chunk=make_chunk(chunk_id, document.id, content, position),
        distance=distance,
        document=document,
        position=position,
    )


# ---------------------------------------------------------------------------
# Assembled application
# ---------------------------------------------------------------------------


def build_knowledge_base(
    db_path: Path,
    embedder: IEmbeddingProvider,
    index: IVectorIndex,
    llm: ILLMProvider,
    chunk_size: int = 800,
    overlap: int = 200,
    distance_threshold: float = 1.0,
    max_attempts: int = 1,
) -> KnowledgeBase:
    """Wire a KnowledgeBase the way ``build_application`` does, from test doubles."""
    repository = SQLiteDocumentRepository(db_path=db_path)
    chunk_store = MirroredChunkStore(repository=repository, index=index)
    extraction_service = TextExtractionService()
    pipeline = ProcessingPipeline(
        repository=repository,
        extraction_service=extraction_service,
        chunker=TextChunker(chunk_size=chunk_size, overlap=overlap, encoding=WhitespaceEncoding()),
        embedding_provider=embedder,
        chunk_store=chunk_store,
        embedding_dimension=embedder.get_dimension(),
    )
    retriever = ChunkRetriever(
        embedding_provider=embedder,
        chunk_store=chunk_store,
        repository=repository,
        distance_threshold=distance_threshold,
    )
    answer_generator = AnswerGenerator(
        retriever=retriever,
        prompt_builder=PromptBuilder(),
        citation_extractor=CitationExtractor(),
        llm=llm,
        repository=repository,
    )
    return KnowledgeBase(
        repository=repository,
        message_store=SQLiteMessageStore(db_path=db_path),
        chunk_store=chunk_store,
        extraction_service=extraction_service,
        pipeline=pipeline,
        answer_generator=answer_generator,
        task_queue=TaskQueue(concurrency=2),
        processing_max_attempts=max_attempts,
        processing_retry_backoff_s=0.0,
    )


@pytest.fixture
async def knowledge_base(
    db_path: Path,
    mock_embedding_provider: MockEmbeddingProvider,
    mock_vector_index: MockVectorIndex,
    mock_llm_provider: ILLMProvider,
) -> AsyncIterator[KnowledgeBase]:
    kb = build_knowledge_base(db_path, mock_embedding_provider, mock_vector_index, mock_llm_provider)
    await kb.start()
    yield kb
    await kb.close()
