"""Retrieval-augmented answering models.

These types carry data between the query-time stages::

    ChunkRetriever  → list[RetrievedChunk]
    PromptBuilder   → prompt text (numbered 1..N in RetrievedChunk order)
    ILLMProvider    → raw answer text
    CitationExtractor → list[Citation] + rewritten answer text
    AnswerGenerator → AnswerResult

A Citation is never stored on its own: it lives inside the metadata of the
assistant message that answered one question.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from ragdesk.models.document import Chunk, Document


def relevance_from_distance(distance: float) -> float:
    """Map a cosine distance in [0, 2] to a display relevance in [0, 1]."""
    return max(0.0, min(1.0, 1.0 - distance / 2.0))


class TextSegment(BaseModel):
    """One chunker output segment, before it has an id or an embedding."""

    model_config = ConfigDict(frozen=True)

    text: str
    token_count: int = Field(ge=0)


class RetrievedChunk(BaseModel):
    """A chunk returned by similarity search, with its parent document."""

    model_config = ConfigDict(frozen=True)

    chunk: Chunk
    distance: float = Field(ge=0.0, description="Vector distance to the query; lower is closer.")
    document: Document
    position: int = Field(ge=0, description="Chunk position within its document.")

    @property
    def content(self) -> str:
        return self.chunk.content

    @property
    def relevance(self) -> float:
        return relevance_from_distance(self.distance)

    def to_citation(self) -> Citation:
        """Build the citation candidate for this chunk."""
        return Citation(
            chunk_id=self.chunk.id,
            document_id=self.document.id,
            document_title=self.document.title,
            relevance=round(self.relevance, 3),
            position=self.position,
        )


class Citation(BaseModel):
    """A reference from a generated answer back to a source chunk."""

    model_config = ConfigDict(frozen=True)

    chunk_id: str
    document_id: str
    document_title: str
    relevance: float = Field(ge=0.0, le=1.0)
    position: int = Field(ge=0)


class EmptyContextType(str, Enum):  # noqa: UP042 StrEnum requires Python 3.11+
    """Why an answer had nothing to ground on."""

    NO_DOCUMENTS = "no_documents"
    NO_RECENT_DOCUMENTS = "no_recent_documents"
    NO_RELEVANT_CHUNKS = "no_relevant_chunks"


class EmptyContext(BaseModel):
    """Marker attached to an answer produced without any retrieved chunks."""

    model_config = ConfigDict(frozen=True)

    type: EmptyContextType


class QueryFilters(BaseModel):
    """Optional post-filters applied to similarity search results."""

    model_config = ConfigDict(frozen=True)

    document_ids: list[str] | None = Field(
        default=None, description="Keep only chunks from these documents."
    )
    created_after: datetime | None = Field(
        default=None, description="Keep only chunks whose document was created at or after this time."
    )


class AnswerResult(BaseModel):
    """Final output of one question: answer text plus the citations it used."""

    model_config = ConfigDict(frozen=True)

    answer: str
    citations: list[Citation] = Field(default_factory=list)
    model: str | None = None
    empty_context: EmptyContext | None = None
    # Internal diagnostic for a failed generation; never shown to the user.
    error: str | None = None

    def to_message_metadata(self) -> dict:
        """Serialize the user-visible parts for assistant message metadata."""
        metadata: dict = {
            "citations": [citation.model_dump() for citation in self.citations],
        }
        if self.empty_context is not None:
            metadata["empty_context"] = self.empty_context.model_dump(mode="json")
        return metadata
