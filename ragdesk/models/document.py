"""Document and chunk models for the ragdesk corpus.

A **Document** is one uploaded file.  It is created ``pending`` by
:meth:`ragdesk.services.knowledge_base.KnowledgeBase.upload`, moved through
``processing`` to ``completed`` or ``failed`` by
:class:`ragdesk.pipeline.processing_pipeline.ProcessingPipeline`, and
destroyed only by an explicit delete, which cascades to its chunks.

A **Chunk** is a bounded, positioned, embedded slice of a document's
extracted text.  Chunks are written once by the pipeline and never edited.

All models are frozen; status changes produce new instances via
``model_copy(update={...})`` and the repository persists the result.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    """Timezone-aware ``datetime.now`` in UTC, used for every stored timestamp."""
    return datetime.now(tz=timezone.utc)


# ---------------------------------------------------------------------------
# DocumentStatus: the processing state machine.
# ---------------------------------------------------------------------------
class DocumentStatus(str, Enum):  # noqa: UP042 StrEnum requires Python 3.11+
    """Processing states of an uploaded document.

    Allowed transitions::

        PENDING → PROCESSING → COMPLETED
                             ↘ FAILED

    COMPLETED and FAILED are terminal for a pipeline run.  A FAILED document
    only returns to PENDING through an explicit reprocess request.
    """

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class Document(BaseModel):
    """An uploaded file and its processing outcome."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Document identifier (UUID4 hex).")
    title: str = Field(min_length=1, description="Display title used in citations.")
    filename: str = Field(default="", description="Original filename as uploaded.")
    content_type: str = Field(description="Declared MIME type; selects the text extractor.")
    file_size: int = Field(default=0, ge=0, description="Size of the uploaded bytes.")
    status: DocumentStatus = Field(default=DocumentStatus.PENDING)
    created_at: datetime = Field(default_factory=utc_now)
    # Set only on a successful run.
    processed_at: datetime | None = None
    # Set only on a failed run; shown in document listings.
    error_message: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (DocumentStatus.COMPLETED, DocumentStatus.FAILED)


class Chunk(BaseModel):
    """A persisted slice of a document's text with its embedding."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Chunk identifier (UUID4 hex); also the vector index key.")
    document_id: str = Field(description="Owning document.")
    content: str = Field(description="The chunk's text.")
    position: int = Field(ge=0, description="0-based, contiguous order within the document.")
    token_count: int = Field(ge=0)
    # Row reads for display leave this empty; the index rebuild path fills it.
    embedding: list[float] = Field(default_factory=list, repr=False)
    created_at: datetime = Field(default_factory=utc_now)


class UploadMetadata(BaseModel):
    """Caller-supplied description of an upload."""

    model_config = ConfigDict(frozen=True)

    filename: str = Field(default="", description="Original filename; used to infer a missing content type.")
    title: str | None = Field(default=None, description="Display title; defaults to the filename stem.")
    content_type: str | None = Field(default=None, description="Declared MIME type.")
