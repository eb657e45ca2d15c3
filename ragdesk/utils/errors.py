"""Custom exception hierarchy for ragdesk.

All application exceptions inherit from :class:`RagDeskError`, which
carries an optional ``provider_name`` so error handlers can identify which
external service (e.g. "openai", "chromadb", "pymupdf") caused the failure.

The hierarchy is organized by pipeline stage:

    RagDeskError  (base -- catch-all for any ragdesk error)
    +-- UploadError              (upload rejected before a Document exists)
    +-- ExtractionError          (document bytes could not be turned into text)
    |   +-- UnsupportedFormatError   (no extractor for the declared content type)
    +-- ProcessingError          (extracted text yielded nothing to index)
    +-- PipelineError            (invalid document status transition)
    +-- QuestionError            (question rejected before it is stored)
    +-- EmbeddingError           (embedding provider failure)
    +-- GenerationError          (answer generator failure)
    +-- VectorIndexError         (vector index read/write failure)
    +-- StorageError             (relational store failure)
    +-- ConfigurationError       (startup / missing config)

Callers pick the level they care about: the processing pipeline maps
:class:`ExtractionError` to a user-facing message, the retriever swallows
:class:`EmbeddingError`, and the answer generator swallows
:class:`GenerationError`.
"""


class RagDeskError(Exception):
    """Base exception for all ragdesk errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  The ``__str__`` method prefixes the provider name in brackets
    for structured log output, e.g. ``[openai] Rate limit exceeded``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Ingestion errors
# ---------------------------------------------------------------------------

class UploadError(RagDeskError):
    """Raised when an upload is rejected before a Document row is created."""

    def __init__(
        self,
        message: str = "Upload rejected",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ExtractionError(RagDeskError):
    """Raised when a document's bytes cannot be turned into text (corrupt file)."""

    def __init__(
        self,
        message: str = "Text extraction failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class UnsupportedFormatError(ExtractionError):
    """Raised when no extractor is registered for a declared content type."""

    def __init__(
        self,
        message: str = "Unsupported document format",
        provider_name: str | None = None,
        content_type: str | None = None,
    ) -> None:
        self._content_type = content_type
        super().__init__(message=message, provider_name=provider_name)

    @property
    def content_type(self) -> str | None:
        return self._content_type


class ProcessingError(RagDeskError):
    """Raised when extracted text produces nothing indexable (no text, no chunks)."""

    def __init__(
        self,
        message: str = "Document processing failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class PipelineError(RagDeskError):
    """Raised on an invalid document status transition."""

    def __init__(
        self,
        message: str = "Invalid document status transition",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Chat errors
# ---------------------------------------------------------------------------

class QuestionError(RagDeskError):
    """Raised when a question is rejected before it is stored in a chat."""

    def __init__(
        self,
        message: str = "Question rejected",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Model provider errors
# ---------------------------------------------------------------------------

class EmbeddingError(RagDeskError):
    """Raised when the embedding provider fails or returns malformed vectors."""

    def __init__(
        self,
        message: str = "Embedding generation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class GenerationError(RagDeskError):
    """Raised when the answer generator (LLM) call fails."""

    def __init__(
        self,
        message: str = "Answer generation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Storage errors
# ---------------------------------------------------------------------------

class VectorIndexError(RagDeskError):
    """Raised when the vector index rejects a read or write."""

    def __init__(
        self,
        message: str = "Vector index operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class StorageError(RagDeskError):
    """Raised when the relational store cannot satisfy a request."""

    def __init__(
        self,
        message: str = "Storage operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Infrastructure errors
# ---------------------------------------------------------------------------

class ConfigurationError(RagDeskError):
    """Raised when required configuration is missing or invalid at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
