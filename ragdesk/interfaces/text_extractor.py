"""Abstract base class for per-format text extractors.

Each supported document format is one small class implementing
:class:`ITextExtractor`.  Format selection is not the extractor's concern:
:class:`~ragdesk.services.ingestion.text_extraction.TextExtractionService`
owns a lookup table from declared content type to extractor.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations:
#   PdfTextExtractor       - application/pdf (PyMuPDF)
#   PlainTextExtractor     - text/plain
#   MarkdownTextExtractor  - text/markdown
#   DocxTextExtractor      - Word .docx (python-docx)
# Located in: ragdesk/providers/extraction/
class ITextExtractor(ABC):
    """Contract for turning one document format's bytes into plain text."""

    @abstractmethod
    def extract(self, data: bytes) -> str:
        """Extract the document's text.

        Parameters
        ----------
        data:
            The raw uploaded bytes.

        Returns
        -------
        str
            Extracted text with paragraph breaks preserved as blank lines.
            May be empty if the document contains no text.

        Raises
        ------
        ragdesk.utils.errors.ExtractionError
            If the bytes are corrupt or cannot be parsed as this format.
        """

    @abstractmethod
    def get_content_types(self) -> tuple[str, ...]:
        """Return the MIME types this extractor handles."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier, e.g. ``"pymupdf"``."""
