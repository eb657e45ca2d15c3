"""Content-type dispatch for document text extraction.

:class:`TextExtractionService` owns a lookup table from declared MIME type
to :class:`~ragdesk.interfaces.text_extractor.ITextExtractor`.  The table is
the single place that decides which formats ragdesk accepts: uploads are
validated against it before a Document row exists, and the processing
pipeline extracts through it.  Unknown types raise
:class:`~ragdesk.utils.errors.UnsupportedFormatError`; nothing falls
through to a default extractor.
"""

from __future__ import annotations

import structlog

from ragdesk.interfaces.text_extractor import ITextExtractor
from ragdesk.providers.extraction.docx_extractor import DocxTextExtractor
from ragdesk.providers.extraction.pdf_extractor import PdfTextExtractor
from ragdesk.providers.extraction.plain_text_extractor import (
    MarkdownTextExtractor,
    PlainTextExtractor,
)
from ragdesk.utils.errors import UnsupportedFormatError

logger = structlog.get_logger(logger_name=__name__)

# Filename suffix → content type, used only when an upload declares none.
_SUFFIX_CONTENT_TYPES: dict[str, str] = {
    ".pdf": "application/pdf",
    ".txt": "text/plain",
    ".text": "text/plain",
    ".md": "text/markdown",
    ".markdown": "text/markdown",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}


def normalize_content_type(content_type: str | None) -> str:
    """Lower-case a MIME type and drop parameters (``"Text/Plain; charset=utf-8"`` → ``"text/plain"``)."""
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def guess_content_type(filename: str) -> str:
    """Infer a supported content type from *filename*'s suffix, or ``""``."""
    lowered = filename.lower()
    for suffix, content_type in _SUFFIX_CONTENT_TYPES.items():
        if lowered.endswith(suffix):
            return content_type
    return ""


def default_extractors() -> list[ITextExtractor]:
    """Return one extractor per supported format."""
    return [
        PdfTextExtractor(),
        PlainTextExtractor(),
        MarkdownTextExtractor(),
        DocxTextExtractor(),
    ]


class TextExtractionService:
    """Selects an extractor by content type and runs it.

    Parameters
    ----------
    extractors:
        Extractors to register.  Each is keyed under every content type it
        reports; a later extractor replaces an earlier one for a shared type.
        Defaults to :func:`default_extractors`.
    """

    def __init__(self, extractors: list[ITextExtractor] | None = None) -> None:
        self._table: dict[str, ITextExtractor] = {}
        for extractor in extractors if extractors is not None else default_extractors():
            for content_type in extractor.get_content_types():
                self._table[normalize_content_type(content_type)] = extractor

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def supported_content_types(self) -> list[str]:
        return sorted(self._table)

    def supports(self, content_type: str | None) -> bool:
        return normalize_content_type(content_type) in self._table

    def extractor_for(self, content_type: str | None) -> ITextExtractor:
        """Return the registered extractor for *content_type*.

        Raises
        ------
        UnsupportedFormatError
            If no extractor is registered for the type.
        """
        key = normalize_content_type(content_type)
        extractor = self._table.get(key)
        if extractor is None:
            raise UnsupportedFormatError(
                message=(
                    f"Unsupported content type '{content_type or 'unknown'}'. "
                    f"Supported types: {', '.join(self.supported_content_types())}"
                ),
                content_type=key or None,
            )
        return extractor

    def extract(self, data: bytes, content_type: str | None) -> str:
        """Extract text from *data* using the extractor for *content_type*.

        Raises
        ------
        UnsupportedFormatError
            If the content type is not registered.
        ExtractionError
            If the extractor cannot parse the bytes.
        """
        extractor = self.extractor_for(content_type)
        text = extractor.extract(data)
        logger.info(
            "text_extracted",
            content_type=normalize_content_type(content_type),
            extractor=extractor.get_provider_name(),
            input_bytes=len(data),
            output_chars=len(text),
        )
        return text
