"""PDF text extractor backed by PyMuPDF.

Opens the uploaded bytes in memory, pulls the text layer page by page and
joins non-empty pages with a blank line so each page starts a new paragraph
for the chunker.  Scanned PDFs without a text layer yield an empty string;
the processing pipeline treats that as a failure, not as an empty success.
"""

from __future__ import annotations

import fitz  # PyMuPDF -- the "fitz" import name is a PyMuPDF convention
import structlog

from ragdesk.interfaces.text_extractor import ITextExtractor
from ragdesk.utils.errors import ExtractionError

logger = structlog.get_logger(logger_name=__name__)


class PdfTextExtractor(ITextExtractor):
    """Extracts the text layer of a PDF."""

    def extract(self, data: bytes) -> str:
        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except Exception as exc:
            raise ExtractionError(
                message=f"Could not open PDF: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        pages: list[str] = []
        try:
            for page in doc:
                text = page.get_text("text").strip()
                if text:
                    pages.append(text)
            page_count = len(doc)
        except Exception as exc:
            raise ExtractionError(
                message=f"Could not read PDF page text: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        finally:
            doc.close()

        if not pages:
            logger.warning("pdf_no_text_extracted", page_count=page_count)

        logger.debug("pdf_extracted", page_count=page_count, text_pages=len(pages))
        return "\n\n".join(pages).strip()

    def get_content_types(self) -> tuple[str, ...]:
        return ("application/pdf",)

    def get_provider_name(self) -> str:
        return "pymupdf"
