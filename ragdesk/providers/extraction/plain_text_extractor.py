"""Plain-text and Markdown extractors.

Both formats are already text: extraction is strict UTF-8 decoding (a
leading BOM is dropped) plus newline normalization.  Bytes that are not
valid UTF-8 are reported as an :class:`ExtractionError` rather than being
guessed at.  Markdown additionally drops a leading YAML front-matter block,
which is metadata rather than content.
"""

from __future__ import annotations

import re

from ragdesk.interfaces.text_extractor import ITextExtractor
from ragdesk.utils.errors import ExtractionError

_FRONT_MATTER_RE = re.compile(r"\A---\n.*?\n---\n", re.DOTALL)


class PlainTextExtractor(ITextExtractor):
    """Decodes ``text/plain`` uploads."""

    def extract(self, data: bytes) -> str:
        try:
            text = data.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise ExtractionError(
                message=f"Text is not valid UTF-8 (byte offset {exc.start})",
                provider_name=self.get_provider_name(),
            ) from exc
        return text.replace("\r\n", "\n").replace("\r", "\n").strip()

    def get_content_types(self) -> tuple[str, ...]:
        return ("text/plain",)

    def get_provider_name(self) -> str:
        return "plain_text"


class MarkdownTextExtractor(PlainTextExtractor):
    """Decodes ``text/markdown`` uploads, dropping YAML front matter."""

    def extract(self, data: bytes) -> str:
        text = super().extract(data)
        return _FRONT_MATTER_RE.sub("", text, count=1).strip()

    def get_content_types(self) -> tuple[str, ...]:
        return ("text/markdown", "text/x-markdown")

    def get_provider_name(self) -> str:
        return "markdown"
