"""Token-bounded text chunking with overlap and multi-level fallback.

Splits extracted document text into :class:`~ragdesk.models.rag.TextSegment`
objects sized for the embedding model (800 tokens with a 200-token overlap
by default).

The strategy works at three granularities, falling back only when needed:

1. **Paragraphs** -- blank-line separated paragraphs are packed greedily
   into a buffer until the next one would push it past ``chunk_size``.
2. **Sentences** -- a paragraph that alone exceeds ``chunk_size`` is split
   at sentence boundaries and packed the same way.
3. **Words** -- a sentence that alone exceeds ``chunk_size`` is grouped by
   words.  Word groups never carry overlap.

When a chunk is emitted, the next one starts with an overlap tail: the last
``overlap`` tokens of the emitted chunk, trimmed back to its last one or two
complete sentences when the tail contains a sentence boundary.

Every count comes from one tiktoken encoding, so identical input always
produces identical chunk boundaries.  :meth:`TextChunker.chunk` assigns no
ids and reads no clock; ids and positions are assigned at persistence.
"""

from __future__ import annotations

import re
from typing import NamedTuple, Protocol

import structlog
import tiktoken

from ragdesk.models.rag import TextSegment

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_CHUNK_SIZE = 800
DEFAULT_OVERLAP = 200
DEFAULT_ENCODING = "cl100k_base"

_PARAGRAPH_SEPARATOR = "\n\n"
_SENTENCE_SEPARATOR = " "

# Abbreviations whose trailing period does not end a sentence.
_ABBREVIATIONS = (
    "Dr", "Mr", "Mrs", "Ms", "Prof", "Jr", "Sr", "St", "Ave", "Blvd", "Vol",
    "No", "vs", "etc", "approx", "dept", "est", "govt", "inc", "ltd", "co",
    "ft", "e.g", "i.e", "Fig", "al",
)
_ABBREVIATION_RE = re.compile(
    r"\b(" + "|".join(re.escape(a) for a in _ABBREVIATIONS) + r")\."
)
_SENTENCE_END_RE = re.compile(r"[.!?](?:\s|$)")
_PARAGRAPH_SPLIT_RE = re.compile(r"\n\s*\n")
_WHITESPACE_RE = re.compile(r"\s+")


class TokenEncoding(Protocol):
    """The subset of :class:`tiktoken.Encoding` the chunker relies on.

    Only token counts are taken from the encoding.  Every cut is made on the
    original string, so chunks never hold text the document did not contain.
    """

    def encode_ordinary(self, text: str) -> list[int]: ...


class _Unit(NamedTuple):
    """One packable piece of text and how it joins the text before it."""

    text: str
    separator: str
    overlappable: bool


class TextChunker:
    """Splits text into overlapping, token-bounded segments.

    Parameters
    ----------
    chunk_size:
        Target maximum token count per chunk (default 800).  A chunk that
        opens with an overlap tail may exceed it by at most ``overlap``.
    overlap:
        Token budget of the tail repeated at the start of the next chunk
        (default 200).  Must be smaller than *chunk_size*.
    encoding:
        Token encoding.  Defaults to tiktoken's ``cl100k_base``.
    """

    def __init__(
        self,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        overlap: int = DEFAULT_OVERLAP,
        encoding: TokenEncoding | None = None,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        if not 0 <= overlap < chunk_size:
            raise ValueError(
                f"overlap must be in [0, chunk_size), got {overlap} for chunk_size {chunk_size}"
            )
        self._chunk_size = chunk_size
        self._overlap = overlap
        self._encoding: TokenEncoding = (
            encoding if encoding is not None else tiktoken.get_encoding(DEFAULT_ENCODING)
        )

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    @property
    def overlap(self) -> int:
        return self._overlap

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def chunk(self, text: str) -> list[TextSegment]:
        """Split *text* into ordered :class:`TextSegment` objects.

        Parameters
        ----------
        text:
            Extracted document text.  Paragraphs are separated by blank lines.

        Returns
        -------
        list[TextSegment]
            Segments in document order.  Blank input returns an empty list.
        """
        if not text or not text.strip():
            return []

        units = self._split_units(text)
        pieces = self._accumulate(units)
        segments = [
            TextSegment(text=piece, token_count=self.count_tokens(piece)) for piece in pieces
        ]

        logger.debug(
            "chunking_complete",
            num_chunks=len(segments),
            avg_tokens=_avg_tokens(segments),
            chunk_size=self._chunk_size,
            overlap=self._overlap,
        )
        return segments

    def count_tokens(self, text: str) -> int:
        """Return the token count of *text* under this chunker's encoding."""
        return len(self._encoding.encode_ordinary(text))

    # ------------------------------------------------------------------
    # Splitting
    # ------------------------------------------------------------------

    @staticmethod
    def _split_paragraphs(text: str) -> list[str]:
        """Split *text* on blank lines, discarding blank paragraphs."""
        parts = _PARAGRAPH_SPLIT_RE.split(text)
        return [p.strip() for p in parts if p.strip()]

    @staticmethod
    def _split_sentences(text: str) -> list[str]:
        """Split *text* after ``.``, ``!`` or ``?`` followed by whitespace or the end.

        Periods after known abbreviations ("Dr.", "etc.") are masked first;
        the mask keeps string length so match offsets index the original.
        """
        masked = _ABBREVIATION_RE.sub(lambda m: m.group(1) + "\x00", text)

        sentences: list[str] = []
        last = 0
        for match in _SENTENCE_END_RE.finditer(masked):
            end = match.end()
            sentence = text[last:end].strip()
            if sentence:
                sentences.append(sentence)
            last = end

        remainder = text[last:].strip()
        if remainder:
            sentences.append(remainder)

        return sentences if sentences else [text.strip()]

    def _split_units(self, text: str) -> list[_Unit]:
        """Flatten *text* into packable units, descending only for oversized pieces."""
        units: list[_Unit] = []
        for paragraph in self._split_paragraphs(text):
            if self.count_tokens(paragraph) <= self._chunk_size:
                units.append(_Unit(paragraph, _PARAGRAPH_SEPARATOR, True))
                continue

            for index, sentence in enumerate(self._split_sentences(paragraph)):
                separator = _PARAGRAPH_SEPARATOR if index == 0 else _SENTENCE_SEPARATOR
                if self.count_tokens(sentence) <= self._chunk_size:
                    units.append(_Unit(sentence, separator, True))
                    continue

                logger.debug(
                    "chunking_word_fallback",
                    sentence_tokens=self.count_tokens(sentence),
                    chunk_size=self._chunk_size,
                )
                for group_index, group in enumerate(self._group_words(sentence)):
                    units.append(
                        _Unit(group, separator if group_index == 0 else _SENTENCE_SEPARATOR, False)
                    )
        return units

    def _group_words(self, sentence: str) -> list[str]:
        """Pack the words of an oversized sentence into groups of <= chunk_size tokens."""
        groups: list[str] = []
        current: list[str] = []

        for word in sentence.split():
            if self.count_tokens(word) > self._chunk_size:
                if current:
                    groups.append(" ".join(current))
                    current = []
                groups.extend(self._split_by_tokens(word))
                continue

            if current and self.count_tokens(" ".join([*current, word])) > self._chunk_size:
                groups.append(" ".join(current))
                current = []
            current.append(word)

        if current:
            groups.append(" ".join(current))
        return groups

    def _split_by_tokens(self, text: str) -> list[str]:
        """Cut a single unbroken token run into windows of <= chunk_size tokens.

        Windows are slices of *text* ending on character boundaries, so a
        multi-byte character split across tokens is never cut in half.
        """
        pieces: list[str] = []
        start = 0
        while start < len(text):
            end = self._window_end(text, start)
            pieces.append(text[start:end])
            start = end
        return pieces

    def _window_end(self, text: str, start: int) -> int:
        """Largest end index with ``text[start:end]`` inside chunk_size tokens.

        Always advances by at least one character.
        """
        low, high = start + 1, len(text)
        while low < high:
            middle = (low + high + 1) // 2
            if self.count_tokens(text[start:middle]) <= self._chunk_size:
                low = middle
            else:
                high = middle - 1
        return low

    # ------------------------------------------------------------------
    # Accumulation
    # ------------------------------------------------------------------

    def _accumulate(self, units: list[_Unit]) -> list[str]:
        """Greedily pack *units* into chunk strings, seeding each with overlap.

        ``seed`` is the overlap tail carried from the previous chunk.  The
        budget check only fires once the buffer holds new content, so a seed
        never becomes a chunk on its own.
        """
        chunks: list[str] = []
        parts: list[_Unit] = []
        seed = ""

        for unit in units:
            if parts and self.count_tokens(_join(seed, [*parts, unit])) > self._chunk_size:
                emitted = _join(seed, parts)
                chunks.append(emitted)

                seed = ""
                if parts[-1].overlappable and unit.overlappable:
                    seed = self._overlap_tail(emitted)
                    if seed and (
                        self.count_tokens(_join(seed, [unit])) > self._chunk_size + self._overlap
                    ):
                        seed = ""
                parts = []

            parts.append(unit)

        if parts:
            chunks.append(_join(seed, parts))
        return chunks

    def _overlap_tail(self, chunk_text: str) -> str:
        """Return the overlap seed for the chunk following *chunk_text*.

        Takes the longest suffix of *chunk_text* that fits in ``overlap``
        tokens, starting at a word boundary when the suffix holds one.  If
        it contains a sentence boundary, the leading fragment is dropped and
        at most the last two complete sentences are kept; otherwise the
        tail is used as is.  A chunk shorter than the overlap window yields
        no seed.

        The tail is always a slice of *chunk_text*, never re-decoded tokens.
        """
        if self._overlap == 0:
            return ""

        if self.count_tokens(chunk_text) < self._overlap:
            return ""

        tail = chunk_text[self._tail_start(chunk_text) :].strip()
        sentences = self._split_sentences(tail)
        if len(sentences) > 1:
            return _SENTENCE_SEPARATOR.join(sentences[1:][-2:])
        return tail

    def _tail_start(self, text: str) -> int:
        """Smallest index whose suffix fits in ``overlap`` tokens.

        A start inside a word moves past the next whitespace when the
        suffix contains any.
        """
        low, high = 0, len(text)
        while low < high:
            middle = (low + high) // 2
            if self.count_tokens(text[middle:]) <= self._overlap:
                high = middle
            else:
                low = middle + 1

        if 0 < low < len(text) and not text[low - 1].isspace() and not text[low].isspace():
            match = _WHITESPACE_RE.search(text, low)
            if match is not None:
                return match.end()
        return low


# ---------------------------------------------------------------------------
# Module helpers
# ---------------------------------------------------------------------------


def _join(seed: str, parts: list[_Unit]) -> str:
    """Concatenate *seed* and *parts*, each part preceded by its own separator."""
    text = seed
    for part in parts:
        text = f"{text}{part.separator}{part.text}" if text else part.text
    return text


def _avg_tokens(segments: list[TextSegment]) -> int:
    if not segments:
        return 0
    return sum(s.token_count for s in segments) // len(segments)


def chunk_text(
    text: str,
    target_tokens: int = DEFAULT_CHUNK_SIZE,
    overlap_tokens: int = DEFAULT_OVERLAP,
    encoding: TokenEncoding | None = None,
) -> list[TextSegment]:
    """Functional form of :meth:`TextChunker.chunk` for one-off calls."""
    return TextChunker(chunk_size=target_tokens, overlap=overlap_tokens, encoding=encoding).chunk(
        text
    )
