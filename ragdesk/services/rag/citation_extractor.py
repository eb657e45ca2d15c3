"""Citation marker parsing and renumbering.

The generator is asked to cite excerpts as ``[n]`` where *n* is the
excerpt's number in the prompt.  It rarely cites all of them, and it cites
them in whatever order its prose needs.  :class:`CitationExtractor` turns
that into a clean, user-facing citation list:

1. Find every ``[n]`` marker and collect the distinct numbers in order of
   first appearance.
2. Drop numbers outside ``1..len(candidates)`` (a model can invent
   ``[7]`` when only five excerpts exist).
3. Renumber the survivors ``1..k`` in that order, e.g. cited ``{2, 5}``
   becomes ``2→1, 5→2``.
4. Rewrite the mapped markers in the text.  Dropped markers stay as
   written.

Example::

    >>> extractor.extract("Paris [2], per [5] and [2].", candidates)  # 5 candidates
    ([candidates[1], candidates[4]], "Paris [1], per [2] and [1].")

No marker at all is an ordinary outcome and returns ``([], text)``.  The
extractor never raises and keeps no state between calls.
"""

from __future__ import annotations

import re

import structlog

from ragdesk.models.rag import Citation

logger = structlog.get_logger(logger_name=__name__)

_MARKER_RE = re.compile(r"\[(\d+)\]")


class CitationExtractor:
    """Maps ``[n]`` markers in generated text back to candidate citations."""

    def extract(
        self,
        answer_text: str | None,
        all_citations: list[Citation],
    ) -> tuple[list[Citation], str]:
        """Return the citations actually used and the renumbered text.

        Parameters
        ----------
        answer_text:
            Raw generator output.
        all_citations:
            The candidates, in the exact order they were numbered in the
            prompt.

        Returns
        -------
        tuple[list[Citation], str]
            Used citations in first-appearance order, and *answer_text*
            with their markers renumbered.
        """
        if not answer_text:
            return [], answer_text or ""

        referenced = self._referenced_numbers(answer_text, len(all_citations))
        if not referenced:
            return [], answer_text

        mapping = {old: new for new, old in enumerate(referenced, start=1)}

        def _renumber(match: re.Match[str]) -> str:
            new = mapping.get(int(match.group(1)))
            return f"[{new}]" if new is not None else match.group(0)

        rewritten = _MARKER_RE.sub(_renumber, answer_text)
        used = [all_citations[old - 1] for old in referenced]

        logger.debug(
            "citations_extracted",
            candidates=len(all_citations),
            used=len(used),
            mapping=mapping,
        )
        return used, rewritten

    @staticmethod
    def _referenced_numbers(text: str, candidate_count: int) -> list[int]:
        """Distinct in-range marker numbers, in order of first appearance."""
        seen: list[int] = []
        discarded: set[int] = set()
        for match in _MARKER_RE.finditer(text):
            number = int(match.group(1))
            if not 1 <= number <= candidate_count:
                discarded.add(number)
                continue
            if number not in seen:
                seen.append(number)
        if discarded:
            logger.info(
                "citation_markers_out_of_range",
                markers=sorted(discarded),
                candidates=candidate_count,
            )
        return seen
