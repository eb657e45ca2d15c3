"""Unit tests for CitationExtractor: marker parsing, filtering and renumbering."""

from __future__ import annotations

import pytest

from ragdesk.models.rag import Citation
from ragdesk.services.rag.citation_extractor import CitationExtractor


def _candidates(n: int) -> list[Citation]:
    return [
        Citation(
            chunk_id=f"chunk-{i}",
            document_id=f"doc-{i}",
            document_title=f"Doc {i}",
            relevance=0.9,
            position=i - 1,
        )
        for i in range(1, n + 1)
    ]


@pytest.fixture()
def extractor() -> CitationExtractor:
    return CitationExtractor()


class TestRenumbering:
    def test_sparse_markers_renumbered_in_first_appearance_order(
        self, extractor: CitationExtractor
    ) -> None:
        candidates = _candidates(5)

        citations, text = extractor.extract("Paris [2], as noted in [5].", candidates)

        assert [c.chunk_id for c in citations] == ["chunk-2", "chunk-5"]
        assert text == "Paris [1], as noted in [2]."

    def test_order_follows_text_not_numbers(self, extractor: CitationExtractor) -> None:
        candidates = _candidates(3)

        citations, text = extractor.extract("First [3] then [1].", candidates)

        assert [c.chunk_id for c in citations] == ["chunk-3", "chunk-1"]
        assert text == "First [1] then [2]."

    def test_repeated_marker_cited_once(self, extractor: CitationExtractor) -> None:
        candidates = _candidates(3)

        citations, text = extractor.extract("A [2]. B [2]. C [3].", candidates)

        assert [c.chunk_id for c in citations] == ["chunk-2", "chunk-3"]
        assert text == "A [1]. B [1]. C [2]."


class TestInvalidMarkers:
    def test_out_of_range_marker_ignored(self, extractor: CitationExtractor) -> None:
        candidates = _candidates(3)

        citations, text = extractor.extract("Made up [99].", candidates)

        assert citations == []
        assert text == "Made up [99]."

    def test_zero_marker_ignored_and_left_in_text(self, extractor: CitationExtractor) -> None:
        candidates = _candidates(2)

        citations, text = extractor.extract("Zero [0] and two [2].", candidates)

        assert [c.chunk_id for c in citations] == ["chunk-2"]
        assert text == "Zero [0] and two [1]."

    def test_non_numeric_brackets_untouched(self, extractor: CitationExtractor) -> None:
        candidates = _candidates(2)

        citations, text = extractor.extract("See [a] and [1].", candidates)

        assert len(citations) == 1
        assert text == "See [a] and [1]."


class TestNoMarkers:
    def test_plain_text_returned_unchanged(self, extractor: CitationExtractor) -> None:
        text = "There is no citation here."

        assert extractor.extract(text, _candidates(3)) == ([], text)

    def test_no_candidates(self, extractor: CitationExtractor) -> None:
        assert extractor.extract("Cites [1].", []) == ([], "Cites [1].")

    @pytest.mark.parametrize("answer", ["", None])
    def test_empty_answer(self, extractor: CitationExtractor, answer: str | None) -> None:
        assert extractor.extract(answer, _candidates(2)) == ([], "")


class TestSubsetInvariant:
    def test_citations_are_subset_of_candidates(self, extractor: CitationExtractor) -> None:
        candidates = _candidates(4)

        citations, _ = extractor.extract("[4] [1] [7] [4] [2]", candidates)

        assert all(c in candidates for c in citations)
        assert [c.chunk_id for c in citations] == ["chunk-4", "chunk-1", "chunk-2"]
