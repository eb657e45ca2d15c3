"""Grounding prompt assembly.

:class:`PromptBuilder` turns a question plus ranked chunks into the single
prompt sent to the generator.  There are two templates:

- **Context prompt**: chunks numbered ``[1]..[N]`` in the order supplied
  (already distance-ranked), each headed by its document title and a
  two-decimal relevance, followed by strict grounding instructions.
- **No-context prompt**: used when there are no chunks.  It asks the
  generator to say the documents do not cover the question and contains
  no numbered scaffold, so there is nothing to cite.

The numbering here is what :class:`CitationExtractor` later resolves, so
both must be handed the same chunk list in the same order.
"""

from __future__ import annotations

from ragdesk.models.rag import RetrievedChunk

_CONTEXT_SEPARATOR = "\n\n---\n\n"


class PromptBuilder:
    """Builds generator prompts from a question and its retrieved chunks."""

    _NO_CONTEXT_TEMPLATE = (
        "You are a helpful assistant. The user has asked a question, but no "
        "relevant documents were found to answer it.\n"
        "\n"
        "Question: {question}\n"
        "\n"
        "Let the user know that you don't have enough information in the "
        "provided documents to answer their question. Do not answer from "
        "general knowledge and do not include any citation markers."
    )

    _CONTEXT_TEMPLATE = (
        "You are a helpful assistant answering questions using only the "
        "numbered document excerpts below.\n"
        "\n"
        "Context from documents:\n"
        "{context}\n"
        "\n"
        "Question: {question}\n"
        "\n"
        "CRITICAL INSTRUCTIONS:\n"
        "- Answer ONLY from the numbered context above. Do not use outside knowledge.\n"
        "- Cite every excerpt you rely on with its bracketed number, e.g. [1] or [2].\n"
        "- Cite only excerpts you actually used, and never cite a number that is not listed above.\n"
        "- If the context does not fully answer the question, say exactly what is "
        "missing instead of guessing.\n"
        "- If the context does not address the question at all, say that you don't "
        "have enough information to answer it.\n"
        "- Be direct and factual.\n"
        "\n"
        "Answer:"
    )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def build(self, question: str, ranked_chunks: list[RetrievedChunk]) -> str:
        """Return the prompt for *question* grounded in *ranked_chunks*.

        Parameters
        ----------
        question:
            The user's question, inserted verbatim.
        ranked_chunks:
            Chunks in citation order.  Entry *i* (0-based) becomes ``[i+1]``.
        """
        question = question.strip()
        if not ranked_chunks:
            return self._NO_CONTEXT_TEMPLATE.format(question=question)
        return self._CONTEXT_TEMPLATE.format(
            context=self.format_context(ranked_chunks),
            question=question,
        )

    def format_context(self, ranked_chunks: list[RetrievedChunk]) -> str:
        """Render the numbered excerpts block."""
        return _CONTEXT_SEPARATOR.join(
            self._format_entry(number, rc) for number, rc in enumerate(ranked_chunks, start=1)
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _format_entry(number: int, retrieved: RetrievedChunk) -> str:
        title = retrieved.document.title or "Unknown Document"
        header = f"[{number}] {title} (relevance: {retrieved.relevance:.2f})"
        return f"{header}\n{retrieved.content.strip()}"
