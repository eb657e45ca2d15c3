"""Question answering over the indexed corpus.

# ─── ANSWER FLOW ──────────────────────────────────────────────────────
#
#   question + QueryFilters
#        │
#        ▼
#   ChunkRetriever.retrieve ──► [] ──► canned empty-context answer
#        │                              (generator is not called)
#        ▼
#   candidates = [rc.to_citation() for rc in ranked]      (built once)
#        │
#        ├──► PromptBuilder.build(question, ranked)        [1]..[N]
#        │
#        ▼
#   ILLMProvider.generate ──► GenerationError ──► apology, no citations
#        │
#        ▼
#   CitationExtractor.extract(answer, candidates)
#        │
#        ▼
#   AnswerResult
#
# The candidate list is built from the same ranked list the prompt was
# numbered from and is never re-queried, so a marker [n] always resolves
# to the excerpt that carried n in the prompt.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import structlog

from ragdesk.interfaces.document_repository import IDocumentRepository
from ragdesk.interfaces.llm_provider import ILLMProvider
from ragdesk.models.document import DocumentStatus
from ragdesk.models.rag import (
    AnswerResult,
    EmptyContext,
    EmptyContextType,
    QueryFilters,
)
from ragdesk.services.rag.citation_extractor import CitationExtractor
from ragdesk.services.rag.prompt_builder import PromptBuilder
from ragdesk.services.rag.retriever import DEFAULT_LIMIT, ChunkRetriever
from ragdesk.utils.errors import GenerationError

logger = structlog.get_logger(logger_name=__name__)

GENERATION_ERROR_MESSAGE = (
    "I'm sorry, I encountered an error while trying to answer your question. "
    "Please try again."
)

_EMPTY_CONTEXT_MESSAGES: dict[EmptyContextType, str] = {
    EmptyContextType.NO_DOCUMENTS: (
        "No documents have been uploaded yet. Upload a document and ask again "
        "once it has finished processing."
    ),
    EmptyContextType.NO_RECENT_DOCUMENTS: (
        "No documents found in the selected date range. Try expanding your "
        "search to include older documents."
    ),
    EmptyContextType.NO_RELEVANT_CHUNKS: (
        "I don't have enough information in your documents to answer that "
        "question. Try rephrasing it or uploading a document that covers the topic."
    ),
}


class AnswerGenerator:
    """Retrieves context, asks the generator, and resolves its citations.

    Parameters
    ----------
    retriever:
        Similarity search with post-filters.
    prompt_builder:
        Numbers the retrieved chunks into the grounding prompt.
    citation_extractor:
        Maps ``[n]`` markers in the answer back to candidates.
    llm:
        The answer generator.
    repository:
        Used only to classify an empty retrieval.
    retrieval_limit:
        Maximum number of chunks placed in the prompt.
    model:
        Generator model override; ``None`` uses the provider default.
    """

    def __init__(
        self,
        retriever: ChunkRetriever,
        prompt_builder: PromptBuilder,
        citation_extractor: CitationExtractor,
        llm: ILLMProvider,
        repository: IDocumentRepository,
        retrieval_limit: int = DEFAULT_LIMIT,
        model: str | None = None,
    ) -> None:
        self._retriever = retriever
        self._prompt_builder = prompt_builder
        self._citation_extractor = citation_extractor
        self._llm = llm
        self._repository = repository
        self._retrieval_limit = retrieval_limit
        self._model = model or None

    async def generate(self, question: str, filters: QueryFilters | None = None) -> AnswerResult:
        """Answer *question* from the corpus.

        Never raises for a generator failure: a :class:`GenerationError`
        becomes the apology answer with ``citations == []`` and the
        diagnostic in ``AnswerResult.error``.
        """
        filters = filters or QueryFilters()

        ranked = await self._retriever.retrieve(
            question,
            limit=self._retrieval_limit,
            document_ids=filters.document_ids,
            created_after=filters.created_after,
        )
        if not ranked:
            return await self._empty_context_answer(filters)

        candidates = [rc.to_citation() for rc in ranked]
        prompt = self._prompt_builder.build(question, ranked)
        model = self._model or self._llm.get_default_model()

        try:
            raw_answer = await self._llm.generate(prompt, model=model)
        except GenerationError as exc:
            logger.error(
                "answer_generation_failed",
                provider=self._llm.get_provider_name(),
                model=model,
                error=str(exc),
            )
            return AnswerResult(
                answer=GENERATION_ERROR_MESSAGE,
                citations=[],
                model=model,
                error=str(exc),
            )

        citations, answer = self._citation_extractor.extract(raw_answer, candidates)
        logger.info(
            "answer_generated",
            provider=self._llm.get_provider_name(),
            model=model,
            context_chunks=len(ranked),
            citations=len(citations),
        )
        return AnswerResult(answer=answer, citations=citations, model=model)

    async def _empty_context_answer(self, filters: QueryFilters) -> AnswerResult:
        """Explain why there was nothing to ground on."""
        completed = await self._repository.count_documents(status=DocumentStatus.COMPLETED)
        if completed == 0:
            kind = EmptyContextType.NO_DOCUMENTS
        elif filters.created_after is not None and (
            await self._repository.count_documents(
                status=DocumentStatus.COMPLETED,
                created_after=filters.created_after,
            )
            == 0
        ):
            kind = EmptyContextType.NO_RECENT_DOCUMENTS
        else:
            kind = EmptyContextType.NO_RELEVANT_CHUNKS

        logger.info("answer_empty_context", empty_context=kind.value)
        return AnswerResult(
            answer=_EMPTY_CONTEXT_MESSAGES[kind],
            citations=[],
            empty_context=EmptyContext(type=kind),
        )
