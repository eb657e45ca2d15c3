"""ragdesk composition root.

Builds every provider and service from one :class:`Settings` instance and
returns the :class:`KnowledgeBase` facade.  Nothing else in the package
constructs providers or reads settings on its own.

    settings = load_settings()
    configure_logging(settings.log_level, settings.app_env == "production")
    kb = build_application(settings)
    await kb.start()
"""

from __future__ import annotations

import structlog
import tiktoken

from ragdesk.config.settings import Settings
from ragdesk.interfaces.embedding_provider import IEmbeddingProvider
from ragdesk.interfaces.llm_provider import ILLMProvider
from ragdesk.interfaces.vector_index import IVectorIndex
from ragdesk.pipeline.processing_pipeline import ProcessingPipeline
from ragdesk.pipeline.task_queue import TaskQueue
from ragdesk.providers.embedding.ollama_embedding_provider import OllamaEmbeddingProvider
from ragdesk.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from ragdesk.providers.llm.anthropic_provider import AnthropicLLMProvider
from ragdesk.providers.llm.ollama_provider import OllamaLLMProvider
from ragdesk.providers.llm.openai_provider import OpenAILLMProvider
from ragdesk.providers.storage.sqlite_document_repository import SQLiteDocumentRepository
from ragdesk.providers.storage.sqlite_message_store import SQLiteMessageStore
from ragdesk.services.chunk_store import MirroredChunkStore
from ragdesk.services.ingestion.chunker import TextChunker
from ragdesk.services.ingestion.text_extraction import TextExtractionService
from ragdesk.services.knowledge_base import KnowledgeBase
from ragdesk.services.rag.answer_generator import AnswerGenerator
from ragdesk.services.rag.citation_extractor import CitationExtractor
from ragdesk.services.rag.prompt_builder import PromptBuilder
from ragdesk.services.rag.retriever import ChunkRetriever
from ragdesk.utils.errors import ConfigurationError

logger = structlog.get_logger(logger_name=__name__)


# ---------------------------------------------------------------------------
# Provider selection
# ---------------------------------------------------------------------------


def _build_llm_provider(settings: Settings) -> ILLMProvider:
    """Select the first available generator.

    Priority order: Anthropic -> OpenAI -> Ollama (if reachable).
    """
    factories = {
        "anthropic": AnthropicLLMProvider,
        "openai": OpenAILLMProvider,
        "ollama": OllamaLLMProvider,
    }
    for name in settings.get_available_llm_providers():
        provider = factories[name](settings=settings)
        if provider.is_available():
            logger.info("llm_provider_selected", provider=provider.get_provider_name())
            return provider

    raise ConfigurationError(
        message="No answer generator available: set ANTHROPIC_API_KEY, OPENAI_API_KEY, "
        "or run Ollama at OLLAMA_BASE_URL",
    )


def _build_embedding_provider(settings: Settings) -> IEmbeddingProvider:
    """Select the first available embedding provider.

    Priority: OpenAI (if API key set) -> Ollama (if reachable).
    """
    candidates: list[IEmbeddingProvider] = []
    if settings.openai_api_key:
        candidates.append(OpenAIEmbeddingProvider(settings=settings))
    if settings.ollama_base_url:
        candidates.append(OllamaEmbeddingProvider(settings=settings))

    for provider in candidates:
        if provider.is_available():
            logger.info(
                "embedding_provider_selected",
                provider=provider.get_provider_name(),
                dimension=provider.get_dimension(),
            )
            return provider

    raise ConfigurationError(
        message="No embedding provider available: set OPENAI_API_KEY or run Ollama at OLLAMA_BASE_URL",
    )


def _build_vector_index(settings: Settings) -> IVectorIndex:
    # Imported lazily so chromadb's import-time work happens only when used.
    from ragdesk.providers.vector_index.chromadb_index import ChromaDBVectorIndex

    return ChromaDBVectorIndex(
        persist_directory=settings.chromadb_persist_dir,
        collection_name=settings.chromadb_collection,
    )


# ---------------------------------------------------------------------------
# Assembly
# ---------------------------------------------------------------------------


def build_application(
    settings: Settings,
    embedding_provider: IEmbeddingProvider | None = None,
    llm: ILLMProvider | None = None,
    vector_index: IVectorIndex | None = None,
) -> KnowledgeBase:
    """Wire every component from *settings* and return the facade.

    Parameters
    ----------
    settings:
        The process-wide settings.
    embedding_provider, llm, vector_index:
        Pre-built replacements for the configured providers.  When omitted
        they are chosen from *settings* via the fallback chains above.

    Raises
    ------
    ConfigurationError
        If no embedding provider or no generator is available.
    """
    embedding_provider = embedding_provider or _build_embedding_provider(settings)
    llm = llm or _build_llm_provider(settings)
    vector_index = vector_index or _build_vector_index(settings)

    repository = SQLiteDocumentRepository(db_path=settings.database_path)
    message_store = SQLiteMessageStore(db_path=settings.database_path)
    chunk_store = MirroredChunkStore(repository=repository, index=vector_index)
    extraction_service = TextExtractionService()

    chunker = TextChunker(
        chunk_size=settings.chunk_size,
        overlap=settings.chunk_overlap,
        encoding=tiktoken.get_encoding(settings.tokenizer_encoding),
    )
    pipeline = ProcessingPipeline(
        repository=repository,
        extraction_service=extraction_service,
        chunker=chunker,
        embedding_provider=embedding_provider,
        chunk_store=chunk_store,
        embedding_batch_size=settings.embedding_batch_size,
        embedding_dimension=settings.embedding_dimension,
    )

    retriever = ChunkRetriever(
        embedding_provider=embedding_provider,
        chunk_store=chunk_store,
        repository=repository,
        distance_threshold=settings.retrieval_distance_threshold,
    )
    answer_generator = AnswerGenerator(
        retriever=retriever,
        prompt_builder=PromptBuilder(),
        citation_extractor=CitationExtractor(),
        llm=llm,
        repository=repository,
        retrieval_limit=settings.retrieval_limit,
    )

    logger.info(
        "application_built",
        llm=llm.get_provider_name(),
        embedding=embedding_provider.get_provider_name(),
        vector_index=vector_index.get_provider_name(),
        database=settings.database_path,
    )
    return KnowledgeBase(
        repository=repository,
        message_store=message_store,
        chunk_store=chunk_store,
        extraction_service=extraction_service,
        pipeline=pipeline,
        answer_generator=answer_generator,
        task_queue=TaskQueue(concurrency=settings.worker_concurrency),
        processing_max_attempts=settings.processing_max_attempts,
        processing_retry_backoff_s=settings.processing_retry_backoff_s,
    )
