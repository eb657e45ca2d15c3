"""Abstract interfaces for every collaborator ragdesk consumes.

Business logic in ``ragdesk.services`` and ``ragdesk.pipeline`` depends only
on these ABCs.  Concrete adapters live in ``ragdesk.providers`` and are wired
together once in ``ragdesk.main.build_application``; tests inject fakes.

CONCRETE PROVIDER MAP:
    Interface              →  Concrete implementations (in ragdesk/providers/)
    ─────────────────────────────────────────────────────────────────────
    ITextExtractor         →  PdfTextExtractor, PlainTextExtractor,
                              MarkdownTextExtractor, DocxTextExtractor
    IEmbeddingProvider     →  OpenAIEmbeddingProvider, OllamaEmbeddingProvider
    ILLMProvider           →  AnthropicLLMProvider, OpenAILLMProvider,
                              OllamaLLMProvider
    IVectorIndex           →  ChromaDBVectorIndex
    IDocumentRepository    →  SQLiteDocumentRepository
    IMessageStore          →  SQLiteMessageStore
    IChunkStore            →  MirroredChunkStore (services layer; composes
                              IDocumentRepository + IVectorIndex)
"""
