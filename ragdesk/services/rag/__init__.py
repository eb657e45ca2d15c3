"""Query-time services: retrieval, prompt assembly, citations, answering."""
