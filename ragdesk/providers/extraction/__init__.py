"""Per-format text extractors (PDF, plain text, Markdown, DOCX)."""
