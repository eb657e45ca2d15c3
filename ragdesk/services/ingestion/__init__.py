"""Ingestion: format dispatch, text extraction and chunking."""
