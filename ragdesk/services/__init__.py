"""Business logic: ingestion, retrieval-augmented answering, and the facade."""
