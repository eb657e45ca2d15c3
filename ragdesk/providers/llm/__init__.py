"""Answer generator (LLM) adapters."""
