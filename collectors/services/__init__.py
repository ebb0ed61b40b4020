"""Service layer: LLM access, chat persistence, summaries and CSV."""
