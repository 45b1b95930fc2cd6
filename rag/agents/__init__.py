from .agentic_rag import AgenticAnswer, AgenticRagService, dedupe_results, format_source, parse_plan

__all__ = ["AgenticAnswer", "AgenticRagService", "dedupe_results", "format_source", "parse_plan"]
