"""
RAG Services
============

Providers, ingestion, retrieval and agentic answering built on ``knowledge``.
"""
