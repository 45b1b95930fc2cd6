"""
Knowledge Core
==============

Configuration, schemas, storage plumbing, security and observability shared
by the RAG services in ``rag``.
"""

__version__ = "0.1.0"
