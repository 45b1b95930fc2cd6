"""
Resilience Module
=================

Error taxonomy and fallback chains.
"""

from .errors import (
    BackendError,
    ConfigurationError,
    EmbeddingsNotSupportedError,
    FallbackSignal,
    KnowledgeError,
    ParseError,
    ProviderError,
    ProviderResponseError,
    ServiceUnavailableError,
    wrap_errors,
)
from .fallback import run_fallback_chain

__all__ = [
    "BackendError",
    "ConfigurationError",
    "EmbeddingsNotSupportedError",
    "FallbackSignal",
    "KnowledgeError",
    "ParseError",
    "ProviderError",
    "ProviderResponseError",
    "ServiceUnavailableError",
    "run_fallback_chain",
    "wrap_errors",
]
