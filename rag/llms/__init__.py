"""
AI Providers
============

Completion and embedding adapters behind one interface, plus the factory
that picks one per tenant.
"""

from .anthropic_provider import AnthropicProvider
from .base import BaseAIProvider, extract_json
from .factory import ProviderFactory, TenantAiConfig, TenantConfigSource, parse_provider_type
from .foundry_local_provider import FoundryLocalProvider
from .gemini_provider import GeminiProvider
from .mock_provider import MockProvider, hash_embedding
from .openai_provider import OpenAIProvider
from .types import (
    ChatMessage,
    ChatOptions,
    ChatResult,
    ConnectionTestResult,
    EmbeddingResult,
    MessageRole,
    ProviderCredentials,
    ProviderType,
    TokenUsage,
)

__all__ = [
    "AnthropicProvider",
    "BaseAIProvider",
    "ChatMessage",
    "ChatOptions",
    "ChatResult",
    "ConnectionTestResult",
    "EmbeddingResult",
    "FoundryLocalProvider",
    "GeminiProvider",
    "MessageRole",
    "MockProvider",
    "OpenAIProvider",
    "ProviderCredentials",
    "ProviderFactory",
    "ProviderType",
    "TenantAiConfig",
    "TenantConfigSource",
    "TokenUsage",
    "extract_json",
    "hash_embedding",
    "parse_provider_type",
]
