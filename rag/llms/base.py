"""Base class for AI provider adapters.

Every adapter exposes the same two contracts, ``chat`` and ``embed``, and
translates its SDK's exceptions into the knowledge error taxonomy:

- missing/invalid credentials -> ConfigurationError
- connection refused / unreachable / timeout -> ServiceUnavailableError
- anything else the provider reports -> ProviderResponseError
"""

import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Any

from knowledge.resilience.errors import ProviderError

from .types import (
    ChatMessage,
    ChatOptions,
    ChatResult,
    ConnectionTestResult,
    EmbeddingResult,
    MessageRole,
    ProviderType,
)

logger = logging.getLogger(__name__)

DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 1000


class BaseAIProvider(ABC):
    """Uniform interface over chat-completion and embedding providers."""

    provider_type: ProviderType
    provider_name: str = "provider"
    supports_embeddings: bool = True

    @abstractmethod
    async def chat(self, messages: list[ChatMessage], options: ChatOptions | None = None) -> ChatResult:
        """Run a chat completion."""

    @abstractmethod
    async def embed(self, texts: list[str], model: str | None = None) -> EmbeddingResult:
        """Embed texts; vectors are returned in input order."""

    def available_models(self) -> list[str]:
        return []

    async def complete(self, prompt: str, options: ChatOptions | None = None) -> str:
        """Single-turn completion returning just the text."""
        options = options or ChatOptions()
        messages = self.build_messages(prompt, options.system_prompt)
        result = await self.chat(messages, options)
        return result.content

    async def test_connection(self) -> ConnectionTestResult:
        start = time.monotonic()
        try:
            await self.chat(
                [ChatMessage(MessageRole.USER, "Reply with OK.")],
                ChatOptions(max_tokens=5, temperature=0),
            )
        except ProviderError as e:
            return ConnectionTestResult(success=False, message=str(e))
        latency_ms = (time.monotonic() - start) * 1000
        return ConnectionTestResult(
            success=True,
            message=f"Connected to {self.provider_name}",
            latency_ms=latency_ms,
            models=self.available_models(),
        )

    @staticmethod
    def build_messages(prompt: str, system_prompt: str | None = None) -> list[ChatMessage]:
        messages = []
        if system_prompt:
            messages.append(ChatMessage(MessageRole.SYSTEM, system_prompt))
        messages.append(ChatMessage(MessageRole.USER, prompt))
        return messages


def extract_json(text: str, fallback: Any = None, kind: str = "object") -> Any:
    """Pull a JSON object (kind="object") or array (kind="array") out of model text.

    Models wrap JSON in prose or code fences, so the payload is taken from the
    first opening bracket to the last closing one. Returns ``fallback`` when
    nothing parses or the parsed value has the wrong shape.
    """
    if not text:
        return fallback

    open_char, close_char, expected = ("[", "]", list) if kind == "array" else ("{", "}", dict)

    start = text.find(open_char)
    end = text.rfind(close_char)
    candidate = text[start:end + 1] if start >= 0 and end > start else text.strip()

    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError:
        logger.warning("Failed to parse JSON response, using fallback")
        return fallback

    if not isinstance(parsed, expected):
        logger.warning(f"Expected JSON {kind}, got {type(parsed).__name__}; using fallback")
        return fallback
    return parsed
