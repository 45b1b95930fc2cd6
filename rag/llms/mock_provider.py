"""Deterministic offline provider for development and tests."""

import hashlib
from collections import deque

import numpy as np

from .base import BaseAIProvider
from .types import ChatMessage, ChatOptions, ChatResult, EmbeddingResult, MessageRole, ProviderType, TokenUsage


def hash_embedding(text: str, dimensions: int) -> list[float]:
    """Unit-length pseudo-embedding derived from a SHA-256 of the text."""
    hash_bytes = hashlib.sha256(text.encode()).digest()
    idx = np.arange(dimensions)
    raw = (np.frombuffer(hash_bytes, dtype=np.uint8)[idx % len(hash_bytes)] + idx) % 256 / 255.0
    vector = raw * 2 - 1
    norm = np.linalg.norm(vector)
    if norm > 0:
        vector = vector / norm
    return vector.tolist()


class MockProvider(BaseAIProvider):
    """Returns scripted chat replies in order, then a fixed echo reply."""

    provider_type = ProviderType.MOCK
    provider_name = "Mock"
    supports_embeddings = True

    def __init__(
        self,
        dimensions: int = 1536,
        responses: list[str] | None = None,
        model: str = "mock-model",
        history: int = 50,
    ):
        self.dimensions = dimensions
        self.model = model
        self._responses = deque(responses or [])
        # Most recent chat calls only; one instance lives for the whole process
        self.calls: deque[list[ChatMessage]] = deque(maxlen=history)

    def available_models(self) -> list[str]:
        return [self.model]

    async def chat(self, messages: list[ChatMessage], options: ChatOptions | None = None) -> ChatResult:
        self.calls.append(list(messages))
        if self._responses:
            content = self._responses.popleft()
        else:
            last_user = next((m.content for m in reversed(messages) if m.role == MessageRole.USER), "")
            content = f"Mock response to: {last_user[:80]}"
        return ChatResult(content=content, model=self.model, usage=TokenUsage(), finish_reason="stop")

    async def embed(self, texts: list[str], model: str | None = None) -> EmbeddingResult:
        embeddings = [hash_embedding(text, self.dimensions) for text in texts]
        return EmbeddingResult(embeddings=embeddings, model=model or self.model, dimensions=self.dimensions)
