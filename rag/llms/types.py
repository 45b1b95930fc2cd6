"""Shared request/response types for completion and embedding providers."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ProviderType(str, Enum):
    """Supported AI providers."""

    OPENAI = "openai"
    GEMINI = "gemini"
    ANTHROPIC = "anthropic"
    FOUNDRY_LOCAL = "foundry_local"
    MOCK = "mock"


class MessageRole(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class ChatMessage:
    role: MessageRole
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}


@dataclass
class ChatOptions:
    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    system_prompt: str | None = None
    # "text" or "json"
    response_format: str = "text"


@dataclass
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass
class ChatResult:
    content: str
    model: str
    usage: TokenUsage | None = None
    finish_reason: str | None = None


@dataclass
class EmbeddingResult:
    embeddings: list[list[float]]
    model: str
    dimensions: int
    usage: TokenUsage | None = None


@dataclass
class ConnectionTestResult:
    success: bool
    message: str
    latency_ms: float | None = None
    models: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "latency_ms": self.latency_ms,
            "models": self.models,
        }


@dataclass
class ProviderCredentials:
    """Credentials and model choices for one provider, system-wide or per tenant."""

    api_key: str | None = None
    base_url: str | None = None
    chat_model: str | None = None
    embedding_model: str | None = None
