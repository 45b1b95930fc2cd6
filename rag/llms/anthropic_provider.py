"""Anthropic adapter. Chat only: Anthropic has no embeddings endpoint."""

import logging

import anthropic

from knowledge.resilience.errors import (
    ConfigurationError,
    EmbeddingsNotSupportedError,
    ProviderError,
    ProviderResponseError,
    ServiceUnavailableError,
)

from .base import DEFAULT_MAX_TOKENS, DEFAULT_TEMPERATURE, BaseAIProvider
from .types import ChatMessage, ChatOptions, ChatResult, EmbeddingResult, MessageRole, ProviderType, TokenUsage

logger = logging.getLogger(__name__)

EMBEDDINGS_UNSUPPORTED = "Anthropic does not support embeddings. Use OpenAI or Foundry Local for RAG embeddings."


class AnthropicProvider(BaseAIProvider):
    provider_type = ProviderType.ANTHROPIC
    provider_name = "Anthropic"
    supports_embeddings = False

    DEFAULT_CHAT_MODEL = "claude-3-5-haiku-20241022"
    MODELS = ["claude-sonnet-4-20250514", "claude-opus-4-20250514", "claude-3-5-haiku-20241022"]

    def __init__(
        self,
        api_key: str | None = None,
        chat_model: str | None = None,
        chat_timeout: float = 60.0,
        client: anthropic.AsyncAnthropic | None = None,
    ):
        self.api_key = api_key
        self.chat_model = chat_model or self.DEFAULT_CHAT_MODEL
        self.chat_timeout = chat_timeout
        self._client = client

    def available_models(self) -> list[str]:
        return list(self.MODELS)

    def _get_client(self) -> anthropic.AsyncAnthropic:
        if self._client is None:
            if not self.api_key:
                raise ConfigurationError("Anthropic API key not configured", provider=self.provider_type.value)
            self._client = anthropic.AsyncAnthropic(api_key=self.api_key, max_retries=0)
        return self._client

    def _translate_error(self, e: Exception, model: str) -> ProviderError:
        provider = self.provider_type.value
        if isinstance(e, anthropic.APIConnectionError):
            return ServiceUnavailableError(f"Anthropic is unreachable: {e}", provider=provider)
        if isinstance(e, (anthropic.AuthenticationError, anthropic.PermissionDeniedError)):
            return ConfigurationError(f"Anthropic rejected the API key: {e}", provider=provider)
        if isinstance(e, anthropic.NotFoundError):
            return ConfigurationError(f"Anthropic model '{model}' not found: {e}", provider=provider)
        return ProviderResponseError(f"Anthropic API error: {e}", provider=provider)

    async def chat(self, messages: list[ChatMessage], options: ChatOptions | None = None) -> ChatResult:
        options = options or ChatOptions()
        client = self._get_client()
        model = options.model or self.chat_model

        # System text travels outside the message list
        system_parts = [m.content for m in messages if m.role == MessageRole.SYSTEM]
        if options.system_prompt and not system_parts:
            system_parts.append(options.system_prompt)
        api_messages = [m.to_dict() for m in messages if m.role != MessageRole.SYSTEM]

        request_params = {
            "model": model,
            "messages": api_messages,
            "max_tokens": options.max_tokens or DEFAULT_MAX_TOKENS,
            "temperature": options.temperature if options.temperature is not None else DEFAULT_TEMPERATURE,
            "timeout": self.chat_timeout,
        }
        if system_parts:
            request_params["system"] = "\n\n".join(system_parts)

        try:
            response = await client.messages.create(**request_params)
        except anthropic.AnthropicError as e:
            logger.error(f"Anthropic chat failed: {e}")
            raise self._translate_error(e, model) from e

        text = "".join(block.text for block in response.content if getattr(block, "type", None) == "text")
        usage = None
        if response.usage:
            usage = TokenUsage(
                prompt_tokens=response.usage.input_tokens,
                completion_tokens=response.usage.output_tokens,
                total_tokens=response.usage.input_tokens + response.usage.output_tokens,
            )
        return ChatResult(content=text, model=response.model or model, usage=usage, finish_reason=response.stop_reason)

    async def embed(self, texts: list[str], model: str | None = None) -> EmbeddingResult:
        raise EmbeddingsNotSupportedError(EMBEDDINGS_UNSUPPORTED, provider=self.provider_type.value)
