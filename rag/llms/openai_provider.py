"""OpenAI adapter built on the official async SDK."""

import logging
import time

import openai

from knowledge.resilience.errors import (
    ConfigurationError,
    ProviderError,
    ProviderResponseError,
    ServiceUnavailableError,
)

from .base import DEFAULT_MAX_TOKENS, DEFAULT_TEMPERATURE, BaseAIProvider
from .types import (
    ChatMessage,
    ChatOptions,
    ChatResult,
    EmbeddingResult,
    MessageRole,
    ProviderType,
    TokenUsage,
)

logger = logging.getLogger(__name__)


class OpenAIProvider(BaseAIProvider):
    """Chat and embeddings via the OpenAI API (or any OpenAI-compatible endpoint)."""

    provider_type = ProviderType.OPENAI
    provider_name = "OpenAI"
    supports_embeddings = True

    DEFAULT_CHAT_MODEL = "gpt-4o-mini"
    DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"
    MODELS = ["gpt-4o", "gpt-4o-mini", "gpt-4-turbo", "text-embedding-3-small", "text-embedding-3-large"]

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        chat_model: str | None = None,
        embedding_model: str | None = None,
        chat_timeout: float = 120.0,
        embedding_timeout: float = 30.0,
        client: openai.AsyncOpenAI | None = None,
    ):
        self.api_key = api_key
        self.base_url = base_url
        self.chat_model = chat_model or self.DEFAULT_CHAT_MODEL
        self.embedding_model = embedding_model or self.DEFAULT_EMBEDDING_MODEL
        self.chat_timeout = chat_timeout
        self.embedding_timeout = embedding_timeout
        self._client = client

    def available_models(self) -> list[str]:
        return list(self.MODELS)

    def _get_client(self) -> openai.AsyncOpenAI:
        if self._client is None:
            if not self.api_key:
                raise ConfigurationError(f"{self.provider_name} API key not configured", provider=self.provider_type.value)
            # No SDK-level retries: callers decide what to do with a failure
            self._client = openai.AsyncOpenAI(api_key=self.api_key, base_url=self.base_url, max_retries=0)
        return self._client

    def _translate_error(self, e: Exception, model: str, operation: str) -> ProviderError:
        provider = self.provider_type.value
        if isinstance(e, openai.APIConnectionError):
            # Includes APITimeoutError
            return ServiceUnavailableError(f"{self.provider_name} is unreachable: {e}", provider=provider)
        if isinstance(e, (openai.AuthenticationError, openai.PermissionDeniedError)):
            return ConfigurationError(f"{self.provider_name} rejected the API key: {e}", provider=provider)
        if isinstance(e, openai.NotFoundError):
            return ConfigurationError(f"{self.provider_name} model '{model}' not found: {e}", provider=provider)
        return ProviderResponseError(f"{self.provider_name} {operation} error: {e}", provider=provider)

    def _build_request_messages(self, messages: list[ChatMessage], options: ChatOptions) -> list[dict[str, str]]:
        request_messages = [m.to_dict() for m in messages]
        has_system = any(m.role == MessageRole.SYSTEM for m in messages)
        if options.system_prompt and not has_system:
            request_messages.insert(0, {"role": "system", "content": options.system_prompt})
        return request_messages

    async def chat(self, messages: list[ChatMessage], options: ChatOptions | None = None) -> ChatResult:
        options = options or ChatOptions()
        client = self._get_client()
        model = options.model or self.chat_model

        request_params = {
            "model": model,
            "messages": self._build_request_messages(messages, options),
            "temperature": options.temperature if options.temperature is not None else DEFAULT_TEMPERATURE,
            "max_tokens": options.max_tokens or DEFAULT_MAX_TOKENS,
            "timeout": self.chat_timeout,
        }
        if options.response_format == "json":
            request_params["response_format"] = {"type": "json_object"}

        start_time = time.monotonic()
        try:
            response = await client.chat.completions.create(**request_params)
        except openai.OpenAIError as e:
            logger.error(f"{self.provider_name} chat failed: {e}")
            raise self._translate_error(e, model, "chat") from e

        logger.debug(f"{self.provider_name} chat completed in {(time.monotonic() - start_time) * 1000:.0f}ms")

        choice = response.choices[0] if response.choices else None
        usage = None
        if response.usage:
            usage = TokenUsage(
                prompt_tokens=response.usage.prompt_tokens,
                completion_tokens=response.usage.completion_tokens,
                total_tokens=response.usage.total_tokens,
            )
        return ChatResult(
            content=(choice.message.content if choice else None) or "",
            model=response.model or model,
            usage=usage,
            finish_reason=choice.finish_reason if choice else None,
        )

    async def embed(self, texts: list[str], model: str | None = None) -> EmbeddingResult:
        model = model or self.embedding_model
        if not texts:
            return EmbeddingResult(embeddings=[], model=model, dimensions=0)

        client = self._get_client()
        try:
            response = await client.embeddings.create(model=model, input=texts, timeout=self.embedding_timeout)
        except openai.OpenAIError as e:
            logger.error(f"{self.provider_name} embedding failed: {e}")
            raise self._translate_error(e, model, "embedding") from e

        embeddings = [item.embedding for item in sorted(response.data, key=lambda item: item.index)]
        usage = None
        if response.usage:
            usage = TokenUsage(prompt_tokens=response.usage.prompt_tokens, total_tokens=response.usage.total_tokens)
        return EmbeddingResult(
            embeddings=embeddings,
            model=response.model or model,
            dimensions=len(embeddings[0]) if embeddings else 0,
            usage=usage,
        )
