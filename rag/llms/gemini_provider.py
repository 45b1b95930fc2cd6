"""Google Gemini adapter built on the google-genai SDK."""

import logging

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types

from knowledge.resilience.errors import (
    ConfigurationError,
    ProviderError,
    ProviderResponseError,
    ServiceUnavailableError,
)

from .base import DEFAULT_MAX_TOKENS, DEFAULT_TEMPERATURE, BaseAIProvider
from .types import ChatMessage, ChatOptions, ChatResult, EmbeddingResult, MessageRole, ProviderType, TokenUsage

logger = logging.getLogger(__name__)


class GeminiProvider(BaseAIProvider):
    provider_type = ProviderType.GEMINI
    provider_name = "Gemini"
    supports_embeddings = True

    DEFAULT_CHAT_MODEL = "gemini-1.5-flash"
    DEFAULT_EMBEDDING_MODEL = "text-embedding-004"
    MODELS = ["gemini-1.5-pro", "gemini-1.5-flash", "gemini-2.0-flash-exp", "text-embedding-004"]

    def __init__(
        self,
        api_key: str | None = None,
        chat_model: str | None = None,
        embedding_model: str | None = None,
        chat_timeout: float = 120.0,
        embedding_timeout: float = 30.0,
        client: genai.Client | None = None,
    ):
        self.api_key = api_key
        self.chat_model = chat_model or self.DEFAULT_CHAT_MODEL
        self.embedding_model = embedding_model or self.DEFAULT_EMBEDDING_MODEL
        self.chat_timeout = chat_timeout
        self.embedding_timeout = embedding_timeout
        self._client = client

    def available_models(self) -> list[str]:
        return list(self.MODELS)

    def _get_client(self) -> genai.Client:
        if self._client is None:
            if not self.api_key:
                raise ConfigurationError("Gemini API key not configured", provider=self.provider_type.value)
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    @staticmethod
    def _http_options(timeout_seconds: float) -> genai_types.HttpOptions:
        # google-genai timeouts are in milliseconds
        return genai_types.HttpOptions(timeout=int(timeout_seconds * 1000))

    def _translate_error(self, e: Exception, model: str, operation: str) -> ProviderError:
        provider = self.provider_type.value
        if isinstance(e, (httpx.ConnectError, httpx.TimeoutException)):
            return ServiceUnavailableError(f"Gemini is unreachable: {e}", provider=provider)
        if isinstance(e, genai_errors.APIError):
            if e.code in (401, 403) or "api key not valid" in str(e).lower():
                return ConfigurationError(f"Gemini rejected the API key: {e}", provider=provider)
            if e.code == 404:
                return ConfigurationError(f"Gemini model '{model}' not found: {e}", provider=provider)
        return ProviderResponseError(f"Gemini {operation} error: {e}", provider=provider)

    async def chat(self, messages: list[ChatMessage], options: ChatOptions | None = None) -> ChatResult:
        options = options or ChatOptions()
        client = self._get_client()
        model = options.model or self.chat_model

        system_parts = [m.content for m in messages if m.role == MessageRole.SYSTEM]
        if options.system_prompt and not system_parts:
            system_parts.append(options.system_prompt)
        contents = [
            genai_types.Content(
                role="model" if m.role == MessageRole.ASSISTANT else "user",
                parts=[genai_types.Part(text=m.content)],
            )
            for m in messages
            if m.role != MessageRole.SYSTEM
        ]

        config = genai_types.GenerateContentConfig(
            system_instruction="\n\n".join(system_parts) if system_parts else None,
            temperature=options.temperature if options.temperature is not None else DEFAULT_TEMPERATURE,
            max_output_tokens=options.max_tokens or DEFAULT_MAX_TOKENS,
            response_mime_type="application/json" if options.response_format == "json" else None,
            http_options=self._http_options(self.chat_timeout),
        )

        try:
            response = await client.aio.models.generate_content(model=model, contents=contents, config=config)
        except (genai_errors.APIError, httpx.HTTPError) as e:
            logger.error(f"Gemini chat failed: {e}")
            raise self._translate_error(e, model, "chat") from e

        usage = None
        if response.usage_metadata:
            usage = TokenUsage(
                prompt_tokens=response.usage_metadata.prompt_token_count or 0,
                completion_tokens=response.usage_metadata.candidates_token_count or 0,
                total_tokens=response.usage_metadata.total_token_count or 0,
            )
        finish_reason = None
        if response.candidates and response.candidates[0].finish_reason:
            finish_reason = str(response.candidates[0].finish_reason.value).lower()
        return ChatResult(content=response.text or "", model=model, usage=usage, finish_reason=finish_reason)

    async def embed(self, texts: list[str], model: str | None = None) -> EmbeddingResult:
        model = model or self.embedding_model
        if not texts:
            return EmbeddingResult(embeddings=[], model=model, dimensions=0)

        client = self._get_client()
        config = genai_types.EmbedContentConfig(http_options=self._http_options(self.embedding_timeout))
        try:
            response = await client.aio.models.embed_content(model=model, contents=texts, config=config)
        except (genai_errors.APIError, httpx.HTTPError) as e:
            logger.error(f"Gemini embedding failed: {e}")
            raise self._translate_error(e, model, "embedding") from e

        # Batch responses preserve request order
        embeddings = [list(e.values or []) for e in (response.embeddings or [])]
        if len(embeddings) != len(texts):
            raise ProviderResponseError(
                f"Gemini returned {len(embeddings)} embeddings for {len(texts)} inputs",
                provider=self.provider_type.value,
            )
        return EmbeddingResult(
            embeddings=embeddings,
            model=model,
            dimensions=len(embeddings[0]) if embeddings else 0,
        )
