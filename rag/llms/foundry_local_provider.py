"""Foundry Local adapter: on-device models behind an OpenAI-compatible endpoint."""

import time

import openai

from knowledge.resilience.errors import ConfigurationError, ProviderError, ServiceUnavailableError

from .openai_provider import OpenAIProvider
from .types import ConnectionTestResult, ProviderType

DEFAULT_ENDPOINT = "http://127.0.0.1:55588/v1"

SERVICE_NOT_RUNNING = (
    'Foundry Local service is not running. Please start it with "foundry service start" '
    "or install from https://github.com/microsoft/Foundry-Local"
)


class FoundryLocalProvider(OpenAIProvider):
    provider_type = ProviderType.FOUNDRY_LOCAL
    provider_name = "Foundry Local"
    supports_embeddings = True

    DEFAULT_CHAT_MODEL = "phi-3.5-mini"
    DEFAULT_EMBEDDING_MODEL = "nomic-embed-text"
    MODELS = [
        "phi-3.5-mini",
        "phi-4",
        "qwen2.5-0.5b",
        "qwen2.5-3b",
        "mistral-7b",
        "llama-3.2-3b",
        "deepseek-r1-distill-qwen-1.5b",
    ]

    def __init__(
        self,
        endpoint: str | None = None,
        chat_model: str | None = None,
        embedding_model: str | None = None,
        chat_timeout: float = 120.0,
        embedding_timeout: float = 60.0,
        client: openai.AsyncOpenAI | None = None,
    ):
        # The local service ignores the key, but the SDK requires one
        super().__init__(
            api_key="foundry-local",
            base_url=endpoint or DEFAULT_ENDPOINT,
            chat_model=chat_model,
            embedding_model=embedding_model,
            chat_timeout=chat_timeout,
            embedding_timeout=embedding_timeout,
            client=client,
        )

    def _translate_error(self, e: Exception, model: str, operation: str) -> ProviderError:
        provider = self.provider_type.value
        if isinstance(e, openai.APIConnectionError):
            return ServiceUnavailableError(SERVICE_NOT_RUNNING, provider=provider)
        message = str(e).lower()
        if isinstance(e, openai.NotFoundError) or "model not found" in message or "not loaded" in message:
            kind = "Embedding model" if operation == "embedding" else "Model"
            return ConfigurationError(
                f'{kind} "{model}" not loaded. Run "foundry model run {model}" to load it.',
                provider=provider,
            )
        return super()._translate_error(e, model, operation)

    async def loaded_models(self) -> list[str]:
        client = self._get_client()
        try:
            page = await client.models.list(timeout=10.0)
        except openai.OpenAIError as e:
            raise self._translate_error(e, "", "models") from e
        return [m.id for m in page.data if m.id]

    async def test_connection(self) -> ConnectionTestResult:
        start = time.monotonic()
        try:
            loaded = await self.loaded_models()
        except ProviderError as e:
            return ConnectionTestResult(success=False, message=str(e))
        latency_ms = (time.monotonic() - start) * 1000
        if not loaded:
            return ConnectionTestResult(
                success=False,
                message='Foundry Local service is running but no models are loaded. '
                'Run "foundry model run <model>" to load a model.',
                latency_ms=latency_ms,
            )
        return ConnectionTestResult(
            success=True,
            message=f"Connected to Foundry Local successfully. {len(loaded)} model(s) loaded.",
            latency_ms=latency_ms,
            models=loaded,
        )
