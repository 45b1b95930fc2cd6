"""Provider selection.

The system settings describe a default provider. A tenant may bring its own
configuration through a ``TenantConfigSource``; when it has none, the system
default applies. Provider construction is an exhaustive dispatch over
``ProviderType``.
"""

import logging
from dataclasses import dataclass, field
from typing import Protocol

from knowledge.config import Settings
from knowledge.resilience.errors import ConfigurationError

from .anthropic_provider import AnthropicProvider
from .base import BaseAIProvider
from .foundry_local_provider import DEFAULT_ENDPOINT, FoundryLocalProvider
from .gemini_provider import GeminiProvider
from .mock_provider import MockProvider
from .openai_provider import OpenAIProvider
from .types import EmbeddingResult, ProviderCredentials, ProviderType

logger = logging.getLogger(__name__)


@dataclass
class TenantAiConfig:
    """AI configuration for one tenant (or the system default)."""

    provider: ProviderType
    openai: ProviderCredentials = field(default_factory=ProviderCredentials)
    gemini: ProviderCredentials = field(default_factory=ProviderCredentials)
    anthropic: ProviderCredentials = field(default_factory=ProviderCredentials)
    foundry_local: ProviderCredentials = field(default_factory=ProviderCredentials)
    # Where a tenant on Anthropic sends its embeddings
    anthropic_embedding_provider: ProviderType = ProviderType.FOUNDRY_LOCAL
    anthropic_embedding_api_key: str | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "TenantAiConfig":
        embedding_fallback = parse_provider_type(
            settings.ANTHROPIC_EMBEDDING_PROVIDER
            or (ProviderType.OPENAI.value if settings.OPENAI_API_KEY else ProviderType.FOUNDRY_LOCAL.value)
        )
        return cls(
            provider=parse_provider_type(settings.AI_PROVIDER),
            openai=ProviderCredentials(
                api_key=settings.OPENAI_API_KEY,
                base_url=settings.OPENAI_BASE_URL,
                chat_model=settings.OPENAI_CHAT_MODEL,
                embedding_model=settings.OPENAI_EMBEDDING_MODEL,
            ),
            gemini=ProviderCredentials(
                api_key=settings.GEMINI_API_KEY,
                chat_model=settings.GEMINI_CHAT_MODEL,
                embedding_model=settings.GEMINI_EMBEDDING_MODEL,
            ),
            anthropic=ProviderCredentials(
                api_key=settings.ANTHROPIC_API_KEY,
                chat_model=settings.ANTHROPIC_CHAT_MODEL,
            ),
            foundry_local=ProviderCredentials(
                base_url=settings.FOUNDRY_LOCAL_ENDPOINT,
                chat_model=settings.FOUNDRY_LOCAL_MODEL,
                embedding_model=settings.FOUNDRY_LOCAL_EMBEDDING_MODEL,
            ),
            anthropic_embedding_provider=embedding_fallback,
            anthropic_embedding_api_key=settings.OPENAI_API_KEY,
        )


class TenantConfigSource(Protocol):
    """Looks up a tenant's own AI configuration; None means use the system default."""

    async def get_ai_config(self, tenant_id: str) -> TenantAiConfig | None: ...


def parse_provider_type(value: str | ProviderType) -> ProviderType:
    try:
        return ProviderType(value.lower() if isinstance(value, str) else value)
    except ValueError:
        raise ConfigurationError(f"Unknown AI provider: {value}") from None


class ProviderFactory:
    """Builds (and caches) provider adapters for tenants."""

    def __init__(self, settings: Settings, config_source: TenantConfigSource | None = None):
        self.settings = settings
        self.config_source = config_source
        self.system_config = TenantAiConfig.from_settings(settings)
        self._cache: dict[tuple, BaseAIProvider] = {}

    async def resolve_config(self, tenant_id: str | None) -> TenantAiConfig:
        if tenant_id and self.config_source is not None:
            tenant_config = await self.config_source.get_ai_config(tenant_id)
            if tenant_config is not None:
                return tenant_config
        return self.system_config

    def create(self, provider_type: ProviderType, config: TenantAiConfig) -> BaseAIProvider:
        """Construct the adapter for provider_type using config's credentials."""
        s = self.settings
        match provider_type:
            case ProviderType.OPENAI:
                creds = config.openai
                provider_cls = OpenAIProvider
                kwargs = {
                    "api_key": creds.api_key,
                    "base_url": creds.base_url,
                    "chat_model": creds.chat_model,
                    "embedding_model": creds.embedding_model,
                    "chat_timeout": s.CLOUD_CHAT_TIMEOUT,
                    "embedding_timeout": s.CLOUD_EMBEDDING_TIMEOUT,
                }
            case ProviderType.GEMINI:
                creds = config.gemini
                provider_cls = GeminiProvider
                kwargs = {
                    "api_key": creds.api_key,
                    "chat_model": creds.chat_model,
                    "embedding_model": creds.embedding_model,
                    "chat_timeout": s.CLOUD_CHAT_TIMEOUT,
                    "embedding_timeout": s.CLOUD_EMBEDDING_TIMEOUT,
                }
            case ProviderType.ANTHROPIC:
                creds = config.anthropic
                provider_cls = AnthropicProvider
                kwargs = {
                    "api_key": creds.api_key,
                    "chat_model": creds.chat_model,
                    "chat_timeout": min(s.CLOUD_CHAT_TIMEOUT, 60.0),
                }
            case ProviderType.FOUNDRY_LOCAL:
                creds = config.foundry_local
                provider_cls = FoundryLocalProvider
                kwargs = {
                    "endpoint": creds.base_url or DEFAULT_ENDPOINT,
                    "chat_model": creds.chat_model,
                    "embedding_model": creds.embedding_model,
                    "chat_timeout": s.LOCAL_CHAT_TIMEOUT,
                    "embedding_timeout": s.LOCAL_EMBEDDING_TIMEOUT,
                }
            case ProviderType.MOCK:
                provider_cls = MockProvider
                kwargs = {"dimensions": s.EMBEDDING_DIMENSIONS}
            case _:
                raise ConfigurationError(f"Unknown AI provider: {provider_type}")

        key = (provider_type, tuple(sorted(kwargs.items())))
        if key not in self._cache:
            self._cache[key] = provider_cls(**kwargs)
        return self._cache[key]

    async def get_chat_provider(self, tenant_id: str | None = None) -> BaseAIProvider:
        config = await self.resolve_config(tenant_id)
        return self.create(config.provider, config)

    async def get_embedding_provider(self, tenant_id: str | None = None) -> BaseAIProvider:
        config = await self.resolve_config(tenant_id)
        if config.provider != ProviderType.ANTHROPIC:
            return self.create(config.provider, config)

        alternative = config.anthropic_embedding_provider
        if alternative == ProviderType.OPENAI:
            if not config.anthropic_embedding_api_key:
                raise ConfigurationError(
                    "OpenAI API key for embeddings not configured. Anthropic does not support embeddings.",
                    provider=ProviderType.ANTHROPIC.value,
                )
            embedding_config = TenantAiConfig(
                provider=ProviderType.OPENAI,
                openai=ProviderCredentials(
                    api_key=config.anthropic_embedding_api_key,
                    base_url=config.openai.base_url,
                    embedding_model=config.openai.embedding_model,
                ),
            )
            return self.create(ProviderType.OPENAI, embedding_config)
        if alternative == ProviderType.ANTHROPIC:
            raise ConfigurationError("Anthropic cannot be its own embedding provider", provider="anthropic")
        logger.debug(f"Tenant on Anthropic embeds via {alternative.value}")
        return self.create(alternative, config)

    async def embed(self, texts: list[str], tenant_id: str | None = None) -> EmbeddingResult:
        provider = await self.get_embedding_provider(tenant_id)
        return await provider.embed(texts)
