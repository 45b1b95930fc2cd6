"""Error taxonomy for the knowledge service.

Provider adapters translate SDK exceptions into these types so callers can
tell a misconfiguration (fix the credentials) from a transient outage (try
again later) without knowing which SDK raised.
"""

import functools


class KnowledgeError(Exception):
    """Base exception for the knowledge layer."""

    pass


class ProviderError(KnowledgeError):
    """Base for embedding/completion provider failures."""

    retryable = False

    def __init__(self, message: str, provider: str | None = None):
        super().__init__(message)
        self.provider = provider


class ConfigurationError(ProviderError):
    """Missing or invalid credentials, unknown provider or model."""

    pass


class EmbeddingsNotSupportedError(ConfigurationError):
    """The selected provider has no embeddings endpoint."""

    pass


class ServiceUnavailableError(ProviderError):
    """Connection refused, host unreachable or request timed out."""

    retryable = True


class ProviderResponseError(ProviderError):
    """The provider answered, but with an error or an unusable payload."""

    pass


class ParseError(KnowledgeError):
    """Structured model output could not be parsed."""

    pass


class BackendError(KnowledgeError):
    """Knowledge store operation error."""

    pass


class FallbackSignal(KnowledgeError):
    """Raised by a strategy to hand over to the next one in a chain."""

    pass


def wrap_errors(error_class=KnowledgeError, logger=None):
    """Decorator converting unexpected exceptions from a coroutine into error_class.

    KnowledgeError subclasses pass through untouched.
    """

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except KnowledgeError:
                raise
            except Exception as e:
                if logger:
                    logger.error(f"Error in {func.__name__}: {e}")
                raise error_class(str(e)) from e

        return wrapper

    return decorator
