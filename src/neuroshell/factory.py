"""Thread-safe creation and caching of provider adapters."""

import hashlib
import logging
import threading
from typing import Callable, Dict, Mapping, Optional, Tuple

from .config import Settings, get_settings
from .credentials import resolve_api_key
from .errors import (
    ClientNotFoundError,
    InvalidClientRequestError,
    UnsupportedProviderError,
)
from .llm import (
    MOONSHOT_BASE_URL,
    OPENROUTER_BASE_URL,
    OPENROUTER_HEADERS,
    AnthropicClient,
    GeminiClient,
    LLMClient,
    OpenAICompatibleClient,
    OpenAIReasoningClient,
)

logger = logging.getLogger(__name__)


def _builders() -> Dict[str, Callable[[str, Settings], LLMClient]]:
    return {
        "openai": lambda key, s: OpenAIReasoningClient(key, settings=s),
        "openrouter": lambda key, s: OpenAICompatibleClient(
            "openrouter", key, OPENROUTER_BASE_URL, OPENROUTER_HEADERS, settings=s
        ),
        "moonshot": lambda key, s: OpenAICompatibleClient(
            "moonshot", key, MOONSHOT_BASE_URL, settings=s
        ),
        "anthropic": lambda key, s: AnthropicClient(key, settings=s),
        "gemini": lambda key, s: GeminiClient(key, settings=s),
    }


SUPPORTED_PROVIDERS = tuple(_builders())


def client_id_for(provider: str, api_key: str) -> str:
    """Display id ``provider:<8 hex chars>``. Not a security measure."""
    digest = hashlib.sha256(api_key.encode("utf-8")).hexdigest()[:8]
    return f"{provider}:{digest}"


class ClientFactory:
    """Hands out one adapter per (provider, credential) pair.

    Cache hits are plain dict reads. A miss re-checks the cache under the
    lock and builds the adapter there, so each key is constructed once.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._builders = _builders()
        self._clients: Dict[str, LLMClient] = {}
        self._ids: Dict[str, str] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _cache_key(provider: str, api_key: str) -> str:
        return f"{provider}\x00{api_key}"

    def _validate(self, provider: str, api_key: str):
        if not provider:
            raise InvalidClientRequestError("provider cannot be empty")
        if not api_key:
            raise InvalidClientRequestError(
                f"API key cannot be empty for provider '{provider}'"
            )
        if provider not in self._builders:
            raise UnsupportedProviderError(provider, SUPPORTED_PROVIDERS)

    def get_client(self, provider: str, api_key: str) -> LLMClient:
        return self.get_client_with_id(provider, api_key)[0]

    def get_client_with_id(self, provider: str, api_key: str) -> Tuple[LLMClient, str]:
        self._validate(provider, api_key)
        key = self._cache_key(provider, api_key)
        client_id = client_id_for(provider, api_key)

        client = self._clients.get(key)
        if client is not None:
            return client, client_id

        with self._lock:
            client = self._clients.get(key)
            if client is None:
                client = self._builders[provider](api_key, self.settings)
                self._clients[key] = client
                self._ids[client_id] = key
                logger.info(f"Created {provider} client {client_id}")
        return client, client_id

    def get_client_by_id(self, client_id: str) -> LLMClient:
        provider, sep, digest = (client_id or "").partition(":")
        if not sep or not provider or not digest:
            raise InvalidClientRequestError(
                f"invalid client ID format '{client_id}', expected 'provider:hash'"
            )
        with self._lock:
            key = self._ids.get(client_id)
            client = self._clients.get(key) if key is not None else None
        if client is None:
            raise ClientNotFoundError(f"client with ID '{client_id}' not found in cache")
        return client

    def get_client_for_environment(
        self, provider: str, environ: Optional[Mapping[str, str]] = None
    ) -> LLMClient:
        """Like ``get_client``, reading the credential from the environment."""
        return self.get_client(provider, resolve_api_key(provider, environ))

    def clear_cache(self):
        with self._lock:
            self._clients.clear()
            self._ids.clear()

    def cached_client_count(self) -> int:
        with self._lock:
            return len(self._clients)
