"""Dispatch of chat completions to an injected provider adapter."""

import logging
from typing import Callable, Optional

from .errors import (
    ClientNotConfiguredError,
    ClientNotProvidedError,
    ServiceNotInitializedError,
)
from .llm import LLMClient
from .models import (
    CLIENT_ERROR,
    SERVICE_ERROR,
    ChatSession,
    LLMError,
    ModelConfig,
    StructuredLLMResponse,
)
from .streaming import ChunkStream

logger = logging.getLogger(__name__)


class LLMService:
    """Checks the dispatch preconditions and forwards to the adapter.

    The service holds no provider logic; the adapter does all the work.
    """

    def __init__(self):
        self.initialized = False

    def initialize(self):
        self.initialized = True
        logger.debug("LLM service initialized")

    def _check(self, client: Optional[LLMClient]) -> LLMClient:
        if not self.initialized:
            raise ServiceNotInitializedError("LLM service not initialized")
        if client is None:
            raise ClientNotProvidedError("LLM client cannot be None")
        if not client.is_configured():
            raise ClientNotConfiguredError(
                f"LLM client for {client.get_provider_name()} is not configured"
            )
        return client

    def send_chat_completion(
        self, client: Optional[LLMClient], session: ChatSession, model_config: ModelConfig
    ) -> str:
        return self._check(client).send_chat_completion(session, model_config)

    def stream_chat_completion(
        self, client: Optional[LLMClient], session: ChatSession, model_config: ModelConfig
    ) -> ChunkStream:
        return self._check(client).stream_chat_completion(session, model_config)

    def send_structured_completion(
        self, client: Optional[LLMClient], session: ChatSession, model_config: ModelConfig
    ) -> StructuredLLMResponse:
        """Like ``send_chat_completion`` but never raises."""
        metadata = {"model": model_config.base_model}
        if client is not None:
            metadata["provider"] = client.get_provider_name()
        try:
            self._check(client)
        except ServiceNotInitializedError as e:
            error = LLMError(code="service_not_initialized", message=str(e), type=SERVICE_ERROR)
        except ClientNotProvidedError as e:
            error = LLMError(code="client_not_provided", message=str(e), type=CLIENT_ERROR)
        except ClientNotConfiguredError as e:
            error = LLMError(code="client_not_configured", message=str(e), type=CLIENT_ERROR)
        else:
            return client.send_structured_completion(session, model_config)
        return StructuredLLMResponse(error=error, metadata=metadata)

    def send_with_callback(
        self,
        client: Optional[LLMClient],
        session: ChatSession,
        model_config: ModelConfig,
        on_chunk: Callable[[str], None],
    ) -> str:
        """Streams a completion, calling ``on_chunk`` for each piece of text.

        Returns the full text, or raises the error that ended the stream.
        """
        parts = []
        with self.stream_chat_completion(client, session, model_config) as stream:
            for chunk in stream:
                if chunk.error is not None:
                    raise chunk.error
                if chunk.content:
                    on_chunk(chunk.content)
                    parts.append(chunk.content)
        return "".join(parts)
