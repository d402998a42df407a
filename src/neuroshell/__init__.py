"""
The main entrypoint for the NeuroShell core package.

This module contains the NeuroShell class, which wires together the session
manager, the client factory and the LLM dispatch service. Each part can be
injected, so alternative stores or preconfigured factories slot in without
touching the rest.
"""

import logging
from typing import Optional

from . import config, errors, llm, models
from .config import Settings, get_settings
from .credentials import resolve_api_key
from .factory import ClientFactory
from .llm import LLMClient
from .models import ASSISTANT_ROLE, USER_ROLE, ModelConfig, StructuredLLMResponse
from .service import LLMService
from .sessions import ChatSessionManager
from .store import SessionStore

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "ChatSessionManager",
    "ClientFactory",
    "LLMService",
    "NeuroShell",
    "SessionStore",
    "Settings",
    "config",
    "errors",
    "llm",
    "models",
]


class NeuroShell:
    """
    Orchestrates chat sessions and LLM calls.

    Parameters
    ----------
    store : SessionStore, optional
        Session registry. Defaults to an empty in-memory store.
    sessions : ChatSessionManager, optional
        Session manager. Defaults to one built over ``store``.
    factory : ClientFactory, optional
        Adapter cache. Defaults to a fresh factory.
    service : LLMService, optional
        Dispatch service. Defaults to a fresh, initialized service.
    settings : Settings, optional
        Defaults to ``config.get_settings()``.

    Examples
    --------
    >>> shell = NeuroShell()
    >>> session = shell.sessions.create_session("Demo")
    >>> client = shell.client_for("anthropic")
    >>> result = shell.ask(session.id, "Hello", client, ModelConfig(base_model="claude-sonnet-4-5"))
    """

    def __init__(
        self,
        store: Optional[SessionStore] = None,
        sessions: Optional[ChatSessionManager] = None,
        factory: Optional[ClientFactory] = None,
        service: Optional[LLMService] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.settings = settings or get_settings()
        if sessions is not None:
            self.sessions = sessions
        else:
            self.sessions = ChatSessionManager(
                store if store is not None else SessionStore(), settings=self.settings
            )
        self.store = self.sessions.store
        self.factory = factory or ClientFactory(settings=self.settings)
        if service is None:
            service = LLMService()
            service.initialize()
        self.service = service

    def client_for(self, provider: str, api_key: Optional[str] = None) -> LLMClient:
        if api_key is None:
            api_key = resolve_api_key(provider)
        return self.factory.get_client(provider, api_key)

    def ask(
        self,
        name_or_id: str,
        content: str,
        client: LLMClient,
        model_config: ModelConfig,
    ) -> StructuredLLMResponse:
        """Appends a user message, asks the model, and records the answer.

        The assistant message is appended only for a successful response;
        partial output from a failed one stays in the returned result.
        """
        self.sessions.add_message(name_or_id, USER_ROLE, content)
        session = self.sessions.get_by_name_or_id(name_or_id)
        result = self.service.send_structured_completion(client, session, model_config)
        if result.ok and result.text_content:
            self.sessions.add_message(session.id, ASSISTANT_ROLE, result.text_content)
        return result
