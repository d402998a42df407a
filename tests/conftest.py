"""
Core pytest configuration and fixtures for NeuroShell testing.

This module provides shared test fixtures, configuration, and utilities:
a controllable clock and id factory so session behavior is deterministic,
sample sessions, and builders for fake vendor SDK responses.
"""

import itertools
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import List

import pytest
from neuroshell.config import Settings
from neuroshell.models import (
    ASSISTANT_ROLE,
    USER_ROLE,
    ChatSession,
    Message,
    ModelConfig,
)
from neuroshell.sessions import ChatSessionManager
from neuroshell.store import SessionStore

# ===== DETERMINISM FIXTURES =====


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float = 1.0):
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def id_factory():
    """Sequential ids: id-0001, id-0002, ..."""
    counter = itertools.count(1)
    return lambda: f"id-{next(counter):04d}"


@pytest.fixture
def settings() -> Settings:
    """Settings with defaults only, ignoring any local .env file."""
    return Settings(_env_file=None)


@pytest.fixture
def store() -> SessionStore:
    return SessionStore()


@pytest.fixture
def manager(store, settings, clock, id_factory) -> ChatSessionManager:
    return ChatSessionManager(store, settings=settings, clock=clock, id_factory=id_factory)


# ===== TEST DATA FIXTURES =====


@pytest.fixture
def sample_messages() -> List[Message]:
    """Sample chat messages for testing."""
    return [
        Message(role=USER_ROLE, content="Hello, how are you?"),
        Message(role=ASSISTANT_ROLE, content="Doing well. How can I help?"),
        Message(role=USER_ROLE, content="Explain quantum computing."),
    ]


@pytest.fixture
def sample_session(sample_messages) -> ChatSession:
    return ChatSession(
        id="session-1",
        name="Research",
        system_prompt="You are a physics tutor.",
        messages=sample_messages,
    )


@pytest.fixture
def empty_session() -> ChatSession:
    """Session with no messages and no system prompt, for edge cases."""
    return ChatSession(id="empty", name="Empty", system_prompt="")


@pytest.fixture
def model_config() -> ModelConfig:
    return ModelConfig(base_model="test-model", provider="test")


# ===== VENDOR RESPONSE BUILDERS =====


def openai_completion(text, object_type="chat.completion"):
    """Minimal stand-in for an OpenAI ChatCompletion."""
    message = SimpleNamespace(content=text)
    return SimpleNamespace(
        object=object_type, choices=[SimpleNamespace(message=message)]
    )


def openai_chunk(text):
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=text))])


class FakeStream:
    """Iterable vendor stream that records whether it was closed."""

    def __init__(self, items):
        self.items = list(items)
        self.closed = False

    def __iter__(self):
        return iter(self.items)

    def close(self):
        self.closed = True


@pytest.fixture
def vendor():
    """Namespace of fake vendor response builders."""
    return SimpleNamespace(
        openai_completion=openai_completion,
        openai_chunk=openai_chunk,
        stream=FakeStream,
    )


# ===== CONFIGURATION =====


def pytest_configure(config):
    """Pytest configuration."""
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
    config.addinivalue_line("markers", "slow: marks tests as slow-running")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on location."""
    for item in items:
        if "integration" in str(item.path):
            item.add_marker(pytest.mark.integration)
