"""
Defines the core Pydantic data models for NeuroShell.

These models are the data contract between the session manager, the client
factory, the dispatch service and the provider adapters. Sessions serialize
with camelCase field names so exported files stay compatible with other
NeuroShell tools.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

# --- Constants ---
USER_ROLE = "user"
ASSISTANT_ROLE = "assistant"
SYSTEM_ROLE = "system"
Role = Literal[USER_ROLE, ASSISTANT_ROLE, SYSTEM_ROLE]

THINKING = "thinking"
REDACTED_THINKING = "redacted_thinking"
REASONING = "reasoning"
ThinkingType = Literal[THINKING, REDACTED_THINKING, REASONING]

API_ERROR = "api_error"
CLIENT_ERROR = "client_error"
SERVICE_ERROR = "service_error"
RESPONSE_ERROR = "response_error"
INITIALIZATION_ERROR = "initialization_error"
ErrorType = Literal[
    API_ERROR, CLIENT_ERROR, SERVICE_ERROR, RESPONSE_ERROR, INITIALIZATION_ERROR
]


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# --- Models ---
class Message(BaseModel):
    """A single message within a chat session."""

    model_config = ConfigDict(populate_by_name=True)

    role: Role
    content: str
    id: str = Field(default_factory=_new_id)
    timestamp: datetime = Field(default_factory=_utcnow)


class ChatSession(BaseModel):
    """A conversation with its system prompt and ordered message history."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=_new_id)
    name: str
    system_prompt: str = Field(default="", alias="systemPrompt")
    messages: List[Message] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow, alias="createdAt")
    updated_at: datetime = Field(default_factory=_utcnow, alias="updatedAt")
    is_active: bool = Field(default=False, alias="isActive")

    def to_json(self, indent: int = 2) -> str:
        return self.model_dump_json(by_alias=True, indent=indent)


class ModelConfig(BaseModel):
    """Model selection and generation parameters handed to an adapter."""

    base_model: str
    provider: str = ""
    catalog_id: str = ""
    description: str = ""
    parameters: Dict[str, Any] = Field(default_factory=dict)


class ThinkingBlock(BaseModel):
    """Reasoning content returned separately from the answer text."""

    content: str
    provider: str
    type: ThinkingType = THINKING


class LLMError(BaseModel):
    code: str
    message: str
    type: ErrorType


class StructuredLLMResponse(BaseModel):
    """Outcome of a structured completion.

    Failures are carried in ``error`` rather than raised, so partial output
    (thinking blocks, text received before the failure) is never lost.
    """

    text_content: str = ""
    thinking_blocks: List[ThinkingBlock] = Field(default_factory=list)
    error: Optional[LLMError] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.error is None


class StreamChunk(BaseModel):
    """One unit of a streamed completion. ``done`` marks the terminal chunk."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    content: str = ""
    done: bool = False
    error: Optional[Exception] = None
