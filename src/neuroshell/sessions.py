"""Chat session lifecycle: naming, lookup, activation, copy and persistence."""

import json
import logging
import os
import uuid
import warnings
from datetime import datetime, timezone
from typing import Callable, List, Optional

from pydantic import ValidationError

from .config import Settings, get_settings
from .errors import (
    AmbiguousSessionError,
    InvalidSessionNameError,
    SessionNameInUseError,
    SessionNotFoundError,
    SessionPersistenceError,
    SessionRenamedWarning,
)
from .models import USER_ROLE, ChatSession, Message
from .store import SessionStore

logger = logging.getLogger(__name__)


class ChatSessionManager:
    """Owns every mutation of chat sessions held in a ``SessionStore``.

    The manager guarantees that at most one session is active, that names are
    unique, and that message histories only grow. It does no locking of its
    own; callers serialize mutations.

    Parameters
    ----------
    store : SessionStore, optional
        Where sessions live. Defaults to a fresh, empty store.
    settings : Settings, optional
        Naming bounds and the default system prompt.
    clock : callable, optional
        Returns the current time. Defaults to UTC ``datetime.now``.
    id_factory : callable, optional
        Returns a new unique id for sessions and messages. Defaults to uuid4.
    """

    def __init__(
        self,
        store: Optional[SessionStore] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ):
        self.store = store if store is not None else SessionStore()
        self.settings = settings or get_settings()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._new_id = id_factory or (lambda: str(uuid.uuid4()))

    # --- Naming ---
    def validate_name(self, raw: str) -> str:
        """Normalizes a user-supplied session name or raises InvalidSessionNameError.

        Surrounding whitespace and one matching pair of quotes are removed.
        """
        name = (raw or "").strip()
        if len(name) >= 2 and name[0] == name[-1] and name[0] in ("'", '"'):
            name = name[1:-1].strip()
        if not name:
            raise InvalidSessionNameError("session name cannot be empty")
        limit = self.settings.max_session_name_length
        if len(name) > limit:
            raise InvalidSessionNameError(
                f"session name too long ({len(name)} characters, maximum {limit})"
            )
        for ch in name:
            if ord(ch) < 32 or ord(ch) == 127:
                raise InvalidSessionNameError(
                    "session name cannot contain control characters"
                )
        return name

    def is_reserved(self, name: str) -> bool:
        return name.lower() in {r.lower() for r in self.settings.reserved_session_names}

    def is_name_available(self, name: str) -> bool:
        return not self.store.has_name(name)

    def _unique_name(self, name: str) -> str:
        if self.is_name_available(name) and not self.is_reserved(name):
            return name
        for version in range(1, self.settings.max_version_attempts + 1):
            candidate = f"{name}:v{version}"
            if self.is_name_available(candidate):
                return candidate
        return f"{name}:v{int(self._clock().timestamp())}"

    def generate_default_name(self) -> str:
        for base in self.settings.default_name_bases:
            for index in range(1, self.settings.max_default_name_index + 1):
                candidate = f"{base} {index}"
                if self.is_name_available(candidate):
                    return candidate
        return f"Session {int(self._clock().timestamp())}"

    # --- Creation ---
    def create_session(
        self, name: str, system_prompt: str = "", initial_message: str = ""
    ) -> ChatSession:
        """Creates a session and makes it the active one.

        A name that is taken or reserved is auto-versioned (``name:v1`` and so
        on) and a SessionRenamedWarning is issued.
        """
        requested = self.validate_name(name)
        final_name = self._unique_name(requested)
        if final_name != requested:
            message = f"Session name '{requested}' conflicts, created as '{final_name}'"
            logger.warning(message)
            warnings.warn(message, SessionRenamedWarning, stacklevel=2)

        now = self._clock()
        session = ChatSession(
            id=self._new_id(),
            name=final_name,
            system_prompt=system_prompt or self.settings.default_system_prompt,
            created_at=now,
            updated_at=now,
            is_active=True,
        )
        if initial_message:
            session.messages.append(
                Message(
                    id=self._new_id(),
                    role=USER_ROLE,
                    content=initial_message,
                    timestamp=now,
                )
            )

        self._deactivate_current()
        self.store.add(session)
        self.store.active_id = session.id
        logger.info(f"Created session '{session.name}' ({session.id})")
        return session

    # --- Lookup ---
    def get_by_id(self, session_id: str) -> ChatSession:
        session = self.store.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"session with ID '{session_id}' not found")
        return session

    def get_by_name(self, name: str) -> ChatSession:
        session_id = self.store.id_for_name(name)
        if session_id is None:
            raise SessionNotFoundError(f"session with name '{name}' not found")
        return self.store.get(session_id)

    def get_by_name_or_id(self, name_or_id: str) -> ChatSession:
        session_id = self.store.id_for_name(name_or_id)
        if session_id is not None:
            return self.store.get(session_id)
        session = self.store.get(name_or_id)
        if session is not None:
            return session
        raise SessionNotFoundError(
            f"session '{name_or_id}' not found (tried both name and ID)"
        )

    def find_by_prefix(self, identifier: str) -> ChatSession:
        """Resolves by exact name, then exact id, then case-insensitive name prefix."""
        if not identifier:
            raise InvalidSessionNameError("session identifier cannot be empty")

        session_id = self.store.id_for_name(identifier)
        if session_id is not None:
            return self.store.get(session_id)
        session = self.store.get(identifier)
        if session is not None:
            return session

        matches = self.sessions_with_prefix(identifier)
        if not matches:
            raise SessionNotFoundError(
                f"no session found for '{identifier}' "
                "(tried exact name, exact ID, prefix match)"
            )
        if len(matches) > 1:
            raise AmbiguousSessionError(identifier, [s.name for s in matches])
        return matches[0]

    def sessions_with_prefix(self, prefix: str) -> List[ChatSession]:
        lowered = prefix.lower()
        return [s for s in self.store.sessions() if s.name.lower().startswith(lowered)]

    def get_active_session(self) -> ChatSession:
        if self.store.active_id is None:
            raise SessionNotFoundError("no active session")
        return self.get_by_id(self.store.active_id)

    def list_sessions(self) -> List[ChatSession]:
        return self.store.sessions()

    def session_names(self) -> List[str]:
        return self.store.names()

    def has_sessions(self) -> bool:
        return len(self.store) > 0

    def message_count(self, name_or_id: str) -> int:
        return len(self.get_by_name_or_id(name_or_id).messages)

    # --- Mutation ---
    def _deactivate_current(self):
        if self.store.active_id is None:
            return
        current = self.store.get(self.store.active_id)
        if current is not None:
            current.is_active = False
        self.store.active_id = None

    def _activate(self, session: ChatSession):
        if self.store.active_id != session.id:
            self._deactivate_current()
        session.is_active = True
        self.store.active_id = session.id

    def set_active(self, name_or_id: str) -> ChatSession:
        session = self.get_by_name_or_id(name_or_id)
        self._activate(session)
        logger.info(f"Activated session '{session.name}'")
        return session

    def add_message(self, name_or_id: str, role: str, content: str) -> Message:
        """Appends a message and makes its session the active one."""
        session = self.get_by_name_or_id(name_or_id)
        now = self._clock()
        message = Message(id=self._new_id(), role=role, content=content, timestamp=now)
        session.messages.append(message)
        session.updated_at = now
        self._activate(session)
        logger.debug(f"Appended {role} message to session '{session.name}'")
        return message

    def delete_session(self, name_or_id: str) -> ChatSession:
        session = self.get_by_name_or_id(name_or_id)
        self.store.remove(session.id)
        session.is_active = False
        logger.info(f"Deleted session '{session.name}' ({session.id})")
        return session

    def rename_session(self, name_or_id: str, new_name: str) -> ChatSession:
        session = self.get_by_name_or_id(name_or_id)
        name = self.validate_name(new_name)
        if name == session.name:
            return session
        if not self.is_name_available(name):
            raise SessionNameInUseError(f"session name '{name}' is already in use")
        old_name = session.name
        self.store.rename(session.id, name)
        session.updated_at = self._clock()
        logger.info(f"Renamed session '{old_name}' to '{name}'")
        return session

    def copy_session(self, source_identifier: str, target_name: str = "") -> ChatSession:
        """Duplicates a session's prompt and messages under a new id.

        Message ids are regenerated; roles, contents and timestamps are kept.
        The copy is not activated.
        """
        source = self.find_by_prefix(source_identifier)
        if target_name:
            name = self.validate_name(target_name)
            if not self.is_name_available(name):
                raise SessionNameInUseError(
                    f"target session name '{name}' is already in use"
                )
        else:
            name = self.generate_default_name()

        now = self._clock()
        copy = ChatSession(
            id=self._new_id(),
            name=name,
            system_prompt=source.system_prompt,
            messages=[
                Message(
                    id=self._new_id(),
                    role=m.role,
                    content=m.content,
                    timestamp=m.timestamp,
                )
                for m in source.messages
            ],
            created_at=now,
            updated_at=now,
            is_active=False,
        )
        self.store.add(copy)
        logger.info(f"Copied session '{source.name}' to '{copy.name}'")
        return copy

    # --- Persistence ---
    def export_to_json(self, session_id: str, path) -> None:
        session = self.get_by_id(session_id)
        try:
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(session.to_json())
            os.chmod(path, 0o600)
        except OSError as e:
            raise SessionPersistenceError(
                f"failed to write session to '{path}': {e}"
            ) from e
        logger.info(f"Exported session '{session.name}' to {path}")

    def import_from_json(self, path) -> ChatSession:
        """Loads an exported session under a new id and default name, and activates it."""
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("top-level JSON value must be an object")
            messages = [Message.model_validate(m) for m in data.get("messages") or []]
            system_prompt = data.get("systemPrompt") or ""
        except (OSError, ValueError, ValidationError) as e:
            raise SessionPersistenceError(
                f"failed to import session from '{path}': {e}"
            ) from e

        now = self._clock()
        session = ChatSession(
            id=self._new_id(),
            name=self.generate_default_name(),
            system_prompt=system_prompt,
            messages=messages,
            created_at=now,
            updated_at=now,
            is_active=True,
        )
        self._deactivate_current()
        self.store.add(session)
        self.store.active_id = session.id
        logger.info(f"Imported session from {path} as '{session.name}'")
        return session
