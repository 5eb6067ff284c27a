"""Session, action and conversation storage behind a small async interface."""
import copy
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol

from tabpilot.core.types import Action, ActionStatus


class EntryType(str, Enum):
    USER = "user"
    AGENT = "agent"
    SYSTEM = "system"


@dataclass
class Session:
    session_id: str
    context: Dict[str, Any] = field(default_factory=lambda: {"messages": []})
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)


@dataclass
class ConversationEntry:
    id: int
    session_id: str
    type: EntryType
    content: str
    action_keys: List[int] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.now)


class Storage(Protocol):
    """Persistence collaborator. Implementations serialise updates per session id."""

    async def get_session(self, session_id: str) -> Optional[Session]: ...

    async def create_session(self, session_id: Optional[str] = None) -> Session: ...

    async def get_or_create_session(self, session_id: Optional[str] = None) -> Session: ...

    async def update_session_context(self, session_id: str, context: Dict[str, Any]) -> Optional[Session]: ...

    async def create_action(self, action: Action) -> Action: ...

    async def update_action_status(
        self, key: int, status: ActionStatus, error: Optional[str] = None
    ) -> Optional[Action]: ...

    async def get_actions(self, keys: List[int]) -> List[Action]: ...

    async def create_conversation(
        self, session_id: str, type: EntryType, content: str, action_keys: Optional[List[int]] = None
    ) -> ConversationEntry: ...

    async def get_conversations(self, session_id: str) -> List[ConversationEntry]: ...


class MemoryStorage:
    """In-process storage; actions get serial integer keys."""

    def __init__(self):
        self._sessions: Dict[str, Session] = {}
        self._actions: Dict[int, Action] = {}
        self._conversations: List[ConversationEntry] = []
        self._next_action_key = 1

    async def get_session(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    async def create_session(self, session_id: Optional[str] = None) -> Session:
        session = Session(session_id=session_id or str(uuid.uuid4()))
        self._sessions[session.session_id] = session
        return session

    async def get_or_create_session(self, session_id: Optional[str] = None) -> Session:
        if session_id:
            existing = await self.get_session(session_id)
            if existing is not None:
                return existing
        return await self.create_session(session_id)

    async def update_session_context(self, session_id: str, context: Dict[str, Any]) -> Optional[Session]:
        session = self._sessions.get(session_id)
        if session is None:
            return None
        session.context = copy.deepcopy(context)
        session.updated_at = datetime.now()
        return session

    async def create_action(self, action: Action) -> Action:
        action.key = self._next_action_key
        self._next_action_key += 1
        self._actions[action.key] = copy.copy(action)
        return action

    async def update_action_status(
        self, key: int, status: ActionStatus, error: Optional[str] = None
    ) -> Optional[Action]:
        stored = self._actions.get(key)
        if stored is None:
            return None
        stored.status = status
        if error:
            stored.error = error
        return copy.copy(stored)

    async def get_actions(self, keys: List[int]) -> List[Action]:
        return [copy.copy(self._actions[k]) for k in keys if k in self._actions]

    async def create_conversation(
        self, session_id: str, type: EntryType, content: str, action_keys: Optional[List[int]] = None
    ) -> ConversationEntry:
        entry = ConversationEntry(
            id=len(self._conversations) + 1,
            session_id=session_id,
            type=EntryType(type),
            content=content,
            action_keys=list(action_keys or []),
        )
        self._conversations.append(entry)
        return entry

    async def get_conversations(self, session_id: str) -> List[ConversationEntry]:
        return [c for c in self._conversations if c.session_id == session_id]
