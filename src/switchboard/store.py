"""
In-memory stores owned by the client and injected into the components.

Nothing here enforces merge rules; the registry and reconciler do. The
stores only keep the maps and the indexes those rules need.
"""

import itertools
from typing import Iterator, Optional

from switchboard.models.conversation import Conversation, Message
from switchboard.models.session import Session


class SessionStore:
    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self.active_session_id: Optional[str] = None
        self.selected_conversation: Optional[tuple[str, str]] = None

    def get(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    def put(self, session: Session) -> None:
        self._sessions[session.id] = session

    def pop(self, session_id: str) -> Optional[Session]:
        return self._sessions.pop(session_id, None)

    def all(self) -> list[Session]:
        return list(self._sessions.values())

    def ordered(self) -> list[Session]:
        """Most recent activity first; sessions without messages keep registration order."""
        return sorted(self._sessions.values(), key=lambda s: -(s.last_message_time or 0))

    def is_selected(self, session_id: str, conversation_id: str) -> bool:
        return self.selected_conversation == (session_id, conversation_id)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def __iter__(self) -> Iterator[Session]:
        return iter(list(self._sessions.values()))


class ConversationThread:
    """A conversation plus its append-only message list."""

    __slots__ = ("conversation", "messages", "index", "seq", "load_token", "arrived_during_load")

    def __init__(self, conversation: Conversation, seq: int):
        self.conversation = conversation
        self.messages: list[Message] = []
        self.index: dict[str, Message] = {}
        self.seq = seq
        self.load_token: Optional[object] = None
        self.arrived_during_load: list[Message] = []

    def __contains__(self, message_id: object) -> bool:
        return message_id in self.index

    def __repr__(self) -> str:
        c = self.conversation
        return f"ConversationThread(session_id={c.session_id!r}, id={c.id!r}, messages={len(self.messages)})"


class ConversationStore:
    def __init__(self) -> None:
        self._threads: dict[str, dict[str, ConversationThread]] = {}
        self._messages: dict[str, dict[str, Message]] = {}
        self._seq = itertools.count(1)

    def next_seq(self) -> int:
        return next(self._seq)

    def get(self, session_id: str, conversation_id: str) -> Optional[ConversationThread]:
        return self._threads.get(session_id, {}).get(conversation_id)

    def add(self, conversation: Conversation) -> ConversationThread:
        thread = ConversationThread(conversation, self.next_seq())
        self._threads.setdefault(conversation.session_id, {})[conversation.id] = thread
        return thread

    def threads(self, session_id: str) -> list[ConversationThread]:
        return list(self._threads.get(session_id, {}).values())

    def ordered(self, session_id: str) -> list[ConversationThread]:
        """Newest last message first; ties go to the most recently touched thread."""
        return sorted(
            self.threads(session_id),
            key=lambda t: (-t.conversation.last_message_timestamp, -t.seq),
        )

    def find_message(self, session_id: str, message_id: str) -> Optional[Message]:
        return self._messages.get(session_id, {}).get(message_id)

    def index_message(self, message: Message) -> None:
        self._messages.setdefault(message.session_id, {})[message.id] = message

    def unindex_message(self, session_id: str, message_id: str) -> None:
        self._messages.get(session_id, {}).pop(message_id, None)

    def drop_session(self, session_id: str) -> int:
        dropped = len(self._threads.pop(session_id, {}))
        self._messages.pop(session_id, None)
        return dropped

    def sessions(self) -> list[str]:
        return list(self._threads)
