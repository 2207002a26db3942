"""
Conversation reconciler — per-session, per-conversation message state.

Two inputs feed it: snapshot fetches (list-messages, on conversation open)
and push events (message_received / message_ack, at any time, for any
conversation). Merging is keyed on message id, so a message seen in both
a snapshot and a push is stored once no matter which arrives first.

Unread rule: a merged message bumps the conversation and session counters
only if it is not from self and its conversation is not the selected one.
Selecting a conversation is the only thing that zeroes its counter.
"""

import logging
from typing import Any, Callable, Optional

from switchboard.models.conversation import Conversation, DeliveryState, Message
from switchboard.models.events import (
    MessageAcked,
    MessageReceived,
    WireMessage,
    flatten_id,
)
from switchboard.models.session import Session, SessionState
from switchboard.router import EventRouter
from switchboard.registry import SessionRegistry
from switchboard.sessions import SessionsAPI
from switchboard.store import ConversationStore, ConversationThread, SessionStore

GROUP_SUFFIX = "@g.us"

logger = logging.getLogger(__name__)


def resolve_display_name(*candidates: Optional[str], default: str = "") -> str:
    """First non-blank candidate, in order. Callers pass name, pushname, number, raw id."""
    for candidate in candidates:
        if candidate and str(candidate).strip():
            return str(candidate).strip()
    return default


class MergeResult:
    __slots__ = ("message", "conversation", "added", "unread_bumped", "wire")

    def __init__(self, message: Message, conversation: Conversation, added: bool,
                 unread_bumped: bool = False, wire: Optional[WireMessage] = None):
        self.message = message
        self.conversation = conversation
        self.added = added
        self.unread_bumped = unread_bumped
        self.wire = wire

    def __repr__(self) -> str:
        return f"MergeResult(message_id={self.message.id!r}, added={self.added})"


NewMessageListener = Callable[[MergeResult], None]


class ConversationReconciler:
    def __init__(
        self,
        sessions: SessionStore,
        conversations: ConversationStore,
        api: SessionsAPI,
        registry: SessionRegistry,
    ):
        self._sessions = sessions
        self._registry = registry
        self._store = conversations
        self._api = api
        self._listeners: list[NewMessageListener] = []

    def register(self, router: EventRouter) -> None:
        router.register(MessageReceived, self._on_message)
        router.register(MessageAcked, self._on_ack)
        self._registry.add_listener(self._on_session_change)

    def _on_session_change(self, session: Session, previous: Optional[SessionState]) -> None:
        if session.state is SessionState.LOGGED_OUT:
            self.drop_session(session.id)

    def add_new_message_listener(self, listener: NewMessageListener) -> Callable[[], None]:
        """Called once per message actually appended by a push event."""
        self._listeners.append(listener)

        def remove() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass
        return remove

    # --- views -----------------------------------------------------------

    def conversations(self, session_id: str) -> list[Conversation]:
        return [t.conversation for t in self._store.ordered(session_id)]

    def conversation(self, session_id: str, conversation_id: str) -> Optional[Conversation]:
        thread = self._store.get(session_id, conversation_id)
        return thread.conversation if thread else None

    def messages(self, session_id: str, conversation_id: str) -> list[Message]:
        thread = self._store.get(session_id, conversation_id)
        return list(thread.messages) if thread else []

    # --- push ------------------------------------------------------------

    def _on_message(self, event: MessageReceived) -> None:
        self.merge_push(event.session_id, event.message)

    def _on_ack(self, event: MessageAcked) -> None:
        self.apply_delivery_state(event.session_id, event.message_id, event.ack)

    def merge_push(self, session_id: str, wire: WireMessage) -> MergeResult:
        conversation_id = wire.chat_id or ""
        message = wire.to_message(session_id, conversation_id)
        thread = self._store.get(session_id, conversation_id)
        if thread is None:
            thread = self._synthesize(session_id, wire)

        existing = thread.index.get(message.id)
        if existing is not None:
            logger.debug("Duplicate message %s in %s/%s dropped", message.id, session_id, conversation_id)
            return MergeResult(existing, thread.conversation, added=False, wire=wire)

        self._append(thread, message)
        if thread.load_token is not None:
            thread.arrived_during_load.append(message)
        thread.seq = self._store.next_seq()

        bumped = not message.from_self and not self._sessions.is_selected(session_id, conversation_id)
        if bumped:
            thread.conversation.unread_count += 1
        session = self._sessions.get(session_id) or self._registry.ensure_session(session_id)
        session.last_message_time = max(session.last_message_time or 0, message.timestamp)
        if bumped:
            session.unread_count += 1

        result = MergeResult(message, thread.conversation, added=True, unread_bumped=bumped, wire=wire)
        for listener in list(self._listeners):
            try:
                listener(result)
            except Exception:
                logger.exception("New-message listener failed")
        return result

    def _synthesize(self, session_id: str, wire: WireMessage) -> ConversationThread:
        conversation_id = wire.chat_id or ""
        is_group = wire.is_group if wire.is_group is not None else conversation_id.endswith(GROUP_SUFFIX)
        sender = wire.sender
        name = resolve_display_name(
            wire.chat_name,
            sender.name if sender else None,
            sender.pushname if sender else None,
            sender.number if sender else None,
            default=conversation_id,
        )
        return self._store.add(Conversation(
            id=conversation_id, session_id=session_id, display_name=name, is_group=is_group,
        ))

    def _append(self, thread: ConversationThread, message: Message) -> None:
        thread.messages.append(message)
        thread.index[message.id] = message
        self._store.index_message(message)
        thread.conversation.last_message = message
        thread.conversation.last_message_timestamp = message.timestamp

    def apply_delivery_state(self, session_id: str, message_id: str, ack: Any) -> bool:
        """Advance a message's delivery state. Unknown ids and regressions are dropped."""
        message = self._store.find_message(session_id, message_id)
        if message is None:
            logger.debug("Ack for unknown message %s/%s dropped", session_id, message_id)
            return False
        state = DeliveryState.coerce(ack)
        if state <= message.delivery_state:
            if state < message.delivery_state:
                logger.debug(
                    "Stale ack %s for %s (already %s) dropped", state.name, message_id, message.delivery_state.name,
                )
            return False
        message.delivery_state = state
        return True

    # --- pull ------------------------------------------------------------

    async def load_conversations(self, session_id: str) -> list[Conversation]:
        """Seed the conversation list of a session from list-conversations."""
        rows = await self._api.list_conversations(session_id)
        # Reversed so that, on equal timestamps, the backend's first row sorts first.
        for row in reversed(rows):
            if not isinstance(row, dict) or not row.get("id"):
                continue
            conversation_id = flatten_id(row["id"])
            thread = self._store.get(session_id, conversation_id)
            timestamp = int(row.get("timestamp") or 0)
            if thread is None:
                thread = self._store.add(Conversation(
                    id=conversation_id,
                    session_id=session_id,
                    display_name=resolve_display_name(row.get("name"), default=conversation_id),
                    is_group=bool(row.get("isGroup", conversation_id.endswith(GROUP_SUFFIX))),
                    last_message_timestamp=timestamp,
                    unread_count=max(int(row.get("unreadCount") or 0), 0),
                ))
            else:
                conversation = thread.conversation
                conversation.display_name = resolve_display_name(row.get("name"), default=conversation.display_name)
                conversation.last_message_timestamp = max(conversation.last_message_timestamp, timestamp)
                thread.seq = self._store.next_seq()
        return self.conversations(session_id)

    async def select_conversation(self, session_id: str, conversation_id: str) -> list[Message]:
        """Open a conversation: zero its unread counter, then install a snapshot.

        Push events that land while the snapshot is in flight are appended
        after it, minus anything the snapshot already contains. If another
        conversation is opened before this fetch resolves, the result is
        discarded and the current message list is returned unchanged.
        """
        self._sessions.selected_conversation = (session_id, conversation_id)
        self._sessions.active_session_id = session_id
        thread = self._store.get(session_id, conversation_id)
        if thread is None:
            thread = self._store.add(Conversation(
                id=conversation_id,
                session_id=session_id,
                display_name=conversation_id,
                is_group=conversation_id.endswith(GROUP_SUFFIX),
            ))
        self.mark_read(session_id, conversation_id)

        token = object()
        thread.load_token = token
        thread.arrived_during_load = []
        try:
            rows = await self._api.list_messages(session_id, conversation_id)
        except Exception:
            if thread.load_token is token:
                thread.load_token = None
                thread.arrived_during_load = []
            raise

        if thread.load_token is not token or self._store.get(session_id, conversation_id) is not thread:
            logger.debug("Snapshot for %s/%s superseded, discarding", session_id, conversation_id)
            return list(thread.messages)
        if not self._sessions.is_selected(session_id, conversation_id):
            logger.debug("Conversation %s/%s no longer selected, discarding snapshot", session_id, conversation_id)
            thread.load_token = None
            thread.arrived_during_load = []
            return list(thread.messages)

        self._install_snapshot(thread, rows)
        return list(thread.messages)

    def _install_snapshot(self, thread: ConversationThread, rows: list[dict[str, Any]]) -> None:
        conversation = thread.conversation
        snapshot: list[Message] = []
        seen: set[str] = set()
        for raw in rows:
            try:
                message = WireMessage.model_validate(raw).to_message(conversation.session_id, conversation.id)
            except ValueError as e:
                logger.warning("Skipping malformed snapshot row in %s: %s", conversation.id, e)
                continue
            if message.id in seen:
                continue
            seen.add(message.id)
            known = thread.index.get(message.id) or self._store.find_message(conversation.session_id, message.id)
            if known is not None and known.delivery_state > message.delivery_state:
                message.delivery_state = known.delivery_state
            snapshot.append(message)
        snapshot.sort(key=lambda m: m.timestamp)

        late = [m for m in thread.arrived_during_load if m.id not in seen]
        for old in thread.messages:
            self._store.unindex_message(conversation.session_id, old.id)
        thread.messages = []
        thread.index = {}
        thread.load_token = None
        thread.arrived_during_load = []
        for message in snapshot + late:
            self._append(thread, message)

    def mark_read(self, session_id: str, conversation_id: str) -> None:
        thread = self._store.get(session_id, conversation_id)
        if thread is None:
            return
        cleared = thread.conversation.unread_count
        thread.conversation.unread_count = 0
        session = self._sessions.get(session_id)
        if session is not None and cleared:
            session.unread_count = max(session.unread_count - cleared, 0)

    def clear_selection(self) -> None:
        self._sessions.selected_conversation = None

    # --- local edits -----------------------------------------------------

    async def send_message(
        self, session_id: str, conversation_id: str, content: str, quoted_message_id: Optional[str] = None,
    ) -> Any:
        """Send through the backend. The echoed message_received (fromMe) populates local state."""
        return await self._api.send_message(session_id, conversation_id, content, quoted_message_id)

    async def delete_message(self, session_id: str, conversation_id: str, message_id: str) -> None:
        await self._api.delete_message(session_id, conversation_id, message_id)
        self.remove_message(session_id, conversation_id, message_id)

    def remove_message(self, session_id: str, conversation_id: str, message_id: str) -> bool:
        thread = self._store.get(session_id, conversation_id)
        if thread is None or message_id not in thread.index:
            return False
        del thread.index[message_id]
        thread.messages = [m for m in thread.messages if m.id != message_id]
        self._store.unindex_message(session_id, message_id)
        conversation = thread.conversation
        if conversation.last_message is not None and conversation.last_message.id == message_id:
            conversation.last_message = thread.messages[-1] if thread.messages else None
        return True

    def drop_session(self, session_id: str) -> None:
        dropped = self._store.drop_session(session_id)
        if dropped:
            logger.debug("Dropped %d conversations of session %s", dropped, session_id)

