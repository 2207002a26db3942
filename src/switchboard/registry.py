"""
Session registry — which provider accounts exist and their connection state.

Lifecycle: initializing -> awaiting_scan -> authenticated -> ready, with
ready <-> disconnected and logged_out (removal) reachable from anywhere.
State changes arrive only as channel events; the server is authoritative,
so non-canonical jumps are applied and logged rather than refused.
"""

import logging
import time
from typing import Any, Callable, Optional

from switchboard.errors import SessionError, TransportError
from switchboard.models.events import (
    PairingCodeIssued,
    SessionAuthenticated,
    SessionDisconnected,
    SessionLoggedOut,
    SessionReady,
    SessionStatusChanged,
)
from switchboard.models.session import (
    CANONICAL_TRANSITIONS,
    Session,
    SessionRow,
    SessionState,
    parse_session_state,
)
from switchboard.router import EventRouter
from switchboard.sessions import SessionsAPI
from switchboard.store import SessionStore

SessionListener = Callable[[Session, Optional[SessionState]], None]

logger = logging.getLogger(__name__)


def new_session_id() -> str:
    return f"session_{int(time.time() * 1000)}"


class SessionRegistry:
    def __init__(self, store: SessionStore, api: SessionsAPI):
        self._store = store
        self._api = api
        self._listeners: list[SessionListener] = []

    @property
    def active_session_id(self) -> Optional[str]:
        return self._store.active_session_id

    def get(self, session_id: str) -> Optional[Session]:
        return self._store.get(session_id)

    def sessions(self) -> list[Session]:
        return self._store.ordered()

    def add_listener(self, listener: SessionListener) -> Callable[[], None]:
        """Called with (session, previous_state); previous_state is None for new sessions."""
        self._listeners.append(listener)

        def remove() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass
        return remove

    def _notify(self, session: Session, previous: Optional[SessionState]) -> None:
        for listener in list(self._listeners):
            try:
                listener(session, previous)
            except Exception:
                logger.exception("Session listener failed")

    def register(self, router: EventRouter) -> None:
        router.register(SessionStatusChanged, self._on_status)
        router.register(PairingCodeIssued, self._on_pairing_code)
        router.register(SessionReady, lambda e: self.apply_status_event(e.session_id, SessionState.READY))
        router.register(
            SessionAuthenticated,
            lambda e: self.apply_status_event(e.session_id, SessionState.AUTHENTICATED),
        )
        router.register(
            SessionDisconnected,
            lambda e: self.apply_status_event(e.session_id, SessionState.DISCONNECTED),
        )
        router.register(SessionLoggedOut, lambda e: self.remove_session(e.session_id))

    def _on_status(self, event: SessionStatusChanged) -> None:
        state = parse_session_state(event.status)
        if state is None:
            logger.warning("Ignoring unknown status %r for session %s", event.status, event.session_id)
            return
        self.apply_status_event(event.session_id, state, event.user_info)

    def _on_pairing_code(self, event: PairingCodeIssued) -> None:
        session = self.apply_status_event(event.session_id, SessionState.AWAITING_SCAN)
        if session is not None:
            session.pairing_code = event.qr

    def apply_status_event(
        self,
        session_id: str,
        state: SessionState,
        user_info: Optional[dict[str, Any]] = None,
    ) -> Optional[Session]:
        """Upsert a session's lifecycle state. Returns None once the session is gone (logged_out)."""
        if state is SessionState.LOGGED_OUT:
            self.remove_session(session_id)
            return None

        session = self._store.get(session_id)
        previous: Optional[SessionState] = None
        if session is None:
            logger.info("Status for unknown session %s, registering it", session_id)
            session = Session(id=session_id, state=state)
            self._store.put(session)
        else:
            previous = session.state
            if previous is not state and (previous, state) not in CANONICAL_TRANSITIONS:
                logger.debug("Session %s jumped %s -> %s", session_id, previous.value, state.value)
            session.state = state

        if user_info:
            session.user_info = {**(session.user_info or {}), **user_info}
        if state in (SessionState.AUTHENTICATED, SessionState.READY):
            session.pairing_code = None
            session.last_error = None

        if previous is not state:
            self._notify(session, previous)
        return session

    def ensure_session(self, session_id: str) -> Session:
        """Upsert a session known only from a message event. A session that pushes messages is ready."""
        session = self._store.get(session_id)
        if session is None:
            session = self.apply_status_event(session_id, SessionState.READY)
        return session  # type: ignore[return-value]

    def remove_session(self, session_id: str) -> Optional[Session]:
        session = self._store.pop(session_id)
        if session is None:
            return None
        if self._store.active_session_id == session_id:
            self._store.active_session_id = None
        selected = self._store.selected_conversation
        if selected is not None and selected[0] == session_id:
            self._store.selected_conversation = None
        previous = session.state
        session.state = SessionState.LOGGED_OUT
        logger.info("Session %s removed", session_id)
        self._notify(session, previous)
        return session

    async def create_session(self, session_id: Optional[str] = None) -> Session:
        """Register a placeholder and ask the backend to start the session.

        Readiness arrives later via events. On a rejected request the
        placeholder stays registered with ``last_error`` set and the
        TransportError is re-raised.
        """
        session_id = session_id or new_session_id()
        if session_id in self._store:
            raise SessionError(f"Session {session_id} already exists", details={"id": session_id})
        session = Session(id=session_id, state=SessionState.INITIALIZING)
        self._store.put(session)
        self._notify(session, None)
        try:
            await self._api.create(session_id)
        except TransportError as e:
            session.last_error = str(e)
            logger.warning("Creating session %s failed: %s", session_id, e)
            raise
        return session

    async def logout(self, session_id: str, confirm: Callable[[Session], bool]) -> bool:
        """Request a provider logout once ``confirm`` approves.

        The session is not removed here; the backend's client_logged_out
        event does that. Returns False if the user declined.
        """
        session = self._store.get(session_id)
        if session is None:
            raise SessionError(f"Unknown session {session_id}", details={"id": session_id})
        if not confirm(session):
            return False
        await self._api.logout(session_id)
        return True

    async def refresh(self) -> list[Session]:
        """Pull list-sessions and upsert every row; local unread counters survive."""
        rows = await self._api.list()
        for raw in rows:
            row = SessionRow.model_validate(raw)
            state = parse_session_state(row.status) or SessionState.INITIALIZING
            self.apply_status_event(row.sessionId, state, row.userInfo)
        return self.sessions()

    def select_session(self, session_id: Optional[str]) -> None:
        if session_id is not None and session_id not in self._store:
            raise SessionError(f"Unknown session {session_id}", details={"id": session_id})
        if session_id != self._store.active_session_id:
            self._store.selected_conversation = None
        self._store.active_session_id = session_id
        if session_id is not None:
            self._store.get(session_id).unread_count = 0  # type: ignore[union-attr]
