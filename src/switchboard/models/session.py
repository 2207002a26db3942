"""
Session models — one provider account managed by the dashboard.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel


class SessionState(str, Enum):
    INITIALIZING = "initializing"
    AWAITING_SCAN = "awaiting_scan"
    AUTHENTICATED = "authenticated"
    READY = "ready"
    DISCONNECTED = "disconnected"
    LOGGED_OUT = "logged_out"


# Wire status strings the backend has been seen to emit.
STATUS_ALIASES: dict[str, SessionState] = {
    "init": SessionState.INITIALIZING,
    "initializing": SessionState.INITIALIZING,
    "qr": SessionState.AWAITING_SCAN,
    "scan_qr": SessionState.AWAITING_SCAN,
    "qr_received": SessionState.AWAITING_SCAN,
    "awaiting_scan": SessionState.AWAITING_SCAN,
    "auth": SessionState.AUTHENTICATED,
    "authenticated": SessionState.AUTHENTICATED,
    "ready": SessionState.READY,
    "connected": SessionState.READY,
    "disconnected": SessionState.DISCONNECTED,
    "logged_out": SessionState.LOGGED_OUT,
    "logout": SessionState.LOGGED_OUT,
}

CANONICAL_TRANSITIONS: set[tuple[SessionState, SessionState]] = {
    (SessionState.INITIALIZING, SessionState.AWAITING_SCAN),
    (SessionState.INITIALIZING, SessionState.AUTHENTICATED),
    (SessionState.AWAITING_SCAN, SessionState.AUTHENTICATED),
    (SessionState.AUTHENTICATED, SessionState.READY),
    (SessionState.READY, SessionState.DISCONNECTED),
    (SessionState.DISCONNECTED, SessionState.READY),
}


def parse_session_state(value: Any) -> Optional[SessionState]:
    if isinstance(value, SessionState):
        return value
    if not isinstance(value, str):
        return None
    return STATUS_ALIASES.get(value.strip().lower())


class Session(BaseModel):
    id: str
    state: SessionState = SessionState.INITIALIZING
    user_info: Optional[dict[str, Any]] = None
    last_message_time: Optional[int] = None
    unread_count: int = 0
    pairing_code: Optional[str] = None
    last_error: Optional[str] = None


class SessionRow(BaseModel):
    """list-sessions row as returned by GET /api/sessions"""
    sessionId: str
    status: Optional[str] = None
    userInfo: Optional[dict[str, Any]] = None

    model_config = {"extra": "ignore"}
