"""
Peer-to-peer call models.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel


class CallPhase(str, Enum):
    IDLE = "idle"
    OUTGOING_RINGING = "outgoing_ringing"
    INCOMING_RINGING = "incoming_ringing"
    CONNECTING = "connecting"
    ACTIVE = "active"
    ENDED = "ended"


class CallDirection(str, Enum):
    OUTGOING = "outgoing"
    INCOMING = "incoming"


class SessionDescription(BaseModel):
    type: str
    sdp: str = ""

    model_config = {"extra": "allow"}


class CallSession:
    __slots__ = (
        "local_id", "peer_id", "peer_name", "direction", "phase", "video",
        "local_description", "remote_description", "remote_applied", "pending_ice_candidates",
        "outgoing_ice_candidates", "signaled", "connection", "media",
    )

    def __init__(self, local_id: Optional[str], peer_id: Optional[str], direction: CallDirection,
                 video: bool = True, peer_name: Optional[str] = None):
        self.local_id = local_id
        self.peer_id = peer_id
        self.peer_name = peer_name
        self.direction = direction
        self.phase = CallPhase.IDLE
        self.video = video
        self.local_description: Optional[SessionDescription] = None
        self.remote_description: Optional[SessionDescription] = None
        self.remote_applied = False
        # remote candidates waiting for the remote description
        self.pending_ice_candidates: list[dict[str, Any]] = []
        # local candidates gathered before our offer/answer went out
        self.outgoing_ice_candidates: list[dict[str, Any]] = []
        self.signaled = False
        self.connection: Any = None
        self.media: Any = None

    def __repr__(self) -> str:
        return f"CallSession(peer_id={self.peer_id!r}, direction={self.direction.value}, phase={self.phase.value})"
