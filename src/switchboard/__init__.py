"""
switchboard — multi-account messaging dashboard SDK for Python.

Socket.IO + REST client for a WhatsApp-style gateway backend: session
lifecycle, conversation state, browser-to-browser calls and notifications.
"""

from switchboard.client import Switchboard, AsyncSwitchboard
from switchboard.auth import Auth
from switchboard.sessions import SessionsAPI
from switchboard.config import ClientConfig, load_config
from switchboard.errors import (
    SwitchboardError,
    TransportError,
    PermissionDeniedError,
    BusyError,
    CallError,
    SessionError,
    AuthError,
    ConnectionError,
)
from switchboard.models.events import ClientEvent, ServerEvent
from switchboard.models.session import Session, SessionState
from switchboard.models.conversation import Conversation, DeliveryState, Message
from switchboard.models.call import CallPhase

__version__ = "0.1.0"
__all__ = [
    "Switchboard",
    "AsyncSwitchboard",
    "Auth",
    "SessionsAPI",
    "ClientConfig",
    "load_config",
    "SwitchboardError",
    "TransportError",
    "PermissionDeniedError",
    "BusyError",
    "CallError",
    "SessionError",
    "AuthError",
    "ConnectionError",
    "ClientEvent",
    "ServerEvent",
    "Session",
    "SessionState",
    "Conversation",
    "DeliveryState",
    "Message",
    "CallPhase",
]
