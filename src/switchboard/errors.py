"""
Switchboard error types.

Transport and permission failures surface to the caller of the operation that
triggered them. Stale or duplicate updates are never raised.
"""

from typing import Any, Optional


class SwitchboardError(Exception):
    def __init__(self, code: str, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.details = details


class TransportError(SwitchboardError):
    """A channel emit or REST request was rejected."""

    def __init__(self, message: str, code: str = "transport_error", details: Optional[dict[str, Any]] = None):
        super().__init__(code, message, details)


class PermissionDeniedError(SwitchboardError):
    """Local media acquisition was refused."""

    def __init__(self, message: str = "Media permission denied"):
        super().__init__("permission_denied", message)


class BusyError(SwitchboardError):
    """A call is already in progress."""

    def __init__(self, message: str = "Another call is in progress", details: Optional[dict[str, Any]] = None):
        super().__init__("busy", message, details)


class CallError(SwitchboardError):
    def __init__(self, message: str, code: str = "call_error"):
        super().__init__(code, message)


class SessionError(SwitchboardError):
    def __init__(self, message: str, code: str = "session_error", details: Optional[dict[str, Any]] = None):
        super().__init__(code, message, details)


class AuthError(SwitchboardError):
    def __init__(self, message: str, code: str = "auth_error"):
        super().__init__(code, message)


class ConnectionError(SwitchboardError):
    def __init__(self, message: str):
        super().__init__("connection_error", message)
