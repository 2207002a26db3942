"""
Socket.IO event channel — the single ingress for server-pushed events.

The adapter owns no dashboard state: it fans every inbound (event, data) pair
out to registered handlers and exposes an awaitable emit.
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Protocol, Union

import socketio
from socketio import exceptions as sio_exceptions

from switchboard.errors import TransportError

EventHandler = Callable[[str, Any], Union[None, Awaitable[None]]]

INTERNAL_EVENTS = ("connect", "disconnect", "connect_error")

logger = logging.getLogger(__name__)


class EventChannel(Protocol):
    """Duplex named-event channel consumed by the coordinators."""

    @property
    def sid(self) -> Optional[str]: ...

    def add_event_handler(self, handler: EventHandler) -> Callable[[], None]: ...

    async def emit(self, event: str, data: Any) -> None: ...


class SocketIOChannel:
    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        transports: Optional[list[str]] = None,
        connect_timeout: float = 15.0,
        socketio_path: str = "socket.io",
    ):
        self._base_url = base_url
        self._token = token
        self._transports = transports or ["websocket"]
        self._connect_timeout = connect_timeout
        self._socketio_path = socketio_path
        self._sio: Optional[socketio.AsyncClient] = None
        self._event_handlers: list[EventHandler] = []

    @property
    def connected(self) -> bool:
        return self._sio is not None and self._sio.connected

    def set_token(self, token: Optional[str]) -> None:
        self._token = token

    @property
    def sid(self) -> Optional[str]:
        return self._sio.get_sid() if self._sio is not None else None

    def add_event_handler(self, handler: EventHandler) -> Callable[[], None]:
        """Add an event handler. Returns a cleanup function."""
        self._event_handlers.append(handler)
        def remove() -> None:
            try:
                self._event_handlers.remove(handler)
            except ValueError:
                pass
        return remove

    async def dispatch(self, event: str, data: Any) -> None:
        """Run every handler for one inbound event, in registration order."""
        for handler in list(self._event_handlers):
            try:
                result = handler(event, data)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Handler failed for %s", event)

    async def connect(self) -> None:
        if self._sio and self._sio.connected:
            return

        self._sio = socketio.AsyncClient(reconnection=True)

        @self._sio.event
        async def connect() -> None:
            logger.info("Event channel connected (sid=%s)", self.sid)

        @self._sio.on("*")
        async def on_any(event: str, data: Any = None) -> None:
            if event in INTERNAL_EVENTS:
                return
            await self.dispatch(event, data)

        @self._sio.event
        async def disconnect(reason: str = "") -> None:
            logger.info("Event channel disconnected: %s", reason or "client")

        try:
            await self._sio.connect(
                self._base_url,
                auth={"token": self._token} if self._token else None,
                transports=self._transports,
                socketio_path=self._socketio_path,
                wait_timeout=int(self._connect_timeout),
            )
        except sio_exceptions.ConnectionError as e:
            self._sio = None
            raise TransportError(f"Could not connect to {self._base_url}: {e}", code="connect_failed") from e

    async def emit(self, event: str, data: Any) -> None:
        if not self._sio or not self._sio.connected:
            raise TransportError("Socket.IO not connected", code="not_connected")
        try:
            await self._sio.emit(event, data)
        except (sio_exceptions.SocketIOError, asyncio.TimeoutError, OSError) as e:
            logger.error("Emit failed for %s: %s", event, e)
            raise TransportError(f"Emit failed for {event}: {e}") from e

    async def wait(self) -> None:
        """Block until the connection is closed."""
        if self._sio:
            await self._sio.wait()

    async def disconnect(self) -> None:
        if self._sio:
            await self._sio.disconnect()
            self._sio = None
