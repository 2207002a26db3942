"""
AsyncSwitchboard / Switchboard — main SDK clients.

Wires the event channel, the REST API, the stores and the four coordinators
together. The channel is the only ingress for pushed events; everything it
delivers goes through one EventRouter.
"""

import asyncio
import logging
from typing import Any, Callable, Optional

from switchboard.auth import Auth
from switchboard.calls.media import MediaDevices, NoMediaDevices, PeerConnectionFactory, no_peer_connections
from switchboard.calls.provider import ProviderCallNotifier
from switchboard.calls.signaling import CallCoordinator
from switchboard.config import ClientConfig
from switchboard.errors import ConnectionError
from switchboard.models.call import CallSession
from switchboard.models.conversation import Conversation, Message
from switchboard.models.notification import Notification
from switchboard.models.session import Session
from switchboard.notifications import NotificationDispatcher
from switchboard.reconciler import ConversationReconciler
from switchboard.registry import SessionRegistry
from switchboard.router import EventRouter
from switchboard.sessions import SessionsAPI
from switchboard.store import ConversationStore, SessionStore
from switchboard.transport.http import HttpClient
from switchboard.transport.socketio import EventChannel, SocketIOChannel

logger = logging.getLogger(__name__)


class AsyncSwitchboard:
    """Async dashboard client (primary)."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        *,
        config: Optional[ClientConfig] = None,
        media: Optional[MediaDevices] = None,
        peer_connections: Optional[PeerConnectionFactory] = None,
        channel: Optional[EventChannel] = None,
        http: Optional[HttpClient] = None,
    ):
        cfg = config or ClientConfig()
        if base_url:
            cfg = cfg.model_copy(update={"base_url": base_url})
        if token:
            cfg = cfg.model_copy(update={"token": token})
        self.config = cfg

        self.http = http or HttpClient(base_url=cfg.base_url, token=cfg.token, timeout=cfg.request_timeout)
        self.auth = Auth(self.http)
        self.api = SessionsAPI(self.http)

        self._sio: Optional[SocketIOChannel] = None
        if channel is None:
            self._sio = SocketIOChannel(
                cfg.base_url,
                token=cfg.token,
                transports=cfg.transports,
                connect_timeout=cfg.connect_timeout,
            )
        self.channel: EventChannel = channel or self._sio  # type: ignore[assignment]

        self.session_store = SessionStore()
        self.conversation_store = ConversationStore()
        self.router = EventRouter()

        self.registry = SessionRegistry(self.session_store, self.api)
        self.reconciler = ConversationReconciler(
            self.session_store, self.conversation_store, self.api, self.registry,
        )
        self.calls = CallCoordinator(
            self.channel,
            media or NoMediaDevices(),
            peer_connections or no_peer_connections,
            display_name=cfg.display_name,
            ice_servers=cfg.ice_servers,
        )
        self.provider_calls = ProviderCallNotifier()
        self.notifications = NotificationDispatcher(timeout=cfg.notification_timeout, on_route=self._route_to)

        self.registry.register(self.router)
        self.reconciler.register(self.router)
        self.calls.register(self.router)
        self.provider_calls.register(self.router)
        self.reconciler.add_new_message_listener(self.notifications.on_new_message)
        self.router.validate()

        self._remove_route = self.channel.add_event_handler(self.router.route)
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def connected(self) -> bool:
        if self._sio is not None:
            return self._sio.connected
        return bool(getattr(self.channel, "connected", True))

    async def connect(self, refresh: bool = True) -> None:
        """Open the event channel (unless one was injected), then pull the session list."""
        if self._sio is not None:
            self._sio.set_token(self.http.token)
            await self._sio.connect()
        if refresh:
            await self.registry.refresh()

    async def disconnect(self) -> None:
        await self.calls.close()
        self.notifications.close()
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
        if self._sio is not None:
            await self._sio.disconnect()

    async def close(self) -> None:
        await self.disconnect()
        self._remove_route()
        await self.http.close()

    async def wait(self) -> None:
        """Block until the event channel closes."""
        if self._sio is None:
            return
        if not self._sio.connected:
            raise ConnectionError("Not connected. Call connect() first.")
        await self._sio.wait()

    # --- sessions --------------------------------------------------------

    @property
    def sessions(self) -> list[Session]:
        return self.registry.sessions()

    async def create_session(self, session_id: Optional[str] = None) -> Session:
        return await self.registry.create_session(session_id)

    async def logout_session(self, session_id: str, confirm: Callable[[Session], bool]) -> bool:
        return await self.registry.logout(session_id, confirm)

    def select_session(self, session_id: Optional[str]) -> None:
        self.registry.select_session(session_id)

    # --- conversations ---------------------------------------------------

    async def load_conversations(self, session_id: str) -> list[Conversation]:
        return await self.reconciler.load_conversations(session_id)

    def conversations(self, session_id: str) -> list[Conversation]:
        return self.reconciler.conversations(session_id)

    def messages(self, session_id: str, conversation_id: str) -> list[Message]:
        return self.reconciler.messages(session_id, conversation_id)

    async def select_conversation(self, session_id: str, conversation_id: str) -> list[Message]:
        if session_id != self.registry.active_session_id and self.registry.get(session_id) is not None:
            self.registry.select_session(session_id)
        return await self.reconciler.select_conversation(session_id, conversation_id)

    async def send_message(
        self, session_id: str, conversation_id: str, content: str, quoted_message_id: Optional[str] = None,
    ) -> Any:
        return await self.reconciler.send_message(session_id, conversation_id, content, quoted_message_id)

    async def delete_message(self, session_id: str, conversation_id: str, message_id: str) -> None:
        await self.reconciler.delete_message(session_id, conversation_id, message_id)

    # --- calls -----------------------------------------------------------

    async def call(self, peer_id: str, video: bool = True) -> CallSession:
        return await self.calls.initiate(peer_id, video=video)

    async def accept_call(self, video: bool = True) -> CallSession:
        return await self.calls.accept(video=video)

    async def end_call(self) -> None:
        await self.calls.end()

    # --- notifications ---------------------------------------------------

    @property
    def notification(self) -> Optional[Notification]:
        return self.notifications.current

    def _route_to(self, session_id: str, conversation_id: str) -> None:
        task = asyncio.get_running_loop().create_task(self._open_from_notice(session_id, conversation_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _open_from_notice(self, session_id: str, conversation_id: str) -> None:
        try:
            await self.select_conversation(session_id, conversation_id)
        except Exception as e:
            logger.warning("Opening %s/%s from notification failed: %s", session_id, conversation_id, e)


class Switchboard:
    """Sync wrapper around AsyncSwitchboard. Runs the event loop internally."""

    def __init__(self, **kwargs: Any):
        self._async = AsyncSwitchboard(**kwargs)
        self._loop = asyncio.new_event_loop()

    def _run(self, coro: Any) -> Any:
        return self._loop.run_until_complete(coro)

    @property
    def auth(self) -> Auth:
        return self._async.auth

    @property
    def api(self) -> SessionsAPI:
        return self._async.api

    @property
    def sessions(self) -> list[Session]:
        return self._async.sessions

    @property
    def connected(self) -> bool:
        return self._async.connected

    def connect(self, **kwargs: Any) -> None:
        self._run(self._async.connect(**kwargs))

    def disconnect(self) -> None:
        self._run(self._async.disconnect())

    def close(self) -> None:
        self._run(self._async.close())
        self._loop.close()

    def login(self, email: str, password: str) -> dict[str, Any]:
        return self._run(self._async.auth.login(email, password))

    def refresh_sessions(self) -> list[Session]:
        return self._run(self._async.registry.refresh())

    def create_session(self, session_id: Optional[str] = None) -> Session:
        return self._run(self._async.create_session(session_id))

    def logout_session(self, session_id: str, confirm: Callable[[Session], bool]) -> bool:
        return self._run(self._async.logout_session(session_id, confirm))

    def load_conversations(self, session_id: str) -> list[Conversation]:
        return self._run(self._async.load_conversations(session_id))

    def select_conversation(self, session_id: str, conversation_id: str) -> list[Message]:
        return self._run(self._async.select_conversation(session_id, conversation_id))

    def send_message(self, session_id: str, conversation_id: str, content: str, **kwargs: Any) -> Any:
        return self._run(self._async.send_message(session_id, conversation_id, content, **kwargs))
