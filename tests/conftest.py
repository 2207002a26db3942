"""Shared fakes: event channel, REST API, media devices and peer connections."""

from __future__ import annotations

import asyncio
from typing import Any, Optional

import pytest

from switchboard.errors import PermissionDeniedError, TransportError
from switchboard.router import EventRouter
from switchboard.store import ConversationStore, SessionStore
from switchboard.registry import SessionRegistry
from switchboard.reconciler import ConversationReconciler


class FakeChannel:
    def __init__(self, sid: str = "self-sid"):
        self.sid = sid
        self.emitted: list[tuple[str, Any]] = []
        self.fail_on: set[str] = set()
        self._handlers: list[Any] = []

    def add_event_handler(self, handler):
        self._handlers.append(handler)

        def remove():
            self._handlers.remove(handler)
        return remove

    async def emit(self, event: str, data: Any) -> None:
        if event in self.fail_on:
            raise TransportError(f"Emit failed for {event}")
        self.emitted.append((event, data))

    async def deliver(self, event: str, data: Any = None) -> None:
        for handler in list(self._handlers):
            result = handler(event, data)
            if asyncio.iscoroutine(result):
                await result

    def names(self) -> list[str]:
        return [name for name, _ in self.emitted]


class FakeSessionsAPI:
    def __init__(self):
        self.calls: list[tuple[str, tuple]] = []
        self.sessions: list[dict[str, Any]] = []
        self.chats: dict[str, list[dict[str, Any]]] = {}
        self.messages: dict[tuple[str, str], list[dict[str, Any]]] = {}
        self.fail: set[str] = set()
        # (session_id, chat_id) -> asyncio.Event the snapshot fetch waits on
        self.gates: dict[tuple[str, str], asyncio.Event] = {}

    def _record(self, name: str, *args):
        self.calls.append((name, args))
        if name in self.fail:
            raise TransportError(f"{name} rejected", code="http_error", details={"status": 500})

    async def create(self, session_id):
        self._record("create", session_id)
        return {"success": True}

    async def list(self):
        self._record("list")
        return self.sessions

    async def logout(self, session_id):
        self._record("logout", session_id)
        return {"success": True}

    async def list_conversations(self, session_id):
        self._record("list_conversations", session_id)
        return self.chats.get(session_id, [])

    async def list_messages(self, session_id, conversation_id):
        self._record("list_messages", session_id, conversation_id)
        gate = self.gates.get((session_id, conversation_id))
        if gate is not None:
            await gate.wait()
        return list(self.messages.get((session_id, conversation_id), []))

    async def send_message(self, session_id, conversation_id, content, quoted_message_id=None):
        self._record("send_message", session_id, conversation_id, content, quoted_message_id)
        return {"success": True}

    async def delete_message(self, session_id, conversation_id, message_id):
        self._record("delete_message", session_id, conversation_id, message_id)
        return {"success": True}

    async def set_typing(self, session_id, conversation_id, is_typing):
        self._record("set_typing", session_id, conversation_id, is_typing)

    def names(self) -> list[str]:
        return [name for name, _ in self.calls]


class FakeTrack:
    def __init__(self, kind: str):
        self.kind = kind
        self.stopped = False

    def stop(self) -> None:
        self.stopped = True


class FakeLocalMedia:
    def __init__(self, video: bool):
        self.tracks = [FakeTrack("audio")] + ([FakeTrack("video")] if video else [])

    def get_tracks(self):
        return list(self.tracks)


class FakeMedia:
    def __init__(self, deny: bool = False):
        self.deny = deny
        self.acquired: list[FakeLocalMedia] = []

    async def acquire_local_media(self, audio: bool = True, video: bool = True):
        if self.deny:
            raise PermissionDeniedError()
        media = FakeLocalMedia(video)
        self.acquired.append(media)
        return media


class FakePeerConnection:
    def __init__(self, on_ice_candidate, on_connection_state):
        self.on_ice_candidate = on_ice_candidate
        self.on_connection_state = on_connection_state
        self.tracks: list[FakeTrack] = []
        self.local_description: Optional[dict[str, Any]] = None
        self.remote_description: Optional[dict[str, Any]] = None
        self.candidates: list[dict[str, Any]] = []
        self.closed = False
        self.fail_remote = False

    def add_track(self, track, media) -> None:
        self.tracks.append(track)

    async def create_offer(self):
        return {"type": "offer", "sdp": "v=0 offer"}

    async def create_answer(self):
        return {"type": "answer", "sdp": "v=0 answer"}

    async def set_local_description(self, description) -> None:
        self.local_description = description

    async def set_remote_description(self, description) -> None:
        if self.fail_remote:
            raise ValueError("bad sdp")
        self.remote_description = description

    async def add_ice_candidate(self, candidate) -> None:
        if self.remote_description is None:
            raise AssertionError("candidate applied before remote description")
        self.candidates.append(candidate)

    async def close(self) -> None:
        self.closed = True


class FakePeerFactory:
    def __init__(self):
        self.created: list[FakePeerConnection] = []
        self.ice_servers = None

    def __call__(self, ice_servers, on_ice_candidate, on_connection_state):
        self.ice_servers = ice_servers
        pc = FakePeerConnection(on_ice_candidate, on_connection_state)
        self.created.append(pc)
        return pc

    @property
    def last(self) -> FakePeerConnection:
        return self.created[-1]


def wire_message(msg_id: str, chat_id: str, ts: int, body: str = "hi", from_me: bool = False, **extra) -> dict:
    data = {"id": msg_id, "chatId": chat_id, "body": body, "timestamp": ts, "fromMe": from_me, "type": "chat"}
    data.update(extra)
    return data


class Dashboard:
    """Stores, router, registry and reconciler wired to a fake API."""

    def __init__(self):
        self.api = FakeSessionsAPI()
        self.sessions = SessionStore()
        self.conversations = ConversationStore()
        self.router = EventRouter()
        self.registry = SessionRegistry(self.sessions, self.api)
        self.reconciler = ConversationReconciler(self.sessions, self.conversations, self.api, self.registry)
        self.registry.register(self.router)
        self.reconciler.register(self.router)

    async def push(self, name: str, data: Any):
        return await self.router.route(name, data)


@pytest.fixture
def channel():
    return FakeChannel()


@pytest.fixture
def api():
    return FakeSessionsAPI()


@pytest.fixture
def media():
    return FakeMedia()


@pytest.fixture
def peers():
    return FakePeerFactory()


@pytest.fixture
def dashboard():
    return Dashboard()
