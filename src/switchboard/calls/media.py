"""
Media and peer-connection capabilities used by the call coordinator.

The coordinator never touches a real media stack. Whatever implements these
protocols (a WebRTC binding, a test fake) is injected at construction.
Descriptions and candidates cross this boundary as plain dicts shaped like
their JSON wire form: ``{"type": "offer", "sdp": "..."}`` and
``{"candidate": "...", "sdpMid": "0", "sdpMLineIndex": 0}``.
"""

from typing import Any, Callable, Optional, Protocol


class MediaTrack(Protocol):
    kind: str

    def stop(self) -> None: ...


class LocalMedia(Protocol):
    def get_tracks(self) -> list[MediaTrack]: ...


class MediaDevices(Protocol):
    async def acquire_local_media(self, audio: bool = True, video: bool = True) -> LocalMedia:
        """Raise PermissionDeniedError if the user or platform refuses capture."""
        ...


IceCandidateCallback = Callable[[Optional[dict[str, Any]]], None]
ConnectionStateCallback = Callable[[str], None]


class PeerConnection(Protocol):
    def add_track(self, track: MediaTrack, media: LocalMedia) -> None: ...

    async def create_offer(self) -> dict[str, Any]: ...

    async def create_answer(self) -> dict[str, Any]: ...

    async def set_local_description(self, description: dict[str, Any]) -> None: ...

    async def set_remote_description(self, description: dict[str, Any]) -> None: ...

    async def add_ice_candidate(self, candidate: dict[str, Any]) -> None: ...

    async def close(self) -> None: ...


class PeerConnectionFactory(Protocol):
    def __call__(
        self,
        ice_servers: list[dict[str, Any]],
        on_ice_candidate: IceCandidateCallback,
        on_connection_state: ConnectionStateCallback,
    ) -> PeerConnection: ...


CONNECTED_STATES = frozenset({"connected", "completed"})
FAILED_STATES = frozenset({"failed", "closed"})


class NoMediaDevices:
    """Capture backend for clients without local media: every request is refused."""

    async def acquire_local_media(self, audio: bool = True, video: bool = True) -> LocalMedia:
        from switchboard.errors import PermissionDeniedError
        raise PermissionDeniedError("No local media backend configured")


def no_peer_connections(
    ice_servers: list[dict[str, Any]],
    on_ice_candidate: IceCandidateCallback,
    on_connection_state: ConnectionStateCallback,
) -> PeerConnection:
    raise RuntimeError("No peer connection backend configured")
