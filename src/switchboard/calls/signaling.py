"""
Peer-to-peer call signaling over the dashboard event channel.

One call at a time. Caller: idle -> outgoing_ringing -> connecting -> active.
Callee: idle -> incoming_ringing -> connecting -> active. Any phase -> ended
-> idle on hang-up, remote end, or a failed setup after ringing started.

While a call is being set up (media acquisition, description exchange) the
coordinator is already busy even though the public phase can still read
idle. Every await in a setup path is followed by a check that the call is
still current, so an end() that lands mid-setup wins and the setup coroutine
releases whatever it acquired.
"""

import asyncio
import inspect
import logging
from typing import Any, Callable, Optional

from pydantic import ValidationError

from switchboard.calls.media import (
    CONNECTED_STATES,
    FAILED_STATES,
    MediaDevices,
    PeerConnectionFactory,
)
from switchboard.errors import BusyError, CallError, TransportError
from switchboard.models.call import CallDirection, CallPhase, CallSession, SessionDescription
from switchboard.models.events import (
    CallAnswerReceived,
    CallEndedReceived,
    CallOfferReceived,
    ClientEvent,
    IceCandidateReceived,
    SelfIdentified,
)
from switchboard.router import EventRouter
from switchboard.transport.socketio import EventChannel

DEFAULT_ICE_SERVERS: list[dict[str, Any]] = [{"urls": "stun:stun.l.google.com:19302"}]

PhaseListener = Callable[[CallPhase, Optional[CallSession]], None]

logger = logging.getLogger(__name__)


class CallCoordinator:
    def __init__(
        self,
        channel: EventChannel,
        media: MediaDevices,
        connect: PeerConnectionFactory,
        display_name: str = "Admin",
        ice_servers: Optional[list[dict[str, Any]]] = None,
    ):
        self._channel = channel
        self._media = media
        self._connect = connect
        self._display_name = display_name
        self._ice_servers = ice_servers or DEFAULT_ICE_SERVERS
        self._self_id: Optional[str] = None
        self._call: Optional[CallSession] = None
        self._accepting: Optional[CallSession] = None
        self._listeners: list[PhaseListener] = []
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def call(self) -> Optional[CallSession]:
        return self._call

    @property
    def phase(self) -> CallPhase:
        return self._call.phase if self._call is not None else CallPhase.IDLE

    @property
    def busy(self) -> bool:
        return self._call is not None

    @property
    def self_id(self) -> Optional[str]:
        return self._self_id or self._channel.sid

    def register(self, router: EventRouter) -> None:
        router.register(SelfIdentified, self._on_self_identified)
        router.register(CallOfferReceived, self._on_offer)
        router.register(CallAnswerReceived, self._on_answer)
        router.register(IceCandidateReceived, self._on_candidate)
        router.register(CallEndedReceived, self._on_remote_end)

    def add_phase_listener(self, listener: PhaseListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass
        return remove

    def _set_phase(self, call: Optional[CallSession], phase: CallPhase) -> None:
        if call is not None:
            call.phase = phase
        for listener in list(self._listeners):
            try:
                listener(phase, call)
            except Exception:
                logger.exception("Call phase listener failed")

    def _claim(self, call: CallSession) -> None:
        if self._call is not None:
            raise BusyError(details={"peer_id": self._call.peer_id, "phase": self._call.phase.value})
        self._call = call

    def _ensure_current(self, call: CallSession) -> None:
        if self._call is not call:
            raise CallError("Call ended during setup", code="call_aborted")

    # --- caller ----------------------------------------------------------

    async def initiate(self, peer_id: str, video: bool = True) -> CallSession:
        """Start a call to ``peer_id``.

        Raises BusyError (nothing changes), PermissionDeniedError or
        TransportError (coordinator back to idle, nothing left registered).
        """
        call = CallSession(self.self_id, peer_id, CallDirection.OUTGOING, video=video)
        self._claim(call)
        try:
            pc = await self._open_connection(call)
            offer = await pc.create_offer()
            self._ensure_current(call)
            await pc.set_local_description(offer)
            self._ensure_current(call)
            call.local_description = SessionDescription.model_validate(offer)
            await self._channel.emit(ClientEvent.CALL_USER, {
                "userToCall": peer_id,
                "signalData": offer,
                "from": self.self_id,
                "name": self._display_name,
            })
            self._ensure_current(call)
        except Exception as e:
            logger.warning("Call to %s failed during setup: %s", peer_id, e)
            await self._abort(call)
            raise
        self._set_phase(call, CallPhase.OUTGOING_RINGING)
        await self._mark_signaled(call)
        return call

    def _on_answer(self, event: CallAnswerReceived) -> Any:
        return self.accept_acknowledged(event.signal)

    async def accept_acknowledged(self, signal: dict[str, Any]) -> None:
        """Apply the callee's answer."""
        call = self._call
        if call is None or call.direction is not CallDirection.OUTGOING or call.phase is not CallPhase.OUTGOING_RINGING:
            logger.debug("Answer with no outgoing ringing call dropped")
            return
        try:
            description = SessionDescription.model_validate(signal)
        except ValidationError:
            logger.warning("Malformed answer from %s dropped", call.peer_id)
            return
        self._set_phase(call, CallPhase.CONNECTING)
        call.remote_description = description
        try:
            await call.connection.set_remote_description(signal)
        except Exception:
            logger.exception("Applying answer from %s failed, ending call", call.peer_id)
            if self._call is call:
                await self.end()
            return
        if self._call is not call:
            return
        call.remote_applied = True
        await self._flush_remote_candidates(call)

    # --- callee ----------------------------------------------------------

    def receive_offer(self, peer_id: str, signal: dict[str, Any], name: Optional[str] = None) -> CallSession:
        """Register an incoming call. Raises BusyError if a call is already in progress."""
        description = SessionDescription.model_validate(signal)
        call = CallSession(self.self_id, peer_id, CallDirection.INCOMING, peer_name=name)
        self._claim(call)
        call.remote_description = description
        self._set_phase(call, CallPhase.INCOMING_RINGING)
        return call

    async def _on_offer(self, event: CallOfferReceived) -> None:
        try:
            self.receive_offer(event.from_id, event.signal, event.name)
        except BusyError:
            logger.info("Busy, rejecting call from %s", event.from_id)
            await self._send_end(event.from_id)
        except ValidationError:
            logger.warning("Malformed offer from %s dropped", event.from_id)

    async def accept(self, video: bool = True) -> CallSession:
        """Answer the ringing incoming call.

        On PermissionDeniedError or TransportError the call is torn down, the
        caller is told the call ended, and the error is re-raised.
        """
        call = self._call
        if call is None or call.direction is not CallDirection.INCOMING or call.phase is not CallPhase.INCOMING_RINGING:
            raise CallError("No incoming call to accept", code="no_incoming_call")
        if self._accepting is call:
            raise CallError("Call is already being accepted", code="accept_in_progress")
        self._accepting = call
        call.video = video
        try:
            pc = await self._open_connection(call)
            self._set_phase(call, CallPhase.CONNECTING)
            await pc.set_remote_description(call.remote_description.model_dump())  # type: ignore[union-attr]
            self._ensure_current(call)
            call.remote_applied = True
            await self._flush_remote_candidates(call)
            answer = await pc.create_answer()
            self._ensure_current(call)
            await pc.set_local_description(answer)
            self._ensure_current(call)
            call.local_description = SessionDescription.model_validate(answer)
            await self._channel.emit(ClientEvent.ANSWER_CALL, {"signal": answer, "to": call.peer_id})
            self._ensure_current(call)
        except Exception as e:
            logger.warning("Accepting call from %s failed: %s", call.peer_id, e)
            peer_id = call.peer_id
            if await self._abort(call) and peer_id:
                await self._send_end(peer_id)
            raise
        finally:
            self._accepting = None
        await self._mark_signaled(call)
        return call

    # --- both sides ------------------------------------------------------

    async def _open_connection(self, call: CallSession) -> Any:
        call.media = await self._media.acquire_local_media(audio=True, video=call.video)
        self._ensure_current(call)

        def on_ice_candidate(candidate: Optional[dict[str, Any]]) -> None:
            self._on_local_candidate(call, candidate)

        def on_connection_state(state: str) -> None:
            self._on_connection_state(call, state)

        pc = self._connect(self._ice_servers, on_ice_candidate, on_connection_state)
        if inspect.isawaitable(pc):
            pc = await pc
        call.connection = pc
        self._ensure_current(call)
        for track in call.media.get_tracks():
            pc.add_track(track, call.media)
        return pc

    def _on_local_candidate(self, call: CallSession, candidate: Optional[dict[str, Any]]) -> None:
        if candidate is None or self._call is not call:
            return
        if not call.signaled:
            call.outgoing_ice_candidates.append(candidate)
            return
        self._spawn(self._send_candidate(call.peer_id, candidate))

    async def _mark_signaled(self, call: CallSession) -> None:
        call.signaled = True
        while call.outgoing_ice_candidates and self._call is call:
            await self._send_candidate(call.peer_id, call.outgoing_ice_candidates.pop(0))

    async def _send_candidate(self, peer_id: Optional[str], candidate: dict[str, Any]) -> None:
        if not peer_id:
            return
        try:
            await self._channel.emit(ClientEvent.ICE_CANDIDATE, {"to": peer_id, "candidate": candidate})
        except TransportError as e:
            logger.warning("Sending ICE candidate to %s failed: %s", peer_id, e)

    def _on_connection_state(self, call: CallSession, state: str) -> None:
        if self._call is not call:
            return
        if state in CONNECTED_STATES and call.phase is CallPhase.CONNECTING:
            self._set_phase(call, CallPhase.ACTIVE)
        elif state in FAILED_STATES and call.phase is not CallPhase.ENDED:
            logger.warning("Peer connection to %s %s, ending call", call.peer_id, state)
            self._spawn(self._end_if_current(call))

    def _on_candidate(self, event: IceCandidateReceived) -> Any:
        return self.add_remote_candidate(event.candidate, event.from_id)

    async def add_remote_candidate(self, candidate: dict[str, Any], from_id: Optional[str] = None) -> None:
        """Apply a remote candidate, or queue it until the remote description is set."""
        call = self._call
        if call is None:
            logger.debug("ICE candidate with no call dropped")
            return
        if from_id and call.peer_id and from_id != call.peer_id:
            logger.debug("ICE candidate from %s (not %s) dropped", from_id, call.peer_id)
            return
        if not call.remote_applied or call.connection is None:
            call.pending_ice_candidates.append(candidate)
            return
        await self._apply_candidate(call, candidate)

    async def _flush_remote_candidates(self, call: CallSession) -> None:
        while call.pending_ice_candidates and self._call is call:
            await self._apply_candidate(call, call.pending_ice_candidates.pop(0))

    async def _apply_candidate(self, call: CallSession, candidate: dict[str, Any]) -> None:
        try:
            await call.connection.add_ice_candidate(candidate)
        except Exception as e:
            logger.warning("Rejected ICE candidate from %s: %s", call.peer_id, e)

    def _on_self_identified(self, event: SelfIdentified) -> None:
        self._self_id = event.self_id

    def _on_remote_end(self, event: CallEndedReceived) -> Any:
        call = self._call
        if call is None:
            return None
        if event.from_id and call.peer_id and event.from_id != call.peer_id:
            logger.debug("End from %s does not match current peer %s, ignored", event.from_id, call.peer_id)
            return None
        return self.end(notify_peer=False)

    async def end(self, notify_peer: bool = True) -> None:
        """Hang up. Safe to call at any time; a no-op when idle."""
        call = self._call
        if call is None:
            return
        self._call = None
        peer_id = call.peer_id
        # an outgoing call the peer never heard of needs no endCall
        peer_knows = call.direction is CallDirection.INCOMING or call.signaled
        await self._release(call)
        self._set_phase(call, CallPhase.ENDED)
        call.peer_id = None
        call.local_description = None
        call.remote_description = None
        call.remote_applied = False
        call.pending_ice_candidates.clear()
        call.outgoing_ice_candidates.clear()
        self._set_phase(None, CallPhase.IDLE)
        logger.info("Call with %s ended", peer_id)
        if notify_peer and peer_id and peer_knows:
            await self._send_end(peer_id)

    async def _end_if_current(self, call: CallSession) -> None:
        if self._call is call:
            await self.end()

    async def _abort(self, call: CallSession) -> bool:
        """Undo a failed setup. Returns True if the call was still the current one."""
        current = self._call is call
        if current:
            self._call = None
        await self._release(call)
        call.pending_ice_candidates.clear()
        call.outgoing_ice_candidates.clear()
        if current and call.phase is not CallPhase.IDLE:
            self._set_phase(call, CallPhase.ENDED)
            self._set_phase(None, CallPhase.IDLE)
        return current

    async def _release(self, call: CallSession) -> None:
        media, call.media = call.media, None
        connection, call.connection = call.connection, None
        if media is not None:
            for track in media.get_tracks():
                try:
                    track.stop()
                except Exception:
                    logger.exception("Stopping %s track failed", getattr(track, "kind", "media"))
        if connection is not None:
            try:
                await connection.close()
            except Exception:
                logger.exception("Closing peer connection failed")

    async def _send_end(self, peer_id: str) -> None:
        try:
            await self._channel.emit(ClientEvent.END_CALL, {"to": peer_id})
        except TransportError as e:
            logger.warning("Could not notify %s that the call ended: %s", peer_id, e)

    def _spawn(self, coro: Any) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def close(self) -> None:
        await self.end()
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
