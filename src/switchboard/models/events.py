"""
Event names and typed inbound events for the dashboard Socket.IO channel.

Every server-pushed event is parsed into exactly one model of the closed
``InboundEvent`` union. Payload field names follow the backend's camelCase
wire format; models accept either the alias or the Python name.
"""

from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

from switchboard.models.conversation import Attachment, DeliveryState, Message, Sender


class ServerEvent:
    """Inbound (server -> client) event names."""
    STATUS_UPDATE = "status_update"
    QR_CODE = "qr_code"
    CLIENT_READY = "client_ready"
    CLIENT_AUTHENTICATED = "client_authenticated"
    CLIENT_DISCONNECTED = "client_disconnected"
    CLIENT_LOGGED_OUT = "client_logged_out"
    MESSAGE_RECEIVED = "message_received"
    MESSAGE_ACK = "message_ack"
    PROVIDER_INCOMING_CALL = "whatsapp_incoming_call"
    ME = "me"
    CALL_USER = "callUser"
    CALL_ACCEPTED = "callAccepted"
    ICE_CANDIDATE = "ice-candidate"
    CALL_ENDED = "callEnded"


class ClientEvent:
    """Outbound (client -> server) event names."""
    CALL_USER = "callUser"
    ANSWER_CALL = "answerCall"
    ICE_CANDIDATE = "ice-candidate"
    END_CALL = "endCall"


class _Wire(BaseModel):
    model_config = {"populate_by_name": True, "extra": "ignore"}


class WireQuotedMessage(_Wire):
    id: Optional[Any] = None


class WireMessage(_Wire):
    """message_received payload.message (also the list-messages row format)"""
    id: Any
    chat_id: Optional[str] = Field(default=None, alias="chatId")
    from_me: bool = Field(default=False, alias="fromMe")
    body: Optional[str] = None
    type: Optional[str] = None
    has_media: bool = Field(default=False, alias="hasMedia")
    media: Optional[dict[str, Any]] = None
    timestamp: int = 0
    ack: Optional[int] = None
    is_group: Optional[bool] = Field(default=None, alias="isGroup")
    chat_name: Optional[str] = Field(default=None, alias="chatName")
    sender: Optional[Sender] = None
    quoted_message: Optional[WireQuotedMessage] = Field(default=None, alias="quotedMessage")

    @property
    def message_id(self) -> str:
        return flatten_id(self.id)

    def to_message(self, session_id: str, conversation_id: Optional[str] = None) -> Message:
        quoted = self.quoted_message.id if self.quoted_message else None
        return Message(
            id=self.message_id,
            conversation_id=conversation_id or self.chat_id or "",
            session_id=session_id,
            from_self=self.from_me,
            body=self.body,
            type=self.type,
            has_attachment=self.has_media,
            attachment=Attachment.model_validate(self.media) if self.media else None,
            timestamp=self.timestamp,
            delivery_state=DeliveryState.coerce(self.ack),
            quoted_message_id=flatten_id(quoted) if quoted is not None else None,
            sender=self.sender,
        )


def flatten_id(value: Any) -> str:
    # whatsapp-web.js ids arrive either flat or as {_serialized, id, fromMe, remote}
    if isinstance(value, dict):
        return str(value.get("_serialized") or value.get("id") or "")
    return str(value)


class SessionStatusChanged(_Wire):
    kind: Literal["session_status"] = "session_status"
    session_id: str = Field(alias="sessionId")
    status: str
    user_info: Optional[dict[str, Any]] = Field(default=None, alias="userInfo")


class PairingCodeIssued(_Wire):
    kind: Literal["pairing_code"] = "pairing_code"
    session_id: str = Field(alias="sessionId")
    qr: Optional[str] = None


class SessionReady(_Wire):
    kind: Literal["session_ready"] = "session_ready"
    session_id: str = Field(alias="sessionId")


class SessionAuthenticated(_Wire):
    kind: Literal["session_authenticated"] = "session_authenticated"
    session_id: str = Field(alias="sessionId")


class SessionDisconnected(_Wire):
    kind: Literal["session_disconnected"] = "session_disconnected"
    session_id: str = Field(alias="sessionId")
    reason: Optional[str] = None


class SessionLoggedOut(_Wire):
    kind: Literal["session_logged_out"] = "session_logged_out"
    session_id: str = Field(alias="sessionId")


class MessageReceived(_Wire):
    kind: Literal["message_received"] = "message_received"
    session_id: str = Field(alias="sessionId")
    message: WireMessage


class MessageAcked(_Wire):
    kind: Literal["message_ack"] = "message_ack"
    session_id: str = Field(alias="sessionId")
    message_id: str = Field(alias="msgId")
    ack: int

    @field_validator("message_id", mode="before")
    @classmethod
    def _flatten_id(cls, value: Any) -> str:
        return flatten_id(value)


class ProviderCallAlert(_Wire):
    kind: Literal["provider_call"] = "provider_call"
    session_id: str = Field(alias="sessionId")
    caller_id: str = Field(alias="from")
    is_video: bool = Field(default=False, alias="isVideo")


class SelfIdentified(_Wire):
    kind: Literal["self_identified"] = "self_identified"
    self_id: str


class CallOfferReceived(_Wire):
    kind: Literal["call_offer"] = "call_offer"
    from_id: str = Field(alias="from")
    name: Optional[str] = None
    signal: dict[str, Any]


class CallAnswerReceived(_Wire):
    kind: Literal["call_answer"] = "call_answer"
    signal: dict[str, Any]


class IceCandidateReceived(_Wire):
    kind: Literal["ice_candidate"] = "ice_candidate"
    candidate: dict[str, Any]
    from_id: Optional[str] = Field(default=None, alias="from")


class CallEndedReceived(_Wire):
    kind: Literal["call_ended"] = "call_ended"
    from_id: Optional[str] = Field(default=None, alias="from")


InboundEvent = Union[
    SessionStatusChanged,
    PairingCodeIssued,
    SessionReady,
    SessionAuthenticated,
    SessionDisconnected,
    SessionLoggedOut,
    MessageReceived,
    MessageAcked,
    ProviderCallAlert,
    SelfIdentified,
    CallOfferReceived,
    CallAnswerReceived,
    IceCandidateReceived,
    CallEndedReceived,
]

INBOUND_EVENT_TYPES: tuple[type[BaseModel], ...] = InboundEvent.__args__  # type: ignore[attr-defined]


def _as_dict(data: Any) -> dict[str, Any]:
    return data if isinstance(data, dict) else {}


def _provider_call(data: Any) -> dict[str, Any]:
    data = _as_dict(data)
    call = _as_dict(data.get("call"))
    return {"sessionId": data.get("sessionId"), **call}


def _call_answer(data: Any) -> dict[str, Any]:
    data = _as_dict(data)
    if isinstance(data.get("signal"), dict):
        return {"signal": data["signal"]}
    return {"signal": data}


EVENT_PAYLOADS: dict[str, tuple[type[BaseModel], Any]] = {
    ServerEvent.STATUS_UPDATE: (SessionStatusChanged, _as_dict),
    ServerEvent.QR_CODE: (PairingCodeIssued, _as_dict),
    ServerEvent.CLIENT_READY: (SessionReady, _as_dict),
    ServerEvent.CLIENT_AUTHENTICATED: (SessionAuthenticated, _as_dict),
    ServerEvent.CLIENT_DISCONNECTED: (SessionDisconnected, _as_dict),
    ServerEvent.CLIENT_LOGGED_OUT: (SessionLoggedOut, _as_dict),
    ServerEvent.MESSAGE_RECEIVED: (MessageReceived, _as_dict),
    ServerEvent.MESSAGE_ACK: (MessageAcked, _as_dict),
    ServerEvent.PROVIDER_INCOMING_CALL: (ProviderCallAlert, _provider_call),
    ServerEvent.ME: (SelfIdentified, lambda data: {"self_id": data}),
    ServerEvent.CALL_USER: (CallOfferReceived, _as_dict),
    ServerEvent.CALL_ACCEPTED: (CallAnswerReceived, _call_answer),
    ServerEvent.ICE_CANDIDATE: (IceCandidateReceived, _as_dict),
    ServerEvent.CALL_ENDED: (CallEndedReceived, _as_dict),
}
