"""
Conversation and message models.
"""

from enum import IntEnum
from typing import Any, Optional

from pydantic import BaseModel


class DeliveryState(IntEnum):
    """Acknowledgement ladder; only ever moves forward."""
    PENDING = 0
    SENT = 1
    DELIVERED = 2
    READ = 3
    PLAYED = 4

    @classmethod
    def coerce(cls, value: Any) -> "DeliveryState":
        try:
            ack = int(value)
        except (TypeError, ValueError):
            return cls.PENDING
        return cls(min(max(ack, cls.PENDING), cls.PLAYED))


class Sender(BaseModel):
    id: Optional[str] = None
    name: Optional[str] = None
    pushname: Optional[str] = None
    number: Optional[str] = None

    model_config = {"extra": "ignore"}


class Attachment(BaseModel):
    mimetype: Optional[str] = None
    filename: Optional[str] = None
    data: Optional[str] = None
    url: Optional[str] = None

    model_config = {"extra": "allow"}


class Message(BaseModel):
    id: str
    conversation_id: str
    session_id: str
    from_self: bool = False
    body: Optional[str] = None
    type: Optional[str] = None
    has_attachment: bool = False
    attachment: Optional[Attachment] = None
    timestamp: int = 0
    delivery_state: DeliveryState = DeliveryState.PENDING
    quoted_message_id: Optional[str] = None
    sender: Optional[Sender] = None


class Conversation(BaseModel):
    id: str
    session_id: str
    display_name: str
    is_group: bool = False
    last_message: Optional[Message] = None
    last_message_timestamp: int = 0
    unread_count: int = 0
