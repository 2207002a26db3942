"""
Transient notices shown to the operator.
"""

from typing import Optional

from pydantic import BaseModel


class Notification(BaseModel):
    title: str
    body: str = ""
    session_id: str
    conversation_id: str
    conversation_name: Optional[str] = None
    is_group: bool = False
    created_at: float


class ProviderCallNotice(BaseModel):
    """Provider-originated call alert. Dismiss-only: it cannot be answered here."""
    session_id: str
    caller_id: str
    is_video: bool = False
    received_at: float
