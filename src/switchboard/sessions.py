"""
Dashboard REST API — the request/response channel used by the registry and
the reconciler.
"""

from __future__ import annotations

from typing import Any, Optional
from urllib.parse import quote

from switchboard.transport.http import HttpClient


def _seg(value: str) -> str:
    return quote(value, safe="@.")


class SessionsAPI:
    def __init__(self, http: HttpClient):
        self._http = http

    async def create(self, session_id: str) -> Any:
        """create-session: ask the backend to start a provider client for ``session_id``."""
        return await self._http.post("/sessions/init", {"sessionId": session_id})

    async def list(self) -> list[dict[str, Any]]:
        """list-sessions"""
        return await self._http.get("/sessions") or []

    async def logout(self, session_id: str) -> Any:
        """logout-session. Removal is confirmed later by a client_logged_out event."""
        return await self._http.post("/sessions/logout", {"sessionId": session_id})

    async def list_conversations(self, session_id: str) -> list[dict[str, Any]]:
        """list-conversations"""
        return await self._http.get(f"/sessions/{_seg(session_id)}/chats") or []

    async def list_messages(self, session_id: str, conversation_id: str) -> list[dict[str, Any]]:
        """list-messages: full message history snapshot of one conversation."""
        return await self._http.get(
            f"/sessions/{_seg(session_id)}/chats/{_seg(conversation_id)}/messages"
        ) or []

    async def send_message(
        self,
        session_id: str,
        conversation_id: str,
        content: str,
        quoted_message_id: Optional[str] = None,
    ) -> Any:
        options: dict[str, Any] = {}
        if quoted_message_id:
            options["quotedMessageId"] = quoted_message_id
        return await self._http.post(f"/sessions/{_seg(session_id)}/messages/send", {
            "chatId": conversation_id,
            "content": content,
            "options": options,
        })

    async def delete_message(self, session_id: str, conversation_id: str, message_id: str) -> Any:
        return await self._http.post(f"/sessions/{_seg(session_id)}/messages/delete", {
            "chatId": conversation_id,
            "messageId": message_id,
        })

    async def set_typing(self, session_id: str, conversation_id: str, is_typing: bool) -> Any:
        return await self._http.post(
            f"/sessions/{_seg(session_id)}/chats/{_seg(conversation_id)}/typing",
            {"isTyping": is_typing},
        )

    async def get_conversation_info(self, session_id: str, conversation_id: str) -> dict[str, Any]:
        """Conversation details; for groups this includes participants and admins."""
        return await self._http.get(f"/sessions/{_seg(session_id)}/chats/{_seg(conversation_id)}/info") or {}

    async def list_conversation_media(self, session_id: str, conversation_id: str) -> list[dict[str, Any]]:
        return await self._http.get(f"/sessions/{_seg(session_id)}/chats/{_seg(conversation_id)}/media") or []

    async def list_contacts(self, session_id: str) -> list[dict[str, Any]]:
        return await self._http.get(f"/sessions/{_seg(session_id)}/contacts") or []

    async def create_group(self, session_id: str, name: str, participants: list[str]) -> Any:
        return await self._http.post(f"/sessions/{_seg(session_id)}/groups", {
            "name": name,
            "participants": participants,
        })

    async def group_action(self, session_id: str, conversation_id: str, action: str, **payload: Any) -> Any:
        """Run a group admin action (add/remove/promote/demote participants, rename, ...).

        Extra keyword arguments are sent alongside ``action`` in the body.
        """
        return await self._http.post(
            f"/sessions/{_seg(session_id)}/groups/{_seg(conversation_id)}/action",
            {"action": action, **payload},
        )

    async def list_status(self, session_id: str) -> list[dict[str, Any]]:
        """Status (story) updates visible to the session's account."""
        return await self._http.get(f"/sessions/{_seg(session_id)}/status") or []

    async def post_status(self, session_id: str, text: str) -> Any:
        """Publish a text status. The backend takes this endpoint as multipart form data."""
        return await self._http.post_form(f"/sessions/{_seg(session_id)}/status", {"content": text})

    async def delete_status(self, session_id: str, status_id: str) -> Any:
        return await self._http.delete(f"/sessions/{_seg(session_id)}/status", {"statusId": status_id})
