"""
Operator login for the dashboard backend.

The provider's own pairing (QR scan) is not handled here; it only surfaces as
session events.
"""

from typing import Any

from switchboard.errors import AuthError, TransportError
from switchboard.transport.http import HttpClient


class Auth:
    def __init__(self, http: HttpClient):
        self._http = http

    async def login(self, email: str, password: str) -> dict[str, Any]:
        """Exchange operator credentials for a bearer token and install it on the HTTP client."""
        try:
            result = await self._http.post(
                "/auth/login",
                {"email": email, "password": password},
                authenticated=False,
            )
        except TransportError as e:
            raise AuthError(f"Login failed: {e}") from e
        token = result.get("token") if isinstance(result, dict) else None
        if not token:
            raise AuthError("Login response did not include a token")
        self._http.set_token(token)
        return result
