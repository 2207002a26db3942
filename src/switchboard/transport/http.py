"""
REST client for the dashboard backend — the request/response channel.
"""

import logging
from typing import Any, Optional

import httpx

from switchboard.errors import TransportError

DEFAULT_BASE_URL = "http://localhost:3000"

logger = logging.getLogger(__name__)


class HttpClient:
    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        token: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._client = httpx.AsyncClient(
            base_url=f"{self._base_url}/api",
            headers={"User-Agent": "switchboard-sdk/0.1.0", "Accept": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    @property
    def token(self) -> Optional[str]:
        return self._token

    def set_token(self, token: Optional[str]) -> None:
        self._token = token

    def _auth_headers(self, authenticated: bool) -> dict[str, str]:
        headers: dict[str, str] = {}
        if authenticated and self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def _request(self, method: str, path: str, authenticated: bool = True, **kwargs: Any) -> Any:
        try:
            resp = await self._client.request(method, path, headers=self._auth_headers(authenticated), **kwargs)
        except httpx.HTTPError as e:
            logger.warning("%s %s failed: %s", method, path, e)
            raise TransportError(f"{method} {path} failed: {e}") from e
        if resp.status_code >= 400:
            raise TransportError(
                f"HTTP {resp.status_code}: {resp.text[:200]}",
                code="http_error",
                details={"status": resp.status_code, "path": path},
            )
        if not resp.content:
            return None
        return resp.json()

    async def get(self, path: str, authenticated: bool = True) -> Any:
        return await self._request("GET", path, authenticated)

    async def post(self, path: str, body: Optional[dict[str, Any]] = None, authenticated: bool = True) -> Any:
        return await self._request("POST", path, authenticated, json=body)

    async def post_form(self, path: str, fields: dict[str, str], authenticated: bool = True) -> Any:
        """multipart/form-data POST with text fields only."""
        files = {name: (None, value) for name, value in fields.items()}
        return await self._request("POST", path, authenticated, files=files)

    async def delete(self, path: str, body: Optional[dict[str, Any]] = None, authenticated: bool = True) -> Any:
        return await self._request("DELETE", path, authenticated, json=body)

    async def close(self) -> None:
        await self._client.aclose()
