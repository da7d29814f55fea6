"""Session token providers for the realtime transcription backend.

The realtime socket only accepts a short-lived token. It is either fetched
from a token-issuing HTTP endpoint (``POST`` with no body, answering
``{"token": ...}`` or ``{"error": ...}``) or exchanged directly against the
AssemblyAI token API with a locally held API key.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from errors import NETWORK_ERROR, TOKEN_REJECTED, SessionFailure

logger = logging.getLogger(__name__)

ASSEMBLYAI_TOKEN_URL = "https://api.assemblyai.com/v2/realtime/token"


def _json_or_empty(response: httpx.Response) -> dict:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


class EndpointTokenProvider:
    def __init__(
        self,
        url: str,
        timeout_s: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._url = url
        self._timeout_s = timeout_s
        self._transport = transport

    async def fetch_token(self) -> str:
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout_s, transport=self._transport
            ) as client:
                response = await client.post(self._url)
        except httpx.HTTPError as exc:
            raise SessionFailure(NETWORK_ERROR, f"Token request failed: {exc}") from exc

        data = _json_or_empty(response)
        token = data.get("token")
        if response.status_code != 200 or not isinstance(token, str) or not token:
            server_msg = str(data.get("error") or "Token failed")
            logger.warning("Token endpoint rejected request (%d)", response.status_code)
            raise SessionFailure(TOKEN_REJECTED, f"Token request failed: {server_msg}")
        return token


class AssemblyAITokenProvider:
    def __init__(
        self,
        api_key: str,
        expires_in: int = 3600,
        url: str = ASSEMBLYAI_TOKEN_URL,
        timeout_s: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._api_key = api_key
        self._expires_in = expires_in
        self._url = url
        self._timeout_s = timeout_s
        self._transport = transport

    async def fetch_token(self) -> str:
        if not self._api_key:
            raise SessionFailure(TOKEN_REJECTED, "Missing ASSEMBLYAI_API_KEY")

        headers = {"Authorization": f"Bearer {self._api_key}"}
        body: dict[str, Any] = {"expires_in": self._expires_in}
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout_s, transport=self._transport
            ) as client:
                response = await client.post(self._url, headers=headers, json=body)
        except httpx.HTTPError as exc:
            raise SessionFailure(NETWORK_ERROR, f"Token request failed: {exc}") from exc

        if not response.is_success:
            raise SessionFailure(
                TOKEN_REJECTED,
                f"Token request failed ({response.status_code}): {response.text[:160]}",
            )
        token = _json_or_empty(response).get("token")
        if not isinstance(token, str) or not token:
            raise SessionFailure(TOKEN_REJECTED, "Token request failed: no token in response")
        return token
