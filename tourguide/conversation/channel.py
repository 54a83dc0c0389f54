from __future__ import annotations

import logging
from typing import Protocol

import httpx

from tourguide.exceptions import ChannelUnavailable

logger = logging.getLogger(__name__)


class ConversationChannel(Protocol):
    async def send_contextual_update(self, session_id: str, text: str) -> None:
        """Deliver ``text`` to the live conversation or raise ``ChannelUnavailable``."""
        ...


class HttpConversationChannel:
    """Posts contextual updates to the voice agent's conversation relay."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: str,
        access_token: str = "",
        timeout: float = 5.0,
    ):
        self._http = http_client
        self._base_url = base_url.rstrip("/")
        self._access_token = access_token
        self._timeout = timeout

    @property
    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._access_token:
            headers["Authorization"] = f"Bearer {self._access_token}"
        return headers

    async def send_contextual_update(self, session_id: str, text: str) -> None:
        if not self._base_url:
            raise ChannelUnavailable(session_id, "no conversation channel configured")

        url = f"{self._base_url}/conversations/{session_id}/contextual-updates"
        payload = {"type": "contextual_update", "text": text}
        try:
            resp = await self._http.post(
                url, json=payload, headers=self._headers, timeout=self._timeout
            )
        except httpx.HTTPError as e:
            raise ChannelUnavailable(session_id, str(e) or type(e).__name__) from e

        if resp.status_code >= 400:
            logger.error("Contextual update rejected [%s] %s: %s", session_id, resp.status_code, resp.text)
            raise ChannelUnavailable(session_id, f"HTTP {resp.status_code}")
        logger.info("Contextual update [%s]: %s", session_id, text[:80])
