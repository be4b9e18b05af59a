"""HTTP client for the chat gateway's POST /chat endpoint."""

from typing import List, Optional

import httpx
import structlog

from ..domain.models import ChatSettings, Message

logger = structlog.get_logger()


class ChatRequestError(Exception):
    """The gateway rejected or failed a chat turn."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class GatewayClient:
    """Posts chat turns to the gateway and returns the assistant reply."""

    def __init__(
        self,
        base_url: str,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 60.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._http_client = http_client

    async def _post(self, body: dict) -> httpx.Response:
        url = f"{self.base_url}/chat"
        if self._http_client is not None:
            return await self._http_client.post(url, json=body)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.post(url, json=body)

    async def complete(self, messages: List[Message], settings: ChatSettings) -> str:
        body = {
            "messages": [m.model_dump(mode="json", by_alias=True) for m in messages],
            "settings": settings.model_dump(mode="json", by_alias=True),
        }
        try:
            response = await self._post(body)
        except httpx.TransportError as e:
            logger.error("gateway_unreachable", error=str(e))
            raise ChatRequestError(f"Network error: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        if response.status_code >= 400:
            raise ChatRequestError(
                data.get("error") or f"Request failed with status {response.status_code}",
                status_code=response.status_code,
            )
        if data.get("error"):
            raise ChatRequestError(data["error"], status_code=response.status_code)

        return data.get("message", "")
