"""Remote chat-completion client."""

from typing import Dict, List, Literal, Optional, Sequence

import httpx
import structlog

from ..domain.models import ChatSettings, Message

logger = structlog.get_logger()

ErrorKind = Literal["validation", "upstream", "transport", "unknown"]

NO_RESPONSE = "No response received"


class CompletionError(Exception):
    """Failure of a completion call, tagged with its class."""

    kind: ErrorKind = "unknown"

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class CompletionValidationError(CompletionError):
    kind = "validation"


class UpstreamError(CompletionError):
    """The completion API answered with an error."""

    kind = "upstream"

    @property
    def is_authentication(self) -> bool:
        return self.status_code in (401, 403)

    @property
    def is_rate_limited(self) -> bool:
        return self.status_code == 429

    @property
    def is_server_error(self) -> bool:
        return self.status_code is not None and self.status_code >= 500


class TransportError(CompletionError):
    """The completion API could not be reached or timed out."""

    kind = "transport"


def describe_error(error: BaseException) -> str:
    """Map an error to a message suitable for showing to the user."""
    if isinstance(error, TransportError):
        return "Network error. Please check your connection and try again."
    if isinstance(error, UpstreamError):
        if error.is_authentication:
            return "Authentication error. Please refresh the page and try again."
        if error.is_rate_limited:
            return "Rate limit exceeded. Please wait a moment and try again."
        if error.is_server_error:
            return "AI service is temporarily unavailable. Please try again in a few moments."
    if str(error):
        return str(error)
    return "An unexpected error occurred. Please try again."


def build_payload(messages: Sequence[Message], settings: ChatSettings) -> Dict:
    """Build the chat/completions request body; the system prompt always goes first."""
    return {
        "model": settings.model,
        "messages": [{"role": "system", "content": settings.system_prompt}]
        + [{"role": m.role, "content": m.content} for m in messages],
        "temperature": settings.temperature,
        "max_tokens": settings.max_tokens,
    }


def _error_message(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        return body["error"].get("message")
    return None


class CompletionClient:
    """Client for an OpenAI-style chat/completions endpoint."""

    def __init__(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        timeout: float = 60.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.url = url
        self.headers = headers or {"Content-Type": "application/json"}
        self.timeout = timeout
        self._http_client = http_client
        logger.info("completion_client_init", url=url)

    async def _post(self, payload: Dict) -> httpx.Response:
        if self._http_client is not None:
            return await self._http_client.post(self.url, json=payload, headers=self.headers)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.post(self.url, json=payload, headers=self.headers)

    async def complete(self, messages: List[Message], settings: ChatSettings) -> str:
        """Send the conversation and return the assistant's reply text."""
        chat_messages = [m for m in messages if m.role in ("user", "assistant")]
        if not chat_messages:
            raise CompletionValidationError("No valid user or assistant messages found")

        payload = build_payload(chat_messages, settings)
        try:
            response = await self._post(payload)
        except httpx.TransportError as e:
            logger.error("completion_transport_error", error=str(e))
            raise TransportError(f"Network error: {e}") from e

        if response.status_code >= 400:
            message = _error_message(response) or (
                f"API request failed with status {response.status_code}"
            )
            logger.error(
                "completion_upstream_error",
                status_code=response.status_code,
                error=message,
            )
            raise UpstreamError(message, status_code=response.status_code)

        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamError(
                "AI service returned an invalid response", status_code=response.status_code
            ) from e

        if not isinstance(data, dict):
            raise UpstreamError("AI service returned an invalid response", status_code=response.status_code)

        if data.get("error"):
            error = data["error"]
            message = error.get("message") if isinstance(error, dict) else None
            raise UpstreamError(message or "AI service returned an error", status_code=response.status_code)

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            content = None

        logger.info(
            "completion_received",
            model=settings.model,
            prompt_messages=len(chat_messages),
            response_length=len(content) if content else 0,
        )
        return content or NO_RESPONSE

    async def test_connection(self) -> bool:
        """Round-trip a tiny prompt to check the endpoint is reachable."""
        ping = Message(id="test", role="user", content="Hello")
        ping_settings = ChatSettings(
            system_prompt='Respond with just "OK"',
            temperature=0,
            max_tokens=10,
        )
        try:
            await self.complete([ping], ping_settings)
            return True
        except CompletionError as e:
            logger.warning("completion_connection_test_failed", error=str(e), kind=e.kind)
            return False
