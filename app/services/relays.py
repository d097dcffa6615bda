"""
Upstream relays - the privileged operations behind the entitlement gate.

Payloads are passed through; only the fields the API returns are read back.
"""

import httpx
from structlog import get_logger

from app.config import settings
from app.exceptions import UpstreamServiceError
from app.models.api import ChatMessage

logger = get_logger(__name__)


class ChatRelayClient:
    """Perplexity chat-completions relay."""

    SERVICE = "AI service"

    def __init__(
        self,
        api_key: str,
        api_url: str,
        model: str,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key
        self.api_url = api_url
        self.model = model
        self.timeout = timeout
        self._http_client = http_client

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Get HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    async def complete(self, messages: list[ChatMessage], max_tokens: int) -> str:
        """Send the conversation and return the first choice's content."""
        if not self.api_key:
            logger.error("chat_relay_api_key_missing")
            raise UpstreamServiceError(self.SERVICE, "API key not configured")

        payload = {
            "model": self.model,
            "messages": [m.model_dump() for m in messages],
            "max_tokens": max_tokens,
            "temperature": 0.7,
        }

        try:
            response = await self.http_client.post(
                self.api_url,
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
            response.raise_for_status()
            data = response.json()
            return str(data["choices"][0]["message"]["content"])
        except httpx.HTTPStatusError as e:
            logger.error(
                "chat_relay_failed", status=e.response.status_code, text=e.response.text[:500]
            )
            raise UpstreamServiceError(self.SERVICE, f"status {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error("chat_relay_transport_error", error=str(e))
            raise UpstreamServiceError(self.SERVICE, "unreachable") from e
        except (KeyError, IndexError, TypeError, ValueError) as e:
            logger.error("chat_relay_bad_payload", error=str(e))
            raise UpstreamServiceError(self.SERVICE, "unexpected response") from e

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()


class ShortlinkClient:
    """VPLink shortener relay (text format API)."""

    SERVICE = "Shortlink service"

    def __init__(
        self,
        api_key: str,
        api_url: str,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key
        self.api_url = api_url
        self.timeout = timeout
        self._http_client = http_client

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Get HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    async def shorten(self, url: str) -> str:
        """Return the shortened form of `url`."""
        if not self.api_key:
            logger.error("shortlink_api_key_missing")
            raise UpstreamServiceError(self.SERVICE, "API key not configured")

        params = {"api": self.api_key, "url": url, "format": "text"}

        try:
            response = await self.http_client.get(self.api_url, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error("shortlink_failed", status=e.response.status_code)
            raise UpstreamServiceError(self.SERVICE, f"status {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error("shortlink_transport_error", error=str(e))
            raise UpstreamServiceError(self.SERVICE, "unreachable") from e

        short_url = response.text.strip()
        if not short_url or "error" in short_url.lower():
            logger.error("shortlink_rejected", body=short_url[:200])
            raise UpstreamServiceError(self.SERVICE, "Failed to generate shortlink")

        return short_url

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()


# Global singletons, closed on application shutdown
chat_relay = ChatRelayClient(
    api_key=settings.perplexity_api_key,
    api_url=settings.perplexity_api_url,
    model=settings.perplexity_model,
    timeout=settings.upstream_timeout_seconds,
)

shortlink_client = ShortlinkClient(
    api_key=settings.shortlink_api_key,
    api_url=settings.shortlink_api_url,
    timeout=settings.upstream_timeout_seconds,
)
