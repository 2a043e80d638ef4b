"""Upstream HTTP client shared by all providers.

Every provider speaks the same chat-completions dialect, so one client
covers them all; the descriptor supplies the endpoint and credential.
"""

import asyncio
from dataclasses import dataclass

import httpx

from aichat_proxy.errors import UpstreamTimeoutError, UpstreamTransportError
from aichat_proxy.providers.registry import ProviderDescriptor

DEFAULT_CONTENT_TYPE = "application/json"


@dataclass
class ProviderResponse:
    status_code: int
    body: bytes
    content_type: str = DEFAULT_CONTENT_TYPE


class UpstreamClient:
    """Sends rewritten payloads to a provider and returns the raw response."""

    def __init__(self, timeout_seconds: float, transport: httpx.AsyncBaseTransport | None = None):
        self.timeout_seconds = timeout_seconds
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout_seconds),
                transport=self._transport,
            )
        return self._client

    @staticmethod
    def _build_headers(api_key: str, content_type: str) -> dict:
        return {
            "Content-Type": content_type or DEFAULT_CONTENT_TYPE,
            "Authorization": f"Bearer {api_key}",
        }

    async def relay(
        self,
        provider: ProviderDescriptor,
        payload: bytes,
        content_type: str = DEFAULT_CONTENT_TYPE,
    ) -> ProviderResponse:
        """POST ``payload`` to the provider within an absolute timeout.

        Expiry cancels the in-flight request, which drops its connection.

        Raises:
            UpstreamTimeoutError: the call did not finish in time.
            UpstreamTransportError: connection-level failure.
        """
        headers = self._build_headers(provider.api_key, content_type)
        client = self._get_client()
        try:
            response = await asyncio.wait_for(
                client.post(provider.api_url, content=payload, headers=headers),
                timeout=self.timeout_seconds,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            raise UpstreamTimeoutError(provider.name)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise UpstreamTransportError(provider.name, str(e) or type(e).__name__)

        return ProviderResponse(
            status_code=response.status_code,
            body=response.content,
            content_type=response.headers.get("content-type", DEFAULT_CONTENT_TYPE),
        )

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
        self._client = None
