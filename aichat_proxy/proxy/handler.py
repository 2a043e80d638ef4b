"""Proxy handler: payload rewrite and relay to the selected provider."""

import json

from aichat_proxy.config.settings import get_settings
from aichat_proxy.providers.registry import ProviderDescriptor
from aichat_proxy.providers.upstream import DEFAULT_CONTENT_TYPE, ProviderResponse, UpstreamClient

ROUTING_FIELD = "provider"

_client: UpstreamClient | None = None


def get_upstream_client() -> UpstreamClient:
    """Get the shared upstream client, creating it on first use."""
    global _client
    if _client is None:
        _client = UpstreamClient(timeout_seconds=get_settings().request_timeout_seconds)
    return _client


def rewrite_payload(body: dict, provider: ProviderDescriptor) -> bytes:
    """Strip the routing field and serialize what the provider should see.

    Fills in the provider's default model when the request names none.
    """
    payload = {k: v for k, v in body.items() if k != ROUTING_FIELD}
    if "model" not in payload and provider.default_model:
        payload["model"] = provider.default_model
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


async def forward_to_provider(
    body: dict,
    provider: ProviderDescriptor,
    content_type: str = DEFAULT_CONTENT_TYPE,
) -> ProviderResponse:
    """Rewrite the request body and relay it to the provider."""
    payload = rewrite_payload(body, provider)
    return await get_upstream_client().relay(provider, payload, content_type)


async def close_client() -> None:
    """Gracefully close the upstream client on shutdown."""
    global _client
    if _client is not None:
        await _client.close()
        _client = None
