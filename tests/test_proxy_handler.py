"""Tests for aichat_proxy/proxy/handler.py: payload rewrite and forwarding."""

import json
from unittest.mock import AsyncMock, patch

import aichat_proxy.proxy.handler as handler_mod
from aichat_proxy.providers.upstream import ProviderResponse, UpstreamClient
from aichat_proxy.proxy.handler import close_client, forward_to_provider, rewrite_payload


class TestRewritePayload:

    def test_removes_provider_field(self, chat_request_body, deepseek):
        sent = json.loads(rewrite_payload(chat_request_body, deepseek))
        assert "provider" not in sent
        assert sent["messages"] == chat_request_body["messages"]
        assert sent["max_tokens"] == 64

    def test_does_not_mutate_request(self, chat_request_body, deepseek):
        rewrite_payload(chat_request_body, deepseek)
        assert chat_request_body["provider"] == "deepseek"

    def test_fills_default_model(self, deepseek):
        sent = json.loads(rewrite_payload({"provider": "deepseek", "messages": []}, deepseek))
        assert sent == {"messages": [], "model": "deepseek-chat"}

    def test_keeps_requested_model(self, deepseek):
        sent = json.loads(rewrite_payload({"provider": "deepseek", "model": "deepseek-reasoner"}, deepseek))
        assert sent == {"model": "deepseek-reasoner"}

    def test_compact_utf8(self, deepseek):
        raw = rewrite_payload({"model": "m", "messages": [{"role": "user", "content": "olá"}]}, deepseek)
        assert raw == '{"model":"m","messages":[{"role":"user","content":"olá"}]}'.encode("utf-8")


class TestForwardToProvider:

    async def test_relays_rewritten_payload(self, chat_request_body, deepseek):
        upstream = AsyncMock()
        upstream.relay.return_value = ProviderResponse(status_code=200, body=b"{}")

        with patch("aichat_proxy.proxy.handler.get_upstream_client", return_value=upstream):
            result = await forward_to_provider(chat_request_body, deepseek, "application/json")

        assert result.status_code == 200
        provider_arg, payload_arg, content_type_arg = upstream.relay.call_args.args
        assert provider_arg is deepseek
        assert "provider" not in json.loads(payload_arg)
        assert content_type_arg == "application/json"


class TestUpstreamClientSingleton:

    def test_uses_request_timeout(self, override_settings):
        override_settings(REQUEST_TIMEOUT="2500")
        client = handler_mod.get_upstream_client()
        assert client.timeout_seconds == 2.5
        assert handler_mod.get_upstream_client() is client

    async def test_close_client(self, monkeypatch):
        upstream = AsyncMock(spec=UpstreamClient)
        monkeypatch.setattr(handler_mod, "_client", upstream)
        await close_client()
        upstream.close.assert_awaited_once()
        assert handler_mod._client is None

    async def test_close_without_client(self):
        await close_client()
