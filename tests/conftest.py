"""Shared fixtures for the AI Chat Proxy test suite."""

import pytest

import aichat_proxy.proxy.handler as handler_mod
from aichat_proxy.config.settings import get_settings
from aichat_proxy.providers.registry import ProviderDescriptor, get_registry
from aichat_proxy.security.ratelimit import get_rate_limiter

# Everything Settings reads; cleared so the host environment cannot leak in
SETTINGS_ENV_VARS = (
    "HOST", "PORT",
    "DEEPSEEK_API_KEY", "DEEPSEEK_API_URL", "DEEPSEEK_DEFAULT_MODEL",
    "OPENAI_API_KEY", "OPENAI_API_URL", "OPENAI_DEFAULT_MODEL",
    "RATE_LIMIT_WINDOW", "RATE_LIMIT_MAX_REQUESTS", "TRUST_FORWARDED_FOR",
    "REQUEST_TIMEOUT", "SHUTDOWN_TIMEOUT",
    "LOG_LEVEL", "ENABLE_DEBUG", "AUDIT_LOG_FILE", "PID_FILE",
)


def _clear_caches() -> None:
    get_settings.cache_clear()
    get_registry.cache_clear()
    get_rate_limiter.cache_clear()


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch):
    """Start every test from default settings and fresh singletons."""
    for name in SETTINGS_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(handler_mod, "_client", None)
    _clear_caches()
    yield
    _clear_caches()


@pytest.fixture
def override_settings(monkeypatch):
    """Factory fixture: set env vars and clear settings-derived caches.

    Usage:
        override_settings(OPENAI_API_KEY="sk-test", RATE_LIMIT_MAX_REQUESTS=5)
    """
    def _override(**kwargs):
        for key, value in kwargs.items():
            monkeypatch.setenv(key.upper(), str(value))
        # Clear lru_caches so Settings re-reads env
        _clear_caches()

    yield _override

    _clear_caches()


@pytest.fixture
def deepseek() -> ProviderDescriptor:
    return ProviderDescriptor(
        name="deepseek",
        api_url="https://upstream.test/chat/completions",
        api_key="sk-deepseek-secret",
        default_model="deepseek-chat",
    )


@pytest.fixture
def chat_request_body() -> dict:
    """Request body as sent by the OpenKore client."""
    return {
        "provider": "deepseek",
        "model": "deepseek-chat",
        "messages": [
            {"role": "system", "content": "You are a friendly Ragnarok Online player."},
            {"role": "user", "content": "hi, want to party?"},
        ],
        "max_tokens": 64,
    }
