"""Application settings loaded from environment variables."""

from functools import lru_cache

import httpx
from pydantic_settings import BaseSettings

from aichat_proxy.errors import ConfigurationError

MIN_RATE_LIMIT_WINDOW_MS = 1000


class Settings(BaseSettings):
    # Network binding
    host: str = "localhost"
    port: int = 3000

    # Upstream providers; a provider is usable only when its key is set
    deepseek_api_key: str = ""
    deepseek_api_url: str = "https://api.deepseek.com/chat/completions"
    deepseek_default_model: str = "deepseek-chat"

    openai_api_key: str = ""
    openai_api_url: str = "https://api.openai.com/v1/chat/completions"
    openai_default_model: str = "gpt-3.5-turbo"

    # Rate limiting (per client identity)
    rate_limit_window: int = 60000  # ms
    rate_limit_max_requests: int = 100
    # Use X-Forwarded-For as the client identity; spoofable unless behind a trusted proxy
    trust_forwarded_for: bool = False

    # Timeouts
    request_timeout: int = 30000  # ms, absolute per upstream call
    shutdown_timeout: int = 10000  # ms, grace period for in-flight requests

    # Logging
    log_level: str = "INFO"
    enable_debug: bool = False
    audit_log_file: str = ""  # Empty = stdout only

    # Process supervision
    pid_file: str = "proxy_pid.txt"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "frozen": True}

    @property
    def rate_limit_window_seconds(self) -> float:
        return self.rate_limit_window / 1000

    @property
    def request_timeout_seconds(self) -> float:
        return self.request_timeout / 1000

    @property
    def shutdown_timeout_seconds(self) -> float:
        return self.shutdown_timeout / 1000

    def public_config(self) -> dict:
        """Non-secret portion of the configuration, safe to expose on /status."""
        return {
            "host": self.host,
            "port": self.port,
            "rateLimit": {
                "windowMs": self.rate_limit_window,
                "maxRequests": self.rate_limit_max_requests,
            },
            "requestTimeout": self.request_timeout,
        }


def validate_settings(settings: Settings) -> Settings:
    """Check the loaded settings, reporting every problem at once."""
    errors = []

    if not settings.deepseek_api_key and not settings.openai_api_key:
        errors.append(
            "At least one API key must be provided (DEEPSEEK_API_KEY or OPENAI_API_KEY)"
        )
    if settings.port < 1 or settings.port > 65535:
        errors.append("Port must be between 1 and 65535")
    if settings.rate_limit_window < MIN_RATE_LIMIT_WINDOW_MS:
        errors.append(f"Rate limit window must be at least {MIN_RATE_LIMIT_WINDOW_MS}ms")
    if settings.rate_limit_max_requests < 1:
        errors.append("Rate limit max requests must be at least 1")
    if settings.request_timeout < 1:
        errors.append("Request timeout must be at least 1ms")
    if settings.shutdown_timeout < 0:
        errors.append("Shutdown timeout must not be negative")
    for env_name, url in (
        ("DEEPSEEK_API_URL", settings.deepseek_api_url),
        ("OPENAI_API_URL", settings.openai_api_url),
    ):
        if not _is_http_url(url):
            errors.append(f"{env_name} must be an absolute http(s) URL, got {url!r}")

    if errors:
        raise ConfigurationError(errors)
    return settings


def _is_http_url(value: str) -> bool:
    try:
        url = httpx.URL(value)
    except httpx.InvalidURL:
        return False
    return url.scheme in ("http", "https") and bool(url.host)


@lru_cache
def get_settings() -> Settings:
    return Settings()
