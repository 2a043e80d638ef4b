"""Tests for aichat_proxy/errors.py: error bodies and headers."""

from aichat_proxy.errors import (
    ConfigurationError,
    RateLimitError,
    UpstreamTransportError,
    ValidationError,
)


class TestGatewayErrors:

    def test_validation_body(self):
        err = ValidationError("invalid_json", "Failed to parse request body", {"details": "Expecting value"})
        assert err.status_code == 400
        assert err.to_body() == {
            "error": "invalid_json",
            "message": "Failed to parse request body",
            "details": "Expecting value",
        }
        assert err.headers == {}

    def test_rate_limit_headers(self):
        err = RateLimitError(limit=100, retry_after=12.3)
        assert err.status_code == 429
        assert err.to_body()["error"] == "rate_limit_exceeded"
        assert err.headers["Retry-After"] == "13"
        assert err.headers["X-RateLimit-Limit"] == "100"
        assert err.headers["X-RateLimit-Remaining"] == "0"

    def test_rate_limit_retry_after_at_least_one_second(self):
        assert RateLimitError(limit=1, retry_after=0.0).headers["Retry-After"] == "1"

    def test_transport_error_body(self):
        err = UpstreamTransportError("openai", "Connection refused")
        assert err.to_body() == {
            "error": "upstream_error",
            "message": "AI API request failed",
            "provider": "openai",
            "details": "Connection refused",
        }


class TestConfigurationError:

    def test_lists_errors(self):
        err = ConfigurationError(["Port must be between 1 and 65535", "Rate limit max requests must be at least 1"])
        assert err.errors == ["Port must be between 1 and 65535", "Rate limit max requests must be at least 1"]
        assert "Port must be" in str(err)
        assert "max requests" in str(err)
