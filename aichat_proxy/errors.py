"""Error taxonomy for the relay.

Request-scoped errors derive from GatewayError and are turned into JSON
bodies by the exception handler in main.py. ConfigurationError is raised
only at startup and is fatal.
"""

import math
from typing import Any


class ConfigurationError(Exception):
    """Invalid or incomplete configuration detected at startup."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__("Configuration validation failed:\n" + "\n".join(errors))


class GatewayError(Exception):
    """Base for errors answered with a structured JSON body."""

    status_code: int = 500

    def __init__(self, code: str, message: str, details: dict[str, Any] | None = None):
        self.code = code
        self.message = message
        self.details = details or {}
        self.headers: dict[str, str] = {}
        super().__init__(message)

    def to_body(self) -> dict[str, Any]:
        return {"error": self.code, "message": self.message, **self.details}


class ValidationError(GatewayError):
    """Malformed body or bad provider selection."""

    status_code = 400


class RateLimitError(GatewayError):
    status_code = 429

    def __init__(self, limit: int, retry_after: float):
        self.limit = limit
        self.retry_after = retry_after
        super().__init__(
            "rate_limit_exceeded",
            "Too many requests, please try again later",
        )
        # Retry-After must be a whole number of seconds; never advertise 0
        wait = str(max(1, math.ceil(retry_after)))
        self.headers = {
            "Retry-After": wait,
            "X-RateLimit-Limit": str(limit),
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": wait,
        }


class UpstreamTimeoutError(GatewayError):
    status_code = 408

    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(
            "upstream_timeout",
            "AI API request timed out",
            {"provider": provider},
        )


class UpstreamTransportError(GatewayError):
    status_code = 500

    def __init__(self, provider: str, reason: str):
        self.provider = provider
        self.reason = reason
        super().__init__(
            "upstream_error",
            "AI API request failed",
            {"provider": provider, "details": reason},
        )
