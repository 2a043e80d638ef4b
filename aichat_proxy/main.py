"""AI Chat Proxy: FastAPI application entry point.

A relay that forwards chat-completion requests from OpenKore to an AI
provider, injecting the provider's credentials and enforcing a per-client
sliding-window rate limit.
"""

import json
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from aichat_proxy.config.settings import Settings, get_settings, validate_settings
from aichat_proxy.errors import GatewayError, RateLimitError, ValidationError
from aichat_proxy.logging.audit import (
    RequestTimer,
    generate_request_id,
    get_audit_logger,
    request_id_var,
    setup_logging,
)
from aichat_proxy.providers.registry import ProviderRegistry, get_registry
from aichat_proxy.providers.upstream import DEFAULT_CONTENT_TYPE
from aichat_proxy.proxy.handler import ROUTING_FIELD, close_client, forward_to_provider
from aichat_proxy.security.identity import get_client_identity
from aichat_proxy.security.ratelimit import (
    RateLimitResult,
    SlidingWindowRateLimiter,
    get_rate_limiter,
)

VERSION = "1.0.0"

ENDPOINTS = "/proxy (POST), /status (GET)"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

_started_at = time.monotonic()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle hooks."""
    setup_logging()
    settings = validate_settings(get_settings())
    get_audit_logger().info(
        "Gateway started",
        extra={"audit_data": {
            "host": settings.host,
            "port": settings.port,
            "available_providers": get_registry().list_available(),
        }},
    )
    yield
    await close_client()
    get_audit_logger().info("Gateway stopped")


app = FastAPI(
    title="AI Chat Proxy",
    description="Rate-limited relay from OpenKore to AI chat providers",
    version=VERSION,
    lifespan=lifespan,
    redirect_slashes=False,
    docs_url=None,
    redoc_url=None,
    openapi_url=None,
)


@app.middleware("http")
async def cors(request: Request, call_next):
    """Permissive CORS on every response; OPTIONS is answered directly."""
    if request.method == "OPTIONS":
        return Response(status_code=200, headers=CORS_HEADERS)
    response = await call_next(request)
    response.headers.update(CORS_HEADERS)
    return response


@app.exception_handler(GatewayError)
async def gateway_error_handler(request: Request, exc: GatewayError):
    headers = dict(exc.headers)
    request_id = getattr(request.state, "request_id", "")
    if request_id:
        headers["X-Request-Id"] = request_id
    return JSONResponse(status_code=exc.status_code, content=exc.to_body(), headers=headers)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    # Unknown paths and wrong methods on known paths are both reported as 404
    if exc.status_code in (404, 405):
        return JSONResponse(
            status_code=404,
            content={
                "error": "not_found",
                "message": f"Endpoint not found. Available endpoints: {ENDPOINTS}",
            },
        )
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": "http_error", "message": str(exc.detail)},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    """Log, answer 500, and hand the error to the process-level fatal hook."""
    get_audit_logger().critical(
        "Unhandled exception",
        exc_info=exc,
        extra={"audit_data": {"method": request.method, "path": request.url.path}},
    )
    on_fatal = getattr(request.app.state, "on_fatal", None)
    if on_fatal is not None:
        on_fatal(exc)
    return JSONResponse(
        status_code=500,
        content={"error": "internal_error", "message": "Internal server error"},
        headers=CORS_HEADERS,
    )


@app.get("/status")
async def status(
    settings: Settings = Depends(get_settings),
    registry: ProviderRegistry = Depends(get_registry),
):
    """Liveness, uptime, available providers and the non-secret configuration."""
    return {
        "status": "running",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": round(time.monotonic() - _started_at, 3),
        "availableProviders": registry.list_available(),
        "config": settings.public_config(),
    }


@app.post("/proxy")
async def proxy(
    request: Request,
    settings: Settings = Depends(get_settings),
    limiter: SlidingWindowRateLimiter = Depends(get_rate_limiter),
    registry: ProviderRegistry = Depends(get_registry),
):
    """Relay a chat completion to the provider named in the body.

    Pipeline: Rate Limit -> Parse -> Resolve Provider -> Rewrite -> Forward -> Passthrough
    """
    logger = get_audit_logger()
    rid = generate_request_id()
    request_id_var.set(rid)
    request.state.request_id = rid

    client_id = get_client_identity(request, settings.trust_forwarded_for)

    # 1. Rate limiting, before the body is read
    rate_result = await limiter.check(client_id)
    if not rate_result.allowed:
        logger.warning(
            "Rate limit exceeded",
            extra={"audit_data": {
                "client_ip": client_id,
                "rate_limit": rate_result.limit,
                "retry_after": rate_result.reset_seconds,
            }},
        )
        raise RateLimitError(rate_result.limit, rate_result.reset_seconds)

    # 2. Parse
    body = await _parse_body(request)

    # 3. Provider selection
    try:
        provider = registry.require(body.get(ROUTING_FIELD))
    except ValidationError as e:
        logger.error(
            "Invalid or unavailable provider",
            extra={"audit_data": {
                "client_ip": client_id,
                "provider": body.get(ROUTING_FIELD),
                "reason": e.code,
                "available_providers": registry.list_available(),
            }},
        )
        raise

    logger.info(
        "Processing request",
        extra={"audit_data": {"client_ip": client_id, "provider": provider.name}},
    )
    logger.debug(
        "Request payload",
        extra={"audit_data": {
            "provider": provider.name,
            "payload": {k: v for k, v in body.items() if k != ROUTING_FIELD},
        }},
    )

    # 4-5. Rewrite and forward
    content_type = request.headers.get("content-type") or DEFAULT_CONTENT_TYPE
    with RequestTimer() as timer:
        try:
            result = await forward_to_provider(body, provider, content_type)
        except GatewayError as e:
            logger.error(
                "AI API request failed",
                extra={"audit_data": {
                    "client_ip": client_id,
                    "provider": provider.name,
                    "reason": e.code,
                    "details": e.details.get("details", e.message),
                }},
            )
            raise

    # 6. Passthrough
    logger.info(
        "AI API response received",
        extra={"audit_data": {
            "client_ip": client_id,
            "provider": provider.name,
            "upstream_status": result.status_code,
            "content_length": len(result.body),
            "latency_ms": timer.elapsed_ms,
            "rate_limit_remaining": rate_result.remaining,
        }},
    )
    return Response(
        content=result.body,
        status_code=result.status_code,
        media_type=result.content_type,
        headers={**_rate_limit_headers(rate_result), "X-Request-Id": rid},
    )


async def _parse_body(request: Request) -> dict:
    """Read and decode the JSON request body; nothing is forwarded on failure."""
    raw = await request.body()
    try:
        body = json.loads(raw)
    except ValueError as e:
        get_audit_logger().error(
            "Error parsing request",
            extra={"audit_data": {"details": str(e)}},
        )
        raise ValidationError(
            "invalid_json",
            "Failed to parse request body",
            {"details": str(e)},
        )
    if not isinstance(body, dict):
        raise ValidationError(
            "invalid_request",
            "Request body must be a JSON object",
            {"details": f"got {type(body).__name__}"},
        )
    return body


def _rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    return {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(int(result.reset_seconds)),
    }
