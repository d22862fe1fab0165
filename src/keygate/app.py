"""FastAPI application for KeyGate."""

import asyncio
import contextlib
import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.exceptions import HTTPException as StarletteHTTPException

from keygate import __version__
from keygate.config import Settings, get_settings
from keygate.errors import AccessDenied, KeyGateError, RateLimited, UpstreamUnavailable
from keygate.gateway import get_service
from keygate.logging import request_context, setup_logging
from keygate.metrics import metrics
from keygate.models import (
    CheckKeyRequest,
    CheckKeyResponse,
    ErrorBody,
    Outcome,
    ValidateTokenRequest,
    ValidateTokenResponse,
)

logger = structlog.get_logger()

# Operational endpoints skip rate limiting and the ban list
UNSCREENED_PATHS = frozenset({"/health", "/ready", "/metrics"})

MISSING_FIELD_MESSAGES = {
    "/check-key": "Key is required",
    "/validate-token": "Token is required",
}


def error_response(status_code: int, message: str, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorBody(error=message).model_dump(),
        headers=headers,
    )


def client_identity(request: Request, settings: Settings) -> str:
    """Network address used to key rate limits and bans."""
    if settings.trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for", "")
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    if request.client is None:
        return "unknown"
    return request.client.host


async def _purge_rate_windows(interval: float) -> None:
    service = get_service()
    while True:
        await asyncio.sleep(interval)
        service.rate_limiter.purge_expired()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager."""
    # Startup
    setup_logging()
    settings = get_settings()
    logger.info("keygate_starting", version=__version__, port=settings.port)

    service = get_service()
    if not service.tokens.configured:
        logger.error("signing_secret_missing", setting="KEYGATE_SECRET_KEY")
    await service.broker.connect()
    purge_task = asyncio.create_task(_purge_rate_windows(settings.rate_limit_window_seconds))

    yield

    # Shutdown
    purge_task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await purge_task
    await service.broker.disconnect()
    logger.info("keygate_stopped")


app = FastAPI(
    title="KeyGate",
    version=__version__,
    description="Access-control gateway for an external key-issuing service",
    lifespan=lifespan,
)


# === Middleware ===


@app.middleware("http")
async def admission_middleware(request: Request, call_next: Callable[[Request], Any]) -> Response:
    """Rate limit and ban check every request before routing."""
    if request.url.path in UNSCREENED_PATHS:
        return await call_next(request)

    identity = client_identity(request, get_settings())
    service = get_service()
    with request_context(identity, request.method, request.url.path):
        try:
            decision = await service.screen(identity)
        except RateLimited as e:
            headers = e.decision.headers()
            headers["Retry-After"] = str(int(e.decision.reset_after) + 1)
            return error_response(429, e.message, headers)
        except AccessDenied as e:
            return error_response(403, e.message)

        request.state.identity = identity
        response: Response = await call_next(request)

    response.headers.update(decision.headers())
    return response


@app.middleware("http")
async def metrics_middleware(request: Request, call_next: Callable[[Request], Any]) -> Response:
    """Record HTTP metrics for each request."""
    start_time = time.perf_counter()

    response: Response = await call_next(request)

    duration = time.perf_counter() - start_time
    endpoint = request.url.path if request.url.path in _KNOWN_PATHS else "unmatched"
    method = request.method

    metrics.http_requests_total.labels(
        method=method,
        endpoint=endpoint,
        status=response.status_code,
    ).inc()

    metrics.http_request_duration.labels(
        method=method,
        endpoint=endpoint,
    ).observe(duration)

    return response


# === Health endpoints ===


@app.get("/health", tags=["Health"])
async def health() -> dict[str, Any]:
    """Health check endpoint."""
    service = get_service()
    secret_ok = service.tokens.configured

    return {
        "status": "healthy" if secret_ok else "degraded",
        "version": __version__,
        "checks": {
            "signing_secret": "ok" if secret_ok else "missing",
        },
        "banned": len(service.ban_list),
    }


@app.get("/ready", tags=["Health"])
async def ready() -> dict[str, str]:
    """Readiness check endpoint."""
    if not get_service().tokens.configured:
        raise HTTPException(status_code=503, detail="Signing secret not configured")
    return {"status": "ready"}


# === Metrics endpoint ===


@app.get("/metrics", tags=["Observability"])
async def prometheus_metrics() -> Response:
    """Prometheus metrics endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


# === Gateway endpoints ===


@app.post("/check-key", response_model=CheckKeyResponse, response_model_exclude_none=True, tags=["Keys"])
async def check_key(payload: CheckKeyRequest | None = None) -> CheckKeyResponse:
    """Check a submitted key against the one currently issued upstream."""
    key = payload.key if payload else ""
    return await get_service().check_key(key)


@app.post("/validate-token", response_model=ValidateTokenResponse, tags=["Keys"])
async def validate_token(payload: ValidateTokenRequest | None = None) -> ValidateTokenResponse:
    """Report whether a session token is still valid."""
    token = payload.token if payload else ""
    return get_service().validate_token(token)


@app.api_route("/get-key", methods=["GET", "HEAD"], response_class=HTMLResponse, tags=["Keys"])
async def get_key(request: Request) -> Response:
    """Serve the key page to visitors arriving from an approved referer."""
    service = get_service()
    identity = getattr(request.state, "identity", None) or client_identity(request, get_settings())

    try:
        page = await service.get_key(
            request.headers.get("referer"),
            request.headers.get("user-agent"),
            identity,
        )
    except AccessDenied as e:
        if e.outcome is Outcome.DENY_REFERER:
            return HTMLResponse(service.pages.access_denied(), status_code=403)
        return error_response(403, e.message)
    except UpstreamUnavailable:
        return error_response(500, "Error generating key")

    return HTMLResponse(page)


_KNOWN_PATHS = frozenset(route.path for route in app.routes)


# === Error handlers ===


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies are reported like a missing field."""
    message = MISSING_FIELD_MESSAGES.get(request.url.path, "Invalid request")
    logger.info("request_rejected", path=request.url.path, errors=len(exc.errors()))
    return error_response(400, message)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> Response:
    """Unmatched paths and methods get the not-found page."""
    if exc.status_code in (404, 405):
        return HTMLResponse(get_service().pages.not_found(), status_code=404)
    return error_response(exc.status_code, str(exc.detail))


@app.exception_handler(KeyGateError)
async def keygate_exception_handler(request: Request, exc: KeyGateError) -> JSONResponse:
    """Render gateway errors without leaking their details."""
    if exc.status_code >= 500:
        logger.error("request_failed", code=exc.code, details=exc.details)
    return JSONResponse(status_code=exc.status_code, content=exc.to_response().model_dump())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.exception("unhandled_exception", error=str(exc), path=request.url.path)
    return error_response(500, "Internal Server Error")


def create_app() -> FastAPI:
    """Factory function to create the app."""
    return app
