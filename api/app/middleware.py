"""HTTP middleware for the API."""

from __future__ import annotations

import json
import logging
import time
import uuid
from typing import Any, Callable

import jwt
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from .auth import ABILITY_ACCESS_API, JWT_ALGORITHM, JWT_SECRET_KEY, get_client_ip
from .settings import ENVIRONMENT

logger = logging.getLogger("app.api")

MASK = "***MASKED***"
MASKED_HEADERS = {"authorization", "cookie", "x-api-key"}
MASKED_KEY_FRAGMENTS = ("password", "token", "secret")
REQUEST_ID_HEADER = "X-Request-Id"

# Paths not worth a log record
EXCLUDED_PATHS = {
    "/health",
    "/docs",
    "/openapi.json",
    "/redoc",
}


def mask_headers(headers: dict[str, str]) -> dict[str, str]:
    return {key: MASK if key.lower() in MASKED_HEADERS else value for key, value in headers.items()}


def mask_body(value: Any) -> Any:
    """Replace values whose key mentions a password, token or secret, at any depth."""
    if isinstance(value, dict):
        return {
            key: MASK
            if any(fragment in str(key).lower() for fragment in MASKED_KEY_FRAGMENTS)
            else mask_body(item)
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [mask_body(item) for item in value]
    return value


def _user_id_from_token(request: Request) -> int | None:
    """Subject of a valid access token, without touching the database."""
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    try:
        payload = jwt.decode(token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
        if ABILITY_ACCESS_API not in (payload.get("abilities") or []):
            return None
        return int(payload["sub"])
    except (jwt.InvalidTokenError, KeyError, TypeError, ValueError):
        return None


class APILoggerMiddleware(BaseHTTPMiddleware):
    """
    Emit one structured log record per request.

    The incoming ``X-Request-Id`` is reused when present, otherwise one is
    generated; either way it is echoed on the response. Credentials in
    headers and JSON bodies are masked before logging.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id

        body = await self._read_json_body(request)
        started = time.perf_counter()
        response = await call_next(request)
        duration_ms = round((time.perf_counter() - started) * 1000, 2)

        response.headers[REQUEST_ID_HEADER] = request_id
        if request.method != "OPTIONS" and request.url.path not in EXCLUDED_PATHS:
            self._log(request, response, request_id, body, duration_ms)
        return response

    async def _read_json_body(self, request: Request) -> Any:
        if "application/json" not in request.headers.get("content-type", ""):
            return None
        raw = await request.body()
        if not raw:
            return None
        try:
            return mask_body(json.loads(raw))
        except (json.JSONDecodeError, UnicodeDecodeError):
            return None

    def _log(self, request: Request, response: Response, request_id: str, body: Any, duration_ms: float) -> None:
        endpoint = request.scope.get("endpoint")
        user_id = getattr(request.state, "user_id", None) or _user_id_from_token(request)
        record = {
            "request_id": request_id,
            "user_id": user_id,
            "ip": get_client_ip(request),
            "method": request.method,
            "path": request.url.path,
            "controller": getattr(endpoint, "__name__", None),
            "status_code": response.status_code,
            "duration_ms": duration_ms,
            "headers": mask_headers(dict(request.headers)),
            "body": body,
        }
        logger.info(f"{request.method} {request.url.path} -> {response.status_code}", extra={"api": record})


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Add security headers to all responses.

    Implements OWASP recommended security headers for a JSON API.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=(), payment=(), usb=()"

        # HSTS only over https, or always in production
        if ENVIRONMENT == "production" or request.url.scheme == "https":
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        csp_directives = [
            "default-src 'none'",
            "img-src 'self' data:",
            "frame-ancestors 'none'",
            "base-uri 'none'",
            "form-action 'self'",
        ]
        response.headers["Content-Security-Policy"] = "; ".join(csp_directives)

        return response
