"""
geoapi.security — HTTP middleware for the Geo API.

Provides:
    - RequestIdMiddleware: X-Request-ID on every response + one structured
      JSON log line per request
    - SecurityHeadersMiddleware: fixed hardening headers and a Cache-Control
      policy derived from the route
    - RequestSizeLimitMiddleware: rejects oversized headers (431) or bodies (413)
    - ETagMiddleware: weak ETag on 200 GET responses, 304 on If-None-Match

Every response produced here uses the API's {"message": ...} error shape.
"""

from __future__ import annotations

import hashlib
import ipaddress
import json
import logging
import re
import time
import uuid
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

logger = logging.getLogger("geo.security")

# Probes must never be served from a cache
PROBE_PATHS = frozenset(("/health", "/ready"))

LOOKUP_PREFIXES = ("/countries", "/states/", "/cities/")

# The dataset is fixed for the lifetime of the process
LOOKUP_CACHE_CONTROL = "public, max-age=3600, stale-while-revalidate=86400"
DEFAULT_CACHE_CONTROL = "public, max-age=60"

MAX_BODY_BYTES = 1024  # no endpoint reads a body
MAX_HEADER_BYTES = 16_384

# Client-supplied ids are echoed back and logged, so keep them tame
_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._:-]{1,64}$")

_HARDENING_HEADERS: dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'",
    # Browsers on other origins read this API directly
    "Cross-Origin-Resource-Policy": "cross-origin",
}

_HSTS = "max-age=31536000; includeSubDomains"


def _message(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"message": message})


# ---------------------------------------------------------------------------
# Request-ID middleware
# ---------------------------------------------------------------------------

def resolve_request_id(raw: str | None) -> str:
    """Reuse a well-formed incoming X-Request-ID, otherwise mint one."""
    if raw and _REQUEST_ID_RE.match(raw):
        return raw
    return uuid.uuid4().hex[:16]


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tag each request with an id, echo it, and log the outcome."""

    async def dispatch(self, request: Request, call_next: Any) -> Response:
        request.state.request_id = resolve_request_id(request.headers.get("x-request-id"))
        started = time.perf_counter()
        response = await call_next(request)
        response.headers["X-Request-ID"] = request.state.request_id
        _log_request(request, response, (time.perf_counter() - started) * 1000)
        return response


# ---------------------------------------------------------------------------
# Security headers middleware
# ---------------------------------------------------------------------------

def cache_control_for(path: str, status_code: int) -> str:
    """Cache-Control value for a response.

    Probes and server errors are never stored. Lookup answers, 404s
    included, only change on redeploy.
    """
    if path in PROBE_PATHS or status_code >= 500:
        return "no-store"
    if path.startswith(LOOKUP_PREFIXES):
        return LOOKUP_CACHE_CONTROL
    return DEFAULT_CACHE_CONTROL


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Hardening headers on every response; HSTS only when TLS is in front."""

    def __init__(self, app: Any, *, enable_hsts: bool = False) -> None:
        super().__init__(app)
        self.headers = dict(_HARDENING_HEADERS)
        if enable_hsts:
            self.headers["Strict-Transport-Security"] = _HSTS

    async def dispatch(self, request: Request, call_next: Any) -> Response:
        response = await call_next(request)
        response.headers.update(self.headers)
        response.headers["Cache-Control"] = cache_control_for(request.url.path, response.status_code)
        return response


# ---------------------------------------------------------------------------
# Request size limit middleware
# ---------------------------------------------------------------------------

class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject oversized requests before they reach routing."""

    async def dispatch(self, request: Request, call_next: Any) -> Response:
        if sum(len(k) + len(v) for k, v in request.headers.raw) > MAX_HEADER_BYTES:
            return _message(431, "Request headers too large")

        declared = request.headers.get("content-length", "")
        if declared.isdigit() and int(declared) > MAX_BODY_BYTES:
            return _message(413, "Request body too large")

        return await call_next(request)


# ---------------------------------------------------------------------------
# ETag / conditional-GET middleware
# ---------------------------------------------------------------------------

def weak_etag(body: bytes) -> str:
    return 'W/"%s"' % hashlib.blake2b(body, digest_size=16).hexdigest()


def etag_matches(if_none_match: str, etag: str) -> bool:
    """RFC 9110 weak comparison against an If-None-Match header."""
    if if_none_match.strip() == "*":
        return True
    opaque = etag.removeprefix("W/")
    return any(tag.strip().removeprefix("W/") == opaque for tag in if_none_match.split(","))


class ETagMiddleware(BaseHTTPMiddleware):
    """Attach a weak ETag to successful GETs and honour If-None-Match."""

    async def dispatch(self, request: Request, call_next: Any) -> Response:
        response = await call_next(request)
        if (
            request.method != "GET"
            or request.url.path in PROBE_PATHS
            or response.status_code != 200
        ):
            return response

        body = b"".join([chunk async for chunk in response.body_iterator])  # type: ignore[attr-defined]
        etag = weak_etag(body)

        if etag_matches(request.headers.get("if-none-match", ""), etag):
            return Response(status_code=304, headers={"ETag": etag})

        headers = {k: v for k, v in response.headers.items() if k != "content-length"}
        headers["ETag"] = etag
        return Response(
            content=body,
            status_code=200,
            headers=headers,
            media_type=response.media_type,
        )


# ---------------------------------------------------------------------------
# Structured request logging
# ---------------------------------------------------------------------------

def mask_ip(host: str | None) -> str:
    """Reduce a client address to its network: /16 for IPv4, /48 for IPv6."""
    try:
        addr = ipaddress.ip_address(host or "")
    except ValueError:
        return "unknown"
    prefix = 16 if addr.version == 4 else 48
    return str(ipaddress.ip_network(f"{addr}/{prefix}", strict=False))


def _log_request(request: Request, response: Response, latency_ms: float) -> None:
    status = response.status_code
    level = logging.ERROR if status >= 500 else logging.WARNING if status >= 400 else logging.INFO
    logger.log(level, json.dumps({
        "event": "http_request",
        "method": request.method,
        "path": request.url.path,
        "status": status,
        "latency_ms": round(latency_ms, 1),
        "client": mask_ip(request.client.host if request.client else None),
        "request_id": request.state.request_id,
    }))
