#!/usr/bin/env python3
"""
geo_api.py — Geo API Server

Read-only lookup service over a static countries → states → cities
dataset. The dataset is loaded once, in the lifespan, into an immutable
LookupIndex held on app.state. Requests never touch the disk.

Endpoints:
    GET /                       → Plain-text liveness banner
    GET /countries              → All countries as [{id, name}]
    GET /states/{countryId}     → States of one country as [{id, name}]
    GET /cities/{stateId}       → Cities of one state as [{id, name}]
    GET /health                 → Liveness probe
    GET /ready                  → Readiness probe with dataset diagnostics

Error contract (always {"message": str}, never a trace):
    500 → /countries while the dataset is unavailable
    404 → unknown or childless country/state id, non-numeric id, unknown route
    429 → rate limit exceeded

Configuration: see geoapi.config.

Requires: fastapi, uvicorn, slowapi
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.gzip import GZipMiddleware

from geoapi.config import Settings, load_settings
from geoapi.constants import (
    API_VERSION,
    CITIES_NOT_FOUND_MESSAGE,
    COUNTRIES_UNAVAILABLE_MESSAGE,
    INTERNAL_ERROR_MESSAGE,
    RATE_LIMITED_MESSAGE,
    ROOT_MESSAGE,
    STATES_NOT_FOUND_MESSAGE,
)
from geoapi.dataset import DatasetLoadError, load_dataset
from geoapi.dataset_integrity import check_dataset
from geoapi.lookup_index import (
    DatasetUnavailable,
    LookupIndex,
    NotFound,
    Place,
    parse_id,
)
from geoapi.security import (
    ETagMiddleware,
    RequestIdMiddleware,
    RequestSizeLimitMiddleware,
    SecurityHeadersMiddleware,
)

logger = logging.getLogger("geo.api")


# ---------------------------------------------------------------------------
# Dataset loading — once per process, at startup
# ---------------------------------------------------------------------------

def _load_index(settings: Settings) -> tuple[LookupIndex, str | None]:
    """Load the dataset and build the index.

    A failed load yields a permanently unavailable index, unless
    REQUIRE_DATA=1, in which case the process exits.
    """
    try:
        dataset = load_dataset(settings.dataset_path, expected_sha256=settings.dataset_sha256)
        if settings.strict_validation:
            report = check_dataset(dataset)
            for err in report.errors:
                logger.error(json.dumps({"event": "dataset_integrity_failed", "error": err}))
            if not report.valid:
                raise DatasetLoadError(
                    dataset.source,
                    f"integrity check failed with {len(report.errors)} error(s)",
                )
    except DatasetLoadError as exc:
        logger.error(json.dumps({
            "event": "dataset_load_failed",
            "source": exc.source,
            "reason": exc.reason,
        }))
        if settings.require_data:
            logger.error(json.dumps({
                "event": "startup_abort",
                "reason": "REQUIRE_DATA=1 but dataset could not be loaded",
            }))
            sys.exit(1)
        return LookupIndex.unavailable(), None

    index = LookupIndex.build(dataset)
    logger.info(json.dumps({
        "event": "dataset_loaded",
        **index.stats(),
        "sha256": dataset.sha256,
    }))
    return index, dataset.sha256


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup: load the dataset into app.state. Shutdown: nothing to release."""
    settings: Settings = app.state.settings
    logger.info(json.dumps({
        "event": "startup",
        "env": settings.env,
        "require_data": settings.require_data,
        "strict_validation": settings.strict_validation,
        "checksum_pinned": settings.dataset_sha256 is not None,
        "rate_limit": settings.rate_limit if settings.rate_limit_enabled else None,
        "rate_limit_backend": "redis" if settings.redis_url else "memory",
    }))

    app.state.index, app.state.dataset_sha256 = _load_index(settings)

    yield

    logger.info(json.dumps({"event": "shutdown"}))


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

router = APIRouter()


def _index(request: Request) -> LookupIndex:
    return request.app.state.index


@router.get("/", response_class=PlainTextResponse)
async def root() -> str:
    return ROOT_MESSAGE


@router.get("/health", include_in_schema=False)
async def health() -> JSONResponse:
    """Liveness probe. Always 200, reads no state."""
    return JSONResponse(status_code=200, content={"status": "ok", "version": API_VERSION})


@router.get("/ready")
async def ready(request: Request) -> JSONResponse:
    """Readiness probe — always 200; readiness is the 'ready' field."""
    index = _index(request)
    body = {
        "ready": index.available,
        "status": "healthy" if index.available else "degraded",
        "version": API_VERSION,
        **index.stats(),
        "dataset_sha256": getattr(request.app.state, "dataset_sha256", None),
        "timestamp": datetime.now(UTC).isoformat(),
    }
    return JSONResponse(status_code=200, content=body)


@router.get("/countries", response_model=list[Place])
async def list_countries(request: Request) -> Any:
    """All countries, in dataset order."""
    return list(_index(request).list_countries())


@router.get("/states/{country_id}", response_model=list[Place])
async def list_states(country_id: str, request: Request) -> Any:
    """States of one country. Non-numeric ids behave like unknown ids."""
    return list(_index(request).list_states(parse_id(country_id)))


@router.get("/cities/{state_id}", response_model=list[Place])
async def list_cities(state_id: str, request: Request) -> Any:
    """Cities of one state, wherever that state lives in the tree."""
    return list(_index(request).list_cities(parse_id(state_id)))


# ---------------------------------------------------------------------------
# Exception handlers — {"message": ...} bodies only
# ---------------------------------------------------------------------------

_NOT_FOUND_MESSAGES: dict[str, str] = {
    "country": STATES_NOT_FOUND_MESSAGE,
    "state": CITIES_NOT_FOUND_MESSAGE,
}

_NOT_FOUND_EVENTS: dict[str, str] = {
    "country": "states_not_found",
    "state": "cities_not_found",
}


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")


async def _not_found_handler(request: Request, exc: NotFound) -> JSONResponse:
    logger.warning(json.dumps({
        "event": _NOT_FOUND_EVENTS.get(exc.entity, "not_found"),
        f"{exc.entity}_id": exc.identifier,
        "request_id": _request_id(request),
    }))
    return JSONResponse(
        status_code=404,
        content={"message": _NOT_FOUND_MESSAGES.get(exc.entity, "Not found")},
    )


async def _unavailable_handler(request: Request, exc: DatasetUnavailable) -> JSONResponse:
    logger.error(json.dumps({
        "event": "countries_unavailable",
        "request_id": _request_id(request),
    }))
    return JSONResponse(status_code=500, content={"message": COUNTRIES_UNAVAILABLE_MESSAGE})


# Sync on purpose: SlowAPIMiddleware calls this handler without awaiting it
def _rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content={"message": RATE_LIMITED_MESSAGE},
        headers={"Retry-After": "60"},
    )


async def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


async def _global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(json.dumps({
        "event": "unhandled_exception",
        "exception_type": type(exc).__name__,
        "request_id": _request_id(request),
        "path": request.url.path,
    }))
    return JSONResponse(status_code=500, content={"message": INTERNAL_ERROR_MESSAGE})


# ---------------------------------------------------------------------------
# App construction
# ---------------------------------------------------------------------------

def _configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=logging.DEBUG if settings.is_dev else logging.INFO,
        format="%(message)s",
        stream=sys.stdout,
    )


def _build_docs_kwargs(settings: Settings) -> dict[str, Any]:
    """Determine docs/redoc/openapi URL availability."""
    if not settings.docs_enabled:
        return {"docs_url": None, "redoc_url": None, "openapi_url": None}
    return {"docs_url": "/docs", "redoc_url": "/redoc"}


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the ASGI app. The dataset is loaded when the lifespan starts."""
    if settings is None:
        settings = load_settings()
    _configure_logging(settings)

    app = FastAPI(
        title="Geo API",
        description="Countries, states and cities lookup",
        version=API_VERSION,
        lifespan=_lifespan,
        **_build_docs_kwargs(settings),
    )
    app.state.settings = settings
    # Until the lifespan has run, the process has no dataset
    app.state.index = LookupIndex.unavailable()
    app.state.dataset_sha256 = None

    app.include_router(router)

    # Rate limiting: default limit on every route, probes exempt
    limiter = Limiter(
        key_func=get_remote_address,
        default_limits=[settings.rate_limit],
        storage_uri=settings.redis_url or "memory://",
        strategy="fixed-window",
        enabled=settings.rate_limit_enabled,
    )
    limiter.exempt(health)
    limiter.exempt(ready)
    app.state.limiter = limiter

    app.add_exception_handler(NotFound, _not_found_handler)
    app.add_exception_handler(DatasetUnavailable, _unavailable_handler)
    app.add_exception_handler(RateLimitExceeded, _rate_limit_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(Exception, _global_exception_handler)

    # Starlette runs middleware in reverse registration order.
    # Execution (outermost first): GZip → RequestId → RequestSizeLimit
    #   → SecurityHeaders → CORS → ETag → SlowAPI
    # ETag sits inside CORS and SecurityHeaders so its 304s get their headers.
    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(ETagMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "ETag"],
        max_age=3600,
    )
    app.add_middleware(SecurityHeadersMiddleware, enable_hsts=(settings.env == "prod"))
    app.add_middleware(RequestSizeLimitMiddleware)
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(GZipMiddleware, minimum_size=500)

    return app


app = create_app()


# ---------------------------------------------------------------------------
# Entry point (development only)
# ---------------------------------------------------------------------------

def main() -> None:
    import uvicorn

    settings = load_settings()
    print(f"Geo API {API_VERSION} — serving {settings.dataset_path}")
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
