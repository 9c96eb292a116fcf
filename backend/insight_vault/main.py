"""
FastAPI Application: Entry Point

Insight Vault ingestion & classification API.

Architecture:
  - All routes are versioned under /api/v1/
  - One ServiceContainer per process, built in the lifespan hook from
    Settings and parked on app.state (tests inject their own)
  - Domain errors (VaultError subclasses) propagate out of the services and
    are rendered here as the uniform ErrorResponse envelope

Middleware stack (innermost → outermost):
  1. Request ID injection: X-Request-ID header on every response
  2. CORS: restrict to configured origins
  3. Gzip: compress responses > 1 KB
"""

from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from insight_vault.api.v1.items import router as items_router
from insight_vault.core.config import Settings, get_settings
from insight_vault.core.errors import (
    ClassificationFailed,
    ConfigurationMissing,
    InvalidTransition,
    NotFound,
    StorageUnavailable,
    UpstreamUnavailable,
    ValidationFailed,
    VaultError,
)
from insight_vault.schemas.items import ItemErrors
from insight_vault.services.container import ServiceContainer, build_container

logger = logging.getLogger(__name__)


# Most specific class first; the first isinstance match wins.
ERROR_STATUS: tuple[tuple[type[VaultError], int], ...] = (
    (InvalidTransition,    status.HTTP_409_CONFLICT),
    (ValidationFailed,     status.HTTP_400_BAD_REQUEST),
    (NotFound,             status.HTTP_404_NOT_FOUND),
    (ConfigurationMissing, status.HTTP_503_SERVICE_UNAVAILABLE),
    (StorageUnavailable,   status.HTTP_502_BAD_GATEWAY),
    (ClassificationFailed, status.HTTP_502_BAD_GATEWAY),
    (UpstreamUnavailable,  status.HTTP_502_BAD_GATEWAY),
)


def status_for(exc: VaultError) -> int:
    for cls, code in ERROR_STATUS:
        if isinstance(exc, cls):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or request.headers.get("X-Request-ID") or str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------

def create_app(
    settings:  Settings | None = None,
    container: ServiceContainer | None = None,
) -> FastAPI:
    settings = settings or (container.settings if container else get_settings())

    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Startup: build (or adopt) the container, create/evolve the schema.
        Shutdown: drain in-process batches and dispose the engine.
        """
        vault = container or build_container(settings)
        await vault.startup()

        db_health = await vault.ingestion.health()
        logger.info(
            "Starting %s | version=%s env=%s database=%s storage=%s",
            settings.app_name, settings.app_version, settings.app_env,
            db_health["database"], db_health["storage_backend"],
        )

        app.state.container = vault
        yield

        logger.info("Shutting down %s", settings.app_name)
        await vault.shutdown()

    app = FastAPI(
        title=settings.app_name,
        description=(
            "Ingests documents, images and videos, extracts their text and "
            "classifies each item against a fixed two-level taxonomy."
        ),
        version=settings.app_version,
        docs_url="/api/docs" if not settings.is_production else None,
        redoc_url="/api/redoc" if not settings.is_production else None,
        openapi_url="/api/openapi.json" if not settings.is_production else None,
        lifespan=lifespan,
    )

    # ----------------------------------------------------------------
    # Middleware (applied in reverse order: last added = outermost)
    # ----------------------------------------------------------------

    app.add_middleware(GZipMiddleware, minimum_size=1024)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials="*" not in settings.cors_origins,
        allow_methods=["GET", "POST", "PATCH"],
        allow_headers=["Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID", "Location", "Content-Disposition"],
    )

    @app.middleware("http")
    async def request_id_and_logging(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        start = time.perf_counter()

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-ID"] = request_id

        logger.info(
            "HTTP %s %s %d %.1fms | request_id=%s",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            request_id,
        )
        return response

    # ----------------------------------------------------------------
    # Exception handlers: uniform structured error responses
    # ----------------------------------------------------------------

    @app.exception_handler(VaultError)
    async def vault_exception_handler(request: Request, exc: VaultError):
        code = status_for(exc)
        request_id = _request_id(request)
        if code >= 500:
            logger.error(
                "Request failed | path=%s code=%s request_id=%s error=%s",
                request.url.path, exc.code, request_id, exc.message,
            )
        body = ItemErrors.from_vault_error(exc, request_id)
        return JSONResponse(
            status_code=code,
            content=body.model_dump(mode="json"),
            headers={"X-Request-ID": request_id},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Convert Pydantic/FastAPI validation errors to structured ErrorResponse."""
        body = ItemErrors.request_validation(exc.errors(), _request_id(request))
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=body.model_dump(mode="json"),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """Catch-all for unhandled exceptions; never expose stack traces."""
        request_id = _request_id(request)
        logger.exception(
            "Unhandled exception | path=%s request_id=%s",
            request.url.path, request_id,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ItemErrors.internal_error(request_id).model_dump(mode="json"),
            headers={"X-Request-ID": request_id},
        )

    app.include_router(items_router, prefix="/api/v1")

    return app


# ---------------------------------------------------------------------------
# Application instance (imported by uvicorn)
# ---------------------------------------------------------------------------

app = create_app()


# ---------------------------------------------------------------------------
# Local development entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    _settings = get_settings()
    uvicorn.run(
        "insight_vault.main:app",
        host="0.0.0.0",
        port=8000,
        reload=_settings.app_env == "development",
        log_level="debug" if _settings.debug else "info",
        access_log=True,
    )
