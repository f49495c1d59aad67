"""FastAPI application factory for kubetopo.

Usage::

    from kubetopo.api.app import create_app

    app = create_app(
        resolver=resolver,
        registry=registry,
        topology=topology,
    )

The factory is used by both the production bootstrap (``kubetopo.app``)
and unit tests.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.exceptions import HTTPException as StarletteHTTPException

from kubetopo.api.routes import router
from kubetopo.api.schemas import ErrorResponse
from kubetopo.cluster.errors import (
    ContextNotFoundError,
    KubeTopoError,
    NotFoundError,
    ResolutionTimeoutError,
    ResourceTypeNotFoundError,
)
from kubetopo.topology.catalog import ResourceTypeCatalog

_log = structlog.get_logger(component="api.app")

_API_PREFIX = "/api/v1"


def error_for(exc: KubeTopoError) -> tuple[int, str]:
    """HTTP status and error code for a kubetopo error."""
    if isinstance(exc, ContextNotFoundError):
        return 404, "CONTEXT_NOT_FOUND"
    if isinstance(exc, ResourceTypeNotFoundError):
        return 404, "RESOURCE_TYPE_NOT_FOUND"
    if isinstance(exc, NotFoundError):
        return 404, "OBJECT_NOT_FOUND"
    if isinstance(exc, ResolutionTimeoutError):
        return 504, "RESOLUTION_TIMEOUT"
    return 502, "CLUSTER_API_ERROR"


def _envelope(status_code: int, error: str, detail: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=error, detail=detail).model_dump())


def create_app(
    resolver: Any,
    registry: Any,
    topology: Any,
    catalog: ResourceTypeCatalog | None = None,
    config: Any = None,
) -> FastAPI:
    """Create and configure the kubetopo FastAPI application.

    Args:
        resolver: DependencyResolver instance.
        registry: ClusterRegistry (contexts, clients, connectivity).
        topology: ManagementTopologyCache instance.
        catalog:  ResourceTypeCatalog for the api-resources listing;
                  defaults to the resolver's catalog.
        config:   KubeTopoConfig, kept for handlers that need settings.

    Returns:
        Configured FastAPI application, ready to be served by uvicorn.
    """
    from kubetopo import __version__

    app = FastAPI(
        title="kubetopo",
        summary="Kubernetes resource dependency and GitOps topology API",
        version=__version__,
        description=(
            "kubetopo resolves the ownership lineage, descendants and managing "
            "GitOps Application of live Kubernetes objects across clusters."
        ),
        docs_url="/api/v1/docs",
        redoc_url="/api/v1/redoc",
        openapi_url="/api/v1/openapi.json",
    )

    app.state.resolver = resolver
    app.state.registry = registry
    app.state.topology = topology
    app.state.catalog = catalog or getattr(resolver, "catalog", None) or ResourceTypeCatalog()
    app.state.config = config

    app.include_router(router, prefix=_API_PREFIX)

    @app.get("/metrics", include_in_schema=False)
    async def metrics() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # -----------------------------------------------------------------------
    # Exception handlers
    # -----------------------------------------------------------------------

    @app.exception_handler(KubeTopoError)
    async def kubetopo_exception_handler(request: Request, exc: KubeTopoError) -> JSONResponse:
        status_code, code = error_for(exc)
        log = _log.warning if status_code >= 500 else _log.info
        log("request_failed", path=str(request.url.path), error=code, detail=str(exc))
        return _envelope(status_code, code, str(exc))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        first_msg = str(errors[0].get("msg", "")) if errors else "invalid request"
        return _envelope(400, "INVALID_REQUEST", first_msg)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        code = "NOT_FOUND" if exc.status_code == 404 else "HTTP_ERROR"
        return _envelope(exc.status_code, code, str(exc.detail))

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unhandled exceptions; never expose stack traces."""
        _log.error(
            "unhandled_exception",
            path=str(request.url.path),
            method=request.method,
            error=str(exc),
        )
        return _envelope(500, "INTERNAL_ERROR", "An unexpected error occurred.")

    return app
