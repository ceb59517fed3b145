"""FastAPI application factories for the probe and metrics endpoints.

Usage::

    from node_label_inheritor.api.app import create_metrics_app, create_probe_app

    probes = create_probe_app(ready_fn=lambda: watcher.has_synced)
    metrics = create_metrics_app()

Each app is served by its own uvicorn server so the two can bind different
addresses, as the command-line flags allow.
"""

from __future__ import annotations

from collections.abc import Callable

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, CollectorRegistry, generate_latest

_log = structlog.get_logger(component="api.app")


def create_probe_app(ready_fn: Callable[[], bool] | None = None) -> FastAPI:
    """Create the liveness/readiness app.

    Args:
        ready_fn: Returns True once the controller can serve.  Defaults to
                  always ready.
    """
    from node_label_inheritor import __version__

    app = FastAPI(
        title="node-label-inheritor probes",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.ready_fn = ready_fn or (lambda: True)

    @app.get("/healthz")
    async def healthz() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/readyz")
    async def readyz(request: Request) -> JSONResponse:
        try:
            ready = bool(request.app.state.ready_fn())
        except Exception as exc:
            _log.warning("readiness_check_error", error=str(exc))
            ready = False
        if ready:
            return JSONResponse(status_code=200, content={"status": "ok"})
        return JSONResponse(status_code=503, content={"status": "not ready"})

    return app


def create_metrics_app(registry: CollectorRegistry | None = None) -> FastAPI:
    """Create the app exposing *registry* (default: the global registry) at ``/metrics``."""
    app = FastAPI(
        title="node-label-inheritor metrics",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.registry = registry or REGISTRY

    @app.get("/metrics")
    async def metrics(request: Request) -> Response:
        return Response(
            content=generate_latest(request.app.state.registry),
            media_type=CONTENT_TYPE_LATEST,
        )

    return app
