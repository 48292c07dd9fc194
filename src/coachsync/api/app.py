"""Scheduling API — FastAPI application factory.

The app factory creates a FastAPI instance with:
- CORS middleware (configurable origins)
- Lifespan handler for startup/shutdown of the DB pool and calendar client
- Health endpoint at GET /api/health
- Prometheus metrics at GET /metrics
- The assignment router
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest

from coachsync.api.deps import SchedulingServices, init_services, shutdown_services
from coachsync.api.middleware import register_error_handlers
from coachsync.api.routers.assignments import router as assignments_router
from coachsync.config import ServiceConfig

logger = logging.getLogger(__name__)


def create_app(
    config: ServiceConfig | None = None,
    services: SchedulingServices | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Parameters
    ----------
    config:
        Service configuration. Defaults to an all-defaults ``ServiceConfig``.
    services:
        Pre-built services to use instead of connecting to PostgreSQL on
        startup (local development with in-memory stores).
    """
    config = config or ServiceConfig()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup/shutdown lifecycle for the DB pool and the calendar client."""
        await init_services(config, services)
        yield
        await shutdown_services()

    app = FastAPI(
        title="coachsync API",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.router.redirect_slashes = False

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)

    app.include_router(assignments_router)

    @app.get("/api/health")
    async def health():
        return {"status": "ok"}

    @app.get("/metrics")
    async def metrics() -> Response:
        """Prometheus metrics endpoint."""
        return Response(generate_latest(REGISTRY), media_type=CONTENT_TYPE_LATEST)

    return app
