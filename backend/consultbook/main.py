# backend/consultbook/main.py
"""
FastAPI application for the consultation booking engine.

Application routes are mounted under /api/v1; health and metrics stay
unversioned at the root.
"""

from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI

from .core.config import is_running_tests, settings
from .database import Base, init_session_factory
from .database.engines import get_api_engine
from .errors import register_error_handlers
from .middleware.prometheus_middleware import PrometheusMiddleware
from .routes import health, prometheus
from .routes.v1 import (
    bookings as bookings_v1,
    catalog as catalog_v1,
    clients as clients_v1,
    packages as packages_v1,
    slots as slots_v1,
)

logging.basicConfig(
    level=settings.log_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)

API_TITLE = "Consultbook API"
API_VERSION = "1.0.0"
API_DESCRIPTION = "Scheduling, session packages and bookings for one consultancy."


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup/shutdown."""
    logger.info(f"{API_TITLE} starting up...")
    logger.info(f"Environment: {settings.environment}")
    if is_running_tests():
        logger.info("Running under pytest (test mode active)")

    init_session_factory()
    Base.metadata.create_all(bind=get_api_engine())
    logger.info("Database schema ready")

    yield

    logger.info(f"{API_TITLE} shutting down...")
    get_api_engine().dispose()


def create_app() -> FastAPI:
    app = FastAPI(
        title=API_TITLE,
        description=API_DESCRIPTION,
        version=API_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=app_lifespan,
    )
    # Register unified error envelope handlers
    register_error_handlers(app)

    if settings.metrics_enabled:
        app.add_middleware(PrometheusMiddleware)

    api_v1 = APIRouter(prefix="/api/v1")
    api_v1.include_router(slots_v1.router, prefix="/slots")
    api_v1.include_router(bookings_v1.router, prefix="/bookings")
    api_v1.include_router(clients_v1.router, prefix="/clients")
    api_v1.include_router(catalog_v1.router, prefix="/catalog")
    api_v1.include_router(packages_v1.router)
    app.include_router(api_v1)

    # Infrastructure routes (unversioned)
    app.include_router(health.router)
    app.include_router(prometheus.router)
    return app


app = create_app()
