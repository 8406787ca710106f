# backend/consultbook/routes/health.py
"""
Health check endpoints for the application.

Used by load balancers and monitoring to check that the service is up and
can reach its database.
"""

from datetime import datetime, timezone
import logging
from typing import Dict

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..api.dependencies import get_db

logger = logging.getLogger(__name__)
router = APIRouter(tags=["health"])


class LiveHealthResponse(BaseModel):
    ok: bool


class HealthCheckResponse(BaseModel):
    status: str
    service: str
    timestamp: datetime
    checks: Dict[str, bool]


@router.get("/live", response_model=LiveHealthResponse)
def live_check(response: Response) -> LiveHealthResponse:
    """Liveness check that avoids touching external dependencies."""

    response.headers["Cache-Control"] = "no-store"
    return LiveHealthResponse(ok=True)


@router.get("/health", response_model=HealthCheckResponse)
def health_check(db: Session = Depends(get_db)) -> HealthCheckResponse:
    """
    Basic health check endpoint.

    Returns:
        "healthy", or "degraded" when the database cannot be queried.
    """
    try:
        db.execute(text("SELECT 1"))
        db_status = True
        status = "healthy"
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        db.rollback()
        db_status = False
        status = "degraded"

    return HealthCheckResponse(
        status=status,
        service="consultbook",
        timestamp=datetime.now(timezone.utc),
        checks={"database": db_status},
    )
