"""Health check endpoints."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, status
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from settlement_engine import __version__
from settlement_engine.api.dependencies import DbSession
from settlement_engine.calculators.cutoff import BusinessCalendar
from settlement_engine.config import get_settings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response with the service's billing calendar."""

    status: str
    timestamp: datetime
    database: str
    version: str
    business_timezone: str
    current_week_cutoff_utc: datetime


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
)
async def health_check(db: DbSession) -> HealthResponse:
    """Check database reachability and report this week's approval cutoff."""
    db_status = "unhealthy"
    try:
        await db.execute(text("SELECT 1"))
        db_status = "healthy"
    except SQLAlchemyError:
        logger.warning("Database health check failed", exc_info=True)

    now = datetime.now(timezone.utc)
    tz_name = get_settings().business_timezone
    return HealthResponse(
        status="healthy" if db_status == "healthy" else "degraded",
        timestamp=now,
        database=db_status,
        version=__version__,
        business_timezone=tz_name,
        current_week_cutoff_utc=BusinessCalendar(tz_name).get_cutoff_for_invoice_period(now),
    )


@router.get("/ready", status_code=status.HTTP_200_OK)
async def readiness_check() -> dict[str, str]:
    """Readiness check for container orchestration."""
    return {"status": "ready"}


@router.get("/live", status_code=status.HTTP_200_OK)
async def liveness_check() -> dict[str, str]:
    """Liveness check for container orchestration."""
    return {"status": "alive"}
