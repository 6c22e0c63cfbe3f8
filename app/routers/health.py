"""
Health probes for load balancers and orchestrators.

/health/live   process is up
/health/ready  the store answers and the tracking tables exist, so beacons can be written
/health        readiness details plus version and environment
"""

from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import utcnow
from app.core.config import settings
from app.core.database import get_db
from app.core.logging import get_logger
from app.models.analytics import PageView, UserAnalytics, UserSession

router = APIRouter()
logger = get_logger(__name__)

TRACKING_TABLES = (UserSession, PageView, UserAnalytics)


class Readiness(BaseModel):
    status: str
    database: str
    schema_ok: bool


class HealthResponse(Readiness):
    version: str
    environment: str
    timestamp: datetime


async def _check_store(db: AsyncSession) -> Readiness:
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.warning("health.database_unreachable", error=str(exc))
        await db.rollback()
        return Readiness(status="degraded", database="unreachable", schema_ok=False)

    try:
        for model in TRACKING_TABLES:
            await db.execute(select(model.id).limit(1))
    except SQLAlchemyError as exc:
        logger.warning("health.schema_missing", error=str(exc))
        await db.rollback()
        return Readiness(status="degraded", database="connected", schema_ok=False)

    return Readiness(status="ready", database="connected", schema_ok=True)


@router.get("/live", summary="Liveness probe")
async def liveness():
    return {"status": "alive", "timestamp": utcnow()}


@router.get("/ready", response_model=Readiness, summary="Readiness probe")
async def readiness(db: AsyncSession = Depends(get_db)):
    return await _check_store(db)


@router.get("", response_model=HealthResponse, summary="Full health status")
async def health(db: AsyncSession = Depends(get_db)):
    ready = await _check_store(db)
    return HealthResponse(
        **ready.model_dump(),
        version=settings.API_VERSION,
        environment=settings.ENVIRONMENT,
        timestamp=utcnow(),
    )
