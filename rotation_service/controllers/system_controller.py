# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Controller: System endpoints — health, readiness, metrics, stats.
Pure HTTP layer — no business logic.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from sqlalchemy import text
from starlette.responses import Response

from rotation_service.core.config import settings
from rotation_service.core.database import engine
from rotation_service.core.dependencies import get_schedule_service, get_supervisor
from rotation_service.core.logging import get_logger
from rotation_service.services.schedule_service import ScheduleService
from rotation_service.services.scheduler import SchedulerSupervisor

router = APIRouter(tags=["System"])
logger = get_logger(__name__)


@router.get("/health")
async def health_check(supervisor: SchedulerSupervisor = Depends(get_supervisor)):
    """Liveness probe for Docker and orchestration."""
    return {
        "status": "ok",
        "service": settings.SERVICE_NAME,
        "version": settings.SERVICE_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "running_schedulers": supervisor.count(),
    }


@router.get("/health/ready")
async def readiness_check():
    """Readiness probe — verifies the database answers."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as exc:
        logger.error("Readiness check failed: %s", exc)
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "service": settings.SERVICE_NAME, "database": "down"},
        )
    return {"status": "ready", "service": settings.SERVICE_NAME, "database": "up"}


@router.get("/api/v1/stats")
async def get_stats(service: ScheduleService = Depends(get_schedule_service)):
    """Aggregated operational statistics."""
    return service.get_stats()


@router.get("/metrics")
async def prometheus_metrics():
    """Expose Prometheus metrics in OpenMetrics format."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
