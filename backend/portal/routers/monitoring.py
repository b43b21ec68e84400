"""System monitoring endpoints."""

from fastapi import APIRouter

from portal.core.deps import AdminCaps, DbSession, Mailer
from portal.schemas.admin import AlertCheckResult
from portal.services.monitoring import MonitoringService, SystemMetrics

router = APIRouter(prefix="/monitoring")


@router.get("/metrics", response_model=SystemMetrics)
async def get_metrics(caps: AdminCaps, session: DbSession, sender: Mailer) -> SystemMetrics:
    return await MonitoringService(session, sender).collect_metrics()


@router.post("/alerts/check", response_model=AlertCheckResult)
async def check_alerts(caps: AdminCaps, session: DbSession, sender: Mailer) -> AlertCheckResult:
    """Evaluate alert thresholds and email dbadmins about any breach."""
    alerts = await MonitoringService(session, sender).check_alerts()
    return AlertCheckResult(alerts=alerts)
