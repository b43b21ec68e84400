"""System metrics snapshot and threshold alerts."""

import logging
import math
import os
import time
from datetime import datetime, timedelta
from pathlib import Path

import psutil
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import func, select

from portal.core.config import get_settings
from portal.models import AuditLog, Document, User, VerificationStatus
from portal.models.types import utcnow
from portal.services.audit import AuditService
from portal.services.email import EmailSender
from portal.services.filesystem import directory_size
from portal.services.notifications import NotificationService
from portal.services.system_config import ConfigService

logger = logging.getLogger(__name__)


class DiskUsage(BaseModel):
    documents_bytes: int
    logs_bytes: int
    documents_formatted: str
    logs_formatted: str
    filesystem_used_percent: float


class MemoryUsage(BaseModel):
    total_mb: int
    free_mb: int
    used_percent: int


class SystemMetrics(BaseModel):
    """Point-in-time snapshot for the monitoring dashboard."""

    pending_verifications: int
    total_users: int
    verified_users: int
    denied_users: int
    recent_failed_logins: int
    recent_audit_events: int
    documents_on_disk: int
    disk_usage: DiskUsage
    system_load: list[float]
    memory_usage: MemoryUsage
    uptime: str


def format_bytes(size: int) -> str:
    if size <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB", "TB"]
    index = min(int(math.log(size, 1024)), len(units) - 1)
    return f"{size / 1024 ** index:.1f} {units[index]}"


def format_uptime(seconds: float) -> str:
    days, remainder = divmod(int(seconds), 86400)
    hours, remainder = divmod(remainder, 3600)
    minutes = remainder // 60
    if days > 0:
        return f"{days}d {hours}h {minutes}m"
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


class MonitoringService:
    """Aggregates counts and raises threshold alerts to administrators."""

    def __init__(self, session: AsyncSession, sender: EmailSender):
        self.session = session
        self.sender = sender
        self.settings = get_settings()

    async def _count(self, model, *conditions) -> int:
        result = await self.session.execute(
            select(func.count()).select_from(model).where(*conditions)
        )
        return result.scalar_one()

    async def failed_logins_since(self, since: datetime) -> int:
        return await self._count(
            AuditLog,
            AuditLog.action == "LOGIN_ATTEMPT",
            AuditLog.success == False,  # noqa: E712
            AuditLog.timestamp >= since,
        )

    def disk_used_percent(self) -> float:
        """Usage of the filesystem holding the documents directory."""
        path = Path(self.settings.documents_dir).resolve()
        while not path.exists() and path != path.parent:
            path = path.parent
        return psutil.disk_usage(str(path)).percent

    async def collect_metrics(self) -> SystemMetrics:
        one_day_ago = utcnow() - timedelta(days=1)

        documents_bytes = directory_size(self.settings.documents_dir)
        logs_bytes = directory_size(self.settings.audit_log_dir)
        memory = psutil.virtual_memory()

        return SystemMetrics(
            pending_verifications=await self._count(
                User, User.verification_status == VerificationStatus.PENDING
            ),
            total_users=await self._count(User),
            verified_users=await self._count(
                User, User.verification_status == VerificationStatus.VERIFIED
            ),
            denied_users=await self._count(
                User, User.verification_status == VerificationStatus.DENIED
            ),
            recent_failed_logins=await self.failed_logins_since(one_day_ago),
            recent_audit_events=await self._count(AuditLog, AuditLog.timestamp >= one_day_ago),
            documents_on_disk=await self._count(Document),
            disk_usage=DiskUsage(
                documents_bytes=documents_bytes,
                logs_bytes=logs_bytes,
                documents_formatted=format_bytes(documents_bytes),
                logs_formatted=format_bytes(logs_bytes),
                filesystem_used_percent=self.disk_used_percent(),
            ),
            system_load=list(os.getloadavg()),
            memory_usage=MemoryUsage(
                total_mb=round(memory.total / 1024 / 1024),
                free_mb=round(memory.available / 1024 / 1024),
                used_percent=round(memory.percent),
            ),
            uptime=format_uptime(time.time() - psutil.boot_time()),
        )

    async def check_alerts(self) -> list[str]:
        """Compare rolling counters to thresholds and email admins on breach.

        Returns:
            Human-readable descriptions of the alerts that fired
        """
        config = ConfigService(self.session)
        failed_threshold = await config.get_int("failed_login_alert_threshold", 3)
        pending_threshold = await config.get_int("pending_verification_alert_count", 5)

        notifications = NotificationService(self.session, self.sender)
        footer = f"\n\n---\nMonitoring Dashboard: {self.settings.base_url}/admin/console/monitoring"
        alerts = []

        failed = await self.failed_logins_since(utcnow() - timedelta(hours=1))
        if failed >= failed_threshold:
            await notifications.notify_admins(
                "Portal Alert: High Failed Login Attempts",
                f"{failed} failed login attempts detected in the last hour "
                f"(threshold: {failed_threshold}).\n\n"
                "Please review the audit logs for suspicious activity." + footer,
            )
            alerts.append(f"Failed logins: {failed} (threshold: {failed_threshold})")

        pending = await self._count(User, User.verification_status == VerificationStatus.PENDING)
        if pending >= pending_threshold:
            await notifications.notify_admins(
                "Portal Alert: Pending Verifications",
                f"There are {pending} users awaiting verification "
                f"(threshold: {pending_threshold}).\n\n"
                f"Please review pending registrations at {self.settings.base_url}/admin/verify."
                + footer,
            )
            alerts.append(f"Pending verifications: {pending} (threshold: {pending_threshold})")

        if alerts:
            logger.warning(f"Monitoring alerts fired: {alerts}")
            await AuditService(self.session).log(
                "monitoring_alerts_sent",
                entity_type="System",
                details={"alerts": alerts},
            )
        return alerts
