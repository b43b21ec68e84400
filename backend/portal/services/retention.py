"""Age-based audit log retention."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from portal.models import AuditLog
from portal.models.types import utcnow
from portal.services.system_config import ConfigService

logger = logging.getLogger(__name__)


@dataclass
class RetentionResult:
    """Rows removed by one sweep."""

    authenticated_deleted: int
    anonymous_deleted: int
    authenticated_cutoff: datetime
    anonymous_cutoff: datetime


class RetentionSweeper:
    """Deletes audit rows older than the configured horizons.

    Events with a user id and anonymous events have separate horizons. The
    sweep only runs when invoked explicitly.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def cleanup(self, now: datetime | None = None) -> RetentionResult:
        config = ConfigService(self.session)
        authenticated_days = await config.get_int("audit_retention_authenticated_days", 365)
        anonymous_days = await config.get_int("audit_retention_anonymous_days", 90)

        now = now or utcnow()
        authenticated_cutoff = now - timedelta(days=authenticated_days)
        anonymous_cutoff = now - timedelta(days=anonymous_days)

        authenticated = await self.session.execute(
            delete(AuditLog).where(
                AuditLog.user_id.is_not(None),
                AuditLog.timestamp < authenticated_cutoff,
            )
        )
        anonymous = await self.session.execute(
            delete(AuditLog).where(
                AuditLog.user_id.is_(None),
                AuditLog.timestamp < anonymous_cutoff,
            )
        )
        await self.session.commit()

        logger.info(
            f"Audit retention removed {authenticated.rowcount} authenticated and "
            f"{anonymous.rowcount} anonymous events"
        )
        return RetentionResult(
            authenticated_deleted=authenticated.rowcount,
            anonymous_deleted=anonymous.rowcount,
            authenticated_cutoff=authenticated_cutoff,
            anonymous_cutoff=anonymous_cutoff,
        )
