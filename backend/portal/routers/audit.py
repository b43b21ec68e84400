"""Audit log endpoints."""

import csv
import io
import json
from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Query
from fastapi.responses import StreamingResponse

from portal.core.deps import AdminCaps, Context, DbSession, OptionalUser, VerifiedUser
from portal.models import AuditLogPage, AuditLogRead
from portal.models.types import utcnow
from portal.schemas.admin import CleanupResult, PageViewRequest
from portal.schemas.auth import MessageResponse
from portal.services.audit import PAGE_VIEW, AuditService
from portal.services.retention import RetentionSweeper

router = APIRouter(prefix="/audit")


@router.get("", response_model=AuditLogPage)
async def list_audit_logs(
    caps: AdminCaps,
    session: DbSession,
    user_id: int | None = None,
    action: str | None = None,
    entity_type: str | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
    include_bots: bool = True,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=500),
) -> AuditLogPage:
    """List audit logs with filters, newest first (Admin only)."""
    return await AuditService(session).query(
        user_id=user_id,
        action=action,
        entity_type=entity_type,
        since=since,
        until=until,
        include_bots=include_bots,
        page=page,
        page_size=page_size,
    )


@router.get("/actions", response_model=list[str])
async def list_action_types(caps: AdminCaps, session: DbSession) -> list[str]:
    """List all distinct action types in the audit log."""
    return await AuditService(session).distinct_actions()


@router.get("/export")
async def export_audit_logs(
    caps: AdminCaps,
    session: DbSession,
    format: Literal["csv", "json"] = "csv",
    user_id: int | None = None,
    action: str | None = None,
    entity_type: str | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
    include_bots: bool = True,
    limit: int = Query(10000, ge=1, le=100000),
) -> StreamingResponse:
    """Export audit logs as a CSV or JSON download (Admin only)."""
    result = await AuditService(session).query(
        user_id=user_id,
        action=action,
        entity_type=entity_type,
        since=since,
        until=until,
        include_bots=include_bots,
        page=1,
        page_size=limit,
    )
    if format == "csv":
        return _export_csv(result.logs)
    return _export_json(result.logs)


def _export_csv(logs: list[AuditLogRead]) -> StreamingResponse:
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow([
        "id",
        "timestamp",
        "user_id",
        "actor",
        "action",
        "entity_type",
        "entity_id",
        "success",
        "ip_address",
        "user_agent",
        "is_bot",
        "details",
    ])
    for log in logs:
        writer.writerow([
            log.id,
            log.timestamp.isoformat(),
            log.user_id,
            log.actor,
            log.action,
            log.entity_type,
            log.entity_id,
            log.success,
            log.ip_address,
            log.user_agent,
            log.is_bot,
            json.dumps(log.details or {}),
        ])

    timestamp = utcnow().strftime("%Y%m%d_%H%M%S")
    return StreamingResponse(
        iter([output.getvalue()]),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=audit_export_{timestamp}.csv"},
    )


def _export_json(logs: list[AuditLogRead]) -> StreamingResponse:
    data = [log.model_dump(mode="json") for log in logs]
    timestamp = utcnow().strftime("%Y%m%d_%H%M%S")
    return StreamingResponse(
        iter([json.dumps(data, indent=2)]),
        media_type="application/json",
        headers={"Content-Disposition": f"attachment; filename=audit_export_{timestamp}.json"},
    )


@router.post("/cleanup", response_model=CleanupResult)
async def cleanup_audit_logs(
    caps: AdminCaps,
    admin: VerifiedUser,
    session: DbSession,
    context: Context,
) -> CleanupResult:
    """Run the retention sweep now and record that it ran."""
    result = await RetentionSweeper(session).cleanup()
    await AuditService(session).log(
        "AUDIT_LOG_CLEANUP",
        user=admin,
        entity_type="AuditLog",
        details={
            "authenticatedDeleted": result.authenticated_deleted,
            "anonymousDeleted": result.anonymous_deleted,
        },
        context=context,
    )
    return CleanupResult(
        authenticated_deleted=result.authenticated_deleted,
        anonymous_deleted=result.anonymous_deleted,
        authenticated_cutoff=result.authenticated_cutoff,
        anonymous_cutoff=result.anonymous_cutoff,
    )


@router.post("/page-view", response_model=MessageResponse)
async def record_page_view(
    data: PageViewRequest,
    user: OptionalUser,
    session: DbSession,
    context: Context,
) -> MessageResponse:
    """Record a page view. Views from bots are dropped."""
    result = await AuditService(session).log(
        PAGE_VIEW,
        user=user,
        entity_type="Page",
        entity_id=data.path,
        details={"path": data.path},
        context=context,
    )
    return MessageResponse(message="recorded" if result.recorded else "ignored")
