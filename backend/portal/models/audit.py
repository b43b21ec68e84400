"""Audit log model for the portal audit trail."""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from portal.models.types import UTCDateTime, utcnow


class AuditLog(SQLModel, table=True):
    """Immutable audit log entry. Rows are only removed by the retention sweep."""

    __tablename__ = "audit_logs"

    id: int | None = Field(default=None, primary_key=True)
    timestamp: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime, index=True)
    user_id: int | None = Field(default=None, index=True)
    actor: str = Field(default="anonymous")
    action: str = Field(index=True)  # e.g., document_published, LOGIN_ATTEMPT
    entity_type: str | None = Field(default=None)  # e.g., "Document", "User"
    entity_id: str | None = Field(default=None)
    success: bool = Field(default=True)
    details: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    ip_address: str | None = Field(default=None)
    user_agent: str | None = Field(default=None)
    is_bot: bool = Field(default=False, index=True)


class AuditLogRead(SQLModel):
    """Schema for reading audit log entries."""

    id: int
    timestamp: datetime
    user_id: int | None
    actor: str
    action: str
    entity_type: str | None
    entity_id: str | None
    success: bool
    details: dict[str, Any] | None
    ip_address: str | None
    user_agent: str | None
    is_bot: bool


class AuditLogPage(SQLModel):
    """Paginated audit log query result."""

    logs: list[AuditLogRead]
    total: int
    page: int
    page_size: int
    total_pages: int
    actions: list[str]
