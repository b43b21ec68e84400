"""Administration and audit request/response schemas."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from portal.models import ConfigUpdate


class ConfigUpdateRequest(BaseModel):
    """Batch of config changes applied together."""

    updates: list[ConfigUpdate]


class ConfigUpdateResult(BaseModel):
    success: bool = True
    changes: dict[str, dict[str, str | None]]


class MembershipRequest(BaseModel):
    user_id: int


class BulkUserAction(str, Enum):
    ASSIGN_ROLE = "assign_role"
    ADD_COMMITTEE = "add_committee"


class BulkUserRequest(BaseModel):
    """One role or committee applied to many users."""

    action: BulkUserAction
    user_ids: list[int] = Field(min_length=1)
    role_name: str | None = None
    committee_id: int | None = None


class BulkUserOutcome(BaseModel):
    user_id: int
    success: bool
    error: str | None = None


class BulkUserResult(BaseModel):
    success: bool = True
    message: str
    results: list[BulkUserOutcome]


class PageViewRequest(BaseModel):
    """A client-side navigation to record."""

    path: str = Field(min_length=1, max_length=500)


class CleanupResult(BaseModel):
    """Rows removed by an audit retention sweep."""

    authenticated_deleted: int
    anonymous_deleted: int
    authenticated_cutoff: datetime
    anonymous_cutoff: datetime


class AlertCheckResult(BaseModel):
    alerts: list[str]
