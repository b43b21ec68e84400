"""SQLModel database models."""

from portal.models.user import (
    User,
    UserRead,
    Role,
    RoleName,
    UserRoleLink,
    Committee,
    CommitteeMember,
    CommitteeRead,
    CommitteeCreate,
    VerificationStatus,
)
from portal.models.document import (
    Document,
    DocumentRead,
    DocumentState,
    DocumentStateChange,
)
from portal.models.audit import AuditLog, AuditLogRead, AuditLogPage
from portal.models.system import (
    SystemConfig,
    SystemConfigRead,
    ConfigUpdate,
    EmailTemplate,
    EmailTemplateRead,
    EmailTemplateUpdate,
)
from portal.models.auth import MagicLinkToken
from portal.models.event import Event, EventList, EventRead, EventWrite

__all__ = [
    # User
    "User",
    "UserRead",
    "Role",
    "RoleName",
    "UserRoleLink",
    "Committee",
    "CommitteeMember",
    "CommitteeRead",
    "CommitteeCreate",
    "VerificationStatus",
    # Document
    "Document",
    "DocumentRead",
    "DocumentState",
    "DocumentStateChange",
    # Audit
    "AuditLog",
    "AuditLogRead",
    "AuditLogPage",
    # System
    "SystemConfig",
    "SystemConfigRead",
    "ConfigUpdate",
    "EmailTemplate",
    "EmailTemplateRead",
    "EmailTemplateUpdate",
    # Auth
    "MagicLinkToken",
    # Event
    "Event",
    "EventList",
    "EventRead",
    "EventWrite",
]
