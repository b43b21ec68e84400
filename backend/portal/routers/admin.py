"""Administrator endpoints: users, committees, config and email templates."""

from fastapi import APIRouter, status

from portal.core.deps import AdminCaps, Context, DbSession, Mailer, VerifiedUser
from portal.models import (
    CommitteeCreate,
    CommitteeRead,
    EmailTemplateRead,
    EmailTemplateUpdate,
    SystemConfigRead,
    UserRead,
    VerificationStatus,
)
from portal.schemas.admin import (
    BulkUserRequest,
    BulkUserResult,
    ConfigUpdateRequest,
    ConfigUpdateResult,
    MembershipRequest,
)
from portal.schemas.auth import MessageResponse
from portal.schemas.users import AdminUserUpdate
from portal.services.committees import CommitteeService
from portal.services.system_config import NUMERIC_KEYS, ConfigService
from portal.services.templates import TemplateService
from portal.services.users import UserService

router = APIRouter(prefix="/admin")


# Users


@router.get("/users", response_model=list[UserRead])
async def list_users(
    caps: AdminCaps,
    session: DbSession,
    sender: Mailer,
    verification_status: VerificationStatus | None = None,
) -> list[UserRead]:
    users = await UserService(session, sender).list_users(verification_status)
    return [UserRead.from_user(user) for user in users]


@router.put("/users/{user_id}", response_model=UserRead)
async def update_user(
    user_id: int,
    data: AdminUserUpdate,
    caps: AdminCaps,
    admin: VerifiedUser,
    session: DbSession,
    sender: Mailer,
    context: Context,
) -> UserRead:
    """Set a user's profile, roles and committees without re-verification."""
    user = await UserService(session, sender).admin_update(user_id, data, admin, context)
    return UserRead.from_user(user)


@router.post("/users/bulk", response_model=BulkUserResult)
async def bulk_update_users(
    data: BulkUserRequest,
    caps: AdminCaps,
    admin: VerifiedUser,
    session: DbSession,
    sender: Mailer,
    context: Context,
) -> BulkUserResult:
    """Assign one role, or one committee, to several users at once."""
    return await UserService(session, sender).bulk_update(data, admin, context)


# Committees


@router.get("/committees", response_model=list[CommitteeRead])
async def list_committees(caps: AdminCaps, session: DbSession) -> list[CommitteeRead]:
    committees = await CommitteeService(session).list_all()
    return [CommitteeRead.model_validate(committee) for committee in committees]


@router.post("/committees", response_model=CommitteeRead, status_code=status.HTTP_201_CREATED)
async def create_committee(
    data: CommitteeCreate,
    caps: AdminCaps,
    admin: VerifiedUser,
    session: DbSession,
    context: Context,
) -> CommitteeRead:
    committee = await CommitteeService(session).create(data, admin, context)
    return CommitteeRead.model_validate(committee)


@router.put("/committees/{committee_id}", response_model=CommitteeRead)
async def update_committee(
    committee_id: int,
    data: CommitteeCreate,
    caps: AdminCaps,
    admin: VerifiedUser,
    session: DbSession,
    context: Context,
) -> CommitteeRead:
    committee = await CommitteeService(session).update(committee_id, data, admin, context)
    return CommitteeRead.model_validate(committee)


@router.delete("/committees/{committee_id}", response_model=MessageResponse)
async def delete_committee(
    committee_id: int,
    caps: AdminCaps,
    admin: VerifiedUser,
    session: DbSession,
    context: Context,
) -> MessageResponse:
    """Delete a committee that has no documents."""
    await CommitteeService(session).delete(committee_id, admin, context)
    return MessageResponse(message="Committee deleted")


@router.get("/committees/{committee_id}/members", response_model=list[UserRead])
async def list_members(committee_id: int, caps: AdminCaps, session: DbSession) -> list[UserRead]:
    members = await CommitteeService(session).members(committee_id)
    return [UserRead.from_user(user) for user in members]


@router.post("/committees/{committee_id}/members", response_model=MessageResponse)
async def add_member(
    committee_id: int,
    data: MembershipRequest,
    caps: AdminCaps,
    admin: VerifiedUser,
    session: DbSession,
    context: Context,
) -> MessageResponse:
    await CommitteeService(session).set_membership(committee_id, data.user_id, True, admin, context)
    return MessageResponse(message="Member added")


@router.delete("/committees/{committee_id}/members/{user_id}", response_model=MessageResponse)
async def remove_member(
    committee_id: int,
    user_id: int,
    caps: AdminCaps,
    admin: VerifiedUser,
    session: DbSession,
    context: Context,
) -> MessageResponse:
    await CommitteeService(session).set_membership(committee_id, user_id, False, admin, context)
    return MessageResponse(message="Member removed")


# Runtime configuration


@router.get("/config", response_model=list[SystemConfigRead])
async def list_config(caps: AdminCaps, session: DbSession) -> list[SystemConfigRead]:
    entries = await ConfigService(session).list_all()
    return [
        SystemConfigRead(
            key=entry.key,
            value=entry.value,
            description=entry.description,
            is_numeric=entry.key in NUMERIC_KEYS,
            updated_by=entry.updated_by,
            updated_at=entry.updated_at,
        )
        for entry in entries
    ]


@router.put("/config", response_model=ConfigUpdateResult)
async def update_config(
    data: ConfigUpdateRequest,
    caps: AdminCaps,
    admin: VerifiedUser,
    session: DbSession,
    context: Context,
) -> ConfigUpdateResult:
    """Apply a batch of threshold changes. Nothing is saved if any value is invalid."""
    changes = await ConfigService(session).update(data.updates, admin, context)
    return ConfigUpdateResult(changes=changes)


# Email templates


@router.get("/templates", response_model=list[EmailTemplateRead])
async def list_templates(caps: AdminCaps, session: DbSession) -> list[EmailTemplateRead]:
    templates = await TemplateService(session).list_all()
    return [EmailTemplateRead.model_validate(template) for template in templates]


@router.put("/templates/{template_id}", response_model=EmailTemplateRead)
async def update_template(
    template_id: int,
    data: EmailTemplateUpdate,
    caps: AdminCaps,
    admin: VerifiedUser,
    session: DbSession,
    context: Context,
) -> EmailTemplateRead:
    template = await TemplateService(session).update(template_id, data, admin, context)
    return EmailTemplateRead.model_validate(template)
