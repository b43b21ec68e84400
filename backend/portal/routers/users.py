"""Registration and self-service profile endpoints."""

from fastapi import APIRouter, BackgroundTasks, status

from portal.core.deps import Context, CurrentUser, DbSession, Mailer
from portal.models import RoleName
from portal.schemas.users import (
    ProfileFields,
    ProfileRead,
    ProfileUpdateResult,
    RegistrationRequest,
    RegistrationResult,
)
from portal.services.users import UserService

router = APIRouter()


@router.post("/register", response_model=RegistrationResult, status_code=status.HTTP_201_CREATED)
async def register(
    data: RegistrationRequest,
    session: DbSession,
    sender: Mailer,
    context: Context,
    background_tasks: BackgroundTasks,
) -> RegistrationResult:
    """Create a pending account. Verifiers are notified after the response."""
    user = await UserService(session, sender).register(data, context, background_tasks)
    return RegistrationResult(
        message="Registration submitted. You will receive an email once your account is verified.",
        user_id=user.id,
    )


@router.get("/profile", response_model=ProfileRead)
async def get_profile(current_user: CurrentUser) -> ProfileRead:
    return ProfileRead(
        id=current_user.id,
        first_name=current_user.first_name,
        last_name=current_user.last_name,
        email=current_user.email,
        phone=current_user.phone,
        unit_number=current_user.unit_number,
        verification_status=current_user.verification_status.value,
        is_resident=RoleName.RESIDENT.value in current_user.role_names,
        is_owner=RoleName.OWNER.value in current_user.role_names,
    )


@router.put("/profile", response_model=ProfileUpdateResult)
async def update_profile(
    fields: ProfileFields,
    current_user: CurrentUser,
    session: DbSession,
    sender: Mailer,
    context: Context,
    background_tasks: BackgroundTasks,
) -> ProfileUpdateResult:
    """Edit the caller's profile.

    Verified users who change a watched field are sent back to pending.
    """
    return await UserService(session, sender).update_profile(
        current_user, fields, context, background_tasks
    )
