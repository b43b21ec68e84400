"""Verifier queue endpoints."""

from fastapi import APIRouter

from portal.core.deps import Context, DbSession, Mailer, VerifiedUser, VerifierCaps
from portal.core.errors import ValidationError
from portal.models import UserRead
from portal.schemas.users import VerificationDecision, VerificationResult
from portal.services.verification import VerificationService

router = APIRouter(prefix="/verify")


@router.get("/pending", response_model=list[UserRead])
async def list_pending(
    caps: VerifierCaps,
    session: DbSession,
    sender: Mailer,
) -> list[UserRead]:
    """Users awaiting a decision, oldest first."""
    users = await VerificationService(session, sender).list_pending()
    return [UserRead.from_user(user) for user in users]


@router.post("", response_model=VerificationResult)
async def decide(
    decision: VerificationDecision,
    caps: VerifierCaps,
    verifier: VerifiedUser,
    session: DbSession,
    sender: Mailer,
    context: Context,
) -> VerificationResult:
    """Approve or deny a pending user."""
    service = VerificationService(session, sender)
    if decision.action == "approve":
        user = await service.approve(decision.user_id, verifier, decision.comment, context)
        message = "User approved"
    elif decision.action == "deny":
        user = await service.deny(decision.user_id, verifier, decision.comment, context)
        message = "User denied"
    else:
        raise ValidationError('action must be "approve" or "deny"')

    return VerificationResult(
        message=message,
        user_id=user.id,
        new_status=user.verification_status.value,
    )
