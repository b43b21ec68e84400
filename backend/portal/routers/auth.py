"""Magic-link sign-in endpoints."""

from fastapi import APIRouter, Request

from portal.core.deps import Context, CurrentUser, DbSession, Mailer
from portal.core.rate_limit import limiter
from portal.models import UserRead
from portal.schemas.auth import (
    EmailRecoveryRequest,
    MagicLinkRequest,
    MagicLinkVerify,
    MessageResponse,
    TokenResponse,
)
from portal.services.auth import AuthService

router = APIRouter(prefix="/auth")


@router.post("/magic-link", response_model=MessageResponse)
@limiter.limit("10/minute")
async def request_magic_link(
    request: Request,
    payload: MagicLinkRequest,
    session: DbSession,
    sender: Mailer,
    context: Context,
) -> MessageResponse:
    """Email a one-time sign-in link. Unknown addresses get the same reply."""
    message = await AuthService(session, sender).request_magic_link(payload.email, context)
    return MessageResponse(message=message)


@router.post("/verify", response_model=TokenResponse)
@limiter.limit("20/minute")
async def verify_magic_link(
    request: Request,
    payload: MagicLinkVerify,
    session: DbSession,
    sender: Mailer,
    context: Context,
) -> TokenResponse:
    """Exchange a sign-in link token for an access token."""
    token = await AuthService(session, sender).verify_magic_link(payload.token, context)
    return TokenResponse(access_token=token)


@router.post("/recover-email", response_model=MessageResponse)
@limiter.limit("5/minute")
async def recover_email(
    request: Request,
    payload: EmailRecoveryRequest,
    session: DbSession,
    sender: Mailer,
    context: Context,
) -> MessageResponse:
    """Email verified users of a unit the address their account uses."""
    message = await AuthService(session, sender).recover_email(payload.unit_number, context)
    return MessageResponse(message=message)


@router.get("/me", response_model=UserRead)
async def get_me(current_user: CurrentUser) -> UserRead:
    """Get the signed-in user, whatever their verification status."""
    return UserRead.from_user(current_user)
