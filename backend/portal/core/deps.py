"""FastAPI dependencies for sessions, identity and request context."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from portal.core.database import get_session
from portal.core.security import decode_token
from portal.models import User, VerificationStatus
from portal.services.audit import RequestContext
from portal.services.email import EmailSender, get_email_sender
from portal.services.permissions import Capabilities

bearer_scheme = HTTPBearer(auto_error=False)

DbSession = Annotated[AsyncSession, Depends(get_session)]
Mailer = Annotated[EmailSender, Depends(get_email_sender)]


def get_request_context(request: Request) -> RequestContext:
    """Client IP (proxy headers first) and user agent."""
    forwarded = request.headers.get("x-forwarded-for")
    ip_address = (
        forwarded.split(",")[0].strip()
        if forwarded
        else request.headers.get("x-real-ip")
        or (request.client.host if request.client else None)
    )
    return RequestContext(
        ip_address=ip_address or "unknown",
        user_agent=request.headers.get("user-agent") or "unknown",
    )


Context = Annotated[RequestContext, Depends(get_request_context)]


async def get_optional_user(
    session: DbSession,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> User | None:
    """Resolve the bearer token to an active user, or None."""
    if credentials is None:
        return None
    payload = decode_token(credentials.credentials)
    if payload is None or payload.get("type") != "access":
        return None
    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        return None
    user = await session.get(User, user_id)
    if user is None or not user.is_active:
        return None
    return user


OptionalUser = Annotated[User | None, Depends(get_optional_user)]


async def get_current_user(user: OptionalUser) -> User:
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


async def get_verified_user(user: CurrentUser) -> User:
    if user.verification_status != VerificationStatus.VERIFIED:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    return user


VerifiedUser = Annotated[User, Depends(get_verified_user)]


def get_capabilities(user: VerifiedUser) -> Capabilities:
    return Capabilities.for_user(user)


Caps = Annotated[Capabilities, Depends(get_capabilities)]


def require_admin(caps: Caps) -> Capabilities:
    if not caps.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden: dbadmin role required")
    return caps


def require_verifier(caps: Caps) -> Capabilities:
    if not caps.can_verify:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden: verifier role required")
    return caps


def require_calendar(caps: Caps) -> Capabilities:
    if not caps.can_manage_events:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden: calendar role required")
    return caps


AdminCaps = Annotated[Capabilities, Depends(require_admin)]
VerifierCaps = Annotated[Capabilities, Depends(require_verifier)]
CalendarCaps = Annotated[Capabilities, Depends(require_calendar)]
