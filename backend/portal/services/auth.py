"""Passwordless sign-in via emailed one-time links."""

import logging
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from portal.core.config import get_settings
from portal.core.errors import (
    AuthenticationError,
    AuthorizationError,
    TooManyRequestsError,
    ValidationError,
)
from portal.core.rate_limit import RateLimiter, attempt_limiter
from portal.core.security import create_access_token, generate_magic_token, hash_magic_token
from portal.models import MagicLinkToken, User, VerificationStatus
from portal.models.types import utcnow
from portal.services.audit import AuditService, RequestContext
from portal.services.email import EmailSender
from portal.services.notifications import NotificationService
from portal.services.sanitize import sanitize_email
from portal.services.system_config import ConfigService

logger = logging.getLogger(__name__)

MAGIC_LINK_MESSAGE = "If an account exists for that email, a sign-in link has been sent."
EMAIL_RECOVERY_MESSAGE = "If verified users exist for this unit, an email has been sent."


class AuthService:
    """Service for magic-link issue and redemption."""

    def __init__(
        self,
        session: AsyncSession,
        sender: EmailSender,
        limiter: RateLimiter | None = None,
    ):
        self.session = session
        self.sender = sender
        self.limiter = limiter or attempt_limiter
        self.settings = get_settings()
        self.audit = AuditService(session)
        self.config = ConfigService(session)

    async def _find_user(self, email: str) -> User | None:
        result = await self.session.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()

    async def request_magic_link(self, email: str, context: RequestContext | None = None) -> str:
        """Issue and email a sign-in link.

        The response is identical whether or not the address is known.

        Raises:
            TooManyRequestsError: If the address has exceeded its hourly request limit
        """
        email = sanitize_email(email)
        max_requests = await self.config.get_int("rate_limit_magic_link_requests", 3)
        check = self.limiter.check(email, "magic-link", max_requests)
        if not check.allowed:
            await self.audit.log_magic_link_request(
                email, success=False, reason="rate_limited", context=context
            )
            raise TooManyRequestsError(
                f"Too many sign-in link requests. Try again after {check.reset_at:%H:%M} UTC."
            )

        user = await self._find_user(email)
        if user is None or not user.is_active:
            await self.audit.log_magic_link_request(
                email, success=False, reason="unknown_email", context=context
            )
            return MAGIC_LINK_MESSAGE

        token = generate_magic_token()
        expires = timedelta(minutes=self.settings.magic_link_expire_minutes)
        self.session.add(
            MagicLinkToken(
                user_id=user.id,
                token_hash=hash_magic_token(token),
                expires_at=utcnow() + expires,
            )
        )
        await self.session.commit()

        sent = await NotificationService(self.session, self.sender).send_template(
            "magic-link",
            user.email,
            {
                "firstName": user.first_name,
                "link": f"{self.settings.base_url}/auth/verify?token={token}",
                "expiresMinutes": str(self.settings.magic_link_expire_minutes),
            },
        )
        await self.audit.log_magic_link_request(
            email,
            success=sent,
            reason=None if sent else "email_failed",
            context=context,
        )
        return MAGIC_LINK_MESSAGE

    async def recover_email(self, unit_number: str, context: RequestContext | None = None) -> str:
        """Remind every verified user in a unit which address they signed up with.

        The reply is the same whether or not the unit has verified users.
        A failed send is logged and the remaining users are still emailed.

        Raises:
            ValidationError: Blank unit number
            TooManyRequestsError: Too many requests from this address
        """
        unit = unit_number.strip().upper()
        if not unit:
            raise ValidationError("Unit number is required")
        identifier = (context.ip_address if context else None) or "unknown"
        max_requests = await self.config.get_int("rate_limit_magic_link_requests", 3)
        if not self.limiter.check(identifier, "email-recovery", max_requests).allowed:
            raise TooManyRequestsError("Too many email reminder requests. Please try again later.")

        result = await self.session.execute(
            select(User)
            .where(
                User.unit_number == unit,
                User.verification_status == VerificationStatus.VERIFIED,
                User.is_active.is_(True),
            )
            .order_by(User.id)
        )
        users = list(result.scalars().all())
        if not users:
            await self.audit.log(
                "EMAIL_RECOVERY_REQUEST",
                success=False,
                details={"unitNumber": unit, "reason": "no_verified_users"},
                context=context,
            )
            return EMAIL_RECOVERY_MESSAGE

        notifications = NotificationService(self.session, self.sender)
        for user in users:
            sent = await notifications.send_template(
                "email-recovery",
                user.email,
                {
                    "firstName": user.first_name,
                    "lastName": user.last_name,
                    "email": user.email,
                    "unit": user.unit_number,
                    "loginLink": f"{self.settings.base_url}/auth/login",
                },
            )
            await self.audit.log(
                "EMAIL_RECOVERY_SENT",
                user=user,
                entity_type="User",
                entity_id=user.id,
                success=sent,
                details={"unitNumber": unit},
                context=context,
            )
        return EMAIL_RECOVERY_MESSAGE

    async def verify_magic_link(self, token: str, context: RequestContext | None = None) -> str:
        """Redeem a sign-in link for an access token.

        Raises:
            AuthenticationError: Unknown, used or expired token
            AuthorizationError: The user is not verified
            TooManyRequestsError: Too many attempts from this address
        """
        identifier = (context.ip_address if context else None) or "unknown"
        max_attempts = await self.config.get_int("rate_limit_login_attempts", 5)
        if not self.limiter.check(identifier, "login", max_attempts).allowed:
            raise TooManyRequestsError("Too many sign-in attempts. Please try again later.")

        result = await self.session.execute(
            select(MagicLinkToken).where(MagicLinkToken.token_hash == hash_magic_token(token))
        )
        record = result.scalar_one_or_none()
        now = utcnow()
        if record is None or record.used_at is not None or record.expires_at < now:
            await self.audit.log_login_attempt(
                "unknown", success=False, reason="invalid_or_expired_token", context=context
            )
            raise AuthenticationError("This sign-in link is invalid or has expired")

        user = await self.session.get(User, record.user_id)
        record.used_at = now
        self.session.add(record)

        if user is None or not user.is_active:
            await self.session.commit()
            await self.audit.log_login_attempt(
                "unknown", success=False, reason="user_inactive", context=context
            )
            raise AuthenticationError("This sign-in link is invalid or has expired")

        if user.verification_status != VerificationStatus.VERIFIED:
            await self.session.commit()
            await self.audit.log_login_attempt(
                user.email,
                success=False,
                user=user,
                reason=f"status_{user.verification_status.value}",
                context=context,
            )
            raise AuthorizationError(
                "Your account has not been verified yet."
                if user.verification_status == VerificationStatus.PENDING
                else "Your account registration was denied."
            )

        user.last_login = now
        self.session.add(user)
        await self.session.commit()

        timeout_days = await self.config.get_int("session_timeout_days", 30)
        access_token = create_access_token(
            {"sub": str(user.id)}, expires_delta=timedelta(days=timeout_days)
        )
        await self.audit.log_login_attempt(user.email, success=True, user=user, context=context)
        logger.info(f"User {user.id} signed in")
        return access_token
