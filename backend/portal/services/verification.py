"""Verifier workflow: approve or deny pending registrations."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from portal.core.config import get_settings
from portal.core.errors import InvalidStateError, NotFoundError
from portal.models import Role, RoleName, User, VerificationStatus
from portal.models.types import utcnow
from portal.services.audit import AuditService, RequestContext
from portal.services.email import EmailSender
from portal.services.notifications import NotificationService

logger = logging.getLogger(__name__)

DEFAULT_DENIAL_REASON = "Your registration could not be verified at this time."


class VerificationService:
    """Transitions users out of ``pending``."""

    def __init__(self, session: AsyncSession, sender: EmailSender):
        self.session = session
        self.notifications = NotificationService(session, sender)
        self.audit = AuditService(session)
        self.settings = get_settings()

    async def list_pending(self) -> list[User]:
        result = await self.session.execute(
            select(User)
            .where(User.verification_status == VerificationStatus.PENDING)
            .order_by(User.created_at, User.id)
        )
        return list(result.scalars().all())

    async def approve(
        self,
        user_id: int,
        verifier: User,
        comment: str | None = None,
        context: RequestContext | None = None,
    ) -> User:
        """Mark a pending user verified and grant the baseline member role."""
        return await self._decide(user_id, verifier, VerificationStatus.VERIFIED, comment, context)

    async def deny(
        self,
        user_id: int,
        verifier: User,
        comment: str | None = None,
        context: RequestContext | None = None,
    ) -> User:
        """Mark a pending user denied, citing ``comment`` as the reason."""
        return await self._decide(user_id, verifier, VerificationStatus.DENIED, comment, context)

    async def _decide(
        self,
        user_id: int,
        verifier: User,
        new_status: VerificationStatus,
        comment: str | None,
        context: RequestContext | None,
    ) -> User:
        target = await self.session.get(User, user_id)
        if target is None:
            raise NotFoundError("User not found")
        if target.verification_status != VerificationStatus.PENDING:
            raise InvalidStateError(f"User is already {target.verification_status.value}")

        comment = (comment or "").strip() or None
        target.verification_status = new_status
        target.verification_updated_at = utcnow()
        target.verification_updated_by = verifier.id
        target.verification_comment = comment

        if new_status == VerificationStatus.VERIFIED and RoleName.USER.value not in target.role_names:
            result = await self.session.execute(select(Role).where(Role.name == RoleName.USER.value))
            member_role = result.scalar_one_or_none()
            if member_role is not None:
                target.roles.append(member_role)
            else:
                logger.warning("Baseline 'user' role is missing; approved user has no member role")

        self.session.add(target)
        await self.session.commit()
        await self.session.refresh(target)

        variables = {
            "firstName": target.first_name,
            "lastName": target.last_name,
            "unit": target.unit_number,
        }
        if new_status == VerificationStatus.VERIFIED:
            template_key = "approval"
            variables["loginLink"] = f"{self.settings.base_url}/auth/login"
        else:
            template_key = "denial"
            variables["reason"] = comment or DEFAULT_DENIAL_REASON
            variables["contactEmail"] = self.settings.email_from
            variables["contactPhone"] = self.settings.contact_phone
        email_sent = await self.notifications.send_template(template_key, target.email, variables)

        await self.audit.log(
            "user_approved" if new_status == VerificationStatus.VERIFIED else "user_denied",
            user=verifier,
            entity_type="User",
            entity_id=target.id,
            details={
                "verifierEmail": verifier.email,
                "targetEmail": target.email,
                "comment": comment,
                "newStatus": new_status.value,
                "emailSent": email_sent,
            },
            context=context,
        )
        return target
