"""Templated notifications to users, verifiers and administrators."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from portal.core.config import get_settings
from portal.models import EmailTemplate, Role, RoleName, User, UserRoleLink, VerificationStatus
from portal.services.audit import AuditService
from portal.services.email import EmailError, EmailSender, render_template

logger = logging.getLogger(__name__)


class NotificationService:
    """Sends template-based emails. Delivery failures are logged, not raised."""

    def __init__(self, session: AsyncSession, sender: EmailSender):
        self.session = session
        self.sender = sender
        self.settings = get_settings()

    async def get_template(self, key: str) -> EmailTemplate | None:
        result = await self.session.execute(select(EmailTemplate).where(EmailTemplate.key == key))
        return result.scalar_one_or_none()

    async def users_with_role(self, role: RoleName) -> list[User]:
        """Verified users holding ``role``."""
        result = await self.session.execute(
            select(User)
            .join(UserRoleLink, UserRoleLink.user_id == User.id)
            .join(Role, Role.id == UserRoleLink.role_id)
            .where(
                Role.name == role.value,
                User.verification_status == VerificationStatus.VERIFIED,
            )
            .order_by(User.id)
        )
        return list(result.scalars().unique().all())

    async def send_template(self, key: str, to: str, variables: dict[str, str]) -> bool:
        """Render and send template ``key``. Returns False on any failure."""
        template = await self.get_template(key)
        if template is None:
            logger.error(f"Email template '{key}' not found")
            return False
        body = render_template(template.body, variables)
        try:
            await self.sender.send(to=to, subject=template.subject, text=body)
        except EmailError:
            logger.exception(f"Failed to send '{key}' email to {to}")
            return False
        return True

    async def notify_admins(self, subject: str, body: str) -> list[str]:
        """Email every verified dbadmin. Returns the addresses that were reached."""
        reached = []
        for admin in await self.users_with_role(RoleName.DBADMIN):
            try:
                await self.sender.send(to=admin.email, subject=subject, text=body)
                reached.append(admin.email)
            except EmailError:
                logger.exception(f"Failed to send alert to {admin.email}")
        return reached

    async def notify_verifiers(self, new_user: User, is_resident: bool, is_owner: bool) -> list[str]:
        """Tell every verifier that ``new_user`` needs review.

        Returns the verifier addresses that could not be reached. If any
        failed, dbadmins are told so they can follow up by hand.
        """
        audit = AuditService(self.session)
        template = await self.get_template("verifier-notification")
        if template is None:
            logger.error("verifier-notification email template not found")
            return []

        verifiers = await self.users_with_role(RoleName.VERIFIER)
        if not verifiers:
            logger.warning("No verifiers found to notify")
            await audit.log(
                "verifier_notification_skipped",
                entity_type="User",
                entity_id=new_user.id,
                details={"reason": "no_verifiers_found", "newUserEmail": new_user.email},
            )
            return []

        body = render_template(
            template.body,
            {
                "firstName": new_user.first_name,
                "lastName": new_user.last_name,
                "email": new_user.email,
                "phone": new_user.phone,
                "unit": new_user.unit_number,
                "isResident": "Yes" if is_resident else "No",
                "isOwner": "Yes" if is_owner else "No",
                "verificationLink": f"{self.settings.base_url}/admin/verify",
            },
        )

        failed = []
        for verifier in verifiers:
            try:
                await self.sender.send(to=verifier.email, subject=template.subject, text=body)
                await audit.log(
                    "verifier_notification_sent",
                    entity_type="User",
                    entity_id=new_user.id,
                    details={"verifierEmail": verifier.email, "newUserEmail": new_user.email},
                )
            except EmailError as e:
                logger.exception(f"Failed to send verifier notification to {verifier.email}")
                failed.append(verifier.email)
                await audit.log(
                    "verifier_notification_failed",
                    entity_type="User",
                    entity_id=new_user.id,
                    success=False,
                    details={
                        "verifierEmail": verifier.email,
                        "newUserEmail": new_user.email,
                        "error": str(e),
                    },
                )

        if failed:
            failed_list = "\n".join(failed)
            await self.notify_admins(
                "Portal Alert: Verifier Notification Email Failed",
                "An email notification to one or more verifiers failed.\n\n"
                f"New user: {new_user.display_name} ({new_user.email})\n"
                f"Unit: {new_user.unit_number}\n\n"
                f"Failed verifier emails:\n{failed_list}\n\n"
                f"Verification page: {self.settings.base_url}/admin/verify",
            )
        return failed
