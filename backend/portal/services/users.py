"""Registration, self-service profile edits and administrative user edits."""

import logging
import re

from fastapi import BackgroundTasks
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from portal.core.errors import NotFoundError, ValidationError
from portal.models import Committee, Role, RoleName, User, VerificationStatus
from portal.models.types import utcnow
from portal.schemas.admin import BulkUserAction, BulkUserOutcome, BulkUserRequest, BulkUserResult
from portal.schemas.users import AdminUserUpdate, ProfileFields, ProfileUpdateResult, RegistrationRequest
from portal.services.audit import AuditService, RequestContext
from portal.services.email import EmailSender
from portal.services.notifications import NotificationService
from portal.services.sanitize import has_sql_injection_patterns, sanitize_email, sanitize_string

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 100
MAX_UNIT_LENGTH = 6
PHONE_PATTERN = re.compile(r"^[\d\s\-()+.]+$")
UNIT_PATTERN = re.compile(r"^[a-zA-Z0-9]+$")


def _yes_no(flag: bool) -> str:
    return "Yes" if flag else "No"


def validate_profile_fields(fields: ProfileFields | RegistrationRequest) -> None:
    """Check required fields, length bounds and the resident/owner rule.

    Raises:
        ValidationError: On the first group of problems found
    """
    errors = []
    if not fields.first_name.strip() or not fields.last_name.strip():
        errors.append("First and last name are required")
    if len(fields.first_name) > MAX_NAME_LENGTH or len(fields.last_name) > MAX_NAME_LENGTH:
        errors.append(f"Name fields must be {MAX_NAME_LENGTH} characters or less")
    if not fields.phone.strip():
        errors.append("Phone number is required")
    elif not PHONE_PATTERN.match(fields.phone.strip()):
        errors.append("Invalid phone number format")
    unit = fields.unit_number.strip()
    if not unit:
        errors.append("Unit number is required")
    elif len(unit) > MAX_UNIT_LENGTH:
        errors.append(f"Unit number must be {MAX_UNIT_LENGTH} characters or less")
    elif not UNIT_PATTERN.match(unit):
        errors.append("Unit number must be alphanumeric only")
    if not fields.is_resident and not fields.is_owner:
        errors.append("At least one of resident or owner must be selected")
    if errors:
        raise ValidationError("; ".join(errors))


def profile_changes(user: User, fields: ProfileFields) -> list[str]:
    """Human-readable list of watched fields that differ from stored values."""
    current_resident = RoleName.RESIDENT.value in user.role_names
    current_owner = RoleName.OWNER.value in user.role_names
    new_unit = fields.unit_number.strip().upper()

    changes = []
    if fields.first_name.strip() != user.first_name:
        changes.append(f'First name: "{user.first_name}" → "{fields.first_name.strip()}"')
    if fields.last_name.strip() != user.last_name:
        changes.append(f'Last name: "{user.last_name}" → "{fields.last_name.strip()}"')
    if fields.phone.strip() != user.phone:
        changes.append(f'Phone: "{user.phone}" → "{fields.phone.strip()}"')
    if new_unit != user.unit_number:
        changes.append(f'Unit: "{user.unit_number}" → "{new_unit}"')
    if fields.is_resident != current_resident:
        changes.append(f"Resident: {_yes_no(current_resident)} → {_yes_no(fields.is_resident)}")
    if fields.is_owner != current_owner:
        changes.append(f"Owner: {_yes_no(current_owner)} → {_yes_no(fields.is_owner)}")
    return changes


class UserService:
    """Service for user records outside the verifier workflow."""

    def __init__(self, session: AsyncSession, sender: EmailSender):
        self.session = session
        self.sender = sender
        self.audit = AuditService(session)

    async def get_user(self, user_id: int) -> User:
        user = await self.session.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def roles_by_name(self, names: list[str]) -> list[Role]:
        if not names:
            return []
        result = await self.session.execute(select(Role).where(Role.name.in_(names)))
        return list(result.scalars().all())

    async def _set_flag_roles(self, user: User, is_resident: bool, is_owner: bool) -> None:
        """Connect or disconnect resident/owner roles to match the flags."""
        wanted = {RoleName.RESIDENT.value: is_resident, RoleName.OWNER.value: is_owner}
        roles = {role.name: role for role in await self.roles_by_name(list(wanted))}
        for name, flag in wanted.items():
            role = roles.get(name)
            if role is None:
                logger.warning(f"Role '{name}' is missing; skipping role update")
                continue
            has_role = name in user.role_names
            if flag and not has_role:
                user.roles.append(role)
            elif not flag and has_role:
                user.roles = [r for r in user.roles if r.name != name]

    async def register(
        self,
        data: RegistrationRequest,
        context: RequestContext | None = None,
        background_tasks: BackgroundTasks | None = None,
    ) -> User:
        """Create a pending user and tell verifiers about it.

        Raises:
            ValidationError: Invalid fields or an email already in use
        """
        validate_profile_fields(data)
        email = sanitize_email(data.email)
        existing = await self.session.execute(select(User).where(User.email == email))
        if existing.scalar_one_or_none() is not None:
            raise ValidationError(
                "An account with this email already exists. "
                "Please use a different email or try logging in."
            )

        user = User(
            first_name=sanitize_string(data.first_name),
            last_name=sanitize_string(data.last_name),
            email=email,
            phone=sanitize_string(data.phone),
            unit_number=sanitize_string(data.unit_number).upper(),
            verification_status=VerificationStatus.PENDING,
        )
        await self._set_flag_roles(user, data.is_resident, data.is_owner)
        self.session.add(user)
        await self.session.commit()
        await self.session.refresh(user)

        await self.audit.log(
            "user_registered",
            user=user,
            entity_type="User",
            entity_id=user.id,
            details={
                "email": user.email,
                "unitNumber": user.unit_number,
                "roles": sorted(user.role_names),
            },
            context=context,
        )

        if background_tasks is not None:
            background_tasks.add_task(
                self._notify_verifiers, user, data.is_resident, data.is_owner
            )
        else:
            await self._notify_verifiers(user, data.is_resident, data.is_owner)
        return user

    async def update_profile(
        self,
        user: User,
        fields: ProfileFields,
        context: RequestContext | None = None,
        background_tasks: BackgroundTasks | None = None,
    ) -> ProfileUpdateResult:
        """Apply a self-service edit.

        A verified user who changes any watched field goes back to pending
        with a comment listing the changes, and both the user and the
        verifiers are notified. Users who were not verified keep their
        status.
        """
        validate_profile_fields(fields)
        changes = profile_changes(user, fields)
        if not changes:
            return ProfileUpdateResult(message="No changes detected", reverify=False)

        reverify = user.verification_status == VerificationStatus.VERIFIED

        user.first_name = fields.first_name.strip()
        user.last_name = fields.last_name.strip()
        user.phone = fields.phone.strip()
        user.unit_number = fields.unit_number.strip().upper()
        await self._set_flag_roles(user, fields.is_resident, fields.is_owner)
        if reverify:
            user.verification_status = VerificationStatus.PENDING
            user.verification_updated_at = utcnow()
            user.verification_comment = (
                f"Profile update requires re-verification. Changes: {'; '.join(changes)}"
            )
        self.session.add(user)
        await self.session.commit()
        await self.session.refresh(user)

        suspicious = [
            name
            for name in ("first_name", "last_name", "phone")
            if has_sql_injection_patterns(getattr(fields, name))
        ]
        details = {"changes": changes, "reverify": reverify}
        if suspicious:
            details["suspiciousInput"] = suspicious
        await self.audit.log(
            "profile_updated",
            user=user,
            entity_type="User",
            entity_id=user.id,
            details=details,
            context=context,
        )

        if reverify:
            args = (user, changes, fields.is_resident, fields.is_owner)
            if background_tasks is not None:
                background_tasks.add_task(self._send_reverify_notifications, *args)
            else:
                await self._send_reverify_notifications(*args)

        return ProfileUpdateResult(
            message=(
                "Profile updated. Your account requires re-verification."
                if reverify
                else "Profile updated successfully."
            ),
            reverify=reverify,
            changes=changes,
        )

    async def _notify_verifiers(self, user: User, is_resident: bool, is_owner: bool) -> None:
        try:
            await NotificationService(self.session, self.sender).notify_verifiers(
                user, is_resident, is_owner
            )
        except Exception:
            logger.exception(f"Failed to notify verifiers about user {user.id}")

    async def _send_reverify_notifications(
        self,
        user: User,
        changes: list[str],
        is_resident: bool,
        is_owner: bool,
    ) -> None:
        notifications = NotificationService(self.session, self.sender)
        try:
            await notifications.send_template(
                "profile-update-reverify",
                user.email,
                {
                    "firstName": user.first_name,
                    "lastName": user.last_name,
                    "changes": "\n".join(changes),
                },
            )
            await notifications.notify_verifiers(user, is_resident, is_owner)
        except Exception:
            logger.exception(f"Failed to send re-verification notifications for user {user.id}")

    async def admin_update(
        self,
        user_id: int,
        data: AdminUserUpdate,
        admin: User,
        context: RequestContext | None = None,
    ) -> User:
        """Set profile fields, roles and committees. Verification status is untouched.

        Raises:
            ValidationError: Missing fields, unknown role names or committee ids
        """
        user = await self.get_user(user_id)
        values = {
            "first_name": data.first_name.strip(),
            "last_name": data.last_name.strip(),
            "phone": data.phone.strip(),
            "unit_number": data.unit_number.strip().upper(),
        }
        if not all(values.values()):
            raise ValidationError("first_name, last_name, phone, and unit_number are required")

        role_records = await self.roles_by_name(data.roles)
        unknown = sorted(set(data.roles) - {role.name for role in role_records})
        if unknown:
            raise ValidationError(f"Invalid role names: {', '.join(unknown)}")

        committee_records: list[Committee] = []
        if data.committees:
            result = await self.session.execute(
                select(Committee).where(Committee.id.in_(data.committees))
            )
            committee_records = list(result.scalars().all())
        if len(committee_records) != len(set(data.committees)):
            raise ValidationError("One or more committee IDs are invalid")

        profile_diff = {
            key: {"from": getattr(user, key), "to": value}
            for key, value in values.items()
            if getattr(user, key) != value
        }
        old_roles = user.role_names
        old_committees = user.committee_ids

        for key, value in values.items():
            setattr(user, key, value)
        user.roles = role_records
        user.committees = committee_records
        self.session.add(user)
        await self.session.commit()
        await self.session.refresh(user)

        base = {"adminEmail": admin.email, "targetEmail": user.email}
        if profile_diff:
            await self.audit.log(
                "user_profile_updated",
                user=admin,
                entity_type="User",
                entity_id=user.id,
                details={**base, "changes": profile_diff},
                context=context,
            )
        new_roles = user.role_names
        if new_roles != old_roles:
            await self.audit.log(
                "user_roles_updated",
                user=admin,
                entity_type="User",
                entity_id=user.id,
                details={
                    **base,
                    "rolesAdded": sorted(new_roles - old_roles),
                    "rolesRemoved": sorted(old_roles - new_roles),
                    "newRoles": sorted(new_roles),
                },
                context=context,
            )
        new_committees = user.committee_ids
        if new_committees != old_committees:
            await self.audit.log(
                "user_committees_updated",
                user=admin,
                entity_type="User",
                entity_id=user.id,
                details={
                    **base,
                    "committeesAdded": sorted(new_committees - old_committees),
                    "committeesRemoved": sorted(old_committees - new_committees),
                },
                context=context,
            )
        return user

    async def list_users(self, status: VerificationStatus | None = None) -> list[User]:
        query = select(User).order_by(User.last_name, User.first_name)
        if status is not None:
            query = query.where(User.verification_status == status)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def bulk_update(
        self,
        data: BulkUserRequest,
        admin: User,
        context: RequestContext | None = None,
    ) -> BulkUserResult:
        """Give every listed user one role or one committee membership.

        Users who already have it count as successes. Unknown user ids are
        reported per user and do not stop the batch.

        Raises:
            ValidationError: Missing or unknown role name, or missing committee id
            NotFoundError: Unknown committee
        """
        role: Role | None = None
        committee: Committee | None = None
        if data.action == BulkUserAction.ASSIGN_ROLE:
            if not data.role_name:
                raise ValidationError("role_name is required for assign_role action")
            roles = await self.roles_by_name([data.role_name])
            if not roles:
                raise ValidationError(f'Role "{data.role_name}" not found')
            role = roles[0]
        else:
            if data.committee_id is None:
                raise ValidationError("committee_id is required for add_committee action")
            committee = await self.session.get(Committee, data.committee_id)
            if committee is None:
                raise NotFoundError("Committee not found")

        outcomes = []
        entries = []
        for user_id in data.user_ids:
            user = await self.session.get(User, user_id)
            if user is None:
                outcomes.append(BulkUserOutcome(user_id=user_id, success=False, error="User not found"))
                continue
            details = {
                "adminEmail": admin.email,
                "targetEmail": user.email,
                "bulkAction": data.action.value,
            }
            if role is not None:
                already = role.name in user.role_names
                if not already:
                    user.roles.append(role)
                action = "user_roles_updated"
                details.update(roleName=role.name, wasAlreadyAssigned=already)
            else:
                already = committee.id in user.committee_ids
                if not already:
                    user.committees.append(committee)
                action = "user_committees_updated"
                details.update(
                    committeeName=committee.name,
                    committeeId=committee.id,
                    wasAlreadyMember=already,
                )
            self.session.add(user)
            entries.append((action, user_id, details))
            outcomes.append(BulkUserOutcome(user_id=user_id, success=True))
        await self.session.commit()

        for action, user_id, details in entries:
            await self.audit.log(
                action,
                user=admin,
                entity_type="User",
                entity_id=user_id,
                details=details,
                context=context,
            )

        done = sum(1 for outcome in outcomes if outcome.success)
        total = len(data.user_ids)
        if role is not None:
            message = f'Role "{role.name}" assigned to {done} of {total} users'
        else:
            message = f'{done} of {total} users added to committee "{committee.name}"'
        logger.info(message)
        return BulkUserResult(message=message, results=outcomes)
