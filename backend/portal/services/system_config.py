"""Runtime configuration stored in the ``system_config`` table."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from portal.core.errors import NotFoundError, ValidationError
from portal.models import ConfigUpdate, EmailTemplate, Role, RoleName, SystemConfig, User
from portal.models.types import utcnow
from portal.services.audit import AuditService, RequestContext

logger = logging.getLogger(__name__)

# key -> (default, description)
DEFAULT_CONFIG: dict[str, tuple[str, str]] = {
    "max_upload_size_mb": ("25", "Maximum document upload size in megabytes"),
    "audit_retention_authenticated_days": (
        "365",
        "Days to keep audit events with a known user",
    ),
    "audit_retention_anonymous_days": ("90", "Days to keep anonymous audit events"),
    "failed_login_alert_threshold": (
        "3",
        "Failed sign-ins in one hour that trigger an admin alert",
    ),
    "pending_verification_alert_count": (
        "5",
        "Pending registrations that trigger an admin alert",
    ),
    "rate_limit_login_attempts": ("5", "Sign-in attempts per identifier per hour"),
    "rate_limit_magic_link_requests": ("3", "Magic-link requests per email per hour"),
    "session_timeout_days": ("30", "Days before a session expires"),
}

NUMERIC_KEYS = {
    "max_upload_size_mb",
    "audit_retention_authenticated_days",
    "audit_retention_anonymous_days",
    "failed_login_alert_threshold",
    "pending_verification_alert_count",
    "rate_limit_login_attempts",
    "rate_limit_magic_link_requests",
    "session_timeout_days",
}

DEFAULT_ROLES: dict[str, str] = {
    RoleName.DBADMIN.value: "Unrestricted administrative access",
    RoleName.PUBLISHER.value: "Manages documents for committees they belong to",
    RoleName.CALENDAR.value: "Manages community events",
    RoleName.VERIFIER.value: "Approves or denies registrations",
    RoleName.USER.value: "Baseline verified member",
    RoleName.RESIDENT.value: "Lives in the building",
    RoleName.OWNER.value: "Owns a unit",
}

# key -> (subject, body)
DEFAULT_TEMPLATES: dict[str, tuple[str, str]] = {
    "approval": (
        "Your Manor Portal account has been approved",
        "Hello {{firstName}} {{lastName}},\n\n"
        "Your registration for unit {{unit}} has been approved.\n"
        "You can sign in at {{loginLink}}.",
    ),
    "denial": (
        "Your Manor Portal registration",
        "Hello {{firstName}} {{lastName}},\n\n"
        "We could not approve your registration for unit {{unit}}.\n"
        "Reason: {{reason}}\n\n"
        "Questions? Contact {{contactEmail}} or {{contactPhone}}.",
    ),
    "verifier-notification": (
        "New registration awaiting verification",
        "{{firstName}} {{lastName}} ({{email}}, {{phone}}) needs verification.\n"
        "Unit: {{unit}}\nResident: {{isResident}}\nOwner: {{isOwner}}\n\n"
        "Review at {{verificationLink}}",
    ),
    "profile-update-reverify": (
        "Your profile change requires re-verification",
        "Hello {{firstName}} {{lastName}},\n\n"
        "You changed the following details:\n{{changes}}\n\n"
        "A verifier will review your account shortly.",
    ),
    "magic-link": (
        "Your Manor Portal sign-in link",
        "Use this link to sign in. It expires in {{expiresMinutes}} minutes.\n\n{{link}}",
    ),
    "email-recovery": (
        "Your Manor Portal email address",
        "Hello {{firstName}} {{lastName}},\n\n"
        "Someone asked which email address is registered for unit {{unit}}.\n"
        "Your account uses {{email}}.\n\n"
        "Sign in at {{loginLink}}.",
    ),
}


class ConfigService:
    """Typed access to runtime configuration."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, key: str) -> str | None:
        result = await self.session.execute(select(SystemConfig).where(SystemConfig.key == key))
        entry = result.scalar_one_or_none()
        if entry is not None:
            return entry.value
        default = DEFAULT_CONFIG.get(key)
        return default[0] if default else None

    async def get_int(self, key: str, default: int | None = None) -> int:
        """Integer config value, falling back to the built-in default."""
        value = await self.get(key)
        try:
            return int(value)
        except (TypeError, ValueError):
            if default is not None:
                return default
            fallback = DEFAULT_CONFIG.get(key)
            if fallback is None:
                raise NotFoundError(f"Config '{key}' not found")
            logger.warning(f"Config '{key}' has non-integer value {value!r}; using default")
            return int(fallback[0])

    async def list_all(self) -> list[SystemConfig]:
        result = await self.session.execute(select(SystemConfig).order_by(SystemConfig.key))
        return list(result.scalars().all())

    async def update(
        self,
        updates: list[ConfigUpdate],
        actor: User,
        context: RequestContext | None = None,
    ) -> dict[str, dict[str, str | None]]:
        """Apply config changes and return the from/to diff.

        Raises:
            ValidationError: If any update is empty, non-numeric for a
                numeric key, or the list is empty
        """
        if not updates:
            raise ValidationError("updates must be a non-empty list of key/value pairs")

        errors = []
        for update in updates:
            if not update.key or update.value.strip() == "":
                errors.append(f'Config "{update.key}" cannot be empty')
                continue
            if update.key in NUMERIC_KEYS:
                try:
                    number = int(update.value.strip())
                except ValueError:
                    number = 0
                if number <= 0:
                    errors.append(f'Config "{update.key}" must be a positive whole number')
        if errors:
            raise ValidationError("; ".join(errors))

        changes: dict[str, dict[str, str | None]] = {}
        for update in updates:
            value = update.value.strip()
            result = await self.session.execute(
                select(SystemConfig).where(SystemConfig.key == update.key)
            )
            entry = result.scalar_one_or_none()
            if entry is None:
                raise NotFoundError(f'Config "{update.key}" not found')
            if entry.value == value:
                continue
            changes[update.key] = {"from": entry.value, "to": value}
            entry.value = value
            entry.updated_by = actor.id
            entry.updated_at = utcnow()
            self.session.add(entry)

        await self.session.commit()

        if changes:
            await AuditService(self.session).log(
                "config_updated",
                user=actor,
                entity_type="SystemConfig",
                details={"adminEmail": actor.email, "changes": changes},
                context=context,
            )
        return changes

    async def seed_defaults(self) -> None:
        """Insert missing config keys, standard roles and email templates."""
        existing_keys = set(
            (await self.session.execute(select(SystemConfig.key))).scalars().all()
        )
        for key, (value, description) in DEFAULT_CONFIG.items():
            if key not in existing_keys:
                self.session.add(SystemConfig(key=key, value=value, description=description))

        existing_roles = set((await self.session.execute(select(Role.name))).scalars().all())
        for name, description in DEFAULT_ROLES.items():
            if name not in existing_roles:
                self.session.add(Role(name=name, description=description))

        existing_templates = set(
            (await self.session.execute(select(EmailTemplate.key))).scalars().all()
        )
        for key, (subject, body) in DEFAULT_TEMPLATES.items():
            if key not in existing_templates:
                self.session.add(EmailTemplate(key=key, subject=subject, body=body))

        await self.session.commit()
