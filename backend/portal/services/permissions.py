"""Capability resolution for role-based access checks."""

from dataclasses import dataclass, field
from enum import Flag, auto

from portal.models import RoleName, User, VerificationStatus


class Permission(Flag):
    """Capabilities granted by roles."""

    NONE = 0
    ADMIN = auto()
    PUBLISH = auto()
    VERIFY = auto()
    CALENDAR = auto()


ROLE_PERMISSIONS: dict[str, Permission] = {
    RoleName.DBADMIN.value: Permission.ADMIN,
    RoleName.PUBLISHER.value: Permission.PUBLISH,
    RoleName.VERIFIER.value: Permission.VERIFY,
    RoleName.CALENDAR.value: Permission.CALENDAR,
}


@dataclass(frozen=True)
class Capabilities:
    """What one caller may do, resolved once per request."""

    user_id: int | None
    permissions: Permission = Permission.NONE
    committee_ids: frozenset[int] = field(default_factory=frozenset)
    verified: bool = False

    @classmethod
    def for_user(cls, user: User) -> "Capabilities":
        permissions = Permission.NONE
        for name in user.role_names:
            permissions |= ROLE_PERMISSIONS.get(name, Permission.NONE)
        return cls(
            user_id=user.id,
            permissions=permissions,
            committee_ids=frozenset(user.committee_ids),
            verified=user.verification_status == VerificationStatus.VERIFIED,
        )

    @property
    def is_admin(self) -> bool:
        return Permission.ADMIN in self.permissions

    @property
    def is_publisher(self) -> bool:
        return Permission.PUBLISH in self.permissions

    @property
    def can_verify(self) -> bool:
        return Permission.VERIFY in self.permissions

    @property
    def can_manage_events(self) -> bool:
        return self.is_admin or Permission.CALENDAR in self.permissions

    def is_member(self, committee_id: int) -> bool:
        return committee_id in self.committee_ids

    def can_manage_committee(self, committee_id: int) -> bool:
        """Admins, or publishers who belong to the committee."""
        return self.is_admin or (self.is_publisher and self.is_member(committee_id))

    def can_view_committee(self, committee_id: int, has_published: bool) -> bool:
        """Whether a committee appears in this caller's listing."""
        return (
            self.is_admin
            or self.is_publisher
            or self.is_member(committee_id)
            or has_published
        )
