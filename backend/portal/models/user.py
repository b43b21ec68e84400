"""User, role and committee models."""

from datetime import datetime
from enum import Enum

from sqlmodel import Field, Relationship, SQLModel

from portal.models.types import UTCDateTime, utcnow


class RoleName(str, Enum):
    """Standard role names."""

    DBADMIN = "dbadmin"
    PUBLISHER = "publisher"
    CALENDAR = "calendar"
    VERIFIER = "verifier"
    USER = "user"
    RESIDENT = "resident"
    OWNER = "owner"


class VerificationStatus(str, Enum):
    """Trust state of a registered user."""

    PENDING = "pending"
    VERIFIED = "verified"
    DENIED = "denied"


class UserRoleLink(SQLModel, table=True):
    """Association between users and roles."""

    __tablename__ = "user_roles"

    user_id: int = Field(foreign_key="users.id", primary_key=True)
    role_id: int = Field(foreign_key="roles.id", primary_key=True)


class CommitteeMember(SQLModel, table=True):
    """Association between users and committees."""

    __tablename__ = "committee_members"

    user_id: int = Field(foreign_key="users.id", primary_key=True)
    committee_id: int = Field(foreign_key="committees.id", primary_key=True)


class Role(SQLModel, table=True):
    """Named capability bundle."""

    __tablename__ = "roles"

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(unique=True, index=True)
    description: str | None = Field(default=None)


class Committee(SQLModel, table=True):
    """Named group with a document library and a member list."""

    __tablename__ = "committees"

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(unique=True, index=True)
    description: str | None = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class UserBase(SQLModel):
    """Base user fields."""

    first_name: str
    last_name: str
    email: str = Field(unique=True, index=True)
    phone: str
    unit_number: str
    verification_status: VerificationStatus = Field(default=VerificationStatus.PENDING, index=True)


class User(UserBase, table=True):
    """User database model."""

    __tablename__ = "users"

    id: int | None = Field(default=None, primary_key=True)
    verification_updated_at: datetime | None = Field(default=None, sa_type=UTCDateTime)
    verification_updated_by: int | None = Field(default=None)
    verification_comment: str | None = Field(default=None)
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    last_login: datetime | None = Field(default=None, sa_type=UTCDateTime)

    roles: list[Role] = Relationship(
        link_model=UserRoleLink,
        sa_relationship_kwargs={"lazy": "selectin"},
    )
    committees: list[Committee] = Relationship(
        link_model=CommitteeMember,
        sa_relationship_kwargs={"lazy": "selectin"},
    )

    @property
    def role_names(self) -> set[str]:
        return {role.name for role in self.roles}

    @property
    def committee_ids(self) -> set[int]:
        return {committee.id for committee in self.committees}

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class UserRead(UserBase):
    """Schema for reading a user."""

    id: int
    roles: list[str]
    committee_ids: list[int]
    verification_comment: str | None
    created_at: datetime

    @classmethod
    def from_user(cls, user: User) -> "UserRead":
        return cls(
            id=user.id,
            first_name=user.first_name,
            last_name=user.last_name,
            email=user.email,
            phone=user.phone,
            unit_number=user.unit_number,
            verification_status=user.verification_status,
            roles=sorted(user.role_names),
            committee_ids=sorted(user.committee_ids),
            verification_comment=user.verification_comment,
            created_at=user.created_at,
        )


class CommitteeRead(SQLModel):
    """Schema for reading a committee."""

    id: int
    name: str
    description: str | None


class CommitteeCreate(SQLModel):
    """Schema for creating or updating a committee."""

    name: str = Field(min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=1000)
