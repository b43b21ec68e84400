"""User registration, profile and verification schemas."""

from pydantic import BaseModel, EmailStr, Field


class RegistrationRequest(BaseModel):
    """Self-service sign-up."""

    first_name: str
    last_name: str
    email: EmailStr
    phone: str
    unit_number: str
    is_resident: bool = False
    is_owner: bool = False


class ProfileFields(BaseModel):
    """Fields a user may edit about themselves."""

    first_name: str
    last_name: str
    phone: str
    unit_number: str
    is_resident: bool = False
    is_owner: bool = False


class ProfileRead(BaseModel):
    """The caller's own profile."""

    id: int
    first_name: str
    last_name: str
    email: str
    phone: str
    unit_number: str
    verification_status: str
    is_resident: bool
    is_owner: bool


class ProfileUpdateResult(BaseModel):
    """Outcome of a profile edit."""

    success: bool = True
    message: str
    reverify: bool
    changes: list[str] = Field(default_factory=list)


class RegistrationResult(BaseModel):
    """Outcome of a registration."""

    success: bool = True
    message: str
    user_id: int


class VerificationDecision(BaseModel):
    """Verifier decision on a pending user."""

    user_id: int
    action: str
    comment: str | None = None


class VerificationResult(BaseModel):
    """Outcome of a verifier decision."""

    success: bool = True
    message: str
    user_id: int
    new_status: str


class AdminUserUpdate(BaseModel):
    """Administrative edit of a user's profile, roles and committees."""

    first_name: str
    last_name: str
    phone: str
    unit_number: str
    roles: list[str]
    committees: list[int]
