"""Authentication request/response schemas."""

from pydantic import BaseModel, EmailStr


class MagicLinkRequest(BaseModel):
    """Magic-link request schema."""

    email: EmailStr


class MagicLinkVerify(BaseModel):
    """Magic-link verification schema."""

    token: str


class EmailRecoveryRequest(BaseModel):
    """Ask for the registered address of a unit's verified users."""

    unit_number: str


class TokenResponse(BaseModel):
    """Token response schema."""

    access_token: str
    token_type: str = "bearer"


class MessageResponse(BaseModel):
    """Generic acknowledgement."""

    message: str
