"""Magic-link sign-in token model."""

from datetime import datetime

from sqlmodel import Field, SQLModel

from portal.models.types import UTCDateTime, utcnow


class MagicLinkToken(SQLModel, table=True):
    """Single-use, time-limited sign-in token. Only the hash is stored."""

    __tablename__ = "magic_link_tokens"

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    token_hash: str = Field(unique=True, index=True)
    expires_at: datetime = Field(sa_type=UTCDateTime)
    used_at: datetime | None = Field(default=None, sa_type=UTCDateTime)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
