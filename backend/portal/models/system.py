"""Runtime configuration and email template models."""

from datetime import datetime

from sqlmodel import Field, SQLModel

from portal.models.types import UTCDateTime, utcnow


class SystemConfig(SQLModel, table=True):
    """Key/value threshold store editable by administrators."""

    __tablename__ = "system_config"

    id: int | None = Field(default=None, primary_key=True)
    key: str = Field(unique=True, index=True)
    value: str
    description: str | None = Field(default=None)
    updated_by: int | None = Field(default=None)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class SystemConfigRead(SQLModel):
    """Schema for reading a config entry."""

    key: str
    value: str
    description: str | None
    is_numeric: bool
    updated_by: int | None
    updated_at: datetime


class ConfigUpdate(SQLModel):
    """A single key/value change."""

    key: str
    value: str


class EmailTemplate(SQLModel, table=True):
    """Editable notification template with ``{{placeholder}}`` variables."""

    __tablename__ = "email_templates"

    id: int | None = Field(default=None, primary_key=True)
    key: str = Field(unique=True, index=True)
    subject: str
    body: str
    description: str | None = Field(default=None)
    updated_by: int | None = Field(default=None)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class EmailTemplateRead(SQLModel):
    """Schema for reading a template."""

    id: int
    key: str
    subject: str
    body: str
    description: str | None
    updated_at: datetime


class EmailTemplateUpdate(SQLModel):
    """Schema for updating a template."""

    subject: str = Field(min_length=1, max_length=200)
    body: str = Field(min_length=1)
