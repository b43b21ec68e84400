"""Community calendar event model."""

from datetime import datetime

from sqlmodel import Field, SQLModel

from portal.models.types import UTCDateTime, utcnow


class Event(SQLModel, table=True):
    """A dated entry on the community calendar."""

    __tablename__ = "events"

    id: int | None = Field(default=None, primary_key=True)
    title: str
    description: str | None = Field(default=None)
    start_at: datetime = Field(sa_type=UTCDateTime, index=True)
    end_at: datetime | None = Field(default=None, sa_type=UTCDateTime)
    created_by: int = Field(foreign_key="users.id")
    updated_by: int | None = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class EventWrite(SQLModel):
    """Request body for creating or replacing an event."""

    title: str = Field(max_length=200)
    description: str | None = Field(default=None, max_length=5000)
    start_at: datetime
    end_at: datetime | None = None


class EventRead(SQLModel):
    """Schema for reading an event."""

    id: int
    title: str
    description: str | None
    start_at: datetime
    end_at: datetime | None
    created_by: int
    created_at: datetime


class EventList(SQLModel):
    """Events visible to the caller, with the cut-off applied to them."""

    events: list[EventRead]
    is_verified: bool
    current_month_start: datetime
