"""Community calendar events."""

from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from portal.core.errors import NotFoundError, ValidationError
from portal.models import Event, EventWrite, User, VerificationStatus
from portal.models.types import as_utc, utcnow
from portal.services.audit import AuditService, RequestContext


def month_start(now: datetime | None = None) -> datetime:
    """Midnight UTC on the first day of the current month."""
    now = now or utcnow()
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def validate_event(data: EventWrite) -> dict:
    """Column values for ``data``: trimmed text and UTC timestamps.

    Raises:
        ValidationError: Blank title or an end that is not after the start
    """
    title = data.title.strip()
    if not title:
        raise ValidationError("Title is required")
    start_at = as_utc(data.start_at)
    end_at = as_utc(data.end_at) if data.end_at is not None else None
    if end_at is not None and end_at <= start_at:
        raise ValidationError("End date/time must be after start date/time")
    return {
        "title": title,
        "description": (data.description or "").strip() or None,
        "start_at": start_at,
        "end_at": end_at,
    }


class EventService:
    """Calendar listing for everyone, editing for calendar managers."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.audit = AuditService(session)

    async def get(self, event_id: int) -> Event:
        event = await self.session.get(Event, event_id)
        if event is None:
            raise NotFoundError("Event not found")
        return event

    async def list_visible(
        self, viewer: User | None, now: datetime | None = None
    ) -> tuple[list[Event], bool, datetime]:
        """Events the viewer may see, newest start first.

        Verified users see the full history. Everyone else, including
        anonymous callers, sees events starting this month or later.

        Returns:
            Events, whether the viewer is verified, and the month cut-off
        """
        cutoff = month_start(now)
        verified = viewer is not None and viewer.verification_status == VerificationStatus.VERIFIED
        query = select(Event).order_by(Event.start_at.desc(), Event.id.desc())
        if not verified:
            query = query.where(Event.start_at >= cutoff)
        result = await self.session.execute(query)
        return list(result.scalars().all()), verified, cutoff

    async def create(
        self, data: EventWrite, actor: User, context: RequestContext | None = None
    ) -> Event:
        event = Event(**validate_event(data), created_by=actor.id)
        self.session.add(event)
        await self.session.commit()
        await self.session.refresh(event)

        await self.audit.log(
            "event_created",
            user=actor,
            entity_type="Event",
            entity_id=event.id,
            details={"title": event.title, "startAt": event.start_at.isoformat()},
            context=context,
        )
        return event

    async def update(
        self,
        event_id: int,
        data: EventWrite,
        actor: User,
        context: RequestContext | None = None,
    ) -> Event:
        event = await self.get(event_id)
        for key, value in validate_event(data).items():
            setattr(event, key, value)
        event.updated_by = actor.id
        event.updated_at = utcnow()
        self.session.add(event)
        await self.session.commit()
        await self.session.refresh(event)

        await self.audit.log(
            "event_updated",
            user=actor,
            entity_type="Event",
            entity_id=event.id,
            details={"title": event.title, "startAt": event.start_at.isoformat()},
            context=context,
        )
        return event

    async def delete(
        self, event_id: int, actor: User, context: RequestContext | None = None
    ) -> None:
        event = await self.get(event_id)
        details = {"title": event.title, "startAt": event.start_at.isoformat()}
        await self.session.delete(event)
        await self.session.commit()

        await self.audit.log(
            "event_deleted",
            user=actor,
            entity_type="Event",
            entity_id=event_id,
            details=details,
            context=context,
        )
