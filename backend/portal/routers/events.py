"""Community calendar endpoints."""

from fastapi import APIRouter, status

from portal.core.deps import CalendarCaps, Context, DbSession, OptionalUser, VerifiedUser
from portal.models import EventList, EventRead, EventWrite
from portal.schemas.auth import MessageResponse
from portal.services.events import EventService

router = APIRouter(prefix="/events")


@router.get("", response_model=EventList)
async def list_events(viewer: OptionalUser, session: DbSession) -> EventList:
    """Upcoming events for everyone; the full history for verified users."""
    events, verified, cutoff = await EventService(session).list_visible(viewer)
    return EventList(
        events=[EventRead.model_validate(event) for event in events],
        is_verified=verified,
        current_month_start=cutoff,
    )


@router.get("/{event_id}", response_model=EventRead)
async def get_event(event_id: int, session: DbSession) -> EventRead:
    event = await EventService(session).get(event_id)
    return EventRead.model_validate(event)


@router.post("", response_model=EventRead, status_code=status.HTTP_201_CREATED)
async def create_event(
    data: EventWrite,
    caps: CalendarCaps,
    current_user: VerifiedUser,
    session: DbSession,
    context: Context,
) -> EventRead:
    event = await EventService(session).create(data, current_user, context)
    return EventRead.model_validate(event)


@router.put("/{event_id}", response_model=EventRead)
async def update_event(
    event_id: int,
    data: EventWrite,
    caps: CalendarCaps,
    current_user: VerifiedUser,
    session: DbSession,
    context: Context,
) -> EventRead:
    event = await EventService(session).update(event_id, data, current_user, context)
    return EventRead.model_validate(event)


@router.delete("/{event_id}", response_model=MessageResponse)
async def delete_event(
    event_id: int,
    caps: CalendarCaps,
    current_user: VerifiedUser,
    session: DbSession,
    context: Context,
) -> MessageResponse:
    await EventService(session).delete(event_id, current_user, context)
    return MessageResponse(message="Event deleted")
