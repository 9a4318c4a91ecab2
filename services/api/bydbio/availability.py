"""
Appointment availability and booking.

A user who accepts appointments keeps a weekly template in
users.availability:

  {"monday": {"enabled": true, "start_time": "09:00", "end_time": "17:00"}, ...}

Open slots for a date are the 30-minute steps inside that day's window that
fit entirely before the window closes, lie in the future, and are not
already booked. Slots are computed on every call; "now" is read at call
time and nothing is cached.
"""
import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from icalendar import Calendar, Event as CalendarEvent, vCalAddress, vText
from opentelemetry import trace
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from bydbio import queries
from bydbio.config import settings
from bydbio.errors import (
    InvalidScheduleError,
    NotFoundError,
    NotPermittedError,
    SelfActionError,
    SlotUnavailableError,
)
from bydbio.models import Appointment, User
from bydbio.notifications import create_notification
from bydbio.schemas import WEEKDAYS, BookingSettings
from bydbio.telemetry import APPOINTMENTS_BOOKED_TOTAL

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


# ─────────────────────────── Time helpers ────────────────────────────────

def parse_hhmm(value: str) -> time:
    """'09:30' → time(9, 30). Raises InvalidScheduleError for anything else."""
    try:
        return datetime.strptime(value, "%H:%M").time()
    except (TypeError, ValueError) as exc:
        raise InvalidScheduleError(f"Invalid time of day: {value!r}") from exc


def to_local_naive(moment: datetime) -> datetime:
    """Aware datetimes become naive server-local time; naive ones pass through."""
    if moment.tzinfo is not None:
        return moment.astimezone().replace(tzinfo=None)
    return moment


def to_24h(moment) -> str:
    return moment.strftime("%H:%M")


def to_12h(moment) -> str:
    """'9:30 AM' style label, hour without padding."""
    hour = moment.hour % 12 or 12
    suffix = "AM" if moment.hour < 12 else "PM"
    return f"{hour}:{moment.minute:02d} {suffix}"


def compute_slots(
    day: date,
    window: dict,
    booked: set[str],
    now: datetime,
    duration: Optional[int] = None,
) -> list[str]:
    """
    Open slot labels for one day's window, chronologically.

    `booked` holds the 24h "HH:MM" starts already taken. A candidate `t` is
    kept iff t + duration <= window end, t > now and t is not booked.
    """
    duration = timedelta(minutes=duration or settings.slot_duration_minutes)
    step = timedelta(minutes=settings.slot_duration_minutes)

    start = datetime.combine(day, parse_hhmm(window.get("start_time")))
    end = datetime.combine(day, parse_hhmm(window.get("end_time")))
    if start >= end:
        raise InvalidScheduleError("Availability window must start before it ends")

    slots = []
    candidate = start
    while candidate + duration <= end:
        if candidate > now and to_24h(candidate) not in booked:
            slots.append(to_12h(candidate))
        candidate += step
    return slots


# ─────────────────────────── Slots ───────────────────────────────────────

async def get_available_slots(
    session: AsyncSession,
    user_id: str,
    day: date,
    now: Optional[datetime] = None,
    duration: Optional[int] = None,
) -> list[str]:
    user = await session.get(User, user_id)
    if user is None or not user.accepting_appointments:
        return []

    window = (user.availability or {}).get(WEEKDAYS[day.weekday()])
    if not window or not window.get("enabled"):
        return []

    appointments = await queries.fetch_appointments_between(
        session,
        user_id,
        datetime.combine(day, time.min),
        datetime.combine(day, time.max),
    )
    booked = {to_24h(a.start_time) for a in appointments}

    return compute_slots(day, window, booked, now or datetime.now(), duration)


# ─────────────────────────── Booking ─────────────────────────────────────

async def create_appointment(
    session: AsyncSession,
    owner_id: str,
    booker_id: str,
    booker_name: str,
    start_time: datetime,
) -> Appointment:
    """
    Book `start_time` with `owner_id`.

    The conflict check and the insert share the request transaction, and the
    (owner_id, start_time) unique constraint catches a concurrent booking
    that slipped past the check. The requested start is not re-validated
    against the owner's weekly template.
    """
    if owner_id == booker_id:
        raise SelfActionError("You cannot book an appointment with yourself.")

    start_time = to_local_naive(start_time)

    with tracer.start_as_current_span("create_appointment") as span:
        span.set_attribute("appointment.owner_id", owner_id)
        span.set_attribute("appointment.start_time", start_time.isoformat())

        owner = await session.get(User, owner_id)
        if owner is None:
            raise NotFoundError("User not found")

        taken = await session.execute(
            select(Appointment.id).where(
                Appointment.owner_id == owner_id,
                Appointment.start_time == start_time,
            )
        )
        if taken.first() is not None:
            raise SlotUnavailableError("This time slot is no longer available.")

        appointment = Appointment(
            owner_id=owner_id,
            booker_id=booker_id,
            booker_name=booker_name,
            start_time=start_time,
            end_time=start_time + timedelta(minutes=settings.slot_duration_minutes),
        )
        session.add(appointment)
        try:
            await session.flush()
        except IntegrityError as exc:
            raise SlotUnavailableError("This time slot is no longer available.") from exc

        await create_notification(
            session,
            user_id=owner_id,
            actor_id=booker_id,
            notification_type="new_appointment",
            entity_id=appointment.id,
            entity_type="appointment",
            entity_title=f"{booker_name} at {to_12h(start_time)}",
        )

    APPOINTMENTS_BOOKED_TOTAL.inc()
    logger.info(
        "Appointment %s booked with %s at %s", appointment.id, owner_id, start_time.isoformat()
    )
    return appointment


async def delete_appointment(
    session: AsyncSession,
    appointment_id: str,
    requester_id: str,
) -> None:
    appointment = await session.get(Appointment, appointment_id)
    if appointment is None:
        raise NotFoundError("Appointment not found")
    if requester_id not in (appointment.owner_id, appointment.booker_id):
        raise NotPermittedError("You cannot cancel someone else's appointment.")
    await session.delete(appointment)
    logger.info("Appointment %s cancelled by %s", appointment_id, requester_id)


def build_appointment_ics(appointment: Appointment, owner: User) -> bytes:
    """
    One-event iCalendar document for a booked appointment. Users carry no
    e-mail address, so organizer and attendee are addressed by user id URNs
    with their display names in CN.
    """
    organizer = vCalAddress(f"urn:uuid:{owner.user_id}")
    organizer.params["cn"] = vText(owner.name)

    attendee = vCalAddress(f"urn:uuid:{appointment.booker_id}")
    attendee.params["cn"] = vText(appointment.booker_name)
    attendee.params["rsvp"] = vText("TRUE")

    event = CalendarEvent()
    event.add("uid", f"{appointment.id}@bydbio")
    event.add("dtstamp", datetime.now(timezone.utc))
    event.add("dtstart", appointment.start_time)
    event.add("dtend", appointment.end_time)
    event.add("summary", f"Appointment with {owner.name}")
    event.add("description", f"Meeting with {appointment.booker_name}.")
    event["organizer"] = organizer
    event.add("attendee", attendee)

    cal = Calendar()
    cal.add("prodid", "-//BYD Bio//Appointments//EN")
    cal.add("version", "2.0")
    cal.add_component(event)
    return cal.to_ical()


async def export_appointment_ics(
    session: AsyncSession,
    appointment_id: str,
    requester_id: str,
) -> bytes:
    """Calendar file for either party of the appointment."""
    appointment = await session.get(Appointment, appointment_id)
    if appointment is None:
        raise NotFoundError("Appointment not found")
    if requester_id not in (appointment.owner_id, appointment.booker_id):
        raise NotPermittedError("You cannot export someone else's appointment.")

    owner = await session.get(User, appointment.owner_id)
    if owner is None:
        raise NotFoundError("User not found")
    return build_appointment_ics(appointment, owner)


# ─────────────────────────── Booking settings ────────────────────────────

async def get_booking_settings(session: AsyncSession, user_id: str) -> BookingSettings:
    user = await session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return BookingSettings(
        accepting_appointments=user.accepting_appointments,
        availability=user.availability or {},
    )


async def update_booking_settings(
    session: AsyncSession,
    user_id: str,
    booking: BookingSettings,
) -> BookingSettings:
    """Replace the user's flag and weekly template wholesale."""
    user = await session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")

    user.accepting_appointments = booking.accepting_appointments
    user.availability = {
        day: window.model_dump() for day, window in booking.availability.items()
    }
    await session.flush()
    return booking
