from datetime import date, datetime, timedelta
from unittest.mock import AsyncMock

import pytest
from icalendar import Calendar
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from bydbio.availability import (
    create_appointment,
    delete_appointment,
    export_appointment_ics,
    get_available_slots,
    get_booking_settings,
    update_booking_settings,
)
from bydbio.errors import (
    NotFoundError,
    NotPermittedError,
    SelfActionError,
    SlotUnavailableError,
)
from bydbio.models import Appointment, Notification
from bydbio.schemas import BookingSettings, DayAvailability

MONDAY = date(2030, 1, 7)
LONG_AGO = datetime(2029, 12, 1)
MONDAY_MORNING = {"monday": {"enabled": True, "start_time": "09:00", "end_time": "10:00"}}


@pytest.fixture
async def olivia(seed):
    return await seed.user("olivia", accepting_appointments=True, availability=MONDAY_MORNING)


@pytest.fixture
async def ben(seed):
    return await seed.user("ben")


async def test_enabled_day_lists_open_slots(olivia, session):
    slots = await get_available_slots(session, "olivia", MONDAY, now=LONG_AGO)
    assert slots == ["9:00 AM", "9:30 AM"]


async def test_booked_slot_is_hidden(olivia, ben, seed, session):
    await seed.add(
        Appointment(
            owner_id="olivia",
            booker_id="ben",
            booker_name="Ben",
            start_time=datetime(2030, 1, 7, 9, 0),
            end_time=datetime(2030, 1, 7, 9, 30),
        )
    )
    assert await get_available_slots(session, "olivia", MONDAY, now=LONG_AGO) == ["9:30 AM"]


async def test_bookings_on_other_days_do_not_block(olivia, ben, seed, session):
    await seed.add(
        Appointment(
            owner_id="olivia",
            booker_id="ben",
            booker_name="Ben",
            start_time=datetime(2030, 1, 14, 9, 0),
            end_time=datetime(2030, 1, 14, 9, 30),
        )
    )
    assert await get_available_slots(session, "olivia", MONDAY, now=LONG_AGO) == ["9:00 AM", "9:30 AM"]


async def test_day_without_template_is_empty(olivia, session):
    tuesday = MONDAY + timedelta(days=1)
    assert await get_available_slots(session, "olivia", tuesday, now=LONG_AGO) == []


async def test_disabled_day_is_empty(seed, session):
    await seed.user(
        "dora",
        accepting_appointments=True,
        availability={"monday": {"enabled": False, "start_time": "09:00", "end_time": "10:00"}},
    )
    assert await get_available_slots(session, "dora", MONDAY, now=LONG_AGO) == []


async def test_not_accepting_appointments_is_empty(seed, session):
    await seed.user("nina", accepting_appointments=False, availability=MONDAY_MORNING)
    assert await get_available_slots(session, "nina", MONDAY, now=LONG_AGO) == []


async def test_unknown_user_is_empty(session):
    assert await get_available_slots(session, "nobody", MONDAY, now=LONG_AGO) == []


async def test_self_booking_fails_before_touching_the_store():
    session = AsyncMock(spec=AsyncSession)
    with pytest.raises(SelfActionError, match="cannot book an appointment with yourself"):
        await create_appointment(session, "olivia", "olivia", "Olivia", datetime(2030, 1, 7, 9, 0))
    assert session.method_calls == []


async def test_self_booking_writes_nothing(olivia, session_factory):
    async with session_factory() as session:
        with pytest.raises(SelfActionError):
            await create_appointment(session, "olivia", "olivia", "Olivia", datetime(2030, 1, 7, 9, 0))
    async with session_factory() as session:
        assert await session.scalar(select(func.count()).select_from(Appointment)) == 0


async def test_booking_lasts_thirty_minutes(olivia, ben, session):
    appointment = await create_appointment(session, "olivia", "ben", "Ben", datetime(2030, 1, 7, 9, 30))
    await session.commit()

    assert appointment.end_time == datetime(2030, 1, 7, 10, 0)
    assert await get_available_slots(session, "olivia", MONDAY, now=LONG_AGO) == ["9:00 AM"]


async def test_taken_start_cannot_be_booked_twice(olivia, ben, seed, session_factory):
    await seed.user("cleo")
    async with session_factory() as session:
        await create_appointment(session, "olivia", "ben", "Ben", datetime(2030, 1, 7, 9, 0))
        await session.commit()

    async with session_factory() as session:
        with pytest.raises(SlotUnavailableError):
            await create_appointment(session, "olivia", "cleo", "Cleo", datetime(2030, 1, 7, 9, 0))


async def test_booking_unknown_owner_fails(ben, session):
    with pytest.raises(NotFoundError):
        await create_appointment(session, "ghost", "ben", "Ben", datetime(2030, 1, 7, 9, 0))


async def test_booking_notifies_owner(olivia, ben, session):
    await create_appointment(session, "olivia", "ben", "Ben", datetime(2030, 1, 7, 9, 0))
    await session.commit()

    rows = (await session.execute(select(Notification))).scalars().all()
    assert [(n.user_id, n.actor_id, n.type) for n in rows] == [("olivia", "ben", "new_appointment")]
    assert rows[0].entity_title == "Ben at 9:00 AM"


async def test_either_party_may_cancel(olivia, ben, seed, session_factory):
    await seed.user("stranger")
    async with session_factory() as session:
        appointment = await create_appointment(session, "olivia", "ben", "Ben", datetime(2030, 1, 7, 9, 0))
        await session.commit()

    async with session_factory() as session:
        with pytest.raises(NotPermittedError):
            await delete_appointment(session, appointment.id, "stranger")

    async with session_factory() as session:
        await delete_appointment(session, appointment.id, "ben")
        await session.commit()

    assert await seed.get(Appointment, appointment.id) is None


async def test_appointment_exports_as_calendar_file(olivia, ben, seed, session_factory):
    await seed.user("stranger")
    async with session_factory() as session:
        appointment = await create_appointment(session, "olivia", "ben", "Ben", datetime(2030, 1, 7, 9, 0))
        await session.commit()

    async with session_factory() as session:
        ics = await export_appointment_ics(session, appointment.id, "ben")
        with pytest.raises(NotPermittedError):
            await export_appointment_ics(session, appointment.id, "stranger")
        with pytest.raises(NotFoundError):
            await export_appointment_ics(session, "missing", "ben")

    [event] = Calendar.from_ical(ics).walk("VEVENT")
    assert str(event["summary"]) == "Appointment with Olivia"
    assert str(event["description"]) == "Meeting with Ben."
    assert event.decoded("dtstart") == datetime(2030, 1, 7, 9, 0)
    assert event.decoded("dtend") == datetime(2030, 1, 7, 9, 30)
    assert event["organizer"].params["cn"] == "Olivia"
    assert event["attendee"].params["cn"] == "Ben"
    assert event["attendee"].params["rsvp"] == "TRUE"


async def test_booking_settings_replace_the_template(olivia, session):
    await update_booking_settings(
        session,
        "olivia",
        BookingSettings(
            accepting_appointments=True,
            availability={"wednesday": DayAvailability(enabled=True, start_time="14:00", end_time="15:00")},
        ),
    )
    await session.commit()

    current = await get_booking_settings(session, "olivia")
    assert list(current.availability) == ["wednesday"]
    assert await get_available_slots(session, "olivia", MONDAY, now=LONG_AGO) == []
    wednesday = MONDAY + timedelta(days=2)
    assert await get_available_slots(session, "olivia", wednesday, now=LONG_AGO) == ["2:00 PM", "2:30 PM"]


def test_inverted_window_fails_validation():
    with pytest.raises(ValueError):
        DayAvailability(enabled=True, start_time="17:00", end_time="09:00")
