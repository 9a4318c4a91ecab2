"""
Appointment endpoints:
  GET    /appointments/slots?user_id=&date=   — open slots for one day
  POST   /appointments                        — book a slot
  DELETE /appointments/{id}?user_id=          — cancel (owner or booker)
  GET    /appointments/settings/{user_id}     — booking settings
  PUT    /appointments/settings/{user_id}     — replace booking settings
  GET    /appointments/{id}/ics?user_id=      — calendar file (owner or booker)
"""
import logging
from datetime import date

from fastapi import APIRouter, Depends, Query, Response, status
from opentelemetry import trace
from sqlalchemy.ext.asyncio import AsyncSession

from bydbio import availability
from bydbio.database import get_db
from bydbio.schemas import (
    AppointmentCreate,
    AppointmentResponse,
    BookingSettings,
    SlotsResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)


@router.get("/slots", response_model=SlotsResponse)
async def get_slots(
    user_id: str = Query(...),
    day: date = Query(..., alias="date"),
    db: AsyncSession = Depends(get_db),
):
    with tracer.start_as_current_span("get_available_slots") as span:
        span.set_attribute("user.id", user_id)
        slots = await availability.get_available_slots(db, user_id, day)
        return SlotsResponse(user_id=user_id, date=day.isoformat(), slots=slots)


@router.post("/", response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
async def create_appointment(body: AppointmentCreate, db: AsyncSession = Depends(get_db)):
    appointment = await availability.create_appointment(
        db,
        owner_id=body.owner_id,
        booker_id=body.booker_id,
        booker_name=body.booker_name,
        start_time=body.start_time,
    )
    return AppointmentResponse(
        id=appointment.id,
        owner_id=appointment.owner_id,
        booker_id=appointment.booker_id,
        booker_name=appointment.booker_name,
        start_time=appointment.start_time.isoformat(),
        end_time=appointment.end_time.isoformat(),
    )


@router.delete("/{appointment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_appointment(
    appointment_id: str,
    user_id: str = Query(...),
    db: AsyncSession = Depends(get_db),
):
    await availability.delete_appointment(db, appointment_id, user_id)


@router.get("/settings/{user_id}", response_model=BookingSettings)
async def get_booking_settings(user_id: str, db: AsyncSession = Depends(get_db)):
    return await availability.get_booking_settings(db, user_id)


@router.put("/settings/{user_id}", response_model=BookingSettings)
async def update_booking_settings(
    user_id: str,
    body: BookingSettings,
    db: AsyncSession = Depends(get_db),
):
    booking = await availability.update_booking_settings(db, user_id, body)
    logger.info(
        "Booking settings updated for %s (accepting=%s)", user_id, body.accepting_appointments
    )
    return booking


@router.get("/{appointment_id}/ics")
async def export_appointment_ics(
    appointment_id: str,
    user_id: str = Query(...),
    db: AsyncSession = Depends(get_db),
):
    ics = await availability.export_appointment_ics(db, appointment_id, user_id)
    return Response(
        content=ics,
        media_type="text/calendar",
        headers={"Content-Disposition": f'attachment; filename="appointment-{appointment_id}.ics"'},
    )
