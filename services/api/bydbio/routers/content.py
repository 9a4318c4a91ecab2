"""
Authored content endpoints:
  POST   /content/events | offers | jobs | listings | business-pages
  POST   /content/events/{id}/rsvp      — toggle attendance
  DELETE /content/{kind}/{id}?user_id=  — remove from calendar
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from opentelemetry import trace
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from bydbio import social
from bydbio.content_types import ContentKind
from bydbio.database import get_db
from bydbio.schemas import (
    BusinessPageCreate,
    ContentCreated,
    EventCreate,
    JobCreate,
    ListingCreate,
    OfferCreate,
    RemovalResponse,
    RsvpRequest,
    RsvpResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)


async def _create(db: AsyncSession, kind: ContentKind, body: BaseModel) -> ContentCreated:
    with tracer.start_as_current_span("create_content") as span:
        span.set_attribute("content.kind", kind.value)
        record = await social.create_content(
            db, kind, body.author_id, body.model_dump(exclude={"author_id"})
        )
        return ContentCreated(id=record.id, type=kind.value)


@router.post("/events", response_model=ContentCreated, status_code=status.HTTP_201_CREATED)
async def create_event(body: EventCreate, db: AsyncSession = Depends(get_db)):
    return await _create(db, ContentKind.EVENT, body)


@router.post("/offers", response_model=ContentCreated, status_code=status.HTTP_201_CREATED)
async def create_offer(body: OfferCreate, db: AsyncSession = Depends(get_db)):
    return await _create(db, ContentKind.OFFER, body)


@router.post("/jobs", response_model=ContentCreated, status_code=status.HTTP_201_CREATED)
async def create_job(body: JobCreate, db: AsyncSession = Depends(get_db)):
    return await _create(db, ContentKind.JOB, body)


@router.post("/listings", response_model=ContentCreated, status_code=status.HTTP_201_CREATED)
async def create_listing(body: ListingCreate, db: AsyncSession = Depends(get_db)):
    return await _create(db, ContentKind.LISTING, body)


@router.post(
    "/business-pages", response_model=ContentCreated, status_code=status.HTTP_201_CREATED
)
async def create_business_page(body: BusinessPageCreate, db: AsyncSession = Depends(get_db)):
    return await _create(db, ContentKind.BUSINESS_PAGE, body)


@router.post("/events/{event_id}/rsvp", response_model=RsvpResponse)
async def toggle_rsvp(event_id: str, body: RsvpRequest, db: AsyncSession = Depends(get_db)):
    with tracer.start_as_current_span("toggle_rsvp"):
        attending = await social.toggle_rsvp(db, event_id, body.user_id)
        logger.info(
            "%s %s event %s", body.user_id, "joined" if attending else "left", event_id
        )
        return RsvpResponse(event_id=event_id, attending=attending)


@router.delete("/{kind}/{item_id}", response_model=RemovalResponse)
async def remove_calendar_item(
    kind: ContentKind,
    item_id: str,
    user_id: str = Query(...),
    db: AsyncSession = Depends(get_db),
):
    """Authors delete the record; RSVP'd attendees of an event only leave it."""
    if kind == ContentKind.POST:
        raise HTTPException(status_code=400, detail="Use DELETE /posts/{id} for posts")
    with tracer.start_as_current_span("remove_calendar_item"):
        outcome = await social.remove_calendar_item(db, kind, item_id, user_id)
        return RemovalResponse(id=item_id, type=kind.value, outcome=outcome)
