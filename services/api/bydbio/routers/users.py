"""
User endpoints:
  POST /users                       — create a user profile
  GET  /users/{id}                  — fetch a user
  GET  /users/profile/{username}    — profile page payload
  GET  /users/{id}/calendar         — content calendar (owned + RSVP'd + appointments)
  GET  /users/{id}/diary            — upcoming / past dated content
  GET  /users/{id}/content          — active content hub
  GET  /users/{id}/activity         — recent activity across all kinds
  POST /users/follow, /users/unfollow
  GET  /users/{id}/followers        — list followers
"""
import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from opentelemetry import trace
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bydbio import aggregator, social
from bydbio.database import get_db, get_session_factory
from bydbio.models import Follow, User
from bydbio.schemas import (
    ActivityItem,
    CalendarItem,
    Diary,
    FollowRequest,
    ProfilePayload,
    PublicContentItem,
    UserCreate,
    UserResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)


@router.post("/", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(body: UserCreate, db: AsyncSession = Depends(get_db)):
    with tracer.start_as_current_span("create_user"):
        return await social.create_user(
            db,
            username=body.username,
            name=body.name,
            avatar_url=body.avatar_url,
            bio=body.bio,
        )


@router.get("/profile/{username}", response_model=ProfilePayload)
async def get_profile(
    username: str,
    viewer_id: Optional[str] = Query(None),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    return await aggregator.get_profile(session_factory, username, viewer_id)


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(user_id: str, db: AsyncSession = Depends(get_db)):
    user = await db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.get("/{user_id}/calendar", response_model=list[CalendarItem])
async def get_calendar(
    user_id: str,
    order: Literal["asc", "desc"] = Query("desc"),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    """Calendar items sorted by date; the agenda view asks for `order=asc`."""
    items = await aggregator.get_calendar_items(session_factory, user_id)
    return aggregator.sort_by_date(items, descending=order == "desc")


@router.get("/{user_id}/diary", response_model=Diary)
async def get_diary(
    user_id: str,
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    return await aggregator.get_events_for_diary(session_factory, user_id)


@router.get("/{user_id}/content", response_model=list[PublicContentItem])
async def get_public_content(
    user_id: str,
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    return await aggregator.get_public_content(session_factory, user_id)


@router.get("/{user_id}/activity", response_model=list[ActivityItem])
async def get_recent_activity(
    user_id: str,
    limit: Optional[int] = Query(None, ge=1, le=50),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    return await aggregator.get_recent_activity(session_factory, user_id, limit)


@router.post("/follow", status_code=status.HTTP_204_NO_CONTENT)
async def follow_user(body: FollowRequest, db: AsyncSession = Depends(get_db)):
    with tracer.start_as_current_span("follow_user"):
        if await social.follow_user(db, body.follower_id, body.followee_id):
            logger.info("%s followed %s", body.follower_id, body.followee_id)


@router.post("/unfollow", status_code=status.HTTP_204_NO_CONTENT)
async def unfollow_user(body: FollowRequest, db: AsyncSession = Depends(get_db)):
    with tracer.start_as_current_span("unfollow_user"):
        await social.unfollow_user(db, body.follower_id, body.followee_id)


@router.get("/{user_id}/followers")
async def list_followers(user_id: str, db: AsyncSession = Depends(get_db)):
    rows = await db.execute(
        select(Follow.follower_id).where(Follow.followee_id == user_id)
    )
    return {"user_id": user_id, "followers": [r[0] for r in rows.all()]}
