"""
Store read helpers.

Each helper issues exactly one SELECT on the session it is given and returns
plain ORM objects. They never share a session with a concurrently running
helper: the aggregator opens one session per call when it fans out.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from bydbio.content_types import ContentKind, content_type
from bydbio.models import (
    Appointment,
    Event,
    EventRsvp,
    Follow,
    Notification,
    Post,
    PostLike,
    User,
)
from bydbio.telemetry import STORE_QUERIES_TOTAL

logger = logging.getLogger(__name__)


async def fetch_authored(
    session: AsyncSession,
    kind: ContentKind,
    user_id: str,
    active_only: bool = False,
) -> list:
    """All records of `kind` whose author is `user_id`."""
    model = content_type(kind).model
    stmt = select(model).where(model.author_id == user_id)
    if active_only and hasattr(model, "status"):
        stmt = stmt.where(model.status == "active")
    STORE_QUERIES_TOTAL.labels(query=f"authored_{kind.value}").inc()
    rows = await session.execute(stmt)
    return list(rows.scalars().all())


async def fetch_rsvped_events(session: AsyncSession, user_id: str) -> list[Event]:
    """Events whose RSVP set contains `user_id`."""
    stmt = (
        select(Event)
        .join(EventRsvp, EventRsvp.event_id == Event.id)
        .where(EventRsvp.user_id == user_id)
    )
    STORE_QUERIES_TOTAL.labels(query="rsvped_events").inc()
    rows = await session.execute(stmt)
    return list(rows.scalars().all())


async def fetch_recent_by_authors(
    session: AsyncSession,
    kind: ContentKind,
    author_ids: list[str],
    limit: int,
    active_only: bool = True,
) -> list:
    """Newest `limit` records of `kind` written by any of `author_ids` (one IN chunk)."""
    model = content_type(kind).model
    stmt = select(model).where(model.author_id.in_(author_ids))
    if active_only and hasattr(model, "status"):
        stmt = stmt.where(model.status == "active")
    stmt = stmt.order_by(model.created_at.desc()).limit(limit)
    STORE_QUERIES_TOTAL.labels(query=f"recent_{kind.value}").inc()
    rows = await session.execute(stmt)
    return list(rows.scalars().all())


async def fetch_users_by_ids(session: AsyncSession, user_ids: list[str]) -> list[User]:
    """One IN query; callers keep `user_ids` within settings.author_batch_size."""
    STORE_QUERIES_TOTAL.labels(query="users_by_ids").inc()
    rows = await session.execute(select(User).where(User.user_id.in_(user_ids)))
    return list(rows.scalars().all())


async def fetch_user_by_username(session: AsyncSession, username: str) -> Optional[User]:
    STORE_QUERIES_TOTAL.labels(query="user_by_username").inc()
    rows = await session.execute(select(User).where(User.username == username))
    return rows.scalar_one_or_none()


async def fetch_following_ids(session: AsyncSession, user_id: str) -> list[str]:
    STORE_QUERIES_TOTAL.labels(query="following_ids").inc()
    rows = await session.execute(
        select(Follow.followee_id).where(Follow.follower_id == user_id)
    )
    return [r[0] for r in rows.all()]


async def is_following(session: AsyncSession, follower_id: str, followee_id: str) -> bool:
    STORE_QUERIES_TOTAL.labels(query="is_following").inc()
    rows = await session.execute(
        select(Follow.follower_id).where(
            Follow.follower_id == follower_id,
            Follow.followee_id == followee_id,
        )
    )
    return rows.first() is not None


async def fetch_posts_by_ids(session: AsyncSession, post_ids: list[str]) -> list[Post]:
    STORE_QUERIES_TOTAL.labels(query="posts_by_ids").inc()
    rows = await session.execute(select(Post).where(Post.id.in_(post_ids)))
    return list(rows.scalars().all())


async def fetch_posts_by_author(session: AsyncSession, author_id: str) -> list[Post]:
    STORE_QUERIES_TOTAL.labels(query="posts_by_author").inc()
    rows = await session.execute(
        select(Post).where(Post.author_id == author_id).order_by(Post.created_at.desc())
    )
    return list(rows.scalars().all())


async def fetch_liked_post_ids(
    session: AsyncSession, user_id: str, post_ids: list[str]
) -> set[str]:
    STORE_QUERIES_TOTAL.labels(query="liked_post_ids").inc()
    rows = await session.execute(
        select(PostLike.post_id).where(
            PostLike.user_id == user_id,
            PostLike.post_id.in_(post_ids),
        )
    )
    return {r[0] for r in rows.all()}


async def fetch_appointments_between(
    session: AsyncSession,
    owner_id: str,
    start: datetime,
    end: datetime,
) -> list[Appointment]:
    """Owner's appointments starting within [start, end], both bounds inclusive."""
    STORE_QUERIES_TOTAL.labels(query="appointments_between").inc()
    rows = await session.execute(
        select(Appointment).where(
            Appointment.owner_id == owner_id,
            Appointment.start_time >= start,
            Appointment.start_time <= end,
        )
    )
    return list(rows.scalars().all())


async def fetch_appointments_for_user(
    session: AsyncSession, user_id: str
) -> list[Appointment]:
    """Appointments where the user is either the owner or the booker."""
    STORE_QUERIES_TOTAL.labels(query="appointments_for_user").inc()
    rows = await session.execute(
        select(Appointment).where(
            or_(Appointment.owner_id == user_id, Appointment.booker_id == user_id)
        )
    )
    return list(rows.scalars().all())


async def fetch_recent_notifications(
    session: AsyncSession, user_id: str, limit: int
) -> list[Notification]:
    STORE_QUERIES_TOTAL.labels(query="recent_notifications").inc()
    rows = await session.execute(
        select(Notification)
        .where(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc())
        .limit(limit)
    )
    return list(rows.scalars().all())
