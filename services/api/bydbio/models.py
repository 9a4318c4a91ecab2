"""
SQLAlchemy ORM models for TiDB.

Tables:
  users           — profiles, counters, booking settings (weekly template)
  follows         — social graph edges (follower → followee)
  events          — authored events
  event_rsvps     — RSVP membership set (user × event)
  offers, jobs, listings, business_pages — other authored content kinds
  posts           — status posts, reposts and quotes
  post_likes      — user × post engagement
  appointments    — booked 30-minute slots (owner × booker)
  notifications   — per-recipient activity notifications

Membership sets (RSVPs, likes, follows) are rows, never serialised lists, so
joining and leaving are single INSERT/DELETE statements and concurrent
toggles cannot lose updates. Counters are only changed with `col = col ± n`.
"""
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from bydbio.database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "users"

    user_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    avatar_url: Mapped[Optional[str]] = mapped_column(String(500))
    bio: Mapped[Optional[str]] = mapped_column(Text)
    follower_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    post_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    accepting_appointments: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    # {"monday": {"enabled": true, "start_time": "09:00", "end_time": "17:00"}, ...}
    availability: Mapped[Optional[dict]] = mapped_column(JSON)
    # {"new_followers": bool, "new_likes": bool, "event_rsvps": bool, "appointments": bool}
    notification_settings: Mapped[Optional[dict]] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.now, server_default=func.now(), nullable=False
    )


class Follow(Base):
    __tablename__ = "follows"

    follower_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.user_id"), primary_key=True
    )
    followee_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.user_id"), primary_key=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.now, server_default=func.now(), nullable=False
    )

    __table_args__ = (
        # "who follows user X?"
        Index("idx_followee", "followee_id"),
    )


class AuthoredMixin:
    """Columns shared by everything a user authors."""

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.now, server_default=func.now(), nullable=False
    )

    @declared_attr
    def author_id(cls) -> Mapped[str]:
        return mapped_column(
            String(36), ForeignKey("users.user_id"), nullable=False, index=True
        )


class ContentMixin(AuthoredMixin):
    status: Mapped[str] = mapped_column(
        String(20), default="active", nullable=False
    )  # 'active' | 'archived'
    views: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    image_url: Mapped[Optional[str]] = mapped_column(String(500))


class Event(ContentMixin, Base):
    __tablename__ = "events"

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    location: Mapped[Optional[str]] = mapped_column(String(255))
    # Nullable: legacy rows without a start date are skipped by aggregation.
    start_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    end_date: Mapped[Optional[datetime]] = mapped_column(DateTime)


class EventRsvp(Base):
    __tablename__ = "event_rsvps"

    event_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("events.id"), primary_key=True
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.user_id"), primary_key=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.now, server_default=func.now(), nullable=False
    )

    __table_args__ = (Index("idx_rsvps_user", "user_id"),)


class Offer(ContentMixin, Base):
    __tablename__ = "offers"

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    category: Mapped[Optional[str]] = mapped_column(String(100))
    coupon_code: Mapped[Optional[str]] = mapped_column(String(100))
    start_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    end_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    claims: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class Job(ContentMixin, Base):
    __tablename__ = "jobs"

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    company: Mapped[Optional[str]] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text)
    location: Mapped[Optional[str]] = mapped_column(String(255))
    job_type: Mapped[Optional[str]] = mapped_column(
        String(20)
    )  # 'Full-time' | 'Part-time' | 'Contract' | 'Internship'
    posting_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    closing_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    applicants: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class Listing(ContentMixin, Base):
    __tablename__ = "listings"

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    price: Mapped[Optional[str]] = mapped_column(String(50))
    category: Mapped[Optional[str]] = mapped_column(String(100))
    start_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    end_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    clicks: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class BusinessPage(ContentMixin, Base):
    __tablename__ = "business_pages"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    clicks: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class Post(AuthoredMixin, Base):
    __tablename__ = "posts"

    content: Mapped[str] = mapped_column(Text, default="", nullable=False)
    image_url: Mapped[Optional[str]] = mapped_column(String(500))
    category: Mapped[Optional[str]] = mapped_column(String(100))
    privacy: Mapped[str] = mapped_column(
        String(20), default="public", nullable=False
    )  # 'public' | 'followers' | 'me'
    post_number: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    like_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    comment_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    repost_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    # Snapshot of the quoted post taken at creation time, not a reference:
    # {id, content, image_url, author_id, created_at}. Later edits or deletion
    # of the original do not propagate.
    quoted_post: Mapped[Optional[dict]] = mapped_column(JSON)
    # Set on reposts. Deliberately no FK: a repost outlives its original.
    original_post_id: Mapped[Optional[str]] = mapped_column(String(36), index=True)

    __table_args__ = (Index("idx_posts_created", "created_at"),)


class PostLike(Base):
    __tablename__ = "post_likes"

    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.user_id"), primary_key=True
    )
    post_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("posts.id"), primary_key=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.now, server_default=func.now(), nullable=False
    )


class Appointment(Base):
    __tablename__ = "appointments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    owner_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.user_id"), nullable=False
    )
    booker_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.user_id"), nullable=False
    )
    booker_name: Mapped[str] = mapped_column(String(255), nullable=False)
    start_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.now, server_default=func.now(), nullable=False
    )

    __table_args__ = (
        # Two bookings of the same owner can never claim the same start.
        UniqueConstraint("owner_id", "start_time", name="uq_appointments_owner_start"),
        Index("idx_appointments_booker", "booker_id"),
    )


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.user_id"), nullable=False
    )
    actor_id: Mapped[Optional[str]] = mapped_column(String(36))
    type: Mapped[str] = mapped_column(String(40), nullable=False)
    entity_id: Mapped[Optional[str]] = mapped_column(String(36))
    entity_type: Mapped[Optional[str]] = mapped_column(String(40))
    entity_title: Mapped[Optional[str]] = mapped_column(String(255))
    read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.now, server_default=func.now(), nullable=False
    )

    __table_args__ = (Index("idx_notifications_user_created", "user_id", "created_at"),)
