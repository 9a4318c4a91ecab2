"""
Pydantic request / response schemas for the API layer.
Kept separate from ORM models to avoid coupling transport to storage.

Every timestamp produced by the aggregator or the availability calculator
is already an ISO-8601 string by the time it reaches these models, so no
store-native temporal value leaves the service.
"""
from datetime import datetime
from typing import Annotated, Literal, Optional, Union, get_args

from pydantic import BaseModel, Field, field_validator, model_validator

HHMM_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"
Weekday = Literal["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]
WEEKDAYS = get_args(Weekday)   # index == date.weekday()


# ──────────────────────────── Users ───────────────────────────────────────

class AuthorSummary(BaseModel):
    """The only author data attached to aggregated items."""
    user_id: str
    name: str
    username: str
    avatar_url: Optional[str] = None

    class Config:
        from_attributes = True


class UserCreate(BaseModel):
    username: str = Field(..., min_length=3, max_length=100)
    name: str = Field(..., min_length=1, max_length=255)
    avatar_url: Optional[str] = None
    bio: Optional[str] = None


class UserResponse(BaseModel):
    user_id: str
    username: str
    name: str
    avatar_url: Optional[str]
    bio: Optional[str]
    follower_count: int
    post_count: int
    created_at: str

    @field_validator("created_at", mode="before")
    @classmethod
    def _isoformat(cls, value):
        return value.isoformat() if isinstance(value, datetime) else value

    class Config:
        from_attributes = True


class FollowRequest(BaseModel):
    follower_id: str
    followee_id: str


# ──────────────────────────── Booking settings ────────────────────────────

class DayAvailability(BaseModel):
    enabled: bool = False
    start_time: str = Field("09:00", pattern=HHMM_PATTERN)
    end_time: str = Field("17:00", pattern=HHMM_PATTERN)

    @model_validator(mode="after")
    def _start_before_end(self):
        if self.enabled and self.start_time >= self.end_time:
            raise ValueError("start_time must be earlier than end_time")
        return self


class BookingSettings(BaseModel):
    accepting_appointments: bool = False
    availability: dict[Weekday, DayAvailability] = Field(default_factory=dict)


# ──────────────────────────── Content ─────────────────────────────────────

class EventCreate(BaseModel):
    author_id: str
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    location: Optional[str] = None
    image_url: Optional[str] = None
    start_date: datetime
    end_date: Optional[datetime] = None


class OfferCreate(BaseModel):
    author_id: str
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    category: Optional[str] = None
    coupon_code: Optional[str] = None
    image_url: Optional[str] = None
    start_date: datetime
    end_date: Optional[datetime] = None


class JobCreate(BaseModel):
    author_id: str
    title: str = Field(..., min_length=1, max_length=255)
    company: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    job_type: Optional[str] = Field(
        None, pattern="^(Full-time|Part-time|Contract|Internship)$"
    )
    image_url: Optional[str] = None
    posting_date: datetime
    closing_date: Optional[datetime] = None


class ListingCreate(BaseModel):
    author_id: str
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    price: Optional[str] = None
    category: Optional[str] = None
    image_url: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class BusinessPageCreate(BaseModel):
    author_id: str
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    image_url: Optional[str] = None


class ContentCreated(BaseModel):
    id: str
    type: str


class RsvpRequest(BaseModel):
    user_id: str


class RsvpResponse(BaseModel):
    event_id: str
    attending: bool


class RemovalResponse(BaseModel):
    id: str
    type: str
    outcome: Literal["deleted", "left"]


# ──────────────────────────── Calendar ────────────────────────────────────

class CalendarItemBase(BaseModel):
    id: str
    date: str                        # ISO-8601
    title: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    status: str = "active"
    edit_path: str
    is_external: bool = False
    author: Optional[AuthorSummary] = None   # set for externally-sourced items


class EventCalendarItem(CalendarItemBase):
    type: Literal["event"] = "event"
    location: Optional[str] = None
    views: int = 0


class OfferCalendarItem(CalendarItemBase):
    type: Literal["offer"] = "offer"
    category: Optional[str] = None
    views: int = 0
    claims: int = 0


class JobCalendarItem(CalendarItemBase):
    type: Literal["job"] = "job"
    company: Optional[str] = None
    job_type: Optional[str] = None
    location: Optional[str] = None
    views: int = 0
    applicants: int = 0


class ListingCalendarItem(CalendarItemBase):
    type: Literal["listing"] = "listing"
    category: Optional[str] = None
    price: Optional[str] = None
    views: int = 0
    clicks: int = 0


class BusinessPageCalendarItem(CalendarItemBase):
    type: Literal["business_page"] = "business_page"
    views: int = 0
    clicks: int = 0


class AppointmentCalendarItem(CalendarItemBase):
    type: Literal["appointment"] = "appointment"
    end_time: str
    role: Literal["owner", "booker"]


CalendarItem = Annotated[
    Union[
        EventCalendarItem,
        OfferCalendarItem,
        JobCalendarItem,
        ListingCalendarItem,
        BusinessPageCalendarItem,
        AppointmentCalendarItem,
    ],
    Field(discriminator="type"),
]


# ──────────────────────────── Diary ───────────────────────────────────────

class DiaryEntry(BaseModel):
    id: str
    type: str
    date: str
    title: str
    description: Optional[str] = None
    location: Optional[str] = None
    is_external: bool
    author: Optional[AuthorSummary] = None


class Diary(BaseModel):
    user_id: str
    upcoming: list[DiaryEntry]    # soonest first
    past: list[DiaryEntry]        # most recent first


# ──────────────────────────── Posts ───────────────────────────────────────

class PostCreate(BaseModel):
    author_id: str
    content: str = ""
    image_url: Optional[str] = None
    category: Optional[str] = None
    privacy: str = Field("public", pattern="^(public|followers|me)$")
    quoted_post_id: Optional[str] = None


class RepostRequest(BaseModel):
    user_id: str


class LikeRequest(BaseModel):
    user_id: str


class LikeResponse(BaseModel):
    post_id: str
    liked: bool


class EmbeddedPost(BaseModel):
    """A quoted post as it looked when it was quoted."""
    id: str
    content: str
    image_url: Optional[str]
    created_at: str
    author: AuthorSummary


class PostView(BaseModel):
    id: str
    author: AuthorSummary
    content: str
    image_url: Optional[str]
    category: Optional[str]
    privacy: str
    post_number: int
    like_count: int
    comment_count: int
    repost_count: int
    created_at: str
    is_liked: bool = False
    quoted_post: Optional[EmbeddedPost] = None
    repost: Optional["PostView"] = None   # the live original, for reposts


# ──────────────────────────── Feed / hub ──────────────────────────────────

class FeedItem(BaseModel):
    id: str
    type: str
    date: str
    author: AuthorSummary
    title: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    location: Optional[str] = None
    category: Optional[str] = None
    company: Optional[str] = None
    price: Optional[str] = None
    post: Optional[PostView] = None


class FeedResponse(BaseModel):
    user_id: str
    items: list[FeedItem]


class PublicContentItem(BaseModel):
    id: str
    type: str
    date: str
    title: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    stats: dict[str, int] = Field(default_factory=dict)


class ActivityItem(BaseModel):
    id: str
    type: str        # display label, e.g. "Business Page"
    title: str
    created_at: str


class ProfilePayload(BaseModel):
    user: UserResponse
    posts: list[PostView]
    content: list[PublicContentItem]
    is_owner: bool
    is_followed_by_viewer: bool


# ──────────────────────────── Appointments ────────────────────────────────

class AppointmentCreate(BaseModel):
    owner_id: str
    booker_id: str
    booker_name: str = Field(..., min_length=1, max_length=255)
    start_time: datetime


class AppointmentResponse(BaseModel):
    id: str
    owner_id: str
    booker_id: str
    booker_name: str
    start_time: str
    end_time: str


class SlotsResponse(BaseModel):
    user_id: str
    date: str
    slots: list[str]   # "9:30 AM"


# ──────────────────────────── Notifications ───────────────────────────────

class NotificationView(BaseModel):
    id: str
    type: str
    actor: Optional[AuthorSummary]
    entity_id: Optional[str]
    entity_type: Optional[str]
    entity_title: Optional[str]
    read: bool
    created_at: str
