"""
Closed registry of content kinds.

Every place that needs type-specific knowledge (which table, which
attribute is the title, which date fields may act as the primary date,
which counters to expose, where the edit page lives) goes through
`content_type(kind)`. Adding a kind means adding one ContentKind member and
one registry entry; `test_registry_covers_every_kind` guards the pairing.
"""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from bydbio.models import BusinessPage, Event, Job, Listing, Offer, Post


class ContentKind(str, Enum):
    EVENT = "event"
    OFFER = "offer"
    JOB = "job"
    LISTING = "listing"
    BUSINESS_PAGE = "business_page"
    POST = "post"


# Global precedence for the derived `date` of an aggregated item.
DATE_PRECEDENCE = ("start_date", "posting_date", "created_at")


@dataclass(frozen=True)
class ContentType:
    kind: ContentKind
    model: type
    label: str
    title_attr: str
    date_fields: tuple[str, ...]   # eligible primary-date fields
    stat_fields: tuple[str, ...]
    edit_path: str                 # formatted with id=


CONTENT_TYPES: dict[ContentKind, ContentType] = {
    ContentKind.EVENT: ContentType(
        kind=ContentKind.EVENT,
        model=Event,
        label="Event",
        title_attr="title",
        date_fields=("start_date",),
        stat_fields=("views",),
        edit_path="/events/{id}/edit",
    ),
    ContentKind.OFFER: ContentType(
        kind=ContentKind.OFFER,
        model=Offer,
        label="Offer",
        title_attr="title",
        date_fields=("start_date",),
        stat_fields=("views", "claims"),
        edit_path="/offers/{id}/edit",
    ),
    ContentKind.JOB: ContentType(
        kind=ContentKind.JOB,
        model=Job,
        label="Job",
        title_attr="title",
        date_fields=("posting_date",),
        stat_fields=("views", "applicants"),
        edit_path="/opportunities/{id}/edit",
    ),
    ContentKind.LISTING: ContentType(
        kind=ContentKind.LISTING,
        model=Listing,
        label="Listing",
        title_attr="title",
        date_fields=("start_date", "created_at"),
        stat_fields=("views", "clicks"),
        edit_path="/listings/{id}/edit",
    ),
    ContentKind.BUSINESS_PAGE: ContentType(
        kind=ContentKind.BUSINESS_PAGE,
        model=BusinessPage,
        label="Business Page",
        title_attr="name",
        date_fields=("created_at",),
        stat_fields=("views", "clicks"),
        edit_path="/promo/{id}/edit",
    ),
    ContentKind.POST: ContentType(
        kind=ContentKind.POST,
        model=Post,
        label="Post",
        title_attr="content",
        date_fields=("created_at",),
        stat_fields=("like_count", "repost_count"),
        edit_path="/posts/{id}",
    ),
}

# Kinds that appear on calendars and profile content hubs (posts do not).
CALENDAR_KINDS = (
    ContentKind.EVENT,
    ContentKind.OFFER,
    ContentKind.JOB,
    ContentKind.LISTING,
    ContentKind.BUSINESS_PAGE,
)

# Dated kinds that make up the diary.
DIARY_KINDS = (
    ContentKind.EVENT,
    ContentKind.OFFER,
    ContentKind.JOB,
    ContentKind.LISTING,
)


def content_type(kind: ContentKind) -> ContentType:
    return CONTENT_TYPES[ContentKind(kind)]


def primary_date(kind: ContentKind, record) -> Optional[datetime]:
    """
    The date an item is sorted and displayed by.

    Walks DATE_PRECEDENCE, considering only the fields the kind declares
    eligible, and returns the first populated one. None means the record
    has no usable date and must be left out of aggregated views.
    """
    eligible = content_type(kind).date_fields
    for field in DATE_PRECEDENCE:
        if field in eligible:
            value = getattr(record, field, None)
            if value is not None:
                return value
    return None


def display_title(kind: ContentKind, record) -> str:
    title = getattr(record, content_type(kind).title_attr, None)
    if not title:
        return "Untitled"
    if kind == ContentKind.POST and len(title) > 50:
        return title[:50] + "..."
    return title


def stats(kind: ContentKind, record) -> dict[str, int]:
    return {f: getattr(record, f, 0) or 0 for f in content_type(kind).stat_fields}
