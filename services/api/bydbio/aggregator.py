"""
Content aggregation — merges the content tables into per-user views.

  Calendar  │ everything the user authored + events they RSVP'd to
            │ + appointments they own or booked
  Diary     │ the dated kinds, split into upcoming / past
  Content   │ a profile's active content (content hub)
  Activity  │ newest records across all kinds, posts included
  Feed      │ posts + active content of the user and everyone they follow
  Profile   │ user, visible posts, content hub, follow state

Every view follows the same fan-out / fan-in shape:

  1. Issue one store query per table (and per ≤30-id chunk where an IN
     query is involved) concurrently with asyncio.gather. Each query runs
     in its own session from the injected sessionmaker.
  2. Merge in memory. Owned records always win over participated ones.
  3. Resolve the authors that need display data in one batched lookup and
     attach only a summary (name, username, avatar_url).
  4. Drop records without a primary date or without a resolvable author,
     logging a warning. Partial visibility beats failing the whole view.

Store errors are not caught here: they propagate to the caller unchanged.
All timestamps are converted to ISO-8601 strings before leaving this module.
"""
import asyncio
import logging
import time
from datetime import datetime
from typing import Iterable, Optional

from opentelemetry import trace
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bydbio import queries
from bydbio.config import settings
from bydbio.content_types import (
    CALENDAR_KINDS,
    DIARY_KINDS,
    ContentKind,
    content_type,
    display_title,
    primary_date,
    stats,
)
from bydbio.errors import NotFoundError
from bydbio.models import Appointment, Post
from bydbio.schemas import (
    ActivityItem,
    AppointmentCalendarItem,
    AuthorSummary,
    BusinessPageCalendarItem,
    CalendarItem,
    CalendarItemBase,
    Diary,
    DiaryEntry,
    EmbeddedPost,
    EventCalendarItem,
    FeedItem,
    JobCalendarItem,
    ListingCalendarItem,
    OfferCalendarItem,
    PostView,
    ProfilePayload,
    PublicContentItem,
    UserResponse,
)
from bydbio.telemetry import AGGREGATION_LATENCY, AGGREGATION_SKIPPED_TOTAL

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

SessionFactory = async_sessionmaker[AsyncSession]

_CALENDAR_ITEM_CLASSES = {
    ContentKind.EVENT: EventCalendarItem,
    ContentKind.OFFER: OfferCalendarItem,
    ContentKind.JOB: JobCalendarItem,
    ContentKind.LISTING: ListingCalendarItem,
    ContentKind.BUSINESS_PAGE: BusinessPageCalendarItem,
}
_COMMON_CALENDAR_FIELDS = set(CalendarItemBase.model_fields) | {"type"}


# ─────────────────────────── Building blocks ─────────────────────────────

def chunked(ids: list[str], size: int) -> list[list[str]]:
    """Split `ids` into consecutive chunks of at most `size`."""
    return [ids[i:i + size] for i in range(0, len(ids), size)]


def merge_owned_and_participated(owned: Iterable, participated: Iterable) -> list[tuple]:
    """
    Merge two record sets by id into (record, is_external) pairs.

    Owned records are inserted unconditionally; participated records only
    when their id is not present yet, so authorship is never shadowed by
    participation.
    """
    merged: dict[str, tuple] = {}
    for record in owned:
        merged[record.id] = (record, False)
    for record in participated:
        if record.id not in merged:
            merged[record.id] = (record, True)
    return list(merged.values())


def sort_by_date(items: list, descending: bool = True) -> list:
    """Order aggregated items (anything with an ISO `date`) chronologically."""
    return sorted(items, key=lambda item: datetime.fromisoformat(item.date), reverse=descending)


async def _read(session_factory: SessionFactory, query, *args):
    """Run one store helper in a session of its own."""
    async with session_factory() as session:
        return await query(session, *args)


async def resolve_authors(
    session_factory: SessionFactory,
    author_ids: Iterable[str],
) -> dict[str, AuthorSummary]:
    """
    Batched author lookup: distinct ids, chunks of settings.author_batch_size,
    one IN query per chunk (issued concurrently), merged into id → summary.
    Ids without a user row are simply absent from the result.
    """
    distinct = list(dict.fromkeys(a for a in author_ids if a))
    if not distinct:
        return {}

    batches = await asyncio.gather(
        *[
            _read(session_factory, queries.fetch_users_by_ids, chunk)
            for chunk in chunked(distinct, settings.author_batch_size)
        ]
    )
    return {
        user.user_id: AuthorSummary.model_validate(user)
        for batch in batches
        for user in batch
    }


def _dated(kind: ContentKind, record) -> Optional[datetime]:
    date = primary_date(kind, record)
    if date is None:
        logger.warning(
            "%s %s is missing a primary date and will be skipped", kind.value, record.id
        )
        AGGREGATION_SKIPPED_TOTAL.labels(reason="missing_date").inc()
    return date


def _orphaned(label: str, record_id: str, author_id: str) -> None:
    logger.warning(
        "%s %s references missing author %s and will be skipped", label, record_id, author_id
    )
    AGGREGATION_SKIPPED_TOTAL.labels(reason="missing_author").inc()


def _merge_user_content(kinds, owned_per_kind: list[list], rsvped: list) -> list[tuple]:
    """(kind, record, is_external) for everything owned plus RSVP'd events."""
    entries: list[tuple] = []
    for kind, records in zip(kinds, owned_per_kind):
        if kind == ContentKind.EVENT:
            entries.extend(
                (kind, record, is_external)
                for record, is_external in merge_owned_and_participated(records, rsvped)
            )
        else:
            entries.extend((kind, record, False) for record in records)
    return entries


# ─────────────────────────── Calendar ────────────────────────────────────

def _calendar_item(
    kind: ContentKind,
    record,
    date: datetime,
    is_external: bool,
    author: Optional[AuthorSummary],
):
    cls = _CALENDAR_ITEM_CLASSES[kind]
    specific = {
        name: getattr(record, name, None)
        for name in cls.model_fields
        if name not in _COMMON_CALENDAR_FIELDS
    }
    # RSVP'd events link to the public page; only owners get the editor.
    edit_path = (
        f"/events/{record.id}"
        if is_external
        else content_type(kind).edit_path.format(id=record.id)
    )
    return cls(
        id=record.id,
        date=date.isoformat(),
        title=display_title(kind, record),
        description=getattr(record, "description", None),
        image_url=record.image_url,
        status=record.status,
        edit_path=edit_path,
        is_external=is_external,
        author=author,
        **specific,
    )


def _appointment_item(
    appointment: Appointment,
    user_id: str,
    authors: dict[str, AuthorSummary],
) -> Optional[AppointmentCalendarItem]:
    if appointment.owner_id == user_id:
        role, author = "owner", None
        title = f"Appointment with {appointment.booker_name}"
    else:
        role, author = "booker", authors.get(appointment.owner_id)
        if author is None:
            _orphaned("appointment", appointment.id, appointment.owner_id)
            return None
        title = f"Appointment with {author.name}"

    return AppointmentCalendarItem(
        id=appointment.id,
        date=appointment.start_time.isoformat(),
        end_time=appointment.end_time.isoformat(),
        title=title,
        status="active",
        edit_path=f"/appointments/{appointment.id}",
        is_external=False,   # either party may delete an appointment
        author=author,
        role=role,
    )


async def get_calendar_items(
    session_factory: SessionFactory,
    user_id: str,
) -> list[CalendarItem]:
    """
    Every dated item on the user's content calendar, unsorted.

    Callers order the result with sort_by_date(); the calendar page shows
    newest first, the agenda view oldest first.
    """
    start_time = time.perf_counter()

    with tracer.start_as_current_span("get_calendar_items") as span:
        span.set_attribute("user.id", user_id)

        *owned, rsvped, appointments = await asyncio.gather(
            *[_read(session_factory, queries.fetch_authored, kind, user_id) for kind in CALENDAR_KINDS],
            _read(session_factory, queries.fetch_rsvped_events, user_id),
            _read(session_factory, queries.fetch_appointments_for_user, user_id),
        )
        entries = _merge_user_content(CALENDAR_KINDS, owned, rsvped)

        # Only externally-sourced items need author display data.
        author_ids = [record.author_id for _, record, is_external in entries if is_external]
        author_ids += [a.owner_id for a in appointments if a.owner_id != user_id]
        authors = await resolve_authors(session_factory, author_ids)

        items: list = []
        for kind, record, is_external in entries:
            date = _dated(kind, record)
            if date is None:
                continue
            author = None
            if is_external:
                author = authors.get(record.author_id)
                if author is None:
                    _orphaned(kind.value, record.id, record.author_id)
                    continue
            items.append(_calendar_item(kind, record, date, is_external, author))

        for appointment in appointments:
            item = _appointment_item(appointment, user_id, authors)
            if item is not None:
                items.append(item)

        span.set_attribute("calendar.items", len(items))

    AGGREGATION_LATENCY.labels(view="calendar").observe(time.perf_counter() - start_time)
    return items


# ─────────────────────────── Diary ───────────────────────────────────────

async def get_events_for_diary(
    session_factory: SessionFactory,
    user_id: str,
    now: Optional[datetime] = None,
) -> Diary:
    start_time = time.perf_counter()

    with tracer.start_as_current_span("get_events_for_diary") as span:
        span.set_attribute("user.id", user_id)

        *owned, rsvped = await asyncio.gather(
            *[_read(session_factory, queries.fetch_authored, kind, user_id) for kind in DIARY_KINDS],
            _read(session_factory, queries.fetch_rsvped_events, user_id),
        )
        entries = _merge_user_content(DIARY_KINDS, owned, rsvped)
        authors = await resolve_authors(
            session_factory,
            [record.author_id for _, record, is_external in entries if is_external],
        )

        dated: list[tuple[datetime, DiaryEntry]] = []
        for kind, record, is_external in entries:
            date = _dated(kind, record)
            if date is None:
                continue
            author = None
            if is_external:
                author = authors.get(record.author_id)
                if author is None:
                    _orphaned(kind.value, record.id, record.author_id)
                    continue
            dated.append((
                date,
                DiaryEntry(
                    id=record.id,
                    type=kind.value,
                    date=date.isoformat(),
                    title=display_title(kind, record),
                    description=getattr(record, "description", None),
                    location=getattr(record, "location", None),
                    is_external=is_external,
                    author=author,
                ),
            ))

    now = now or datetime.now()
    chronological = sorted(dated, key=lambda pair: pair[0])
    diary = Diary(
        user_id=user_id,
        upcoming=[entry for date, entry in chronological if date >= now],
        past=[entry for date, entry in reversed(chronological) if date < now],
    )
    AGGREGATION_LATENCY.labels(view="diary").observe(time.perf_counter() - start_time)
    return diary


# ─────────────────────────── Content hub / activity ──────────────────────

async def get_public_content(
    session_factory: SessionFactory,
    user_id: str,
) -> list[PublicContentItem]:
    """A profile's active content, newest first."""
    start_time = time.perf_counter()

    per_kind = await asyncio.gather(
        *[
            _read(session_factory, queries.fetch_authored, kind, user_id, True)
            for kind in CALENDAR_KINDS
        ]
    )

    items: list[PublicContentItem] = []
    for kind, records in zip(CALENDAR_KINDS, per_kind):
        for record in records:
            date = _dated(kind, record)
            if date is None:
                continue
            items.append(
                PublicContentItem(
                    id=record.id,
                    type=kind.value,
                    date=date.isoformat(),
                    title=display_title(kind, record),
                    description=getattr(record, "description", None),
                    image_url=record.image_url,
                    stats=stats(kind, record),
                )
            )

    AGGREGATION_LATENCY.labels(view="public_content").observe(time.perf_counter() - start_time)
    return sort_by_date(items, descending=True)


async def get_recent_activity(
    session_factory: SessionFactory,
    user_id: str,
    limit: Optional[int] = None,
) -> list[ActivityItem]:
    """Newest `limit` things the user created, across every kind."""
    limit = limit or settings.recent_activity_limit
    kinds = (*CALENDAR_KINDS, ContentKind.POST)

    per_kind = await asyncio.gather(
        *[
            _read(session_factory, queries.fetch_recent_by_authors, kind, [user_id], limit, False)
            for kind in kinds
        ]
    )
    records = [(kind, record) for kind, batch in zip(kinds, per_kind) for record in batch]
    records.sort(key=lambda pair: pair[1].created_at, reverse=True)

    return [
        ActivityItem(
            id=record.id,
            type=content_type(kind).label,
            title=display_title(kind, record),
            created_at=record.created_at.isoformat(),
        )
        for kind, record in records[:limit]
    ]


# ─────────────────────────── Posts ───────────────────────────────────────

def _post_view(
    post: Post,
    authors: dict[str, AuthorSummary],
    liked: set[str],
    originals: Optional[dict[str, Post]] = None,
) -> Optional[PostView]:
    author = authors.get(post.author_id)
    if author is None:
        _orphaned("post", post.id, post.author_id)
        return None

    quoted = None
    if post.quoted_post:
        snapshot = post.quoted_post
        quoted_author = authors.get(snapshot.get("author_id"))
        if quoted_author is not None:
            quoted = EmbeddedPost(
                id=snapshot["id"],
                content=snapshot.get("content") or "",
                image_url=snapshot.get("image_url"),
                created_at=snapshot["created_at"],
                author=quoted_author,
            )

    repost = None
    if originals is not None and post.original_post_id:
        original = originals.get(post.original_post_id)
        if original is not None:
            repost = _post_view(original, authors, liked)

    return PostView(
        id=post.id,
        author=author,
        content=post.content,
        image_url=post.image_url,
        category=post.category,
        privacy=post.privacy,
        post_number=post.post_number,
        like_count=post.like_count,
        comment_count=post.comment_count,
        repost_count=post.repost_count,
        created_at=post.created_at.isoformat(),
        is_liked=post.id in liked,
        quoted_post=quoted,
        repost=repost,
    )


async def populate_posts(
    session_factory: SessionFactory,
    posts: list[Post],
    viewer_id: Optional[str] = None,
) -> list[PostView]:
    """
    Hydrate posts for display: live originals for reposts, authors for
    posts, originals and quoted snapshots, and the viewer's like state.
    Posts whose author no longer exists are dropped.
    """
    if not posts:
        return []

    batch_size = settings.author_batch_size
    original_ids = list(dict.fromkeys(p.original_post_id for p in posts if p.original_post_id))
    original_batches = await asyncio.gather(
        *[
            _read(session_factory, queries.fetch_posts_by_ids, chunk)
            for chunk in chunked(original_ids, batch_size)
        ]
    )
    originals = {p.id: p for batch in original_batches for p in batch}

    author_ids = [p.author_id for p in posts]
    author_ids += [p.quoted_post.get("author_id") for p in posts if p.quoted_post]
    author_ids += [p.author_id for p in originals.values()]

    liked: set[str] = set()
    if viewer_id:
        post_ids = list(dict.fromkeys([p.id for p in posts] + list(originals)))
        authors, *liked_batches = await asyncio.gather(
            resolve_authors(session_factory, author_ids),
            *[
                _read(session_factory, queries.fetch_liked_post_ids, viewer_id, chunk)
                for chunk in chunked(post_ids, batch_size)
            ],
        )
        liked = set().union(*liked_batches)
    else:
        authors = await resolve_authors(session_factory, author_ids)

    views = [_post_view(post, authors, liked, originals) for post in posts]
    return [view for view in views if view is not None]


# ─────────────────────────── Feed ────────────────────────────────────────

async def _recent_for_authors(
    session_factory: SessionFactory,
    kind: ContentKind,
    author_chunks: list[list[str]],
    limit: int,
    active_only: bool = True,
) -> list:
    """Newest records of `kind` for every author chunk, de-duplicated by id."""
    batches = await asyncio.gather(
        *[
            _read(session_factory, queries.fetch_recent_by_authors, kind, chunk, limit, active_only)
            for chunk in author_chunks
        ]
    )
    unique = {record.id: record for batch in batches for record in batch}
    return list(unique.values())


async def get_following_feed(
    session_factory: SessionFactory,
    user_id: str,
) -> list[FeedItem]:
    """
    The home feed: posts and active content of the user and everyone they
    follow, newest first, truncated to settings.feed_page_size.
    """
    start_time = time.perf_counter()

    with tracer.start_as_current_span("get_following_feed") as span:
        span.set_attribute("user.id", user_id)

        following_ids = await _read(session_factory, queries.fetch_following_ids, user_id)
        author_chunks = chunked(
            list(dict.fromkeys([user_id, *following_ids])), settings.author_batch_size
        )
        span.set_attribute("feed.author_chunks", len(author_chunks))

        posts, *content_per_kind = await asyncio.gather(
            _recent_for_authors(
                session_factory, ContentKind.POST, author_chunks,
                settings.feed_posts_per_chunk, active_only=False,
            ),
            *[
                _recent_for_authors(session_factory, kind, author_chunks, settings.feed_content_per_chunk)
                for kind in CALENDAR_KINDS
            ],
        )

        # Own posts are always visible; others only when not private.
        visible = [
            p for p in posts
            if p.author_id == user_id or p.privacy in ("public", "followers")
        ]
        content = [
            (kind, record)
            for kind, records in zip(CALENDAR_KINDS, content_per_kind)
            for record in records
        ]

        post_views, authors = await asyncio.gather(
            populate_posts(session_factory, visible, user_id),
            resolve_authors(session_factory, [record.author_id for _, record in content]),
        )

        items = [
            FeedItem(id=view.id, type=ContentKind.POST.value, date=view.created_at, author=view.author, post=view)
            for view in post_views
        ]
        for kind, record in content:
            author = authors.get(record.author_id)
            if author is None:
                _orphaned(kind.value, record.id, record.author_id)
                continue
            date = _dated(kind, record)
            if date is None:
                continue
            items.append(
                FeedItem(
                    id=record.id,
                    type=kind.value,
                    date=date.isoformat(),
                    author=author,
                    title=display_title(kind, record),
                    description=getattr(record, "description", None),
                    image_url=record.image_url,
                    location=getattr(record, "location", None),
                    category=getattr(record, "category", None),
                    company=getattr(record, "company", None),
                    price=getattr(record, "price", None),
                )
            )

        feed = sort_by_date(items, descending=True)[: settings.feed_page_size]
        span.set_attribute("feed.items", len(feed))

    AGGREGATION_LATENCY.labels(view="feed").observe(time.perf_counter() - start_time)
    return feed


# ─────────────────────────── Profile ─────────────────────────────────────

async def _is_followed(
    session_factory: SessionFactory,
    viewer_id: Optional[str],
    user_id: str,
) -> bool:
    if not viewer_id or viewer_id == user_id:
        return False
    return await _read(session_factory, queries.is_following, viewer_id, user_id)


async def get_profile(
    session_factory: SessionFactory,
    username: str,
    viewer_id: Optional[str] = None,
) -> ProfilePayload:
    start_time = time.perf_counter()

    user = await _read(session_factory, queries.fetch_user_by_username, username)
    if user is None:
        raise NotFoundError("User not found")

    is_owner = viewer_id == user.user_id
    posts, content, followed = await asyncio.gather(
        _read(session_factory, queries.fetch_posts_by_author, user.user_id),
        get_public_content(session_factory, user.user_id),
        _is_followed(session_factory, viewer_id, user.user_id),
    )
    # Non-owners only see public posts on a profile page.
    visible = [p for p in posts if is_owner or p.privacy == "public"]
    post_views = await populate_posts(session_factory, visible, viewer_id)

    AGGREGATION_LATENCY.labels(view="profile").observe(time.perf_counter() - start_time)
    return ProfilePayload(
        user=UserResponse.model_validate(user),
        posts=post_views,
        content=content,
        is_owner=is_owner,
        is_followed_by_viewer=followed,
    )
