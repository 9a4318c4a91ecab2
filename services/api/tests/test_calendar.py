from datetime import datetime
from types import SimpleNamespace

from bydbio import queries
from bydbio.aggregator import (
    get_calendar_items,
    get_events_for_diary,
    get_public_content,
    get_recent_activity,
    merge_owned_and_participated,
    resolve_authors,
    sort_by_date,
)
from bydbio.models import (
    Appointment,
    BusinessPage,
    Event,
    EventRsvp,
    Job,
    Listing,
    Offer,
    Post,
    User,
)


def at(day: int, hour: int = 12) -> datetime:
    return datetime(2030, 1, day, hour, 0)


def test_merge_keeps_owned_copy():
    owned = [SimpleNamespace(id="e1", copy="owned")]
    joined = [SimpleNamespace(id="e1", copy="joined"), SimpleNamespace(id="e2", copy="joined")]

    merged = merge_owned_and_participated(owned, joined)

    assert [(r.id, r.copy, external) for r, external in merged] == [
        ("e1", "owned", False),
        ("e2", "joined", True),
    ]


async def test_owned_event_wins_over_own_rsvp(seed, session_factory):
    await seed.user("alice")
    await seed.add(Event(id="ev1", author_id="alice", title="Launch", start_date=at(5)))
    await seed.add(EventRsvp(event_id="ev1", user_id="alice"))

    items = await get_calendar_items(session_factory, "alice")

    assert [i.id for i in items] == ["ev1"]
    assert items[0].is_external is False
    assert items[0].author is None
    assert items[0].edit_path == "/events/ev1/edit"


async def test_rsvped_event_carries_author_summary(seed, session_factory):
    await seed.user("alice")
    await seed.user("bob", name="Bob Stone", avatar_url="https://img/bob.png", bio="private bio")
    await seed.add(Event(id="ev2", author_id="bob", title="Gig", start_date=at(6), location="Hall"))
    await seed.add(EventRsvp(event_id="ev2", user_id="alice"))

    [item] = await get_calendar_items(session_factory, "alice")

    assert item.type == "event"
    assert item.is_external is True
    assert item.edit_path == "/events/ev2"
    assert item.location == "Hall"
    assert item.date == "2030-01-06T12:00:00"
    assert item.author.model_dump() == {
        "user_id": "bob",
        "name": "Bob Stone",
        "username": "bob",
        "avatar_url": "https://img/bob.png",
    }


async def test_every_owned_kind_is_on_the_calendar(seed, session_factory):
    await seed.user("alice")
    await seed.add(
        Event(author_id="alice", title="Launch", start_date=at(1)),
        Offer(author_id="alice", title="2 for 1", start_date=at(2)),
        Job(author_id="alice", title="Barista", posting_date=at(3)),
        Listing(author_id="alice", title="Bike", created_at=at(4)),
        BusinessPage(author_id="alice", name="Corner Shop", created_at=at(5)),
        Post(author_id="alice", content="not a calendar item"),
    )

    items = await get_calendar_items(session_factory, "alice")

    assert sorted(i.type for i in items) == ["business_page", "event", "job", "listing", "offer"]
    by_type = {i.type: i for i in items}
    assert by_type["job"].edit_path.startswith("/opportunities/")
    assert by_type["business_page"].title == "Corner Shop"
    assert by_type["listing"].date == "2030-01-04T12:00:00"


async def test_records_without_a_date_are_skipped(seed, session_factory):
    await seed.user("alice")
    await seed.add(
        Event(id="undated", author_id="alice", title="Someday", start_date=None),
        Job(id="no-posting", author_id="alice", title="Chef", posting_date=None),
        Event(id="dated", author_id="alice", title="Launch", start_date=at(3)),
    )

    items = await get_calendar_items(session_factory, "alice")

    assert [i.id for i in items] == ["dated"]


async def test_external_event_with_missing_author_is_dropped(seed, session_factory):
    await seed.user("alice")
    await seed.add(Event(id="orphan", author_id="ghost", title="Lost", start_date=at(3)))
    await seed.add(EventRsvp(event_id="orphan", user_id="alice"))

    assert await get_calendar_items(session_factory, "alice") == []


async def test_appointments_show_for_owner_and_booker(seed, session_factory):
    await seed.user("olivia", name="Olivia")
    await seed.user("ben", name="Ben")
    await seed.add(
        Appointment(
            id="ap1",
            owner_id="olivia",
            booker_id="ben",
            booker_name="Ben B.",
            start_time=at(7, 9),
            end_time=datetime(2030, 1, 7, 9, 30),
        )
    )

    [owned] = await get_calendar_items(session_factory, "olivia")
    [booked] = await get_calendar_items(session_factory, "ben")

    assert (owned.type, owned.role, owned.title) == ("appointment", "owner", "Appointment with Ben B.")
    assert owned.author is None
    assert (booked.role, booked.title) == ("booker", "Appointment with Olivia")
    assert booked.author.user_id == "olivia"
    assert booked.end_time == "2030-01-07T09:30:00"


async def test_sort_by_date_both_directions(seed, session_factory):
    await seed.user("alice")
    await seed.add(
        Event(id="mid", author_id="alice", title="B", start_date=at(2)),
        Event(id="late", author_id="alice", title="C", start_date=at(3)),
        Event(id="early", author_id="alice", title="A", start_date=at(1)),
    )
    items = await get_calendar_items(session_factory, "alice")

    assert [i.id for i in sort_by_date(items)] == ["late", "mid", "early"]
    assert [i.id for i in sort_by_date(items, descending=False)] == ["early", "mid", "late"]


async def test_authors_are_resolved_in_batches_of_thirty(seed, session_factory, monkeypatch):
    await seed.user("alice")
    await seed.add(*[User(user_id=f"author{n}", username=f"author{n}", name=f"Author {n}") for n in range(45)])
    await seed.add(
        *[Event(id=f"ev{n}", author_id=f"author{n}", title=f"Show {n}", start_date=at(9)) for n in range(45)]
    )
    await seed.add(*[EventRsvp(event_id=f"ev{n}", user_id="alice") for n in range(45)])

    lookups = []
    fetch_users = queries.fetch_users_by_ids

    async def spy(session, user_ids):
        lookups.append(list(user_ids))
        return await fetch_users(session, user_ids)

    monkeypatch.setattr(queries, "fetch_users_by_ids", spy)

    items = await get_calendar_items(session_factory, "alice")

    assert sorted(len(batch) for batch in lookups) == [15, 30]
    assert len({uid for batch in lookups for uid in batch}) == 45
    assert len(items) == 45
    assert all(i.author is not None for i in items)


async def test_resolve_authors_deduplicates(seed, session_factory):
    await seed.user("bob")
    authors = await resolve_authors(session_factory, ["bob", "bob", None, "ghost"])
    assert list(authors) == ["bob"]


async def test_diary_splits_upcoming_and_past(seed, session_factory):
    await seed.user("alice")
    await seed.user("bob")
    await seed.add(
        Event(id="past-event", author_id="alice", title="Old", start_date=at(2)),
        Event(id="next-event", author_id="alice", title="Soon", start_date=at(12)),
        Offer(id="later-offer", author_id="alice", title="Sale", start_date=at(20)),
        Job(id="old-job", author_id="alice", title="Chef", posting_date=at(1)),
        Event(id="bobs-event", author_id="bob", title="Gig", start_date=at(15)),
        BusinessPage(id="page", author_id="alice", name="Shop", created_at=at(3)),
    )
    await seed.add(EventRsvp(event_id="bobs-event", user_id="alice"))

    diary = await get_events_for_diary(session_factory, "alice", now=at(10))

    assert [e.id for e in diary.upcoming] == ["next-event", "bobs-event", "later-offer"]
    assert [e.id for e in diary.past] == ["past-event", "old-job"]
    external = diary.upcoming[1]
    assert external.is_external and external.author.username == "bob"


async def test_public_content_hides_archived_records(seed, session_factory):
    await seed.user("alice")
    await seed.add(
        Event(id="live", author_id="alice", title="Launch", start_date=at(4), views=3),
        Event(id="archived", author_id="alice", title="Old", start_date=at(5), status="archived"),
        Offer(id="offer", author_id="alice", title="Sale", start_date=at(6), claims=2),
    )

    content = await get_public_content(session_factory, "alice")

    assert [c.id for c in content] == ["offer", "live"]
    assert content[0].stats == {"views": 0, "claims": 2}


async def test_recent_activity_spans_all_kinds(seed, session_factory):
    await seed.user("alice")
    await seed.add(
        Event(author_id="alice", title="Launch", start_date=at(20), created_at=at(1)),
        BusinessPage(author_id="alice", name="", created_at=at(2)),
        Post(author_id="alice", content="y" * 80, created_at=at(3)),
        Job(author_id="alice", title="Chef", posting_date=at(4), created_at=at(4)),
    )

    activity = await get_recent_activity(session_factory, "alice", limit=3)

    assert [(a.type, a.title) for a in activity] == [
        ("Job", "Chef"),
        ("Post", "y" * 50 + "..."),
        ("Business Page", "Untitled"),
    ]
