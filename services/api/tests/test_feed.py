from datetime import datetime

import pytest

from bydbio.aggregator import get_following_feed, get_profile, populate_posts
from bydbio.errors import NotFoundError
from bydbio.models import Event, Follow, Offer, Post, PostLike, User
from bydbio.social import repost_post


def at(day: int, hour: int = 12) -> datetime:
    return datetime(2030, 1, day, hour, 0)


@pytest.fixture
async def network(seed):
    """alice follows bob; nobody follows carol."""
    for user_id in ("alice", "bob", "carol"):
        await seed.user(user_id)
    await seed.add(Follow(follower_id="alice", followee_id="bob"))


async def test_feed_respects_post_privacy(network, seed, session_factory):
    await seed.add(
        Post(id="bob-public", author_id="bob", content="hi", privacy="public", created_at=at(5)),
        Post(id="bob-followers", author_id="bob", content="friends", privacy="followers", created_at=at(4)),
        Post(id="bob-private", author_id="bob", content="diary", privacy="me", created_at=at(6)),
        Post(id="alice-private", author_id="alice", content="note", privacy="me", created_at=at(3)),
        Post(id="carol-public", author_id="carol", content="hey", privacy="public", created_at=at(7)),
    )

    feed = await get_following_feed(session_factory, "alice")

    assert [item.id for item in feed] == ["bob-public", "bob-followers", "alice-private"]
    assert all(item.type == "post" for item in feed)


async def test_reposted_private_post_stays_hidden(network, seed, session_factory):
    await seed.add(Post(id="carol-private", author_id="carol", content="diary", privacy="me"))
    async with session_factory() as session:
        repost = await repost_post(session, "carol-private", "bob")
        await session.commit()

    assert repost.privacy == "me"
    assert await get_following_feed(session_factory, "alice") == []


async def test_repost_keeps_followers_privacy(network, seed, session_factory):
    await seed.add(Post(id="carol-friends", author_id="carol", content="hi", privacy="followers"))
    async with session_factory() as session:
        repost = await repost_post(session, "carol-friends", "bob")
        await session.commit()

    [item] = await get_following_feed(session_factory, "alice")
    assert item.id == repost.id
    assert item.post.privacy == "followers"


async def test_feed_mixes_active_content_newest_first(network, seed, session_factory):
    await seed.add(
        Post(id="post", author_id="bob", content="hi", created_at=at(5)),
        Event(id="event", author_id="bob", title="Gig", start_date=at(8), location="Hall"),
        Event(id="archived", author_id="bob", title="Old gig", start_date=at(9), status="archived"),
        Offer(id="offer", author_id="alice", title="Sale", start_date=at(2)),
        Offer(id="carols", author_id="carol", title="Not followed", start_date=at(9)),
    )

    feed = await get_following_feed(session_factory, "alice")

    assert [item.id for item in feed] == ["event", "post", "offer"]
    event = feed[0]
    assert (event.type, event.title, event.location) == ("event", "Gig", "Hall")
    assert event.author.username == "bob"
    assert event.post is None


async def test_repost_embeds_live_original(network, seed, session_factory):
    await seed.add(Post(id="orig", author_id="carol", content="original text", created_at=at(1), repost_count=1))
    await seed.add(Post(id="rp", author_id="bob", content="", original_post_id="orig", created_at=at(2)))
    await seed.add(PostLike(user_id="alice", post_id="orig"))

    [item] = await get_following_feed(session_factory, "alice")

    assert item.id == "rp"
    assert item.post.repost.id == "orig"
    assert item.post.repost.author.username == "carol"
    assert item.post.repost.is_liked is True
    assert item.post.is_liked is False


async def test_feed_is_truncated_to_page_size(network, seed, session_factory):
    await seed.add(
        *[Post(id=f"p{n:02d}", author_id="bob", content=str(n), created_at=datetime(2030, 1, 1, 0, n)) for n in range(60)]
    )

    feed = await get_following_feed(session_factory, "alice")

    assert len(feed) == 50
    assert feed[0].id == "p59"


async def test_populate_drops_posts_of_deleted_authors(network, seed, session_factory):
    await seed.add(Post(id="kept", author_id="bob", content="hi", created_at=at(1)))
    await seed.add(Post(id="orphan", author_id="ghost", content="?", created_at=at(2)))

    async with session_factory() as session:
        posts = [await session.get(Post, "kept"), await session.get(Post, "orphan")]

    views = await populate_posts(session_factory, posts, "alice")

    assert [v.id for v in views] == ["kept"]


async def test_profile_shows_public_posts_to_visitors(network, seed, session_factory):
    await seed.add(
        Post(id="public", author_id="bob", content="hi", privacy="public", created_at=at(2)),
        Post(id="followers", author_id="bob", content="friends", privacy="followers", created_at=at(3)),
        Event(id="event", author_id="bob", title="Gig", start_date=at(8)),
    )

    visitor = await get_profile(session_factory, "bob", viewer_id="alice")
    owner = await get_profile(session_factory, "bob", viewer_id="bob")

    assert [p.id for p in visitor.posts] == ["public"]
    assert visitor.is_owner is False
    assert visitor.is_followed_by_viewer is True
    assert [c.id for c in visitor.content] == ["event"]
    assert [p.id for p in owner.posts] == ["followers", "public"]
    assert owner.is_owner is True
    assert owner.is_followed_by_viewer is False


async def test_profile_of_unknown_username(session_factory):
    with pytest.raises(NotFoundError):
        await get_profile(session_factory, "nobody")


async def test_profile_user_created_at_is_iso_text(network, seed, session_factory):
    bob = await seed.get(User, "bob")

    payload = await get_profile(session_factory, "bob")

    assert isinstance(payload.user.created_at, str)
    assert payload.user.created_at == bob.created_at.isoformat()
