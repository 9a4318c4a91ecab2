"""
Write paths: users, content, RSVPs, posts, likes and follows.

Every function runs inside the caller's transaction (the request session
from get_db) and never commits itself. Counters move only through
`col = col ± 1` UPDATE statements and membership changes are single
INSERT/DELETE statements on the membership tables, so two concurrent
toggles cannot overwrite each other.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import case, delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from bydbio.availability import to_local_naive
from bydbio.content_types import ContentKind, content_type, display_title
from bydbio.errors import (
    DuplicateActionError,
    NotFoundError,
    NotPermittedError,
    SelfActionError,
)
from bydbio.models import EventRsvp, Follow, Post, PostLike, User
from bydbio.notifications import create_notification

logger = logging.getLogger(__name__)


# ─────────────────────────── Users ───────────────────────────────────────

async def create_user(
    session: AsyncSession,
    username: str,
    name: str,
    avatar_url: Optional[str] = None,
    bio: Optional[str] = None,
) -> User:
    taken = await session.execute(select(User.user_id).where(User.username == username))
    if taken.first() is not None:
        raise DuplicateActionError("Username already taken")

    user = User(username=username, name=name, avatar_url=avatar_url, bio=bio)
    session.add(user)
    await session.flush()
    logger.info("User created: %s (%s)", user.user_id, username)
    return user


async def _require_user(session: AsyncSession, user_id: str) -> User:
    user = await session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


# ─────────────────────────── Content ─────────────────────────────────────

async def create_content(
    session: AsyncSession,
    kind: ContentKind,
    author_id: str,
    data: dict,
):
    """Create an event, offer, job, listing or business page (status 'active')."""
    if kind == ContentKind.POST:
        raise ValueError("Posts are created with create_post")
    await _require_user(session, author_id)

    data = {
        field: to_local_naive(value) if isinstance(value, datetime) else value
        for field, value in data.items()
    }
    record = content_type(kind).model(author_id=author_id, status="active", **data)
    session.add(record)
    await session.flush()
    logger.info("%s created: %s by user %s", kind.value, record.id, author_id)
    return record


async def toggle_rsvp(session: AsyncSession, event_id: str, user_id: str) -> bool:
    """Flip the user's RSVP. Returns True when the user is now attending."""
    event = await session.get(content_type(ContentKind.EVENT).model, event_id)
    if event is None:
        raise NotFoundError("Event not found")

    left = await session.execute(
        delete(EventRsvp).where(EventRsvp.event_id == event_id, EventRsvp.user_id == user_id)
    )
    if left.rowcount:
        return False

    session.add(EventRsvp(event_id=event_id, user_id=user_id))
    await session.flush()
    await create_notification(
        session,
        user_id=event.author_id,
        actor_id=user_id,
        notification_type="event_rsvp",
        entity_id=event_id,
        entity_type="event",
        entity_title=event.title,
    )
    return True


async def remove_calendar_item(
    session: AsyncSession,
    kind: ContentKind,
    item_id: str,
    user_id: str,
) -> str:
    """
    Remove an item from the user's calendar.

    The author deletes the record outright ("deleted"). Someone who only
    RSVP'd to an event leaves it instead ("left"); the event is untouched.
    """
    if kind == ContentKind.POST:
        raise ValueError("Posts are removed with delete_post")

    registry = content_type(kind)
    record = await session.get(registry.model, item_id)
    if record is None:
        raise NotFoundError(f"{registry.label} not found")

    if record.author_id == user_id:
        if kind == ContentKind.EVENT:
            await session.execute(delete(EventRsvp).where(EventRsvp.event_id == item_id))
        await session.delete(record)
        logger.info("%s %s deleted by its author", kind.value, item_id)
        return "deleted"

    if kind == ContentKind.EVENT:
        left = await session.execute(
            delete(EventRsvp).where(EventRsvp.event_id == item_id, EventRsvp.user_id == user_id)
        )
        if left.rowcount:
            return "left"

    raise NotPermittedError("You can only remove items you created or events you attend.")


# ─────────────────────────── Posts ───────────────────────────────────────

async def create_post(
    session: AsyncSession,
    author_id: str,
    content: str = "",
    image_url: Optional[str] = None,
    privacy: str = "public",
    category: Optional[str] = None,
    quoted_post_id: Optional[str] = None,
) -> Post:
    """
    Publish a post. The author's post_count is bumped atomically and its new
    value becomes the post's number. A quote embeds a snapshot of the quoted
    post as it is right now.
    """
    quoted = None
    if quoted_post_id:
        original = await session.get(Post, quoted_post_id)
        if original is None:
            raise NotFoundError("Quoted post not found")
        quoted = {
            "id": original.id,
            "content": original.content,
            "image_url": original.image_url,
            "author_id": original.author_id,
            "created_at": original.created_at.isoformat(),
        }

    bumped = await session.execute(
        update(User)
        .where(User.user_id == author_id)
        .values(post_count=User.post_count + 1)
    )
    if not bumped.rowcount:
        raise NotFoundError("User not found")
    post_number = (
        await session.execute(select(User.post_count).where(User.user_id == author_id))
    ).scalar_one()

    post = Post(
        author_id=author_id,
        content=content,
        image_url=image_url,
        privacy=privacy,
        category=category,
        post_number=post_number,
        quoted_post=quoted,
    )
    session.add(post)
    await session.flush()
    logger.info("Post created: %s by user %s", post.id, author_id)
    return post


async def repost_post(session: AsyncSession, original_id: str, reposter_id: str) -> Post:
    original = await session.get(Post, original_id)
    if original is None:
        raise NotFoundError("Post not found")
    if original.author_id == reposter_id:
        raise SelfActionError("You cannot repost your own post.")

    already = await session.execute(
        select(Post.id).where(
            Post.author_id == reposter_id,
            Post.original_post_id == original_id,
        )
    )
    if already.first() is not None:
        raise DuplicateActionError("You have already reposted this post.")
    await _require_user(session, reposter_id)

    # A repost is never more visible than what it reposts.
    repost = Post(
        author_id=reposter_id,
        content="",
        privacy=original.privacy,
        original_post_id=original_id,
    )
    session.add(repost)
    await session.execute(
        update(Post)
        .where(Post.id == original_id)
        .values(repost_count=Post.repost_count + 1)
    )
    await session.flush()
    logger.info("Post %s reposted by %s as %s", original_id, reposter_id, repost.id)
    return repost


async def delete_post(session: AsyncSession, post_id: str, requester_id: str) -> None:
    """
    Author-only delete. Removes the post's likes, and undoes the counter the
    post contributed to: the original's repost_count for a repost, the
    author's post_count otherwise.
    """
    post = await session.get(Post, post_id)
    if post is None:
        raise NotFoundError("Post not found")
    if post.author_id != requester_id:
        raise NotPermittedError("You can only delete your own posts.")

    await session.execute(delete(PostLike).where(PostLike.post_id == post_id))
    if post.original_post_id:
        await session.execute(
            update(Post)
            .where(Post.id == post.original_post_id, Post.repost_count > 0)
            .values(repost_count=Post.repost_count - 1)
        )
    else:
        await session.execute(
            update(User)
            .where(User.user_id == post.author_id, User.post_count > 0)
            .values(post_count=User.post_count - 1)
        )
    await session.delete(post)
    logger.info("Post %s deleted", post_id)


async def toggle_like(session: AsyncSession, post_id: str, user_id: str) -> bool:
    """Flip the user's like. Returns True when the post is now liked."""
    post = await session.get(Post, post_id)
    if post is None:
        raise NotFoundError("Post not found")

    unliked = await session.execute(
        delete(PostLike).where(PostLike.post_id == post_id, PostLike.user_id == user_id)
    )
    if unliked.rowcount:
        await session.execute(
            update(Post)
            .where(Post.id == post_id, Post.like_count > 0)
            .values(like_count=Post.like_count - 1)
        )
        return False

    session.add(PostLike(post_id=post_id, user_id=user_id))
    await session.execute(
        update(Post).where(Post.id == post_id).values(like_count=Post.like_count + 1)
    )
    await create_notification(
        session,
        user_id=post.author_id,
        actor_id=user_id,
        notification_type="new_like",
        entity_id=post_id,
        entity_type="post",
        entity_title=display_title(ContentKind.POST, post),
    )
    return True


# ─────────────────────────── Follows ─────────────────────────────────────

async def follow_user(session: AsyncSession, follower_id: str, followee_id: str) -> bool:
    """Idempotent. Returns True when a new follow edge was created."""
    if follower_id == followee_id:
        raise SelfActionError("You cannot follow yourself.")
    await _require_user(session, followee_id)

    if await session.get(Follow, (follower_id, followee_id)) is not None:
        return False

    session.add(Follow(follower_id=follower_id, followee_id=followee_id))
    await session.execute(
        update(User)
        .where(User.user_id == followee_id)
        .values(follower_count=User.follower_count + 1)
    )
    await create_notification(
        session,
        user_id=followee_id,
        actor_id=follower_id,
        notification_type="new_follower",
        entity_id=follower_id,
        entity_type="user",
    )
    return True


async def unfollow_user(session: AsyncSession, follower_id: str, followee_id: str) -> bool:
    """Returns True when an existing follow edge was removed."""
    if follower_id == followee_id:
        raise SelfActionError("You cannot unfollow yourself.")

    removed = await session.execute(
        delete(Follow).where(
            Follow.follower_id == follower_id,
            Follow.followee_id == followee_id,
        )
    )
    if not removed.rowcount:
        return False

    await session.execute(
        update(User)
        .where(User.user_id == followee_id)
        .values(
            follower_count=case(
                (User.follower_count > 0, User.follower_count - 1), else_=0
            )
        )
    )
    return True
